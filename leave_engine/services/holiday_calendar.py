from datetime import date

from sqlalchemy import or_
from sqlalchemy.orm import Session

from leave_engine.models.enums import Region
from leave_engine.models.holiday import Holiday


class SqlHolidayCalendar:
    """Declared holidays; a row without a region applies everywhere."""

    def __init__(self, db: Session):
        self.db = db

    def _for_region(self, region: Region):
        return self.db.query(Holiday).filter(or_(Holiday.region == region, Holiday.region.is_(None)))

    def is_holiday(self, day: date, region: Region) -> bool:
        return self._for_region(region).filter(Holiday.date == day).first() is not None
