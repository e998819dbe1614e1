from sqlalchemy import Column, Integer, String, Date, Enum
from leave_engine.database import Base
from leave_engine.models.enums import Region


class Holiday(Base):
    __tablename__ = "holidays"

    id = Column(Integer, primary_key=True, index=True)
    date = Column(Date, nullable=False, index=True)
    name = Column(String, nullable=False)
    region = Column(Enum(Region), nullable=True)  # NULL = company-wide
