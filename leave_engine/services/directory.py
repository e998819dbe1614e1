from typing import List, Optional

from sqlalchemy.orm import Session

from leave_engine.core.exceptions import NotFoundError
from leave_engine.models.employee import Employee
from leave_engine.models.enums import EmployeeStatus, Region, Role
from leave_engine.services.interfaces import EmployeeSnapshot


class SqlEmployeeDirectory:
    """Employee lookups against the `employees` table."""

    def __init__(self, db: Session):
        self.db = db

    def find(self, employee_id: str) -> Optional[EmployeeSnapshot]:
        if not employee_id:
            return None
        employee = self.db.get(Employee, employee_id)
        if not employee:
            return None
        return EmployeeSnapshot.model_validate(employee)

    def get(self, employee_id: str) -> EmployeeSnapshot:
        snapshot = self.find(employee_id)
        if snapshot is None:
            raise NotFoundError(f"Employee not found: {employee_id}", details={"employee_id": employee_id})
        return snapshot

    def list_active(self, region: Optional[Region] = None) -> List[EmployeeSnapshot]:
        query = self.db.query(Employee).filter(Employee.status == EmployeeStatus.ACTIVE)
        if region is not None:
            query = query.filter(Employee.region == region)
        return [EmployeeSnapshot.model_validate(e) for e in query.order_by(Employee.id).all()]


class SqlRoleDirectory:
    def __init__(self, db: Session):
        self.db = db

    def find_active_holder(self, role: Role, exclude: Optional[str] = None) -> Optional[str]:
        """First ACTIVE holder of `role`, ordered by id so the choice is stable."""
        query = self.db.query(Employee.id).filter(Employee.role == role, Employee.status == EmployeeStatus.ACTIVE)
        if exclude:
            query = query.filter(Employee.id != exclude)
        holder = query.order_by(Employee.id).first()
        return holder[0] if holder else None
