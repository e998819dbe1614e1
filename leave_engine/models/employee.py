"""
Employee directory snapshot.
The engine only reads these rows; the owning HR directory keeps them current.
"""
from sqlalchemy import Column, String, Date, Enum, DateTime
from sqlalchemy.sql import func
from leave_engine.database import Base
from leave_engine.models.enums import EmployeeStatus, Gender, MaritalStatus, Region, Role


class Employee(Base):
    __tablename__ = "employees"

    id = Column(String, primary_key=True, index=True)
    name = Column(String, nullable=True)
    email = Column(String, nullable=True)
    region = Column(Enum(Region), nullable=False, index=True)
    role = Column(Enum(Role), default=Role.EMPLOYEE, nullable=False, index=True)
    # Weak reference: the manager may have left the directory.
    reporting_manager_id = Column(String, nullable=True, index=True)
    gender = Column(Enum(Gender), nullable=True)
    marital_status = Column(Enum(MaritalStatus), nullable=True)
    joining_date = Column(Date, nullable=False)
    status = Column(Enum(EmployeeStatus), default=EmployeeStatus.ACTIVE, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    def __repr__(self):
        return f"<Employee {self.id} ({self.role.value}, {self.region.value})>"
