import logging
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel
from sqlmodel import select

from gatsishub import config
from gatsishub.api.common import get_or_404
from gatsishub.db.session import get_session
from gatsishub.exceptions import Conflict, ValidationFailed
from gatsishub.models import Employee
from gatsishub.models.common import utcnow
from gatsishub.models.staff import ACCOUNT_ACTIVE, ACCOUNT_ARCHIVED
from gatsishub.services.validation import is_valid_email, require_fields

logger = logging.getLogger(__name__)
router = APIRouter()


class EmployeeIn(BaseModel):
    name: Optional[str] = None
    email: Optional[str] = None
    department: Optional[str] = None
    role: Optional[str] = None
    contact_details: Optional[str] = None
    shift_hours: Optional[str] = None
    is_present: Optional[bool] = None


class Presence(BaseModel):
    is_present: bool


def _check_email(session, email: Optional[str], exclude_id: Optional[int] = None) -> None:
    if email is None:
        return
    if not is_valid_email(email):
        raise ValidationFailed("Invalid email format", details={"email": "Invalid email format"})
    existing = session.exec(select(Employee).where(Employee.email == email)).first()
    if existing is not None and existing.id != exclude_id:
        raise Conflict("Employee email already exists", details={"email": email})


@router.get("")
def list_employees(
    role: Optional[str] = None,
    status: Optional[str] = None,
    ispresent: Optional[bool] = None,
    limit: Optional[int] = None,
):
    session = get_session()
    try:
        stmt = select(Employee)
        if role:
            stmt = stmt.where(Employee.role == role)
        if status:
            stmt = stmt.where(Employee.account_status == status)
        if ispresent is not None:
            stmt = stmt.where(Employee.is_present == ispresent)
        stmt = stmt.order_by(Employee.name)
        if limit:
            stmt = stmt.limit(min(max(limit, 1), config.MAX_PAGE_SIZE))
        return {"employees": session.exec(stmt).all()}
    finally:
        session.close()


@router.post("", status_code=201)
def create_employee(body: EmployeeIn):
    require_fields(body.model_dump(), {"name": "Employee name is required"})
    session = get_session()
    try:
        _check_email(session, body.email)
        employee = Employee(**body.model_dump(exclude_none=True))
        employee.name = employee.name.strip()
        session.add(employee)
        session.commit()
        session.refresh(employee)
        logger.info("Created employee id=%s role=%s", employee.id, employee.role)
        return {"message": "Employee created successfully", "employee": employee}
    finally:
        session.close()


@router.get("/{employee_id}")
def get_employee(employee_id: int):
    session = get_session()
    try:
        return {"employee": get_or_404(session, Employee, employee_id, "Employee")}
    finally:
        session.close()


@router.patch("/{employee_id}/presence")
def set_presence(employee_id: int, body: Presence):
    session = get_session()
    try:
        employee = get_or_404(session, Employee, employee_id, "Employee")
        employee.is_present = body.is_present
        employee.updated_at = utcnow()
        session.add(employee)
        session.commit()
        session.refresh(employee)
        logger.info("Employee %s present=%s", employee.id, employee.is_present)
        return {"employee": employee}
    finally:
        session.close()


@router.patch("/{employee_id}/restore")
def restore_employee(employee_id: int):
    session = get_session()
    try:
        employee = get_or_404(session, Employee, employee_id, "Employee")
        employee.account_status = ACCOUNT_ACTIVE
        employee.updated_at = utcnow()
        session.add(employee)
        session.commit()
        session.refresh(employee)
        logger.info("Employee %s restored", employee.id)
        return {"message": "Employee restored successfully", "employee": employee}
    finally:
        session.close()


@router.patch("/{employee_id}")
def update_employee(employee_id: int, body: EmployeeIn):
    changes = body.model_dump(exclude_unset=True)
    session = get_session()
    try:
        employee = get_or_404(session, Employee, employee_id, "Employee")
        if "name" in changes:
            require_fields(changes, {"name": "Employee name is required"})
            changes["name"] = changes["name"].strip()
        if "email" in changes:
            _check_email(session, changes["email"], exclude_id=employee.id)
        for field, value in changes.items():
            setattr(employee, field, value)
        employee.updated_at = utcnow()
        session.add(employee)
        session.commit()
        session.refresh(employee)
        logger.info("Updated employee id=%s fields=%s", employee.id, sorted(changes))
        return {"message": "Employee updated successfully", "employee": employee}
    finally:
        session.close()


@router.delete("/{employee_id}")
def archive_employee(employee_id: int):
    session = get_session()
    try:
        employee = get_or_404(session, Employee, employee_id, "Employee")
        employee.account_status = ACCOUNT_ARCHIVED
        employee.is_present = False
        employee.updated_at = utcnow()
        session.add(employee)
        session.commit()
        session.refresh(employee)
        logger.info("Employee %s archived", employee.id)
        return {"message": "Employee archived successfully", "employee": employee}
    finally:
        session.close()
