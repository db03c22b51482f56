import logging
from typing import Any, Dict, List, Optional

from fastapi import APIRouter
from pydantic import BaseModel
from sqlmodel import select

from gatsishub import config
from gatsishub.api.common import get_or_404
from gatsishub.db.session import get_session
from gatsishub.exceptions import ValidationFailed
from gatsishub.models import Employee, Message, Order
from gatsishub.models.support import SENDER_ADMIN, SENDER_CUSTOMER
from gatsishub.services.validation import require_fields
from gatsishub.utils.images import decode_data_url

logger = logging.getLogger(__name__)
router = APIRouter()

PREVIEW_LENGTH = 50


class MessageIn(BaseModel):
    customer_id: Optional[str] = None
    employee_id: Optional[int] = None
    message: Optional[str] = None
    sender_type: str = SENDER_CUSTOMER
    attachment: Optional[str] = None
    attachment_name: Optional[str] = None


def _preview(text: Optional[str]) -> str:
    return (text or "")[:PREVIEW_LENGTH]


@router.post("/send", status_code=201)
def send_message(body: MessageIn):
    require_fields(
        body.model_dump(),
        {
            "customer_id": "Customer ID is required",
            "employee_id": "Employee ID is required",
            "message": "Message is required",
        },
    )
    if body.sender_type not in (SENDER_CUSTOMER, SENDER_ADMIN):
        raise ValidationFailed(
            "Invalid sender type",
            details={"sender_type": f"Must be '{SENDER_CUSTOMER}' or '{SENDER_ADMIN}'"},
        )
    if body.attachment:
        try:
            _, content = decode_data_url(body.attachment)
        except ValueError:
            raise ValidationFailed("Invalid attachment", details={"attachment": "Attachment must be base64 encoded"})
        if len(content) > config.MAX_PROOF_BYTES:
            raise ValidationFailed("Attachment is too large", details={"attachment": "File exceeds 5MB"})

    session = get_session()
    try:
        get_or_404(session, Employee, body.employee_id, "Employee")
        msg = Message(
            customer_id=body.customer_id,
            employee_id=body.employee_id,
            message=body.message.strip(),
            sender_type=body.sender_type,
            attachment=body.attachment or None,
            attachment_name=body.attachment_name,
        )
        session.add(msg)
        session.commit()
        session.refresh(msg)
        logger.info("Message %s %s customer=%s employee=%s", msg.id, msg.sender_type, msg.customer_id, msg.employee_id)
        return {"message": msg}
    finally:
        session.close()


@router.get("/conversation/{customer_id}/{employee_id}")
def conversation(customer_id: str, employee_id: int):
    session = get_session()
    try:
        stmt = (
            select(Message)
            .where(Message.customer_id == customer_id)
            .where(Message.employee_id == employee_id)
            .order_by(Message.time_sent, Message.id)
        )
        return {"messages": session.exec(stmt).all()}
    finally:
        session.close()


@router.get("/conversations/customer/{customer_id}")
def customer_conversations(customer_id: str):
    session = get_session()
    try:
        stmt = (
            select(Message)
            .where(Message.customer_id == customer_id)
            .order_by(Message.time_sent.desc(), Message.id.desc())
        )
        latest: Dict[int, Message] = {}
        for msg in session.exec(stmt).all():
            if msg.employee_id is not None:
                latest.setdefault(msg.employee_id, msg)

        employees = {
            e.id: e for e in session.exec(select(Employee).where(Employee.id.in_(list(latest)))).all()
        } if latest else {}
        conversations: List[Dict[str, Any]] = []
        for employee_id, msg in latest.items():
            employee = employees.get(employee_id)
            conversations.append({
                "employee_id": employee_id,
                "employee_name": employee.name if employee else None,
                "role": employee.role if employee else None,
                "last_message": _preview(msg.message),
                "last_message_time": msg.time_sent.isoformat(),
            })
        return {"conversations": conversations}
    finally:
        session.close()


@router.get("/conversations/admin")
def admin_conversations():
    session = get_session()
    try:
        stmt = select(Message).order_by(Message.time_sent.desc(), Message.id.desc())
        latest: Dict[str, Message] = {}
        for msg in session.exec(stmt).all():
            latest.setdefault(msg.customer_id, msg)

        conversations: List[Dict[str, Any]] = []
        for customer_id, msg in latest.items():
            order = session.exec(
                select(Order).where(Order.customer_id == customer_id).order_by(Order.created_at.desc())
            ).first()
            conversations.append({
                "customer_id": customer_id,
                "company_name": order.company_name if order else None,
                "last_message": _preview(msg.message),
                "last_message_time": msg.time_sent.isoformat(),
            })
        return {"conversations": conversations}
    finally:
        session.close()


@router.delete("/{message_id}")
def delete_message(message_id: int):
    session = get_session()
    try:
        msg = get_or_404(session, Message, message_id, "Message")
        session.delete(msg)
        session.commit()
        logger.info("Deleted message %s", message_id)
        return {"message": "Message deleted successfully"}
    finally:
        session.close()
