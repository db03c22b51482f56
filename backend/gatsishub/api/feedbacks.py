import logging
from typing import Optional

from fastapi import APIRouter
from pydantic import BaseModel
from sqlmodel import select

from gatsishub.db.session import get_session
from gatsishub.exceptions import Conflict, Forbidden, InvalidTransition, ValidationFailed
from gatsishub.models import Feedback, Order, OrderStatus
from gatsishub.services.validation import require_fields

logger = logging.getLogger(__name__)
router = APIRouter()


class FeedbackIn(BaseModel):
    customer_id: Optional[str] = None
    order_id: Optional[str] = None
    message: Optional[str] = None
    rating: Optional[int] = None


@router.get("")
def list_feedbacks(limit: Optional[int] = None):
    session = get_session()
    try:
        stmt = select(Feedback).order_by(Feedback.created_at.desc(), Feedback.id.desc())
        if limit:
            stmt = stmt.limit(limit)
        return {"feedbacks": session.exec(stmt).all()}
    finally:
        session.close()


@router.post("", status_code=201)
def create_feedback(body: FeedbackIn):
    require_fields(
        body.model_dump(),
        {
            "customer_id": "Customer ID is required",
            "order_id": "Order is required",
            "message": "Comment is required",
        },
        "Customer ID, order and message are required",
    )
    if body.rating is None or not 1 <= body.rating <= 5:
        raise ValidationFailed("Rating must be between 1 and 5", details={"rating": "Must be between 1 and 5"})

    session = get_session()
    try:
        order = session.get(Order, body.order_id)
        if order is None or order.customer_id != body.customer_id:
            raise Forbidden("Order does not belong to this customer")
        if order.status != OrderStatus.COMPLETED:
            raise InvalidTransition("Only completed orders can be rated", current_status=order.status.value)
        if session.exec(select(Feedback).where(Feedback.order_id == order.id)).first() is not None:
            raise Conflict("Feedback has already been submitted for this order", details={"order_id": order.id})

        feedback = Feedback(
            customer_id=body.customer_id,
            order_id=order.id,
            message=body.message.strip(),
            rating=body.rating,
        )
        session.add(feedback)
        session.commit()
        session.refresh(feedback)
        logger.info("Feedback %s for order %s rating=%s", feedback.id, order.id, feedback.rating)
        return {"message": "Feedback submitted successfully", "feedback": feedback}
    finally:
        session.close()


@router.get("/customer/{customer_id}")
def customer_feedbacks(customer_id: str):
    session = get_session()
    try:
        stmt = (
            select(Feedback, Order)
            .join(Order, Order.id == Feedback.order_id)
            .where(Feedback.customer_id == customer_id)
            .order_by(Feedback.id.desc())
        )
        feedbacks = []
        for fb, order in session.exec(stmt).all():
            item = fb.model_dump(mode="json")
            item["order"] = {"status": order.status.value, "hanger_type": order.hanger_type}
            feedbacks.append(item)
        return {"feedbacks": feedbacks}
    finally:
        session.close()


@router.get("/available-orders/{customer_id}")
def available_orders(customer_id: str):
    session = get_session()
    try:
        rated = set(session.exec(select(Feedback.order_id).where(Feedback.customer_id == customer_id)).all())
        completed = session.exec(
            select(Order)
            .where(Order.customer_id == customer_id)
            .where(Order.status == OrderStatus.COMPLETED)
            .order_by(Order.created_at.desc())
        ).all()
        orders = [
            {
                "id": o.id,
                "hanger_type": o.hanger_type,
                "quantity": o.quantity,
                "created_at": o.created_at.isoformat(),
                "status": o.status.value,
            }
            for o in completed
            if o.id not in rated
        ]
        return {"orders": orders}
    finally:
        session.close()
