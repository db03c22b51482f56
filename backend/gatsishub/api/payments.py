import logging
from typing import Optional

from fastapi import APIRouter, File, Form, UploadFile
from pydantic import BaseModel
from sqlmodel import select

from gatsishub.api.common import get_or_404, latest_payment
from gatsishub.db.session import get_session
from gatsishub.exceptions import Conflict, InvalidTransition, NotFound, ValidationFailed
from gatsishub.models import Order, OrderStatus, Payment, PaymentStatus
from gatsishub.models.common import utcnow
from gatsishub.services import lifecycle
from gatsishub.services.storage import ProofStorage
from gatsishub.services.validation import require_fields

logger = logging.getLogger(__name__)
router = APIRouter()


class PaymentReview(BaseModel):
    status: str
    verified_by: Optional[int] = None
    notes: Optional[str] = None


@router.post("/submit", status_code=201)
def submit_payment(
    proof_of_payment: Optional[UploadFile] = File(None),
    payment_method: Optional[str] = Form(None),
    order_id: Optional[str] = Form(None),
    customer_id: Optional[str] = Form(None),
    amount_paid: Optional[float] = Form(None),
    transaction_reference: Optional[str] = Form(None),
    notes: Optional[str] = Form(None),
):
    require_fields(
        {"order_id": order_id, "payment_method": payment_method, "proof_of_payment": proof_of_payment},
        {
            "order_id": "Order is required",
            "payment_method": "Payment method is required",
            "proof_of_payment": "Payment proof file is required",
        },
    )
    content = proof_of_payment.file.read()

    session = get_session()
    stored = None
    storage = ProofStorage()
    try:
        order = get_or_404(session, Order, order_id, "Order")
        status = lifecycle.parse_status(order.status)
        if status != OrderStatus.WAITING_FOR_PAYMENT:
            raise InvalidTransition(
                "Payment can only be submitted while the order is waiting for payment",
                current_status=status.value,
            )
        if not order.contract_signed:
            raise InvalidTransition("Contract must be signed before payment", current_status=status.value)
        if order.requires_contract_amendment:
            raise InvalidTransition(
                "Contract amendment must be signed before payment",
                current_status=status.value,
            )

        open_payment = session.exec(
            select(Payment)
            .where(Payment.order_id == order.id)
            .where(Payment.status.in_([PaymentStatus.PENDING, PaymentStatus.VERIFIED]))
        ).first()
        if open_payment is not None:
            raise Conflict(
                "A payment has already been submitted for this order",
                details={"payment_id": open_payment.id, "status": open_payment.status.value},
            )

        stored = storage.save(order.id, proof_of_payment.filename, content, proof_of_payment.content_type)
        payment = Payment(
            order_id=order.id,
            customer_id=customer_id or order.customer_id,
            payment_method=payment_method,
            proof_of_payment=stored,
            amount_paid=amount_paid,
            transaction_reference=transaction_reference,
            notes=notes,
        )
        session.add(payment)
        lifecycle.transition(session, order, OrderStatus.VERIFYING_PAYMENT, description="Payment proof submitted")
        session.commit()
        session.refresh(payment)
        logger.info("Payment %s submitted for order %s method=%s", payment.id, order.id, payment_method)
        return {"message": "Payment submitted successfully", "payment": payment}
    except Exception:
        if stored:
            storage.delete(stored)
        raise
    finally:
        session.close()


@router.get("")
def list_payments(status: Optional[str] = None, order_id: Optional[str] = None, customer_id: Optional[str] = None):
    session = get_session()
    try:
        stmt = select(Payment)
        if status:
            try:
                stmt = stmt.where(Payment.status == PaymentStatus(status))
            except ValueError:
                raise ValidationFailed("Invalid payment status", details={"status": f"Unknown status: {status}"})
        if order_id:
            stmt = stmt.where(Payment.order_id == order_id)
        if customer_id:
            stmt = stmt.where(Payment.customer_id == customer_id)
        rows = session.exec(stmt.order_by(Payment.submitted_at.desc(), Payment.id.desc())).all()
        return {"payments": rows}
    finally:
        session.close()


@router.get("/order/{order_id}")
def payment_for_order(order_id: str):
    session = get_session()
    try:
        payment = latest_payment(session, order_id)
        if payment is None:
            raise NotFound("No payment found for this order")
        return {"payment": payment}
    finally:
        session.close()


@router.get("/{payment_id}")
def get_payment(payment_id: int):
    session = get_session()
    try:
        return {"payment": get_or_404(session, Payment, payment_id, "Payment")}
    finally:
        session.close()


@router.patch("/{payment_id}/verify")
def verify_payment(payment_id: int, body: PaymentReview):
    if body.status not in (PaymentStatus.VERIFIED.value, PaymentStatus.REJECTED.value):
        raise ValidationFailed(
            "Invalid status. Must be 'Verified' or 'Rejected'",
            details={"status": "Must be 'Verified' or 'Rejected'"},
        )
    decision = PaymentStatus(body.status)

    session = get_session()
    try:
        payment = get_or_404(session, Payment, payment_id, "Payment")
        if payment.status != PaymentStatus.PENDING:
            raise Conflict(
                "Payment has already been reviewed",
                details={"status": payment.status.value},
            )
        order = get_or_404(session, Order, payment.order_id, "Order")
        target = OrderStatus.IN_PRODUCTION if decision == PaymentStatus.VERIFIED else OrderStatus.WAITING_FOR_PAYMENT
        lifecycle.transition(
            session,
            order,
            target,
            employee_id=body.verified_by,
            description=f"Payment {decision.value.lower()}",
        )

        now = utcnow()
        payment.status = decision
        payment.verified_at = now
        payment.updated_at = now
        if body.verified_by is not None:
            payment.verified_by = body.verified_by
        if body.notes:
            payment.notes = body.notes
        session.add(payment)
        session.commit()
        session.refresh(payment)
        logger.info("Payment %s %s; order %s -> %s", payment.id, decision.value, order.id, target.value)
        return {"payment": payment}
    finally:
        session.close()


@router.delete("/{payment_id}")
def delete_payment(payment_id: int):
    session = get_session()
    try:
        payment = get_or_404(session, Payment, payment_id, "Payment")
        order = session.get(Order, payment.order_id)
        if order is not None:
            status = lifecycle.parse_status(order.status)
            if status == OrderStatus.VERIFYING_PAYMENT:
                lifecycle.transition(
                    session, order, OrderStatus.WAITING_FOR_PAYMENT, description="Payment proof removed"
                )
            elif status != OrderStatus.WAITING_FOR_PAYMENT:
                raise InvalidTransition(
                    "Payment cannot be removed once the order has moved past payment",
                    current_status=status.value,
                )
        proof = payment.proof_of_payment
        session.delete(payment)
        session.commit()
        ProofStorage().delete(proof)
        logger.info("Payment %s deleted; order %s awaiting payment", payment_id, payment.order_id)
        return {"message": "Payment rejected. Customer can resubmit."}
    finally:
        session.close()
