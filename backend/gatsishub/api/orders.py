import logging
from datetime import date
from typing import Any, Dict, Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, ConfigDict, Field
from sqlmodel import select
from starlette.responses import HTMLResponse

from gatsishub.api.common import get_or_404, latest_payment, latest_payments, page_params, paginate, pagination
from gatsishub.db.session import get_session
from gatsishub.exceptions import InvalidTransition, NotFound, ValidationFailed
from gatsishub.models import Employee, Material, Order, OrderLog, OrderStatus, Product
from gatsishub.models.common import utcnow
from gatsishub.services import lifecycle
from gatsishub.services.contract import render_contract_html, sign_contract
from gatsishub.services.invoice import build_invoice, render_invoice_html
from gatsishub.services.pricing import PriceEngine
from gatsishub.services.validation import OrderValidator

logger = logging.getLogger(__name__)
router = APIRouter()

engine = PriceEngine()
validator = OrderValidator()


class OrderCreate(BaseModel):
    customer_id: Optional[str] = None
    company_name: Optional[str] = None
    contact_person: Optional[str] = None
    contact_phone: Optional[str] = None
    hanger_type: Optional[str] = None
    material_type: Optional[str] = None
    quantity: Optional[int] = None
    materials: Optional[Dict[str, float]] = None
    design_option: str = "default"
    selected_color: Optional[str] = None
    custom_text: Optional[str] = None
    text_color: Optional[str] = None
    text_position: Optional[Dict[str, Any]] = None
    text_size: Optional[float] = None
    custom_logo: Optional[str] = None
    logo_position: Optional[Dict[str, Any]] = None
    logo_size: Optional[float] = None
    design_data: Optional[Dict[str, Any]] = None
    delivery_notes: Optional[str] = None
    delivery_address: Optional[str] = None
    delivery_country: str = PriceEngine.LOCAL_COUNTRY


class OrderEdit(BaseModel):
    model_config = ConfigDict(extra="forbid")

    deadline: Optional[date] = None
    delivery_notes: Optional[str] = None
    delivery_address: Optional[str] = None
    delivery_country: Optional[str] = None
    employee_id: Optional[int] = None
    employee_name: Optional[str] = None


class StatusUpdate(BaseModel):
    status: str
    employee_id: Optional[int] = None
    employee_name: Optional[str] = None
    tracking_link: Optional[str] = None
    deadline: Optional[date] = None
    description: Optional[str] = None


class PriceUpdate(BaseModel):
    total_price: float = Field(gt=0)
    final_breakdown: Optional[Dict[str, Any]] = None
    employee_id: Optional[int] = None
    employee_name: Optional[str] = None


class AmendmentUpdate(BaseModel):
    requires_contract_amendment: bool
    employee_id: Optional[int] = None
    employee_name: Optional[str] = None
    description: Optional[str] = None


class ContractSignature(BaseModel):
    signature: Optional[str] = None
    agreed: bool = False


class CancelRequest(BaseModel):
    reason: Optional[str] = None
    employee_id: Optional[int] = None
    employee_name: Optional[str] = None


def _estimate(session, order: Order) -> Optional[Dict[str, Any]]:
    """Price ``order`` from the catalog; None when weight or material prices are unknown."""
    product = session.exec(select(Product).where(Product.name == order.hanger_type)).first()
    if product is None or not product.weight:
        return None
    names = list((order.materials or {}).keys())
    if not names:
        return None
    prices = {
        m.name: m.price_per_kg
        for m in session.exec(select(Material).where(Material.name.in_(names))).all()
    }
    if not any(prices.values()):
        return None
    return engine.estimate(
        product.weight,
        order.quantity,
        order.materials,
        prices,
        country=order.delivery_country,
    )


def _view(order: Order, payment=None) -> Dict[str, Any]:
    data = order.model_dump(mode="json")
    data["available_actions"] = sorted(a.value for a in lifecycle.available_actions(order, payment))
    return data


def _log_field(session, order: Order, field: str, old, new, employee_id=None, employee_name=None, action="update"):
    session.add(OrderLog(
        order_id=order.id,
        employee_id=employee_id,
        employee_name=employee_name,
        action=action,
        field_changed=field,
        old_value=None if old is None else str(old),
        new_value=None if new is None else str(new),
    ))


def _require_amendment(session, order: Order, reason: str, employee_id=None, employee_name=None) -> None:
    # terms printed on a signed contract changed: the customer signs again
    if order.contract_signed and not order.requires_contract_amendment and order.status not in lifecycle.TERMINAL_STATES:
        order.requires_contract_amendment = True
        _log_field(session, order, "requires_contract_amendment", False, True,
                   employee_id, employee_name, action="amendment_required")
        logger.info("Order %s requires contract amendment: %s", order.id, reason)


def _get_order(session, order_id: str) -> Order:
    return get_or_404(session, Order, order_id, "Order")


@router.post("", status_code=201)
@router.post("/create", status_code=201)
def create_order(body: OrderCreate):
    data = body.model_dump()
    if data.get("delivery_country"):
        data["delivery_country"] = data["delivery_country"].strip().upper()
    validator.check(data)

    session = get_session()
    try:
        order = Order(**{k: v for k, v in data.items() if v is not None})
        order.estimated_breakdown = _estimate(session, order)
        session.add(order)
        session.commit()
        session.refresh(order)
        logger.info("Created order id=%s customer=%s quantity=%s", order.id, order.customer_id, order.quantity)
        return {"message": "Order created successfully!", "order": _view(order)}
    finally:
        session.close()


@router.get("/all")
def all_orders(status: Optional[str] = None, page: Optional[int] = None, limit: Optional[int] = None):
    page, limit = page_params(page, limit)
    session = get_session()
    try:
        stmt = select(Order)
        if status:
            stmt = stmt.where(Order.status == lifecycle.parse_status(status))
        stmt = stmt.order_by(Order.created_at.desc(), Order.id)
        rows, total = paginate(session, stmt, page, limit)
        payments = latest_payments(session, [o.id for o in rows])
        return {"orders": [_view(o, payments.get(o.id)) for o in rows], "pagination": pagination(page, limit, total)}
    finally:
        session.close()


@router.get("/user/{customer_id}")
def user_orders(customer_id: str, page: Optional[int] = None, limit: Optional[int] = None):
    page, limit = page_params(page, limit)
    session = get_session()
    try:
        stmt = select(Order).where(Order.customer_id == customer_id).order_by(Order.created_at.desc(), Order.id)
        rows, total = paginate(session, stmt, page, limit)
        payments = latest_payments(session, [o.id for o in rows])
        return {"orders": [_view(o, payments.get(o.id)) for o in rows], "pagination": pagination(page, limit, total)}
    finally:
        session.close()


@router.get("/user/{customer_id}/full")
def user_orders_full(customer_id: str, page: Optional[int] = None, limit: Optional[int] = None):
    page, limit = page_params(page, limit)
    session = get_session()
    try:
        stmt = select(Order).where(Order.customer_id == customer_id).order_by(Order.created_at.desc(), Order.id)
        rows, total = paginate(session, stmt, page, limit)
        payments = latest_payments(session, [o.id for o in rows])
        orders = []
        for o in rows:
            payment = payments.get(o.id)
            view = _view(o, payment)
            view["payment"] = payment.model_dump(mode="json") if payment else None
            orders.append(view)
        return {"orders": orders, "pagination": pagination(page, limit, total)}
    finally:
        session.close()


@router.get("/{order_id}")
def get_order(order_id: str):
    session = get_session()
    try:
        order = _get_order(session, order_id)
        payment = latest_payment(session, order_id)
        return {"order": _view(order, payment)}
    finally:
        session.close()


@router.get("/{order_id}/invoice")
def get_invoice(order_id: str, format: Optional[str] = None):
    session = get_session()
    try:
        order = _get_order(session, order_id)
        payment = latest_payment(session, order_id)
        invoice = build_invoice(order, recompute=lambda: _estimate(session, order), payment=payment)
        if invoice is None:
            raise NotFound("Failed to load invoice: product or material pricing is unavailable")
        if format == "html":
            return HTMLResponse(content=render_invoice_html(invoice))
        return {"invoice": invoice}
    finally:
        session.close()


def _representative(session, order: Order) -> Optional[str]:
    if order.sales_admin_id is None:
        return None
    employee = session.get(Employee, order.sales_admin_id)
    return employee.name if employee else None


@router.get("/{order_id}/contract")
def get_contract(order_id: str, preview: bool = False):
    session = get_session()
    try:
        order = _get_order(session, order_id)
        if order.contract_data and order.contract_data.get("contract_html") and not preview:
            return HTMLResponse(content=order.contract_data["contract_html"])
        return HTMLResponse(content=render_contract_html(order, representative=_representative(session, order)))
    finally:
        session.close()


@router.patch("/{order_id}/sign-contract")
def sign_order_contract(order_id: str, body: ContractSignature):
    session = get_session()
    try:
        order = _get_order(session, order_id)
        status = lifecycle.parse_status(order.status)

        if status == OrderStatus.CONTRACT_SIGNING and not order.contract_signed:
            amending = False
        elif order.contract_signed and order.requires_contract_amendment:
            amending = True
        else:
            raise InvalidTransition(
                "Contract cannot be signed at this stage",
                current_status=status.value,
            )

        def persist(contract_data):
            order.contract_data = contract_data
            order.contract_signed = True
            order.contract_signed_at = utcnow()
            order.requires_contract_amendment = False
            order.updated_at = utcnow()
            session.add(order)

        sign_contract(order, body.signature, body.agreed, persist, representative=_representative(session, order))

        if amending:
            _log_field(session, order, "requires_contract_amendment", True, False, action="contract_amended")
        else:
            lifecycle.transition(
                session, order, OrderStatus.WAITING_FOR_PAYMENT, description="Contract signed by customer"
            )
        session.commit()
        session.refresh(order)
        logger.info("Order %s contract signed amending=%s", order.id, amending)
        return {"message": "Contract signed successfully", "order": _view(order, latest_payment(session, order.id))}
    finally:
        session.close()


@router.patch("/{order_id}/status")
def update_status(order_id: str, body: StatusUpdate):
    session = get_session()
    try:
        order = _get_order(session, order_id)
        if lifecycle.is_payment_driven(order.status, body.status):
            raise InvalidTransition(
                "Payment stages change through payment submission and verification",
                current_status=lifecycle.parse_status(order.status).value,
                target_status=lifecycle.parse_status(body.status).value,
            )
        if body.deadline is not None and body.deadline != order.deadline:
            _log_field(session, order, "deadline", order.deadline, body.deadline, body.employee_id, body.employee_name)
            if order.deadline is not None:
                _require_amendment(session, order, "deadline changed", body.employee_id, body.employee_name)
            order.deadline = body.deadline
        lifecycle.transition(
            session,
            order,
            body.status,
            employee_id=body.employee_id,
            employee_name=body.employee_name,
            tracking_link=body.tracking_link,
            description=body.description,
        )
        session.commit()
        session.refresh(order)
        return {"message": "Order status updated", "order": _view(order, latest_payment(session, order.id))}
    finally:
        session.close()


@router.patch("/{order_id}/price")
def update_price(order_id: str, body: PriceUpdate):
    session = get_session()
    try:
        order = _get_order(session, order_id)
        if order.status in lifecycle.TERMINAL_STATES:
            raise InvalidTransition("Price cannot be changed for a closed order", current_status=order.status.value)

        if order.total_price != body.total_price:
            _log_field(session, order, "total_price", order.total_price, body.total_price,
                       body.employee_id, body.employee_name, action="price_update")
            _require_amendment(session, order, "price changed", body.employee_id, body.employee_name)
        order.total_price = body.total_price
        if body.final_breakdown is not None:
            breakdown = dict(body.final_breakdown)
            breakdown.setdefault("total_price", body.total_price)
            order.final_breakdown = breakdown
        order.updated_at = utcnow()
        session.add(order)
        session.commit()
        session.refresh(order)
        logger.info("Order %s priced at %s", order.id, order.total_price)
        return {"message": "Order price updated", "order": _view(order, latest_payment(session, order.id))}
    finally:
        session.close()


@router.patch("/{order_id}/amendment")
def update_amendment(order_id: str, body: AmendmentUpdate):
    session = get_session()
    try:
        order = _get_order(session, order_id)
        if not order.contract_signed:
            raise InvalidTransition(
                "A contract amendment requires a signed contract",
                current_status=lifecycle.parse_status(order.status).value,
            )
        if order.status in lifecycle.TERMINAL_STATES:
            raise InvalidTransition(
                "Contract cannot be amended for a closed order",
                current_status=lifecycle.parse_status(order.status).value,
            )
        if order.requires_contract_amendment != body.requires_contract_amendment:
            _log_field(session, order, "requires_contract_amendment", order.requires_contract_amendment,
                       body.requires_contract_amendment, body.employee_id, body.employee_name, action="amendment")
        order.requires_contract_amendment = body.requires_contract_amendment
        order.updated_at = utcnow()
        session.add(order)
        session.commit()
        session.refresh(order)
        logger.info("Order %s requires_contract_amendment=%s", order.id, order.requires_contract_amendment)
        return {"message": "Contract amendment flag updated", "order": _view(order, latest_payment(session, order.id))}
    finally:
        session.close()


@router.patch("/{order_id}")
def edit_order(order_id: str, body: OrderEdit):
    changes = body.model_dump(exclude_unset=True)
    employee_id = changes.pop("employee_id", None)
    employee_name = changes.pop("employee_name", None)
    if "delivery_country" in changes:
        country = (changes["delivery_country"] or "").strip().upper()
        issues = validator.validate({"delivery_country": country})
        if "delivery_country" in issues:
            raise ValidationFailed("Invalid order fields", details={"delivery_country": issues["delivery_country"]})
        changes["delivery_country"] = country

    session = get_session()
    try:
        order = _get_order(session, order_id)
        if order.status in lifecycle.TERMINAL_STATES:
            raise InvalidTransition(
                "A closed order cannot be edited",
                current_status=lifecycle.parse_status(order.status).value,
            )
        for field, value in changes.items():
            old = getattr(order, field)
            if old == value:
                continue
            _log_field(session, order, field, old, value, employee_id, employee_name)
            if field in ("deadline", "delivery_address", "delivery_country") and old is not None:
                _require_amendment(session, order, f"{field} changed", employee_id, employee_name)
            setattr(order, field, value)
        order.updated_at = utcnow()
        session.add(order)
        session.commit()
        session.refresh(order)
        logger.info("Order %s updated fields=%s", order.id, sorted(changes))
        return {"message": "Order updated", "order": _view(order, latest_payment(session, order.id))}
    finally:
        session.close()


@router.delete("/{order_id}")
def cancel_order(order_id: str, request: Request, body: Optional[CancelRequest] = None):
    reason = (body.reason if body else None) or request.query_params.get("reason")
    reason = (reason or "").strip() or "No reason provided"
    session = get_session()
    try:
        order = _get_order(session, order_id)
        lifecycle.transition(
            session,
            order,
            OrderStatus.CANCELLED,
            employee_id=body.employee_id if body else None,
            employee_name=body.employee_name if body else None,
            description=reason,
        )
        order.cancellation_reason = reason
        order.cancelled_at = utcnow()
        session.commit()
        session.refresh(order)
        logger.info("Order %s cancelled: %s", order.id, reason)
        return {
            "message": "Order cancelled successfully",
            "order_id": order.id,
            "reason": reason,
            "order": _view(order, latest_payment(session, order.id)),
        }
    finally:
        session.close()
