"""Order lifecycle rules.

Every status change, whether requested by staff through the admin endpoints
or caused by a customer action (signing, paying, cancelling), goes through
``transition()``. ``available_actions()`` reads the same table so the
actions a client offers never disagree with what the server accepts.
"""
import logging
from enum import Enum
from typing import Dict, FrozenSet, Optional, Set

from gatsishub.exceptions import InvalidTransition
from gatsishub.models.common import utcnow
from gatsishub.models.order import Order, OrderLog, OrderStatus
from gatsishub.models.payment import PaymentStatus

logger = logging.getLogger(__name__)

S = OrderStatus

TRANSITIONS: Dict[OrderStatus, FrozenSet[OrderStatus]] = {
    S.FOR_EVALUATION: frozenset({S.CONTRACT_SIGNING, S.CANCELLED}),
    S.CONTRACT_SIGNING: frozenset({S.WAITING_FOR_PAYMENT}),
    S.WAITING_FOR_PAYMENT: frozenset({S.VERIFYING_PAYMENT, S.CANCELLED}),
    S.VERIFYING_PAYMENT: frozenset({S.IN_PRODUCTION, S.WAITING_FOR_PAYMENT}),
    S.IN_PRODUCTION: frozenset({S.WAITING_FOR_SHIPMENT}),
    S.WAITING_FOR_SHIPMENT: frozenset({S.IN_TRANSIT}),
    S.IN_TRANSIT: frozenset({S.COMPLETED}),
    S.COMPLETED: frozenset(),
    S.CANCELLED: frozenset(),
}

TERMINAL_STATES = frozenset({S.COMPLETED, S.CANCELLED})
CANCELLABLE = frozenset(s for s, targets in TRANSITIONS.items() if S.CANCELLED in targets)

# moves that are not progress and stay legal while an amendment is pending
BACKWARD = frozenset(
    {(s, S.CANCELLED) for s in CANCELLABLE}
    | {(S.VERIFYING_PAYMENT, S.WAITING_FOR_PAYMENT)}
)

# moves made by submitting, reviewing or deleting a payment proof; the
# generic status endpoint refuses them so the payment row moves with the order
PAYMENT_DRIVEN = frozenset({
    (S.WAITING_FOR_PAYMENT, S.VERIFYING_PAYMENT),
    (S.VERIFYING_PAYMENT, S.IN_PRODUCTION),
    (S.VERIFYING_PAYMENT, S.WAITING_FOR_PAYMENT),
})

# statuses an order moves through after the contract has been signed
POST_CONTRACT = frozenset({
    S.WAITING_FOR_PAYMENT,
    S.VERIFYING_PAYMENT,
    S.IN_PRODUCTION,
    S.WAITING_FOR_SHIPMENT,
    S.IN_TRANSIT,
    S.COMPLETED,
})


class Action(str, Enum):
    CANCEL = "cancel"
    SIGN_CONTRACT = "sign_contract"
    SIGN_AMENDMENT = "sign_amendment"
    VIEW_CONTRACT = "view_contract"
    SUBMIT_PAYMENT = "submit_payment"
    TRACK_DELIVERY = "track_delivery"
    RATE = "rate"


def parse_status(value) -> OrderStatus:
    if isinstance(value, OrderStatus):
        return value
    try:
        return OrderStatus(value)
    except ValueError:
        raise InvalidTransition(f"Unknown order status: {value}", target_status=str(value))


def can_transition(current, target) -> bool:
    return parse_status(target) in TRANSITIONS[parse_status(current)]


def is_payment_driven(current, target) -> bool:
    return (parse_status(current), parse_status(target)) in PAYMENT_DRIVEN


def check_transition(order: Order, target, *, tracking_link: Optional[str] = None) -> OrderStatus:
    """Raise ``InvalidTransition`` unless ``order`` may move to ``target``."""
    current = parse_status(order.status)
    target = parse_status(target)

    if target not in TRANSITIONS[current]:
        if target == S.CANCELLED:
            raise InvalidTransition(
                "Order cannot be cancelled at this stage",
                current_status=current.value,
                target_status=target.value,
            )
        raise InvalidTransition(
            f"Cannot move order from '{current.value}' to '{target.value}'",
            current_status=current.value,
            target_status=target.value,
        )

    if order.requires_contract_amendment and (current, target) not in BACKWARD:
        raise InvalidTransition(
            "Contract amendment must be signed before the order can progress",
            current_status=current.value,
            target_status=target.value,
        )
    if target == S.CONTRACT_SIGNING and order.total_price is None:
        raise InvalidTransition(
            "A total price must be set before the contract can be issued",
            current_status=current.value,
            target_status=target.value,
        )
    if current == S.CONTRACT_SIGNING and not order.contract_signed:
        raise InvalidTransition(
            "Contract must be signed before payment",
            current_status=current.value,
            target_status=target.value,
        )
    if target == S.IN_TRANSIT and not (tracking_link or order.tracking_link):
        raise InvalidTransition(
            "A tracking link is required to mark an order In Transit",
            current_status=current.value,
            target_status=target.value,
        )
    return target


def transition(
    session,
    order: Order,
    target,
    *,
    employee_id: Optional[int] = None,
    employee_name: Optional[str] = None,
    tracking_link: Optional[str] = None,
    description: Optional[str] = None,
) -> Order:
    """Validate and apply a status change, recording it in the order log.

    The caller owns the commit.
    """
    target = check_transition(order, target, tracking_link=tracking_link)
    previous = parse_status(order.status)

    order.status = target
    if tracking_link:
        order.tracking_link = tracking_link
    order.updated_at = utcnow()
    session.add(order)
    session.add(OrderLog(
        order_id=order.id,
        employee_id=employee_id,
        employee_name=employee_name,
        action="status_change",
        field_changed="status",
        old_value=previous.value,
        new_value=target.value,
        description=description,
    ))
    logger.info("Order %s status %s -> %s", order.id, previous.value, target.value)
    return order


def available_actions(order, payment=None) -> Set[Action]:
    """Actions a client may offer for ``order`` given its latest ``payment``.

    Both arguments may be model instances or plain row dicts (as delivered by
    the change feed).
    """
    status = parse_status(_get(order, "status"))
    signed = bool(_get(order, "contract_signed"))
    amendment = bool(_get(order, "requires_contract_amendment"))
    actions: Set[Action] = set()

    if status in CANCELLABLE:
        actions.add(Action.CANCEL)

    if status == S.CONTRACT_SIGNING and not signed:
        actions.add(Action.SIGN_CONTRACT)

    if signed:
        if amendment:
            actions.add(Action.SIGN_AMENDMENT)
        else:
            actions.add(Action.VIEW_CONTRACT)

    if status == S.WAITING_FOR_PAYMENT and signed and not amendment:
        payment_status = _get(payment, "status") if payment is not None else None
        if payment_status is None or PaymentStatus(payment_status) == PaymentStatus.REJECTED:
            actions.add(Action.SUBMIT_PAYMENT)

    if status == S.IN_TRANSIT and _get(order, "tracking_link"):
        actions.add(Action.TRACK_DELIVERY)

    if status == S.COMPLETED:
        actions.add(Action.RATE)

    return actions


def _get(obj, name):
    if obj is None:
        return None
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)
