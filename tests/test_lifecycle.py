import pytest

from gatsishub.exceptions import InvalidTransition
from gatsishub.models import Order, OrderLog, OrderStatus, Payment, PaymentStatus
from gatsishub.services import lifecycle
from gatsishub.services.lifecycle import Action, available_actions, can_transition, check_transition

S = OrderStatus


def _order(status=S.FOR_EVALUATION, **kw):
    fields = dict(
        company_name="Acme", contact_person="Ana", contact_phone="1", hanger_type="Classic",
        quantity=100, materials={"Steel": 100}, status=status,
    )
    fields.update(kw)
    return Order(**fields)


class FakeSession:
    def __init__(self):
        self.added = []

    def add(self, obj):
        self.added.append(obj)


def test_happy_path_is_linear():
    path = [
        S.FOR_EVALUATION, S.CONTRACT_SIGNING, S.WAITING_FOR_PAYMENT, S.VERIFYING_PAYMENT,
        S.IN_PRODUCTION, S.WAITING_FOR_SHIPMENT, S.IN_TRANSIT, S.COMPLETED,
    ]
    for current, target in zip(path, path[1:]):
        assert can_transition(current, target)
    assert not can_transition(S.FOR_EVALUATION, S.IN_PRODUCTION)
    assert not can_transition(S.COMPLETED, S.FOR_EVALUATION)


def test_terminal_states_have_no_exits():
    for terminal in lifecycle.TERMINAL_STATES:
        assert not lifecycle.TRANSITIONS[terminal]


@pytest.mark.parametrize("status", [S.FOR_EVALUATION, S.WAITING_FOR_PAYMENT])
def test_cancel_allowed_before_production(status):
    order = _order(status, contract_signed=status != S.FOR_EVALUATION)
    assert check_transition(order, S.CANCELLED) == S.CANCELLED
    assert Action.CANCEL in available_actions(order)


@pytest.mark.parametrize("status", [S.CONTRACT_SIGNING, S.VERIFYING_PAYMENT, S.IN_PRODUCTION, S.COMPLETED])
def test_cancel_refused_elsewhere(status):
    order = _order(status)
    with pytest.raises(InvalidTransition) as exc:
        check_transition(order, S.CANCELLED)
    assert exc.value.message == "Order cannot be cancelled at this stage"
    assert exc.value.current_status == status.value
    assert Action.CANCEL not in available_actions(order)


def test_contract_signing_needs_price():
    with pytest.raises(InvalidTransition):
        check_transition(_order(), S.CONTRACT_SIGNING)
    assert check_transition(_order(total_price=1200.0), S.CONTRACT_SIGNING) == S.CONTRACT_SIGNING


def test_payment_needs_signed_contract():
    with pytest.raises(InvalidTransition, match="Contract must be signed"):
        check_transition(_order(S.CONTRACT_SIGNING), S.WAITING_FOR_PAYMENT)


def test_in_transit_needs_tracking_link():
    order = _order(S.WAITING_FOR_SHIPMENT)
    with pytest.raises(InvalidTransition):
        check_transition(order, S.IN_TRANSIT)
    assert check_transition(order, S.IN_TRANSIT, tracking_link="https://track.example/1") == S.IN_TRANSIT


def test_pending_amendment_blocks_progress_but_not_cancel():
    order = _order(S.WAITING_FOR_PAYMENT, contract_signed=True, requires_contract_amendment=True)
    with pytest.raises(InvalidTransition, match="amendment"):
        check_transition(order, S.VERIFYING_PAYMENT)
    assert check_transition(order, S.CANCELLED) == S.CANCELLED


def test_unknown_status_is_rejected():
    with pytest.raises(InvalidTransition, match="Unknown order status"):
        check_transition(_order(), "Shipped")


def test_transition_updates_order_and_logs():
    session = FakeSession()
    order = _order(total_price=900.0)
    lifecycle.transition(session, order, "Contract Signing", employee_id=7, employee_name="Rosa")

    assert order.status == S.CONTRACT_SIGNING
    logs = [o for o in session.added if isinstance(o, OrderLog)]
    assert len(logs) == 1
    assert logs[0].old_value == "For Evaluation"
    assert logs[0].new_value == "Contract Signing"
    assert logs[0].employee_name == "Rosa"


def test_failed_transition_changes_nothing():
    session = FakeSession()
    order = _order(S.IN_PRODUCTION)
    with pytest.raises(InvalidTransition):
        lifecycle.transition(session, order, S.CANCELLED)
    assert order.status == S.IN_PRODUCTION
    assert session.added == []


def test_actions_for_contract_signing():
    assert available_actions(_order(S.CONTRACT_SIGNING)) == {Action.SIGN_CONTRACT}


def test_submit_payment_offered_until_a_payment_is_open():
    order = _order(S.WAITING_FOR_PAYMENT, contract_signed=True)
    assert Action.SUBMIT_PAYMENT in available_actions(order)
    assert Action.SUBMIT_PAYMENT in available_actions(order, Payment(
        order_id="x", payment_method="GCash", proof_of_payment="p", status=PaymentStatus.REJECTED))
    assert Action.SUBMIT_PAYMENT not in available_actions(order, {"status": "Pending Verification"})


def test_amendment_replaces_view_contract():
    order = _order(S.IN_PRODUCTION, contract_signed=True, requires_contract_amendment=True)
    actions = available_actions(order)
    assert Action.SIGN_AMENDMENT in actions
    assert Action.VIEW_CONTRACT not in actions


def test_tracking_and_rating_actions():
    assert Action.TRACK_DELIVERY in available_actions(
        _order(S.IN_TRANSIT, contract_signed=True, tracking_link="https://t.example"))
    assert Action.TRACK_DELIVERY not in available_actions(_order(S.IN_TRANSIT, contract_signed=True))
    assert Action.RATE in available_actions(_order(S.COMPLETED, contract_signed=True))


def test_actions_accept_row_dicts():
    row = {"status": "Waiting for Payment", "contract_signed": True, "requires_contract_amendment": False}
    assert available_actions(row) == {Action.CANCEL, Action.VIEW_CONTRACT, Action.SUBMIT_PAYMENT}
