import asyncio

import pytest
from starlette.websockets import WebSocketDisconnect

from conftest import CUSTOMER
from gatsishub.api.realtime import Outbox
from gatsishub.realtime.feed import capture_changes, feed
from gatsishub.realtime.projection import Projection, watch
from gatsishub.services.lifecycle import Action, available_actions


def test_unknown_table_is_refused(client):
    with pytest.raises(WebSocketDisconnect) as exc:
        with client.websocket_connect("/realtime/passwords") as ws:
            ws.receive_json()
    assert exc.value.code == 1008


def test_customer_stream_receives_own_orders(client, catalog, order_payload):
    with client.websocket_connect(f"/realtime/orders?key={CUSTOMER}") as ws:
        assert ws.receive_json() == {"status": "SUBSCRIBED", "table": "orders", "key": CUSTOMER}
        assert ("orders", CUSTOMER) in feed.channels()

        client.post("/orders", json=order_payload(customer_id="someone-else"))
        created = client.post("/orders", json=order_payload()).json()["order"]
        client.delete(f"/orders/{created['id']}")

        view = Projection(page_size=10)
        inserted = ws.receive_json()
        assert inserted["event_type"] == "INSERT"
        assert inserted["new"]["id"] == created["id"]
        view.apply(inserted)

        # cancelling writes the order and its log entry; only the order is on this table
        updated = ws.receive_json()
        assert updated["event_type"] == "UPDATE"
        assert updated["old"]["status"] == "For Evaluation"
        view.apply(updated)
        assert view.get(created["id"])["status"] == "Cancelled"

    assert ("orders", CUSTOMER) not in feed.channels()


def test_deleted_payment_restores_submit_action_in_local_views(client, make_order, submit_payment):
    capture_changes(feed)
    order = make_order("Waiting for Payment")
    oid = order["id"]
    orders = Projection()
    payments = Projection(sort_field="submitted_at")
    orders.apply_snapshot([order])

    with watch(feed, "orders", CUSTOMER, orders), watch(feed, "payments", oid, payments):
        payment = submit_payment(oid).json()["payment"]
        assert payments.get(payment["id"])["status"] == "Pending Verification"
        assert Action.SUBMIT_PAYMENT not in available_actions(orders.get(oid), payments.get(payment["id"]))

        assert client.delete(f"/payments/{payment['id']}").status_code == 200

    # no payment row left behind, so nothing can still read as Verified
    assert payments.rows() == []
    assert orders.get(oid)["status"] == "Waiting for Payment"
    assert Action.SUBMIT_PAYMENT in available_actions(orders.get(oid), None)


def test_outbox_stops_buffering_when_client_falls_behind():
    async def fill():
        box = Outbox(2, label="orders:*")
        return box, [box.offer({"n": n}) for n in range(4)]

    box, accepted = asyncio.run(fill())
    assert accepted == [True, True, False, False]
    assert box.queue.qsize() == 2
    assert box.overflowed.is_set()
