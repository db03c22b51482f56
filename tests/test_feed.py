import threading

import pytest

from gatsishub.db.session import get_session
from gatsishub.models import Order, OrderStatus
from gatsishub.realtime.feed import DELETE, INSERT, UPDATE, ChangeEvent, ChangeFeed, capture_changes, feed


@pytest.fixture
def events():
    capture_changes(feed)
    received = []
    with feed.subscribe("orders", None, received.append):
        yield received


def _order(customer="cust-1"):
    return Order(
        customer_id=customer, company_name="Acme", contact_person="Ana", contact_phone="1",
        hanger_type="Classic", quantity=100, materials={"Steel": 100},
    )


def test_insert_update_delete_published_after_commit(events):
    session = get_session()
    try:
        order = _order()
        session.add(order)
        session.flush()
        assert events == []
        session.commit()

        order.status = OrderStatus.CANCELLED
        session.add(order)
        session.commit()

        session.delete(order)
        session.commit()
    finally:
        session.close()

    assert [e.event_type for e in events] == [INSERT, UPDATE, DELETE]
    assert events[0].new["id"] == order.id
    assert events[0].new["materials"] == {"Steel": 100}
    assert events[1].old["status"] == "For Evaluation"
    assert events[1].new["status"] == "Cancelled"
    assert events[2].new is None
    assert events[2].old["id"] == order.id


def test_rollback_publishes_nothing(events):
    session = get_session()
    try:
        session.add(_order())
        session.flush()
        session.rollback()
    finally:
        session.close()
    assert events == []


def test_keyed_channel_only_sees_its_rows(events):
    mine = []
    with feed.subscribe("orders", "cust-1", mine.append):
        session = get_session()
        try:
            session.add(_order("cust-1"))
            session.add(_order("cust-2"))
            session.commit()
        finally:
            session.close()
    assert len(events) == 2
    assert [e.new["customer_id"] for e in mine] == ["cust-1"]


def test_one_channel_per_table_and_key():
    f = ChangeFeed()
    a = f.subscribe("orders", "c1", lambda e: None)
    b = f.subscribe("orders", "c1", lambda e: None)
    assert a.channel is b.channel is f.channel("orders", "c1")
    assert f.channels() == [("orders", "c1")]

    a.unsubscribe()
    assert f.channels() == [("orders", "c1")]
    b.unsubscribe()
    b.unsubscribe()
    assert f.channels() == []


def test_owner_change_reaches_both_channels():
    f = ChangeFeed()
    old_owner, new_owner = [], []
    f.subscribe("orders", "a", old_owner.append)
    f.subscribe("orders", "b", new_owner.append)
    f.publish(ChangeEvent(UPDATE, "orders", new={"id": "1", "customer_id": "b"}, old={"id": "1", "customer_id": "a"}))
    assert len(old_owner) == len(new_owner) == 1


def test_failing_listener_does_not_block_others():
    f = ChangeFeed()
    got = []

    def boom(evt):
        raise RuntimeError("listener bug")

    f.subscribe("payments", None, boom)
    f.subscribe("payments", None, got.append)
    f.publish(ChangeEvent(INSERT, "payments", new={"id": 1, "order_id": "o"}))
    assert len(got) == 1


def test_event_dict_shape():
    evt = ChangeEvent(DELETE, "orders", old={"id": "x"})
    assert evt.row == {"id": "x"}
    assert set(evt.as_dict()) == {"event_type", "table", "old", "new", "commit_timestamp"}


def test_subscribe_survives_concurrent_release_of_last_listener():
    f = ChangeFeed()
    first = f.subscribe("orders", "c1", lambda e: None)
    got = []
    releases = []
    open_channel = f._open

    def open_while_releasing(ident):
        ch = open_channel(ident)
        # the last listener leaves from another thread mid-subscribe
        releasing = threading.Thread(target=first.unsubscribe)
        releasing.start()
        releasing.join(0.05)
        releases.append(releasing)
        return ch

    f._open = open_while_releasing
    f.subscribe("orders", "c1", got.append)
    releases[0].join()

    f.publish(ChangeEvent(INSERT, "orders", new={"id": "o1", "customer_id": "c1"}))
    assert len(got) == 1
    assert f.channels() == [("orders", "c1")]
