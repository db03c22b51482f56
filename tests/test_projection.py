from gatsishub.realtime.feed import DELETE, INSERT, UPDATE, ChangeEvent, ChangeFeed
from gatsishub.realtime.projection import Projection, parse_version, watch


def row(pk, updated, created=None, **kw):
    data = {"id": pk, "updated_at": updated, "created_at": created or updated}
    data.update(kw)
    return data


def evt(kind, new=None, old=None):
    return {"event_type": kind, "table": "orders", "new": new, "old": old}


def test_insert_update_delete():
    p = Projection()
    p.apply(evt(INSERT, new=row("a", "2026-01-01T00:00:00", status="For Evaluation")))
    p.apply(evt(UPDATE, new=row("a", "2026-01-02T00:00:00", "2026-01-01T00:00:00", status="Cancelled")))
    assert p.get("a")["status"] == "Cancelled"
    assert len(p) == 1

    p.apply(evt(DELETE, old=row("a", "2026-01-02T00:00:00")))
    assert "a" not in p


def test_stale_snapshot_does_not_overwrite_newer_event():
    p = Projection()
    p.apply(evt(UPDATE, new=row("a", "2026-01-02T00:00:00", status="Contract Signing")))
    accepted = p.apply_snapshot([row("a", "2026-01-01T00:00:00", status="For Evaluation")])
    assert accepted == 0
    assert p.get("a")["status"] == "Contract Signing"


def test_equal_versions_last_writer_wins():
    p = Projection()
    p.upsert(row("a", "2026-01-01T00:00:00", status="x"))
    assert p.upsert(row("a", "2026-01-01T00:00:00", status="y"))
    assert p.get("a")["status"] == "y"


def test_deleted_row_not_resurrected_by_late_snapshot():
    p = Projection()
    p.upsert(row("a", "2026-01-01T00:00:00"))
    p.apply(evt(DELETE, old=row("a", "2026-01-01T00:00:00")))
    assert p.apply_snapshot([row("a", "2026-01-01T00:00:00")]) == 0
    assert "a" not in p
    # a strictly newer write is a genuine re-insert
    assert p.upsert(row("a", "2026-01-03T00:00:00"))


def test_page_size_keeps_newest_rows():
    p = Projection(page_size=2)
    p.apply_snapshot([row("a", "2026-01-01T00:00:00"), row("b", "2026-01-02T00:00:00")])
    p.apply(evt(INSERT, new=row("c", "2026-01-03T00:00:00")))
    assert [r["id"] for r in p.rows()] == ["c", "b"]

    # older than everything on the page: not shown
    assert not p.apply(evt(INSERT, new=row("z", "2025-12-01T00:00:00")))
    assert p.keys() == {"b", "c"}


def test_event_and_snapshot_orders_converge():
    events = [
        evt(INSERT, new=row("a", "2026-01-01T00:00:00", status="For Evaluation")),
        evt(UPDATE, new=row("a", "2026-01-02T00:00:00", "2026-01-01T00:00:00", status="Contract Signing")),
        evt(INSERT, new=row("b", "2026-01-03T00:00:00", status="For Evaluation")),
        evt(DELETE, old=row("b", "2026-01-03T00:00:00")),
    ]
    snapshot = [row("a", "2026-01-01T00:00:00", status="For Evaluation")]

    first = Projection()
    first.apply_snapshot(snapshot)
    for e in events:
        first.apply(e)

    second = Projection()
    for e in reversed(events):
        second.apply(e)
    second.apply_snapshot(snapshot)

    assert first.rows() == second.rows()
    assert first.get("a")["status"] == "Contract Signing"


def test_on_change_only_fires_for_effective_changes():
    seen = []
    p = Projection(on_change=lambda proj, e: seen.append(e["event_type"]))
    p.apply(evt(INSERT, new=row("a", "2026-01-02T00:00:00")))
    p.apply(evt(UPDATE, new=row("a", "2026-01-01T00:00:00")))
    p.apply(evt("TRUNCATE"))
    assert seen == [INSERT]


def test_parse_version_normalizes_timezones():
    assert parse_version("2026-01-01T08:00:00+08:00") == parse_version("2026-01-01T00:00:00Z")
    assert parse_version(None) is None
    assert parse_version("garbage") is None


def test_watch_feeds_projection_until_closed():
    f = ChangeFeed()
    p = Projection()
    with watch(f, "orders", "cust-1", p):
        f.publish(ChangeEvent(INSERT, "orders", new=row("a", "2026-01-01T00:00:00", customer_id="cust-1")))
        f.publish(ChangeEvent(INSERT, "orders", new=row("b", "2026-01-01T00:00:00", customer_id="cust-2")))
    f.publish(ChangeEvent(INSERT, "orders", new=row("c", "2026-01-02T00:00:00", customer_id="cust-1")))

    assert p.keys() == {"a"}
    assert f.channels() == []
