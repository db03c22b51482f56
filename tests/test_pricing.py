import pytest

from gatsishub.models import Order
from gatsishub.services.invoice import build_invoice, invoice_number, render_invoice_html
from gatsishub.services.pricing import PriceEngine, resolve_breakdown

engine = PriceEngine()


def _order(**kw):
    fields = dict(
        company_name="Acme", contact_person="Ana", contact_phone="1", hanger_type="Classic",
        quantity=10, materials={"Steel": 100},
    )
    fields.update(kw)
    return Order(**fields)


def test_local_order_under_weight_limit():
    b = engine.estimate(500, 10, {"Steel": 100}, {"Steel": 50}, country="PH")
    assert b["total_weight_kg"] == 5.0
    assert b["material_cost"] == 250.0
    assert b["delivery_cost"] == 1000.0
    assert b["subtotal"] == 1250.0
    assert b["vat_amount"] == 150.0
    assert b["total_price"] == 1400.0


def test_international_order_under_weight_limit():
    b = engine.estimate(500, 10, {"Steel": 100}, {"Steel": 50}, country="JP", vat_rate=12)
    assert b["delivery_cost"] == 5000.0
    assert b["subtotal"] == 5250.0
    assert b["vat_amount"] == 630.0
    assert b["total_price"] == 5880.0


def test_excess_weight_surcharge_local():
    delivery = engine.delivery_cost(12.0, "PH")
    assert delivery["excess_weight_kg"] == 2.0
    assert delivery["additional_cost"] == 1000.0
    assert delivery["total"] == 2000.0


def test_partial_kilogram_rounds_up():
    assert engine.delivery_cost(10.2, "PH")["additional_cost"] == 500.0
    assert engine.delivery_cost(10.2, "US")["additional_cost"] == 1000.0
    assert engine.delivery_cost(10.0, "PH")["additional_cost"] == 0.0


def test_country_vat_and_default():
    assert engine.vat_rate("ph") == 12.0
    assert engine.vat_rate("SG") == 9.0
    assert engine.vat_rate("ZZ") == PriceEngine.DEFAULT_VAT_RATE
    assert engine.is_local(None)


def test_material_mix_and_unpriced_material():
    b = engine.estimate(1000, 100, {"Steel": 60, "Plastic": 40}, {"Steel": 50, "Plastic": None}, country="PH")
    assert b["total_weight_kg"] == 100.0
    assert [m["name"] for m in b["materials"]] == ["Steel"]
    assert b["material_cost"] == 3000.0


def test_final_breakdown_wins():
    order = _order(
        total_price=9999.0,
        final_breakdown={"subtotal": 8927.68},
        estimated_breakdown={"total_price": 1400.0},
    )
    b = resolve_breakdown(order, recompute=lambda: pytest.fail("should not recompute"))
    assert b["is_price_final"] is True
    assert b["total_price"] == 9999.0


def test_estimate_before_recompute():
    b = resolve_breakdown(_order(estimated_breakdown={"total_price": 1400.0}), recompute=lambda: {"total_price": 1})
    assert b == {"total_price": 1400.0, "is_price_final": False}


def test_recompute_is_last_resort():
    assert resolve_breakdown(_order(), recompute=lambda: {"total_price": 5.0})["total_price"] == 5.0
    assert resolve_breakdown(_order()) is None
    assert resolve_breakdown(_order(), recompute=lambda: None) is None


def test_invoice_from_estimate():
    order = _order(estimated_breakdown=engine.estimate(500, 10, {"Steel": 100}, {"Steel": 50}))
    invoice = build_invoice(order)
    assert invoice["invoice_number"] == invoice_number(order)
    assert invoice_number(order).startswith("INV-")
    html = render_invoice_html(invoice)
    assert "Acme" in html
    assert "1,400.00" in html


def test_invoice_escapes_customer_text():
    order = _order(company_name="<script>x</script>", estimated_breakdown={"total_price": 10.0})
    assert "<script>x" not in render_invoice_html(build_invoice(order))


def test_no_invoice_without_breakdown():
    assert build_invoice(_order()) is None
