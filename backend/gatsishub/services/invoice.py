from html import escape
from typing import Any, Dict, Optional

from gatsishub.services.contract import format_peso, long_date
from gatsishub.services.pricing import PriceEngine, resolve_breakdown


def invoice_number(order) -> str:
    return f"INV-{str(order.id)[:8].upper()}"


def build_invoice(order, recompute=None, payment=None) -> Optional[Dict[str, Any]]:
    breakdown = resolve_breakdown(order, recompute)
    if breakdown is None:
        return None
    return {
        "invoice_number": invoice_number(order),
        "order_id": order.id,
        "company_name": order.company_name,
        "contact_person": order.contact_person,
        "delivery_address": order.delivery_address,
        "delivery_country": order.delivery_country,
        "status": order.status.value if hasattr(order.status, "value") else order.status,
        "issued_at": order.created_at.isoformat() if order.created_at else None,
        "is_receipt": payment is not None and _payment_verified(payment),
        "breakdown": breakdown,
        "is_price_final": breakdown["is_price_final"],
    }


def _payment_verified(payment) -> bool:
    status = getattr(payment, "status", None)
    return getattr(status, "value", status) == "Verified"


def _money(value) -> str:
    if value is None:
        return "—"
    return format_peso(float(value))


def render_invoice_html(invoice: Dict[str, Any]) -> str:
    b = invoice["breakdown"]
    title = "Official Receipt" if invoice["is_receipt"] else "Invoice"
    badge = "Final price" if invoice["is_price_final"] else "Estimated price"

    material_rows = "".join(
        f"<tr><td>{escape(str(m.get('name', '')))}</td><td>{escape(str(m.get('percentage', 0)))}%</td>"
        f"<td>{escape(str(m.get('weight_kg', 0)))} kg</td><td>{_money(m.get('price_per_kg'))}/kg</td>"
        f"<td>{_money(m.get('cost'))}</td></tr>"
        for m in b.get("materials") or []
    ) or "<tr><td colspan='5'>—</td></tr>"

    delivery = b.get("delivery") or {}
    zone = "Local" if delivery.get("is_local", invoice.get("delivery_country") == PriceEngine.LOCAL_COUNTRY) else "International"
    issued = long_date(invoice["issued_at"]) if invoice.get("issued_at") else "—"

    return f"""
<!doctype html>
<html>
<head>
  <meta charset="utf-8" />
  <title>{title} {escape(invoice['invoice_number'])}</title>
  <style>
    body {{ font-family: Inter, system-ui, -apple-system, 'Segoe UI', Roboto, 'Helvetica Neue', Arial; background:#f3f4f6; padding:24px; }}
    .container {{ max-width:900px; margin:0 auto; background:white; padding:24px; border-radius:8px; box-shadow:0 1px 3px rgba(0,0,0,0.06) }}
    .title {{ color:#6b7280; font-size:13px }}
    .badge {{ display:inline-block; padding:2px 8px; border-radius:12px; background:#e0e7ff; color:#3730a3; font-size:12px }}
    table {{ width:100%; border-collapse:collapse; margin-top:12px }}
    th, td {{ padding:10px; text-align:left; border-bottom:1px solid #eef2f7 }}
    thead {{ background:#f9fafb }}
    .total {{ font-size:22px; font-weight:700 }}
  </style>
</head>
<body>
  <div class="container">
    <h1>{title}</h1>
    <div class="title">{escape(invoice['invoice_number'])} &middot; Issued {issued} &middot; <span class="badge">{badge}</span></div>
    <h3>Billed to</h3>
    <p>{escape(str(invoice['company_name']))}<br/>{escape(str(invoice['contact_person']))}<br/>{escape(str(invoice.get('delivery_address') or ''))}</p>
    <p>Order ID: {escape(str(invoice['order_id']))} &middot; Status: {escape(str(invoice['status']))}</p>
    <h3>Materials</h3>
    <table>
      <thead><tr><th>Material</th><th>Share</th><th>Weight</th><th>Rate</th><th>Cost</th></tr></thead>
      <tbody>{material_rows}</tbody>
    </table>
    <table>
      <tbody>
        <tr><td>Quantity</td><td>{b.get('quantity', '—')}</td></tr>
        <tr><td>Total weight</td><td>{b.get('total_weight_kg', '—')} kg</td></tr>
        <tr><td>Material cost</td><td>{_money(b.get('material_cost'))}</td></tr>
        <tr><td>Delivery ({zone})</td><td>{_money(b.get('delivery_cost'))}</td></tr>
        <tr><td>Subtotal</td><td>{_money(b.get('subtotal'))}</td></tr>
        <tr><td>VAT ({b.get('vat_rate', PriceEngine.DEFAULT_VAT_RATE)}%)</td><td>{_money(b.get('vat_amount'))}</td></tr>
        <tr><td class="total">Total</td><td class="total">{_money(b.get('total_price'))}</td></tr>
      </tbody>
    </table>
  </div>
</body>
</html>
"""
