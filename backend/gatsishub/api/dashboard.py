import logging
from html import escape
from typing import Any, Dict

from fastapi import APIRouter, Request
from sqlmodel import func, select
from starlette.responses import HTMLResponse

from gatsishub.db.session import get_session
from gatsishub.exceptions import UpstreamError
from gatsishub.models import Order, OrderStatus, Payment, PaymentStatus
from gatsishub.services.contract import format_peso

logger = logging.getLogger(__name__)
router = APIRouter()


def _count(session, stmt) -> int:
    value = session.exec(stmt).one()
    if isinstance(value, tuple):
        value = value[0]
    return int(value or 0)


def _render_summary_html(summary: Dict[str, Any]) -> str:
    return f"""
<!doctype html>
<html>
<head>
  <meta charset="utf-8" />
  <title>GatsisHub Dashboard</title>
  <style>
    body {{ font-family: Inter, system-ui, -apple-system, 'Segoe UI', Roboto, 'Helvetica Neue', Arial; background:#f3f4f6; padding:24px; }}
    .container {{ max-width:1100px; margin:0 auto; }}
    .cards {{ display:flex; gap:16px; margin-bottom:20px; }}
    .card {{ background:white;padding:20px;border-radius:8px; box-shadow:0 1px 3px rgba(0,0,0,0.06); flex:1 }}
    .title {{ color:#6b7280; font-size:13px }}
    .value {{ font-size:28px; font-weight:700; margin-top:6px }}
    table {{ width:100%; border-collapse:collapse; margin-top:12px; background:white; border-radius:8px; overflow:hidden }}
    th, td {{ padding:12px; text-align:left; border-bottom:1px solid #eef2f7 }}
    thead {{ background:#f9fafb }}
    .nav {{ margin-bottom:18px }}
    .nav a {{ margin-right:12px; color:#2563eb; text-decoration:none }}
  </style>
</head>
<body>
  <div class="container">
    <div class="nav"><a href="/">Home</a> <a href="/dashboard/summary">Dashboard</a> <a href="/dashboard/stats">Stats</a></div>
    <h1>Dashboard Summary</h1>
    <div class="cards">
      <div class="card"><div class="title">Total Orders</div><div class="value">{summary['total_orders']}</div></div>
      <div class="card"><div class="title">Revenue</div><div class="value">{format_peso(summary['revenue'])}</div></div>
      <div class="card"><div class="title">For Evaluation</div><div class="value">{summary['for_evaluation']}</div></div>
      <div class="card"><div class="title">Payments to Verify</div><div class="value">{summary['pending_payments']}</div></div>
    </div>
    <h2>Recent Orders</h2>
    <table>
      <thead><tr><th>ID</th><th>Company</th><th>Product</th><th>Qty</th><th>Status</th><th>Price</th></tr></thead>
      <tbody id="rows"></tbody>
    </table>
    <script>
      // Use string concatenation (avoid JS template literals) so Python f-strings don't interfere
      fetch('/orders/all?limit=20').then(function(r){{ return r.json(); }}).then(function(data){{
        var tbody = document.getElementById('rows');
        (data.orders || []).forEach(function(o){{
          var tr = document.createElement('tr');
          var cells = [o.id.slice(0, 8), o.company_name, o.hanger_type, o.quantity, o.status,
                       (o.total_price != null) ? ('₱' + o.total_price) : '—'];
          cells.forEach(function(c){{
            var td = document.createElement('td');
            td.textContent = (c === null || c === undefined) ? '—' : c;
            tr.appendChild(td);
          }});
          tbody.appendChild(tr);
        }});
      }});
    </script>
  </div>
</body>
</html>
"""


@router.get("/summary")
def summary(request: Request) -> Any:
    session = get_session()
    try:
        total = _count(session, select(func.count()).select_from(Order))
        revenue = session.exec(
            select(func.coalesce(func.sum(Order.total_price), 0.0)).where(Order.status == OrderStatus.COMPLETED)
        ).one()
        if isinstance(revenue, tuple):
            revenue = revenue[0]
        for_evaluation = _count(
            session, select(func.count()).select_from(Order).where(Order.status == OrderStatus.FOR_EVALUATION)
        )
        pending_payments = _count(
            session, select(func.count()).select_from(Payment).where(Payment.status == PaymentStatus.PENDING)
        )
        data = {
            "total_orders": total,
            "revenue": round(float(revenue or 0), 2),
            "for_evaluation": for_evaluation,
            "pending_payments": pending_payments,
        }
    except Exception as e:
        logger.exception("Failed to compute summary: %s", e)
        raise UpstreamError("Failed to compute dashboard summary")
    finally:
        session.close()

    accept = request.headers.get('accept', '')
    if 'text/html' in accept:
        return HTMLResponse(content=_render_summary_html(data))
    return data


@router.get("/stats")
def stats(request: Request):
    session = get_session()
    try:
        rows = session.exec(select(Order.status, func.count()).group_by(Order.status)).all()
        by_status: Dict[str, int] = {s.value: 0 for s in OrderStatus}
        for status, count in rows:
            by_status[getattr(status, "value", status)] = int(count)
    finally:
        session.close()

    accept = request.headers.get('accept', '')
    if 'text/html' in accept:
        items = ''.join([f"<li><strong>{escape(k)}</strong>: {v}</li>" for k, v in by_status.items()])
        html = f"""
<!doctype html>
<html><head><meta charset='utf-8' /><title>Stats</title>
<style>body{{font-family:Inter,system-ui, -apple-system, 'Segoe UI', Roboto; background:#f3f4f6; padding:24px}} ul{{background:white;padding:20px;border-radius:8px;}}</style>
</head><body><div class='container'><h1>Orders by Status</h1><ul>{items}</ul></div></body></html>
"""
        return HTMLResponse(content=html)

    return {"by_status": by_status}
