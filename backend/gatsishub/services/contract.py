"""Sales agreement rendering and signing."""
import logging
from datetime import date, datetime
from html import escape
from typing import Any, Callable, Dict, Mapping, Optional

from gatsishub.exceptions import ValidationFailed
from gatsishub.models.common import utcnow
from gatsishub.utils.images import is_blank_signature

logger = logging.getLogger(__name__)

COMPANY_NAME = "GT Gatsis Corporation"
COMPANY_ADDRESS = (
    "Victoria Wave Special Economic Zone, Siera Madre Building, Brgy. 186 "
    "North Caloocan City, Metro Manila Philippines 1427"
)
GOVERNING_LAW = "Metro Manila, Philippines"
DELAY_DAYS = 7
INSPECTION_DAYS = 7
COMPENSATION_RATE = 0.10
DEFAULT_REPRESENTATIVE = "Sales Administrator"


def format_materials(materials: Optional[Mapping[str, Any]]) -> str:
    if not materials or not isinstance(materials, Mapping):
        return "Standard materials"
    return ", ".join(f"{name} {round(float(pct))}%" for name, pct in materials.items())


def format_peso(amount: float) -> str:
    return f"₱{amount:,.2f}"


def long_date(value) -> str:
    if isinstance(value, datetime):
        value = value.date()
    if isinstance(value, str):
        value = date.fromisoformat(value[:10])
    return f"{value:%B} {value.day}, {value.year}"


def compensation(total_price: Optional[float]) -> float:
    return round(float(total_price or 0) * COMPENSATION_RATE, 2)


def contract_terms(order, representative: Optional[str] = None) -> Dict[str, Any]:
    return {
        "company_name": COMPANY_NAME,
        "company_address": COMPANY_ADDRESS,
        "customer_name": order.company_name,
        "customer_address": order.delivery_address or "Address on file",
        "contact_person": order.contact_person,
        "product_description": order.hanger_type,
        "quantity": order.quantity,
        "materials": format_materials(order.materials),
        "delivery_date": long_date(order.deadline) if order.deadline else "To be determined",
        "delay_days": DELAY_DAYS,
        "compensation": format_peso(compensation(order.total_price)),
        "inspection_days": INSPECTION_DAYS,
        "governing_law": GOVERNING_LAW,
        "company_representative": representative or DEFAULT_REPRESENTATIVE,
        "total_price": order.total_price,
    }


def render_contract_html(
    order,
    *,
    signature: Optional[str] = None,
    representative: Optional[str] = None,
    signed_at: Optional[datetime] = None,
    today: Optional[date] = None,
) -> str:
    """Standalone HTML for the agreement; ``signature`` is a PNG data URL embedded as-is."""
    t = {k: escape(str(v)) for k, v in contract_terms(order, representative).items()}
    today = today or utcnow().date()
    made_on = f"{today.day} day of {today:%B}, year of {today.year}"
    customer_date = long_date(signed_at) if signed_at else long_date(today)

    signature_block = ""
    if signature:
        signature_block = f"""
    <div class="signature">
      <p><strong>Customer Digital Signature:</strong></p>
      <img src="{escape(signature, quote=True)}" alt="Customer signature" style="max-width:300px;max-height:120px;" />
    </div>"""

    footer = "This is a legally binding digital contract"
    if signed_at:
        footer += f" signed on {signed_at:%Y-%m-%d %H:%M} UTC"

    return f"""<!DOCTYPE html>
<html>
<head>
  <meta charset="UTF-8" />
  <title>Sales Agreement - ORD-{escape(str(order.id))[:8].upper()}</title>
  <style>
    body {{ font-family: Arial, sans-serif; max-width: 800px; margin: 20px auto; padding: 20px; line-height: 1.6; }}
    h1 {{ text-align: center; }}
    h2 {{ font-size: 16px; margin-top: 24px; }}
    .signature {{ margin-top: 16px; }}
    .footer {{ margin-top: 30px; font-size: 12px; color: #666; text-align: center; }}
  </style>
</head>
<body>
  <h1>SALES AGREEMENT</h1>
  <p>THIS AGREEMENT is made on this {made_on}, by and between:</p>
  <p><strong>{t['company_name']}</strong>, located at {t['company_address']}, and
     Name/Company Name: <strong>{t['customer_name']}</strong>.</p>
  <p>Located at: {t['customer_address']}.</p>

  <h2>1. SCOPE OF GOODS</h2>
  <p>The Company agrees to sell, and the Customer agrees to purchase, the following products:</p>
  <ul>
    <li>Description: {t['product_description']}</li>
    <li>Quantity: {t['quantity']} units</li>
    <li>Specifications/Materials: {t['materials']}</li>
  </ul>

  <h2>2. DELIVERY &amp; TIMING</h2>
  <p><strong>2.1. Delivery Date:</strong> The Company shall deliver the Goods to the Customer's specified
     location on or before {t['delivery_date']}.</p>
  <p><strong>2.2. Delay Breach:</strong> Time is of the essence. If the Goods are not delivered within
     {t['delay_days']} days of the Delivery Date, the Company is in contract breach. The Customer shall be
     entitled to a full refund of all monies paid and a one-time compensation credit of {t['compensation']}.</p>

  <h2>3. QUALITY &amp; MATERIAL GUARANTEE</h2>
  <p><strong>3.1. Quality Standards:</strong> The Company warrants that the Goods shall be free from defects in
     material and workmanship and shall conform to the descriptions provided in Section 1.</p>
  <p><strong>3.2. Material Authenticity:</strong> The use of substituted or "equivalent" materials without
     written consent from the Customer is strictly prohibited.</p>
  <p><strong>3.3. Right of Inspection:</strong> The Customer has {t['inspection_days']} days after delivery to
     inspect the Goods. If the Goods are found to be of the wrong material, inferior quality, or incorrect
     quantity, the Customer may reject the shipment.</p>

  <h2>4. REMEDIES FOR BREACH</h2>
  <p>In the event of a breach regarding Delivery Time, Quality, Quantity, or Material Integrity, the following
     shall apply:</p>
  <ul>
    <li><strong>Full Refund:</strong> The Company shall issue a 100% refund of the purchase price, including any
        shipping fees and taxes, within 7 business days.</li>
    <li><strong>Compensation:</strong> In addition to the refund, the Company shall pay the Customer
        {t['compensation']} as liquidated damages for the breach of contract.</li>
    <li><strong>Return Costs:</strong> The Company shall be responsible for all costs associated with the return
        or disposal of non-conforming Goods.</li>
  </ul>

  <h2>5. LIMITATION OF LIABILITY</h2>
  <p>Except for the specific compensation outlined in Section 4, the Company's total liability shall not exceed
     the total value of the purchase order. The Company is not responsible for delays caused by Natural
     Disasters provided the Company notifies the Customer immediately.</p>

  <h2>6. GOVERNING LAW</h2>
  <p>This Agreement shall be governed by the laws of {t['governing_law']}.</p>

  <h2>SIGNATURES:</h2>
  <p>Company Representative: {t['company_representative']} &nbsp;&nbsp; Date: {long_date(today)}</p>
  <p>Customer: {t['contact_person']} &nbsp;&nbsp; Date: {customer_date}</p>{signature_block}

  <div class="footer">{footer}.</div>
</body>
</html>
"""


def sign_contract(
    order,
    signature: Optional[str],
    agreed: bool,
    persist: Callable[[Dict[str, Any]], None],
    *,
    representative: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Assemble the signed artifact and hand it to ``persist``.

    Nothing is stored here; rejected input raises ``ValidationFailed`` before
    ``persist`` is called.
    """
    if is_blank_signature(signature):
        raise ValidationFailed("Please provide your signature", details={"signature": "Signature is empty"})
    if not agreed:
        raise ValidationFailed(
            "Please check the agreement box to proceed",
            details={"agreed": "Agreement must be accepted"},
        )

    now = now or utcnow()
    contract_data = {
        "signature": signature,
        "contract_html": render_contract_html(
            order,
            signature=signature,
            representative=representative,
            signed_at=now,
            today=now.date(),
        ),
        "signed_date": now.isoformat(),
        "terms": contract_terms(order, representative),
    }
    persist(contract_data)
    logger.info("Contract signed for order %s", order.id)
    return contract_data
