import re
from typing import Any, Dict, Mapping, Optional

from gatsishub import config
from gatsishub.exceptions import ValidationFailed

EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
COUNTRY_RE = re.compile(r"^[A-Z]{2}$")
MATERIAL_TOLERANCE = 1.0


class OrderValidator:
    """Checks an order submission before it is stored.

    Rules:
    - company name, contact person, contact phone and product are required
    - quantity must be a whole number of at least MIN_ORDER_QUANTITY
    - at least one material; percentages are positive and sum to 100 (+/- 1)
    - delivery country is an ISO-3166 alpha-2 code

    Problems are collected per field so the client can highlight all of them
    at once.
    """

    REQUIRED = {
        "company_name": "Company name is required",
        "contact_person": "Contact person is required",
        "contact_phone": "Contact phone is required",
        "hanger_type": "Product is required",
    }

    def _add_issue(self, issues: Dict[str, str], field: str, message: str) -> None:
        issues.setdefault(field, message)

    def validate(self, data: Mapping[str, Any]) -> Dict[str, str]:
        issues: Dict[str, str] = {}

        for field, message in self.REQUIRED.items():
            value = data.get(field)
            if value is None or (isinstance(value, str) and not value.strip()):
                self._add_issue(issues, field, message)

        quantity = data.get("quantity")
        if quantity is None:
            self._add_issue(issues, "quantity", "Quantity is required")
        else:
            try:
                qty = int(quantity)
                if qty != float(quantity):
                    self._add_issue(issues, "quantity", "Quantity must be a whole number")
                elif qty < config.MIN_ORDER_QUANTITY:
                    self._add_issue(
                        issues, "quantity", f"Minimum order quantity is {config.MIN_ORDER_QUANTITY}"
                    )
            except (TypeError, ValueError):
                self._add_issue(issues, "quantity", "Quantity must be a whole number")

        materials = data.get("materials")
        if not materials or not isinstance(materials, Mapping):
            self._add_issue(issues, "materials", "At least one material is required")
        else:
            try:
                values = [float(v) for v in materials.values()]
                if any(v <= 0 for v in values):
                    self._add_issue(issues, "materials", "Material percentages must be positive")
                elif abs(sum(values) - 100.0) > MATERIAL_TOLERANCE:
                    self._add_issue(issues, "materials", "Material percentages must add up to 100%")
            except (TypeError, ValueError):
                self._add_issue(issues, "materials", "Material percentages must be numbers")

        country = data.get("delivery_country")
        if country is not None and not COUNTRY_RE.match(str(country).strip().upper()):
            self._add_issue(issues, "delivery_country", "Delivery country must be a two-letter country code")

        return issues

    def check(self, data: Mapping[str, Any]) -> None:
        issues = self.validate(data)
        if issues:
            raise ValidationFailed("Missing or invalid order fields", details=issues)


def require_fields(data: Mapping[str, Any], messages: Mapping[str, str], summary: Optional[str] = None) -> None:
    """Raise ``ValidationFailed`` listing every blank field in ``messages``."""
    issues = {}
    for field, message in messages.items():
        value = data.get(field)
        if value is None or (isinstance(value, str) and not value.strip()):
            issues[field] = message
    if issues:
        raise ValidationFailed(summary or "Missing required fields", details=issues)


def is_valid_email(value: Optional[str]) -> bool:
    return bool(value) and bool(EMAIL_RE.match(value.strip()))
