import math
from typing import Any, Dict, Mapping, Optional


class PriceEngine:
    """Rule-based cost breakdown for a hanger order (amounts in PHP)."""

    LOCAL_COUNTRY = "PH"

    BASE_DELIVERY_COST = {
        "local": 1000.0,
        "international": 5000.0,
    }

    EXCESS_COST_PER_KG = {
        "local": 500.0,
        "international": 1000.0,
    }

    WEIGHT_LIMIT_KG = 10.0

    DEFAULT_VAT_RATE = 12.0

    VAT_RATES = {
        "PH": 12.0,
        "SG": 9.0,
        "MY": 10.0,
        "ID": 11.0,
        "TH": 7.0,
        "VN": 10.0,
        "JP": 10.0,
        "KR": 10.0,
        "CN": 13.0,
        "HK": 0.0,
        "TW": 5.0,
        "IN": 18.0,
        "US": 0.0,  # varies by state
        "GB": 20.0,
        "AU": 10.0,
        "CA": 5.0,  # GST only
        "DE": 19.0,
        "FR": 20.0,
        "IT": 22.0,
        "ES": 21.0,
        "NL": 21.0,
    }

    def is_local(self, country: Optional[str]) -> bool:
        return (country or self.LOCAL_COUNTRY).strip().upper() == self.LOCAL_COUNTRY

    def vat_rate(self, country: Optional[str]) -> float:
        code = (country or self.LOCAL_COUNTRY).strip().upper()
        return self.VAT_RATES.get(code, self.DEFAULT_VAT_RATE)

    def delivery_cost(self, total_weight_kg: float, country: Optional[str]) -> Dict[str, Any]:
        zone = "local" if self.is_local(country) else "international"
        base = self.BASE_DELIVERY_COST[zone]

        excess = 0.0
        additional = 0.0
        if total_weight_kg > self.WEIGHT_LIMIT_KG:
            excess = total_weight_kg - self.WEIGHT_LIMIT_KG
            additional = math.ceil(excess) * self.EXCESS_COST_PER_KG[zone]

        return {
            "base_cost": base,
            "weight_limit_kg": self.WEIGHT_LIMIT_KG,
            "excess_weight_kg": round(excess, 3),
            "additional_cost": additional,
            "is_local": zone == "local",
            "country": (country or self.LOCAL_COUNTRY).upper(),
            "total": base + additional,
        }

    def estimate(
        self,
        product_weight_g: float,
        quantity: int,
        materials: Mapping[str, float],
        material_prices: Mapping[str, Optional[float]],
        country: Optional[str] = None,
        vat_rate: Optional[float] = None,
    ) -> Dict[str, Any]:
        """Compute the breakdown.

        ``materials`` maps material name to percentage of the hanger weight,
        ``material_prices`` maps material name to PHP per kilogram. Materials
        without a known price do not contribute.
        """
        total_weight = (float(product_weight_g) * quantity) / 1000.0

        lines = []
        material_cost = 0.0
        for name, percentage in materials.items():
            price = material_prices.get(name)
            if not price:
                continue
            weight = (float(percentage) / 100.0) * total_weight
            cost = weight * float(price)
            material_cost += cost
            lines.append({
                "name": name,
                "percentage": float(percentage),
                "price_per_kg": float(price),
                "weight_kg": round(weight, 3),
                "cost": round(cost, 2),
            })

        delivery = self.delivery_cost(total_weight, country)
        subtotal = material_cost + delivery["total"]
        rate = self.vat_rate(country) if vat_rate is None else float(vat_rate)
        vat = subtotal * (rate / 100.0)

        return {
            "product_weight_g": float(product_weight_g),
            "quantity": quantity,
            "total_weight_kg": round(total_weight, 3),
            "materials": lines,
            "material_cost": round(material_cost, 2),
            "delivery": delivery,
            "delivery_cost": round(delivery["total"], 2),
            "subtotal": round(subtotal, 2),
            "vat_rate": rate,
            "vat_amount": round(vat, 2),
            "total_price": round(subtotal + vat, 2),
        }


def resolve_breakdown(order, recompute=None) -> Optional[Dict[str, Any]]:
    """Pick the breakdown to show for ``order``.

    A staff-entered final breakdown wins and is marked final; otherwise the
    estimate persisted at checkout; otherwise ``recompute()`` if given.
    Returns None when nothing is available.
    """
    if order.final_breakdown:
        breakdown = dict(order.final_breakdown)
        breakdown["is_price_final"] = True
        if order.total_price is not None:
            breakdown.setdefault("total_price", order.total_price)
        return breakdown

    if order.estimated_breakdown:
        breakdown = dict(order.estimated_breakdown)
        breakdown["is_price_final"] = False
        return breakdown

    if recompute is not None:
        breakdown = recompute()
        if breakdown is not None:
            breakdown["is_price_final"] = False
        return breakdown

    return None
