"""Premium totals and multi-product discounts."""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

_MULTI_PRODUCT_THRESHOLD = 3
_MULTI_PRODUCT_RATE = Decimal("0.10")
_HIGH_PREMIUM_THRESHOLD = Decimal("500")
_HIGH_PREMIUM_RATE = Decimal("0.05")
_MONTHS = Decimal("12")


def enrich_premiums(payload: dict[str, Any]) -> dict[str, Any]:
    """Add ``premiumCalculations`` summed over ``monthlyPremium`` values.

    Three or more products earn 10% off; otherwise a monthly total above 500
    earns 5%.
    """

    enriched = dict(payload)
    products = _products(payload)
    if not products:
        return enriched

    monthly = Decimal(0)
    for product in products:
        premium = product.get("monthlyPremium")
        if isinstance(premium, (int, float)) and not isinstance(premium, bool):
            monthly += Decimal(str(premium))
    annual = monthly * _MONTHS

    if len(products) >= _MULTI_PRODUCT_THRESHOLD:
        discount = monthly * _MULTI_PRODUCT_RATE
    elif monthly > _HIGH_PREMIUM_THRESHOLD:
        discount = monthly * _HIGH_PREMIUM_RATE
    else:
        discount = Decimal(0)

    enriched["premiumCalculations"] = {
        "monthlyTotal": _money(monthly),
        "annualTotal": _money(annual),
        "discount": _money(discount),
        "finalMonthly": _money(monthly - discount),
        "finalAnnual": _money(annual - discount * _MONTHS),
        "savingsPercent": _savings_percent(monthly, discount),
    }
    return enriched


def _products(payload: dict[str, Any]) -> list[dict[str, Any]]:
    proposed = payload.get("proposedProducts")
    if isinstance(proposed, list):
        return [item for item in proposed if isinstance(item, dict)]
    return [
        payload[key]
        for key in ("medical", "dental", "vision")
        if isinstance(payload.get(key), dict)
    ]


def _money(value: Decimal) -> float:
    return float(value.quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def _savings_percent(total: Decimal, discount: Decimal) -> float:
    if total == 0:
        return 0.0
    ratio = (discount / total).quantize(Decimal("0.0001"), rounding=ROUND_HALF_UP)
    return float((ratio * 100).quantize(Decimal("0.1"), rounding=ROUND_HALF_UP))
