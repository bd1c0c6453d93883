"""Enrollment context: product flags, market and state display values."""

from __future__ import annotations

from typing import Any

_MARKET_DISPLAY = {
    "individual": "Individual & Family",
    "small_group": "Small Group (2-50)",
    "small group": "Small Group (2-50)",
    "large_group": "Large Group (51+)",
    "large group": "Large Group (51+)",
}

STATE_NAMES = {
    "CA": "California",
    "NY": "New York",
    "TX": "Texas",
    "FL": "Florida",
    "IL": "Illinois",
    "PA": "Pennsylvania",
    "OH": "Ohio",
    "GA": "Georgia",
    "NC": "North Carolina",
    "MI": "Michigan",
}

_MEMBER_PRODUCTS = ("medical", "dental", "vision", "life")


def enrich_enrollment_context(payload: dict[str, Any]) -> dict[str, Any]:
    enriched = dict(payload)
    enrollment = payload.get("enrollment")
    if isinstance(enrollment, dict):
        enriched["enrollmentContext"] = _context_from_enrollment(enrollment)
        enriched["productSummary"] = _product_summary(payload.get("members"))
    else:
        enriched["enrollmentContext"] = _context_from_members(payload.get("members"))
    return enriched


def market_display(market: str) -> str:
    return _MARKET_DISPLAY.get(market.lower().replace("-", "_"), market)


def state_name(code: str) -> str:
    return STATE_NAMES.get(code.upper(), code)


def _context_from_enrollment(enrollment: dict[str, Any]) -> dict[str, Any]:
    context: dict[str, Any] = {}

    products = enrollment.get("products")
    if isinstance(products, list):
        context["selectedProducts"] = products
        context["hasMultipleProducts"] = len(products) > 1
        context["productCount"] = len(products)
        for product in _MEMBER_PRODUCTS:
            context[f"has{product.capitalize()}"] = product in products
        context["productsDisplay"] = ", ".join(str(item) for item in products)

    market = enrollment.get("marketCategory")
    if isinstance(market, str):
        normalized = market.lower().replace("-", "_")
        context["marketCategory"] = market
        context["marketDisplay"] = market_display(market)
        context["isIndividual"] = normalized == "individual"
        context["isSmallGroup"] = normalized == "small_group"
        context["isLargeGroup"] = normalized == "large_group"

    state = enrollment.get("state")
    if isinstance(state, str):
        context["state"] = state
        context["stateFullName"] = state_name(state)
        context["requiresCADisclosures"] = state.upper() == "CA"
        context["requiresNYRegulations"] = state.upper() == "NY"
        context["requiresTXNotices"] = state.upper() == "TX"

    plans = enrollment.get("plansByProduct")
    if isinstance(plans, dict):
        context["plansByProduct"] = plans
        context["totalPlansSelected"] = sum(
            len(value) for value in plans.values() if isinstance(value, list)
        )
    return context


def _context_from_members(members: Any) -> dict[str, Any]:
    if not isinstance(members, list) or not members:
        return {}
    found = [
        product
        for product in _MEMBER_PRODUCTS
        if any(isinstance(member, dict) and product in member for member in members)
    ]
    return {"selectedProducts": found, "productCount": len(found)}


def _product_summary(members: Any) -> dict[str, Any]:
    summary: dict[str, Any] = {}
    if not isinstance(members, list) or not members:
        return summary

    grand_total = 0.0
    for product in ("medical", "dental", "vision"):
        total = 0.0
        count = 0
        for member in members:
            coverage = member.get(product) if isinstance(member, dict) else None
            premium = coverage.get("premium") if isinstance(coverage, dict) else None
            if isinstance(premium, (int, float)) and not isinstance(premium, bool):
                total += float(premium)
                count += 1
        if count:
            summary[f"{product}PremiumTotal"] = f"{total:.2f}"
            summary[f"{product}MemberCount"] = count
        grand_total += total
    summary["grandTotalPremium"] = f"{grand_total:.2f}"
    return summary
