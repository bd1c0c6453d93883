"""Enrollment-driven merge configuration selection.

An enrollment submission names the purchased products, the market category
and the state. Configuration names are derived from those attributes either
by naming convention (``dental-medical-individual-ca.yml``) or by a small set
of business rules layered on top of the convention.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

DEFAULT_BASE_TEMPLATE = "templates/base-payer.yml"
LARGE_GROUP_ENTERPRISE_THRESHOLD = 1000

_CLIENT_B_RULES = "preprocessing/client-b-rules.yml"


class EnrollmentSubmission(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    products: list[str] = Field(min_length=1)
    market_category: str = Field(alias="marketCategory", min_length=1)
    state: str = Field(min_length=1)
    group_size: int | None = Field(default=None, alias="groupSize")
    plans_by_product: dict[str, list[str]] = Field(default_factory=dict, alias="plansByProduct")

    def summary(self) -> str:
        return (
            f"Products: {', '.join(self.products)}, "
            f"Market: {self.market_category}, State: {self.state}"
        )


def select_config_by_convention(enrollment: EnrollmentSubmission) -> str:
    """``<sorted products>-<market>-<state>.yml``, all lower case."""

    products = sorted(product.lower() for product in enrollment.products)
    market = enrollment.market_category.lower()
    state = enrollment.state.lower()
    return f"{'-'.join(products)}-{market}-{state}.yml"


def select_config_by_rules(enrollment: EnrollmentSubmission) -> str:
    market = enrollment.market_category.lower()
    state = enrollment.state.lower()
    if market == "medicare":
        return _medicare_config(enrollment, state)
    if (
        market == "large-group"
        and enrollment.group_size is not None
        and enrollment.group_size > LARGE_GROUP_ENTERPRISE_THRESHOLD
    ):
        return f"large-group-enterprise-{state}.yml"
    return select_config_by_convention(enrollment)


def _medicare_config(enrollment: EnrollmentSubmission, state: str) -> str:
    products = {product.lower() for product in enrollment.products}
    if "medical" in products and "prescription" in products:
        return f"medicare-advantage-partd-{state}.yml"
    if "medical" in products:
        return f"medicare-advantage-{state}.yml"
    return f"medicare-supplement-{state}.yml"


def build_dynamic_composition(enrollment: EnrollmentSubmission) -> dict[str, Any]:
    """A ``composition`` block assembling per-product, market and state parts."""

    components = [f"templates/products/{product.lower()}.yml" for product in enrollment.products]
    components.append(f"templates/markets/{enrollment.market_category.lower()}.yml")
    components.append(f"templates/states/{enrollment.state.lower()}.yml")
    return {"composition": {"base": DEFAULT_BASE_TEMPLATE, "components": components}}


def needs_preprocessing(payload: dict[str, Any]) -> bool:
    """True when the payload carries applicant or member arrays to flatten."""

    application = payload.get("application")
    if isinstance(application, dict) and isinstance(application.get("applicants"), list):
        return True
    enrollment = payload.get("enrollment")
    return isinstance(enrollment, dict) and isinstance(enrollment.get("members"), list)


def rules_for_payload(payload: dict[str, Any], default_rules: str) -> str:
    """Pick the rule file for a payload: per client, per structure, else the default."""

    client_id = payload.get("clientId")
    if client_id is not None and str(client_id).strip():
        return f"preprocessing/{str(client_id).strip()}-rules.yml"
    enrollment = payload.get("enrollment")
    if isinstance(enrollment, dict) and "members" in enrollment:
        return _CLIENT_B_RULES
    return default_rules
