from __future__ import annotations

import pytest

from pdfgen.enrich.context import enrich_enrollment_context, market_display, state_name
from pdfgen.enrich.coverage import enrich_coverage_summary
from pdfgen.enrich.dates import age_category, enrich_dates
from pdfgen.enrich.premiums import enrich_premiums
from pdfgen.enrich.registry import EnricherRegistry
from pdfgen.utils.errors import UnknownEnricherError


def test_registry_applies_in_order_without_touching_input() -> None:
    registry = EnricherRegistry({})
    registry.register("first", lambda payload: {**payload, "trail": payload["trail"] + ["a"]})
    registry.register("second", lambda payload: {**payload, "trail": payload["trail"] + ["b"]})
    payload = {"trail": []}

    enriched = registry.apply(["second", "first"], payload)

    assert enriched["trail"] == ["b", "a"]
    assert payload == {"trail": []}


def test_registry_rejects_unknown_names() -> None:
    registry = EnricherRegistry()

    with pytest.raises(UnknownEnricherError, match="Unknown enricher: nope"):
        registry.apply(["dateFormatting", "nope"], {})
    assert "premiumCalculation" in registry.names()


def test_premiums_multi_product_discount() -> None:
    payload = {
        "proposedProducts": [
            {"monthlyPremium": 100},
            {"monthlyPremium": 50.5},
            {"monthlyPremium": 49.5},
        ]
    }

    result = enrich_premiums(payload)["premiumCalculations"]

    assert result["monthlyTotal"] == 200.0
    assert result["annualTotal"] == 2400.0
    assert result["discount"] == 20.0
    assert result["finalMonthly"] == 180.0
    assert result["savingsPercent"] == 10.0


def test_premiums_high_total_discount_and_no_products() -> None:
    payload = {"medical": {"monthlyPremium": 450}, "dental": {"monthlyPremium": 100}}

    result = enrich_premiums(payload)["premiumCalculations"]

    assert result["discount"] == 27.5
    assert "premiumCalculations" not in enrich_premiums({})


def test_dates_formats_and_ages() -> None:
    payload = {
        "effectiveDate": "2026-01-01",
        "primary": {"dateOfBirth": "1960-01-01"},
        "dependent1": {"dateOfBirth": "not-a-date"},
    }

    enriched = enrich_dates(payload)

    assert enriched["formattedDates"]["effectiveDateLong"] == "January 1, 2026"
    assert enriched["formattedDates"]["effectiveDateShort"] == "01/01/2026"
    assert enriched["primary"]["calculatedAge"] >= 65
    assert enriched["primary"]["ageCategory"] == "SENIOR"
    assert "calculatedAge" not in enriched["dependent1"]


@pytest.mark.parametrize(
    ("age", "category"), [(17, "MINOR"), (18, "YOUNG_ADULT"), (26, "ADULT"), (65, "SENIOR")]
)
def test_age_category_boundaries(age: int, category: str) -> None:
    assert age_category(age) == category


def test_enrollment_context_flags() -> None:
    payload = {
        "enrollment": {
            "products": ["medical", "dental"],
            "marketCategory": "small-group",
            "state": "ca",
            "plansByProduct": {"medical": ["p1", "p2"], "dental": ["d1"]},
        },
        "members": [{"medical": {"premium": 100}}, {"medical": {"premium": 50.5}}],
    }

    enriched = enrich_enrollment_context(payload)
    context = enriched["enrollmentContext"]

    assert context["hasMedical"] is True
    assert context["hasVision"] is False
    assert context["hasMultipleProducts"] is True
    assert context["marketDisplay"] == "Small Group (2-50)"
    assert context["isSmallGroup"] is True
    assert context["stateFullName"] == "California"
    assert context["requiresCADisclosures"] is True
    assert context["totalPlansSelected"] == 3
    assert enriched["productSummary"]["medicalPremiumTotal"] == "150.50"
    assert enriched["productSummary"]["grandTotalPremium"] == "150.50"


def test_context_display_helpers_fall_back_to_input() -> None:
    assert market_display("Individual") == "Individual & Family"
    assert market_display("medicare") == "medicare"
    assert state_name("ZZ") == "ZZ"


def test_coverage_summary_collects_unique_carriers() -> None:
    payload = {
        "effectiveDate": "2026-02-01",
        "coverages": [
            {"carrierName": "Acme", "benefits": ["a", "b"]},
            {"carrierName": "Zenith", "benefits": ["c"]},
            {"carrierName": "Acme"},
        ],
        "applicants": [
            {
                "relationship": "PRIMARY",
                "demographic": {"firstName": "Ann", "lastName": "Lee", "dateOfBirth": "1980-05-05"},
                "products": [{"premium": "10.5"}, {"premium": 4}],
            }
        ],
    }

    summary = enrich_coverage_summary(payload)["coverageSummary"]

    assert summary["carrierNames"] == ["Acme", "Zenith"]
    assert summary["totalCarriers"] == 2
    assert summary["totalBenefits"] == 3
    assert summary["formattedEffectiveDate"] == "February 1, 2026"
    assert summary["enrichedApplicants"][0]["displayName"] == "Ann Lee"
    assert summary["enrichedApplicants"][0]["totalApplicantPremium"] == "14.50"
