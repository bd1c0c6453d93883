from __future__ import annotations

import pytest
from pydantic import ValidationError

from pdfgen.mapping.enrollment import (
    EnrollmentSubmission,
    build_dynamic_composition,
    needs_preprocessing,
    rules_for_payload,
    select_config_by_convention,
    select_config_by_rules,
)

DEFAULT_RULES = "preprocessing/standard-enrollment-rules.yml"


def _enrollment(**overrides: object) -> EnrollmentSubmission:
    data: dict[str, object] = {
        "products": ["Medical", "dental"],
        "marketCategory": "Individual",
        "state": "CA",
    }
    data.update(overrides)
    return EnrollmentSubmission.model_validate(data)


def test_convention_sorts_and_lowercases_products() -> None:
    assert select_config_by_convention(_enrollment()) == "dental-medical-individual-ca.yml"


def test_convention_single_product() -> None:
    enrollment = _enrollment(products=["vision"], marketCategory="small-group", state="TX")

    assert select_config_by_convention(enrollment) == "vision-small-group-tx.yml"


@pytest.mark.parametrize(
    ("products", "expected"),
    [
        (["medical", "prescription"], "medicare-advantage-partd-ny.yml"),
        (["medical"], "medicare-advantage-ny.yml"),
        (["supplement"], "medicare-supplement-ny.yml"),
    ],
)
def test_rules_route_medicare_by_products(products: list[str], expected: str) -> None:
    enrollment = _enrollment(products=products, marketCategory="Medicare", state="NY")

    assert select_config_by_rules(enrollment) == expected


def test_rules_large_group_enterprise_only_above_threshold() -> None:
    large = _enrollment(marketCategory="large-group", groupSize=1500)
    boundary = _enrollment(marketCategory="large-group", groupSize=1000)

    assert select_config_by_rules(large) == "large-group-enterprise-ca.yml"
    assert select_config_by_rules(boundary) == "dental-medical-large-group-ca.yml"


def test_rules_fall_back_to_convention() -> None:
    assert select_config_by_rules(_enrollment()) == "dental-medical-individual-ca.yml"


def test_dynamic_composition_lists_parts_in_request_order() -> None:
    assert build_dynamic_composition(_enrollment()) == {
        "composition": {
            "base": "templates/base-payer.yml",
            "components": [
                "templates/products/medical.yml",
                "templates/products/dental.yml",
                "templates/markets/individual.yml",
                "templates/states/ca.yml",
            ],
        }
    }


def test_summary_keeps_original_spelling() -> None:
    assert _enrollment().summary() == "Products: Medical, dental, Market: Individual, State: CA"


def test_submission_requires_products() -> None:
    with pytest.raises(ValidationError):
        _enrollment(products=[])


def test_needs_preprocessing_detects_applicant_and_member_arrays() -> None:
    assert needs_preprocessing({"application": {"applicants": []}})
    assert needs_preprocessing({"enrollment": {"members": [{"id": 1}]}})
    assert not needs_preprocessing({"application": {"applicants": "none"}})
    assert not needs_preprocessing({"applicants": [{"id": 1}]})


def test_rules_for_payload_prefers_client_then_structure_then_default() -> None:
    assert rules_for_payload({"clientId": "acme"}, DEFAULT_RULES) == "preprocessing/acme-rules.yml"
    assert (
        rules_for_payload({"enrollment": {"members": []}}, DEFAULT_RULES)
        == "preprocessing/client-b-rules.yml"
    )
    assert rules_for_payload({"application": {}}, DEFAULT_RULES) == DEFAULT_RULES
