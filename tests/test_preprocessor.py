from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from pdfgen.config.cache import TtlCache
from pdfgen.preprocess.preprocessor import matches_condition, merge_under, preprocess
from pdfgen.preprocess.rules import Condition, RulesLoader, parse_rules
from pdfgen.utils.errors import PreprocessingRulesError

ROLE_RULES = {
    "arrayFilters": [
        {
            "sourcePath": "applicants",
            "targetKey": "primary",
            "mode": "first",
            "filterField": "relationship",
            "filterValue": "PRIMARY",
        },
        {
            "sourcePath": "applicants",
            "targetKey": "spouse",
            "mode": "first",
            "filterField": "relationship",
            "filterValue": "SPOUSE",
        },
        {
            "sourcePath": "applicants",
            "targetKey": "dependent",
            "mode": "indexed",
            "maxItems": 3,
            "filterField": "relationship",
            "filterValue": "DEPENDENT",
        },
        {
            "sourcePath": "applicants",
            "targetKey": "dependents",
            "mode": "all",
            "filterField": "relationship",
            "filterValue": "DEPENDENT",
        },
    ],
    "simpleExtractors": [{"sourcePath": "enrollment.effectiveDate", "targetKey": "effective"}],
    "calculatedFields": [
        {"type": "count", "targetKey": "dependentCount", "sourceKey": "dependents"},
        {
            "type": "subtract",
            "targetKey": "additionalDependentCount",
            "minuend": "dependentCount",
            "subtrahend": 3,
        },
        {"type": "exists", "targetKey": "hasSpouse", "checkKey": "spouse"},
    ],
}


def _payload() -> dict[str, Any]:
    def person(relationship: str, name: str, age: int) -> dict[str, Any]:
        return {"relationship": relationship, "name": name, "age": age}

    return {
        "applicants": [
            person("PRIMARY", "A", 45),
            person("SPOUSE", "B", 44),
            person("DEPENDENT", "C", 17),
            person("DEPENDENT", "D", 15),
            person("DEPENDENT", "E", 12),
            person("DEPENDENT", "F", 9),
        ],
        "enrollment": {"effectiveDate": "2026-01-01"},
    }


def test_role_flattening_with_overflow_and_counts() -> None:
    result = preprocess(_payload(), parse_rules(ROLE_RULES, source="inline"))

    assert result["primary"]["name"] == "A"
    assert result["spouse"]["name"] == "B"
    assert [result[f"dependent{i}"]["name"] for i in (1, 2, 3)] == ["C", "D", "E"]
    assert "dependent4" not in result
    assert [item["name"] for item in result["dependentOverflow"]] == ["F"]
    assert result["dependentCount"] == 4
    assert result["additionalDependentCount"] == 1
    assert result["hasSpouse"] is True
    assert result["effective"] == "2026-01-01"


def test_filters_never_see_calculated_outputs() -> None:
    rules = parse_rules(
        {
            "arrayFilters": [{"sourcePath": "dependentCount", "targetKey": "echo", "mode": "all"}],
            "calculatedFields": [
                {"type": "count", "targetKey": "dependentCount", "sourceKey": "missing"}
            ],
        },
        source="inline",
    )

    result = preprocess({}, rules)

    assert result == {"dependentCount": 0}


def test_subtract_never_goes_negative() -> None:
    rules = parse_rules(
        {
            "calculatedFields": [
                {"type": "subtract", "targetKey": "x", "minuend": 1, "subtrahend": 5}
            ]
        },
        source="inline",
    )

    assert preprocess({}, rules) == {"x": 0}


def test_conditions_with_or_logic() -> None:
    rules = parse_rules(
        {
            "arrayFilters": [
                {
                    "sourcePath": "applicants",
                    "targetKey": "adults",
                    "mode": "all",
                    "conditionLogic": "OR",
                    "conditions": [
                        {"field": "relationship", "operator": "equals", "value": "PRIMARY"},
                        {"field": "age", "operator": "greaterThanOrEqual", "value": 18},
                    ],
                }
            ]
        },
        source="inline",
    )

    result = preprocess(_payload(), rules)

    assert [item["name"] for item in result["adults"]] == ["A", "B"]


@pytest.mark.parametrize(
    ("operator", "value", "expected"),
    [
        ("notEquals", "SPOUSE", True),
        ("contains", "PRIM", True),
        ("startsWith", "PR", True),
        ("endsWith", "ARY", True),
        ("in", ["SPOUSE", "PRIMARY"], True),
        ("notIn", ["SPOUSE"], True),
        ("in", "PRIMARY", False),
        ("lessThan", 10, False),
        ("bogus", "x", False),
    ],
)
def test_condition_operators(operator: str, value: Any, expected: bool) -> None:
    condition = Condition(field="relationship", operator=operator, value=value)

    assert matches_condition({"relationship": "PRIMARY"}, condition) is expected


def test_merge_under_keeps_original_keys() -> None:
    merged = merge_under({"primary": "original", "other": 1}, {"primary": "flat", "extra": 2})

    assert merged == {"primary": "original", "extra": 2, "other": 1}


def test_rules_loader_reads_repo_file_and_caches(tmp_path: Path) -> None:
    rules_file = tmp_path / "preprocessing" / "roles.yml"
    rules_file.parent.mkdir()
    rules_file.write_text(
        "simpleExtractors:\n  - sourcePath: a.b\n    targetKey: ab\n", encoding="utf-8"
    )
    cache: TtlCache = TtlCache("pdfConfigs", max_entries=10, ttl_seconds=60)
    loader = RulesLoader(cache=cache, repo_path=tmp_path)

    first = loader.load("preprocessing/roles.yml", "main")
    rules_file.unlink()
    second = loader.load("preprocessing/roles.yml", "main")

    assert first is second
    assert preprocess({"a": {"b": 7}}, first) == {"ab": 7}


def test_rules_loader_raises_when_missing(tmp_path: Path) -> None:
    cache: TtlCache = TtlCache("pdfConfigs", max_entries=10, ttl_seconds=60)
    loader = RulesLoader(cache=cache, repo_path=tmp_path)

    with pytest.raises(PreprocessingRulesError, match="not found"):
        loader.load("nope.yml", "main")


def test_parse_rules_rejects_invalid_mode() -> None:
    with pytest.raises(PreprocessingRulesError, match="Invalid preprocessing rules"):
        parse_rules(
            {"arrayFilters": [{"sourcePath": "a", "targetKey": "b", "mode": "every"}]},
            source="inline",
        )
