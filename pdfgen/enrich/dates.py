"""Date display strings and derived ages."""

from __future__ import annotations

from datetime import date
from typing import Any

from pdfgen.utils.dates import format_date, parse_iso_date, years_between

_LONG_PATTERN = "MMMM d, yyyy"
_SHORT_PATTERN = "MM/dd/yyyy"
_MAX_NUMBERED_DEPENDENTS = 10


def enrich_dates(payload: dict[str, Any]) -> dict[str, Any]:
    enriched = dict(payload)
    formatted: dict[str, str] = {}
    for key in ("submittedDate", "effectiveDate"):
        if key in payload and payload[key] is not None:
            raw = str(payload[key])
            formatted[f"{key}Long"] = _reformat(raw, _LONG_PATTERN)
            formatted[f"{key}Short"] = _reformat(raw, _SHORT_PATTERN)
    enriched["formattedDates"] = formatted

    today = date.today()
    people = [enriched.get("primary"), enriched.get("spouse")]
    people.extend(
        enriched.get(f"dependent{index}") for index in range(1, _MAX_NUMBERED_DEPENDENTS + 1)
    )
    dependents = enriched.get("allDependents")
    if isinstance(dependents, list):
        people.extend(dependents)
    for person in people:
        if isinstance(person, dict):
            _add_age(person, today)
    return enriched


def age_category(age: int) -> str:
    if age < 18:
        return "MINOR"
    if age < 26:
        return "YOUNG_ADULT"
    if age < 65:
        return "ADULT"
    return "SENIOR"


def _reformat(raw: str, pattern: str) -> str:
    parsed = parse_iso_date(raw)
    return raw if parsed is None else format_date(parsed, pattern)


def _add_age(person: dict[str, Any], today: date) -> None:
    raw = person.get("dateOfBirth")
    if raw is None:
        return
    born = parse_iso_date(str(raw))
    if born is None:
        return
    age = years_between(born, today)
    person["calculatedAge"] = age
    person["ageCategory"] = age_category(age)
