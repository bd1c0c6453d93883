"""Named payload enrichers applied before a section renders."""

from __future__ import annotations

import copy
from collections.abc import Callable, Iterable
from typing import Any

from pdfgen.enrich.context import enrich_enrollment_context
from pdfgen.enrich.coverage import enrich_coverage_summary
from pdfgen.enrich.dates import enrich_dates
from pdfgen.enrich.premiums import enrich_premiums
from pdfgen.utils.errors import UnknownEnricherError

Enricher = Callable[[dict[str, Any]], dict[str, Any]]

_BUILTIN_ENRICHERS: dict[str, Enricher] = {
    "coverageSummary": enrich_coverage_summary,
    "dateFormatting": enrich_dates,
    "enrollmentContext": enrich_enrollment_context,
    "premiumCalculation": enrich_premiums,
}


class EnricherRegistry:
    def __init__(self, enrichers: dict[str, Enricher] | None = None) -> None:
        self._enrichers = dict(_BUILTIN_ENRICHERS if enrichers is None else enrichers)

    def register(self, name: str, enricher: Enricher) -> None:
        self._enrichers[name] = enricher

    def names(self) -> list[str]:
        return sorted(self._enrichers)

    def apply(self, names: Iterable[str], payload: dict[str, Any]) -> dict[str, Any]:
        """Apply enrichers in order to a copy of ``payload``.

        Raises:
            UnknownEnricherError: when a name is not registered.
        """

        enriched = copy.deepcopy(payload)
        for name in names:
            try:
                enricher = self._enrichers[name]
            except KeyError as exc:
                raise UnknownEnricherError(
                    f"Unknown enricher: {name}", detail={"available": self.names()}
                ) from exc
            enriched = enricher(enriched)
        return enriched
