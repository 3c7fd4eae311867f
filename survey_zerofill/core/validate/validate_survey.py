from __future__ import annotations

from collections import Counter
from typing import Any, Optional, Sequence

from survey_zerofill.core.errors import SurveyValidationError
from survey_zerofill.core.model import SurveyRecord, is_sorted


def validate_survey(
    records: Sequence[SurveyRecord],
    species: Sequence[int],
    *,
    file: Optional[str] = None,
) -> tuple[list[SurveyValidationError], list[SurveyValidationError]]:
    """Check a raw (possibly unsorted) record set before expansion.

    Returns (errors, warnings). Paths refer to data rows, 1-based, in input
    order.

    Errors:
      - E_DUPLICATE_RECORD: same (route, year, species) more than once
    Warnings:
      - W_UNKNOWN_SPECIES: species code not in the canonical list
      - W_UNSORTED: input is not already in (route, year, species) order
    """

    errors: list[SurveyValidationError] = []
    warnings: list[SurveyValidationError] = []
    known = set(species)

    if not is_sorted(records):
        warnings.append(
            SurveyValidationError(
                code="W_UNSORTED",
                message="records are not in (route, year, species) order; they will be sorted before expansion",
                file=file,
            )
        )

    first_row: dict[tuple[int, int, int], int] = {}
    for i, r in enumerate(records, start=1):
        if r.species not in known:
            warnings.append(
                SurveyValidationError(
                    code="W_UNKNOWN_SPECIES",
                    message=f"species {r.species} is not in the species list; row will be skipped",
                    file=file,
                    path=f"row {i}",
                )
            )

        first = first_row.setdefault(r.sort_key, i)
        if first != i:
            errors.append(
                SurveyValidationError(
                    code="E_DUPLICATE_RECORD",
                    message=(
                        f"{{route,year,species}} {{{r.route},{r.year},{r.species}}} "
                        f"already recorded at row {first}"
                    ),
                    file=file,
                    path=f"row {i}",
                )
            )

    return errors, warnings


def survey_summary(records: Sequence[SurveyRecord], species: Sequence[int]) -> dict[str, Any]:
    known = set(species)
    occasions = {r.occasion for r in records}
    routes = sorted({r.route for r in records})
    years = sorted({r.year for r in records})
    unknown = Counter(r.species for r in records if r.species not in known)

    return {
        "record_count": len(records),
        "occasion_count": len(occasions),
        "species_count": len(species),
        "expected_rows": len(occasions) * len(species),
        "route_range": [routes[0], routes[-1]] if routes else None,
        "year_range": [years[0], years[-1]] if years else None,
        "unknown_species": {str(k): int(v) for k, v in sorted(unknown.items())},
    }


def summarize_survey(records: Sequence[SurveyRecord], species: Sequence[int]) -> str:
    s = survey_summary(records, species)
    lines = [
        f"OK: {s['record_count']} records, {s['occasion_count']} {{route,year}} occasions",
        f"Species: {s['species_count']} (expected output rows: {s['expected_rows']})",
    ]
    if s["route_range"]:
        lines.append(f"Routes: {s['route_range'][0]}..{s['route_range'][1]}")
        lines.append(f"Years: {s['year_range'][0]}..{s['year_range'][1]}")
    if s["unknown_species"]:
        unk = ", ".join(f"{k} (x{v})" for k, v in s["unknown_species"].items())
        lines.append(f"Unknown species: {unk}")
    return "\n".join(lines)
