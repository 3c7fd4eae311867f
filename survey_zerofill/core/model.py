from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Iterable, Sequence


SURVEY_HEADER: tuple[str, ...] = (
    "Route",
    "Year",
    "AOU",
    "First",
    "Second",
    "Third",
    "Fourth",
    "Fifth",
    "Stops",
    "Count",
)

FIELD_COUNT = 7
ZERO_COUNT = "0"

Occasion = tuple[int, int]  # (route, year)

INT_RE = re.compile(r"[+-]?[0-9]+")


@dataclass(frozen=True)
class SurveyRecord:
    route: int
    year: int
    species: int
    fields: tuple[str, str, str, str, str, str, str]

    def __post_init__(self) -> None:
        if len(self.fields) != FIELD_COUNT:
            raise ValueError(f"expected {FIELD_COUNT} count fields, got {len(self.fields)}")

    @property
    def occasion(self) -> Occasion:
        return (self.route, self.year)

    @property
    def sort_key(self) -> tuple[int, int, int]:
        return (self.route, self.year, self.species)

    def to_row(self) -> list[str]:
        return [str(self.route), str(self.year), str(self.species), *self.fields]

    @classmethod
    def from_row(cls, row: Sequence[str]) -> "SurveyRecord":
        """Decode one data row.

        Columns 1-3 are base-10 integers; columns 4-10 are carried verbatim.
        Columns past the tenth are ignored.
        """
        if len(row) < len(SURVEY_HEADER):
            raise ValueError(f"expected min {len(SURVEY_HEADER)} columns, got {len(row)}")

        route = _parse_int(row[0], "route")
        year = _parse_int(row[1], "year")
        species = _parse_int(row[2], "species")
        fields = tuple(row[3 : 3 + FIELD_COUNT])
        return cls(route=route, year=year, species=species, fields=fields)  # type: ignore[arg-type]


def zero_record(route: int, year: int, species: int) -> SurveyRecord:
    """Row for a species that was not counted on (route, year)."""
    return SurveyRecord(route=route, year=year, species=species, fields=(ZERO_COUNT,) * FIELD_COUNT)  # type: ignore[arg-type]


def sort_records(records: Iterable[SurveyRecord]) -> list[SurveyRecord]:
    # sorted() is stable, so fully-equal keys keep their input order.
    return sorted(records, key=lambda r: r.sort_key)


def is_sorted(records: Sequence[SurveyRecord]) -> bool:
    return all(records[i - 1].sort_key <= records[i].sort_key for i in range(1, len(records)))


def _parse_int(tok: str, name: str) -> int:
    s = tok.strip()
    if not INT_RE.fullmatch(s):
        raise ValueError(f"parsing {name}: invalid integer {tok!r}")
    return int(s, 10)
