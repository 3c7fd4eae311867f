from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Iterator, Literal, Optional, Sequence

from survey_zerofill.core.errors import (
    DuplicateOccasionError,
    SurveyConfigError,
    UnsortedInputError,
)
from survey_zerofill.core.model import Occasion, SurveyRecord, zero_record


DuplicatePolicy = Literal["fail", "allow"]
DUPLICATE_POLICIES: tuple[str, ...] = ("fail", "allow")


@dataclass(frozen=True)
class SkippedRecord:
    """A non-fatal notice about an input row that did not reach the output."""

    code: str
    index: int  # position in the (sorted) input
    record: SurveyRecord

    @property
    def message(self) -> str:
        r = self.record
        if self.code == "W_UNKNOWN_SPECIES":
            return f"ignoring unknown species {r.species} for {{{r.route},{r.year}}}"
        return f"ignoring repeated record for species {r.species} in {{{r.route},{r.year}}}"

    def __str__(self) -> str:
        return f"record {self.index}: {self.code}: {self.message}"


@dataclass
class ExpandResult:
    records: list[SurveyRecord]
    occasions: int
    skipped: list[SkippedRecord] = field(default_factory=list)


def validate_species(species: Sequence[int]) -> list[int]:
    """Return the canonical species list, or raise SurveyConfigError.

    Canonical order drives emission order and slot matching, so the list must be
    non-empty and free of repeats.
    """

    codes = list(species)
    if not codes:
        raise SurveyConfigError(
            code="E_SPECIES_EMPTY",
            message="species list is empty; nothing to expand into",
            path="species",
        )

    first_pos: dict[int, int] = {}
    for i, code in enumerate(codes):
        if code in first_pos:
            raise SurveyConfigError(
                code="E_SPECIES_DUPLICATE",
                message=f"species {code} listed twice (positions {first_pos[code]} and {i})",
                path=f"species[{i}]",
            )
        first_pos[code] = i
    return codes


class OccasionExpander:
    """Densify sorted survey records against a canonical species list.

    Each (route, year) occasion in the input becomes exactly ``len(species)``
    output rows in canonical order: the observed record where there is one,
    a zero-filled record otherwise.

    One instance covers one run. ``seen`` maps every completed occasion to the
    output offset of its first row and is what the duplicate-occasion policy
    consults.
    """

    def __init__(
        self,
        species: Sequence[int],
        *,
        on_duplicate: DuplicatePolicy = "fail",
        check_sorted: bool = True,
        on_notice: Optional[Callable[[SkippedRecord], None]] = None,
    ) -> None:
        if on_duplicate not in DUPLICATE_POLICIES:
            raise SurveyConfigError(
                code="E_UNKNOWN_DUPLICATE_POLICY",
                message=f"unknown duplicate policy: {on_duplicate} (choose one of: {', '.join(DUPLICATE_POLICIES)})",
                path="on_duplicate",
            )

        self.species: tuple[int, ...] = tuple(validate_species(species))
        self._known: frozenset[int] = frozenset(self.species)
        self.on_duplicate = on_duplicate
        self.check_sorted = check_sorted
        self.on_notice = on_notice

        self.seen: dict[Occasion, int] = {}
        self.skipped: list[SkippedRecord] = []
        self.emitted = 0
        self.occasions = 0

    def expand(self, records: Sequence[SurveyRecord]) -> Iterator[SurveyRecord]:
        """Yield the densified rows in a single forward pass over ``records``.

        Rows are yielded as soon as they are decided, so a consumer that writes
        them out keeps everything produced before a fatal error.
        """

        n = len(records)
        i = 0
        while i < n:
            key = records[i].occasion
            self._enter_occasion(records, i, key)

            # Slice out this occasion; everything else is per-slot lookup.
            end = i
            by_species: dict[int, SurveyRecord] = {}
            repeated: Optional[int] = None  # input index of the first repeated triple
            while end < n and records[end].occasion == key:
                if self.check_sorted and end > i:
                    self._require_sorted(records, end)
                rec = records[end]
                if rec.species not in self._known:
                    self._skip("W_UNKNOWN_SPECIES", end, rec)
                elif rec.species in by_species:
                    if self.on_duplicate == "fail":
                        if repeated is None:
                            repeated = end
                    else:
                        self._skip("W_DUPLICATE_RECORD", end, rec)
                else:
                    by_species[rec.species] = rec
                end += 1

            route, year = key
            for code in self.species:
                observed = by_species.get(code)
                yield observed if observed is not None else zero_record(route, year, code)
                self.emitted += 1

            self.occasions += 1

            # A second row for the same triple means a second survey block was
            # merged into this one by sorting; its counts would be lost.
            if repeated is not None:
                raise self._duplicate_error(
                    key,
                    repeated,
                    detail=f"species {records[repeated].species} recorded twice",
                )
            i = end

    def _enter_occasion(self, records: Sequence[SurveyRecord], i: int, key: Occasion) -> None:
        first_offset = self.seen.get(key)
        if first_offset is not None:
            if self.on_duplicate == "fail":
                raise self._duplicate_error(key, i, detail="occasion repeated")
            # A repeated block is out of order by construction.
            return

        self.seen[key] = self.emitted
        if self.check_sorted and i > 0:
            self._require_sorted(records, i)

    def _duplicate_error(self, key: Occasion, i: int, *, detail: str) -> DuplicateOccasionError:
        route, year = key
        first_offset = self.seen[key]
        return DuplicateOccasionError(
            code="E_DUPLICATE_OCCASION",
            message=(
                f"already seen {{route,year}} tuple {{{route},{year}}} at output row "
                f"{first_offset} ({detail}); stopping after {self.emitted} rows"
            ),
            path=f"record {i}",
            route=route,
            year=year,
            first_offset=first_offset,
            offset=self.emitted,
        )

    def _require_sorted(self, records: Sequence[SurveyRecord], i: int) -> None:
        prev, cur = records[i - 1], records[i]
        if cur.sort_key < prev.sort_key:
            raise UnsortedInputError(
                code="E_UNSORTED",
                message=(
                    f"input is not sorted by (route, year, species): "
                    f"{cur.sort_key} follows {prev.sort_key}"
                ),
                path=f"record {i}",
                index=i,
            )

    def _skip(self, code: str, index: int, record: SurveyRecord) -> None:
        notice = SkippedRecord(code=code, index=index, record=record)
        self.skipped.append(notice)
        if self.on_notice is not None:
            self.on_notice(notice)


def expand_survey(
    records: Sequence[SurveyRecord],
    species: Sequence[int],
    *,
    on_duplicate: DuplicatePolicy = "fail",
    check_sorted: bool = True,
) -> ExpandResult:
    """Buffered expansion. Fatal errors propagate; nothing partial is returned."""

    expander = OccasionExpander(species, on_duplicate=on_duplicate, check_sorted=check_sorted)
    out = list(expander.expand(records))
    return ExpandResult(records=out, occasions=expander.occasions, skipped=list(expander.skipped))
