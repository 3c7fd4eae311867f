from __future__ import annotations

from pathlib import Path

from survey_zerofill.core.errors import SurveyLoadError
from survey_zerofill.core.model import INT_RE


def load_species(path: str) -> list[int]:
    """Load the canonical species list: one base-10 AOU code per line.

    Order is preserved. Does not check for emptiness or repeats; the expander
    owns that (see validate_species).
    """

    p = Path(path)
    if not p.exists():
        raise SurveyLoadError(
            code="E_FILE_NOT_FOUND",
            message="species file does not exist",
            file=str(p),
        )

    try:
        raw_text = p.read_text(encoding="utf-8-sig")
    except Exception as e:  # pragma: no cover
        raise SurveyLoadError(code="E_FILE_READ", message=str(e), file=str(p)) from e

    species: list[int] = []
    # splitlines() drops the final newline and handles \r\n / \r endings.
    for lineno, line in enumerate(raw_text.splitlines(), start=1):
        tok = line.strip()
        if not INT_RE.fullmatch(tok):
            raise SurveyLoadError(
                code="E_SPECIES_PARSE",
                message=f"bad species {line!r}",
                file=str(p),
                path=f"line {lineno}",
            )
        species.append(int(tok, 10))

    return species
