from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class SurveyError(Exception):
    """Base error envelope. Prefer returning/printing these rather than raising raw exceptions."""

    code: str
    message: str
    file: Optional[str] = None
    path: Optional[str] = None

    def __str__(self) -> str:
        parts: list[str] = []
        if self.file:
            parts.append(self.file)
        if self.path:
            parts.append(self.path)
        loc = ":".join(parts) if parts else "<survey>"
        return f"{loc}: {self.code}: {self.message}"

    @property
    def is_warning(self) -> bool:
        return self.code.startswith("W_")


class SurveyLoadError(SurveyError):
    pass


class SurveyValidationError(SurveyError):
    pass


class SurveyConfigError(SurveyError):
    pass


class SurveyExpandError(SurveyError):
    pass


@dataclass(frozen=True)
class DuplicateOccasionError(SurveyExpandError):
    route: Optional[int] = None
    year: Optional[int] = None
    first_offset: Optional[int] = None  # output row of the first block
    offset: Optional[int] = None  # output rows emitted when the repeat was hit


@dataclass(frozen=True)
class UnsortedInputError(SurveyExpandError):
    index: Optional[int] = None
