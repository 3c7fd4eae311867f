from __future__ import annotations

import csv
import io
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, Optional, TextIO

from survey_zerofill.core.errors import SurveyError, SurveyLoadError
from survey_zerofill.core.model import SURVEY_HEADER, SurveyRecord


STDIO = "-"


@dataclass
class LoadedSurvey:
    records: list[SurveyRecord]
    notices: list[SurveyError] = field(default_factory=list)
    file: Optional[str] = None


def normalize_line_endings(text: str) -> tuple[str, int]:
    """Turn \\r\\n and lone \\r into \\n. Returns (text, carriage returns replaced)."""
    count = text.count("\r")
    if not count:
        return text, 0
    return text.replace("\r\n", "\n").replace("\r", "\n"), count


def parse_survey(text: str, *, file: Optional[str] = None) -> LoadedSurvey:
    """Parse survey CSV text into records.

    The first row must start with SURVEY_HEADER exactly. Blank lines are
    skipped. Rows are returned in input order; sorting is the caller's job.
    """

    notices: list[SurveyError] = []
    text, replaced = normalize_line_endings(text)
    if replaced:
        notices.append(
            SurveyLoadError(
                code="W_CARRIAGE_RETURN",
                message=f"replaced {replaced} carriage return(s) with newlines",
                file=file,
            )
        )

    reader = csv.reader(io.StringIO(text))
    header: list[str] | None = None
    records: list[SurveyRecord] = []

    for row in reader:
        if not row or row == [""]:
            continue
        if header is None:
            header = row
            _check_header(header, file, reader.line_num)
            continue
        try:
            records.append(SurveyRecord.from_row(row))
        except ValueError as e:
            raise SurveyLoadError(
                code="E_BAD_ROW",
                message=str(e),
                file=file,
                path=f"line {reader.line_num}",
            ) from e

    if header is None:
        raise SurveyLoadError(code="E_EMPTY_INPUT", message="input has no header row", file=file)

    return LoadedSurvey(records=records, notices=notices, file=file)


def load_survey(path: str) -> LoadedSurvey:
    """Load a survey CSV from a path, or from stdin when path is '-'."""

    if path == STDIO:
        # Read bytes so \r survives for normalize_line_endings, as the file path does.
        return parse_survey(sys.stdin.buffer.read().decode("utf-8-sig"), file="<stdin>")

    p = Path(path)
    if not p.exists():
        raise SurveyLoadError(
            code="E_FILE_NOT_FOUND",
            message="file does not exist",
            file=str(p),
        )
    try:
        # newline="" keeps \r visible so normalize_line_endings can report it.
        with open(p, encoding="utf-8-sig", newline="") as f:
            raw_text = f.read()
    except Exception as e:  # pragma: no cover
        raise SurveyLoadError(code="E_FILE_READ", message=str(e), file=str(p)) from e

    return parse_survey(raw_text, file=str(p))


class SurveyWriter:
    """Writes the header once, then rows as they arrive."""

    def __init__(self, stream: TextIO) -> None:
        self._stream = stream
        self._writer = csv.writer(stream, lineterminator="\n")
        self._writer.writerow(SURVEY_HEADER)
        self.rows = 0

    def write(self, record: SurveyRecord) -> None:
        self._writer.writerow(record.to_row())
        self.rows += 1

    def write_all(self, records: Iterable[SurveyRecord]) -> int:
        for r in records:
            self.write(r)
        return self.rows


def open_output(path: str) -> TextIO:
    if path == STDIO:
        return sys.stdout
    p = Path(path)
    if str(p.parent) not in (".", ""):
        p.parent.mkdir(parents=True, exist_ok=True)
    return open(p, "w", encoding="utf-8", newline="")


def write_survey(records: Iterable[SurveyRecord], path: str) -> int:
    """Write the header and records to path ('-' for stdout); returns the row count.

    records may be a generator. If it raises part way, the rows already
    written are flushed before the error propagates.
    """
    stream = open_output(path)
    try:
        return SurveyWriter(stream).write_all(records)
    finally:
        if stream is sys.stdout:
            stream.flush()
        else:
            stream.close()


def _check_header(row: list[str], file: Optional[str], line: int) -> None:
    if len(row) < len(SURVEY_HEADER):
        raise SurveyLoadError(
            code="E_BAD_HEADER",
            message=f"expected {len(SURVEY_HEADER)} columns, input has {len(row)}",
            file=file,
            path=f"line {line}",
        )
    for i, expected in enumerate(SURVEY_HEADER):
        if row[i] != expected:
            raise SurveyLoadError(
                code="E_BAD_HEADER",
                message=f'column {i} labeled "{row[i]}", expected "{expected}"',
                file=file,
                path=f"line {line}",
            )
