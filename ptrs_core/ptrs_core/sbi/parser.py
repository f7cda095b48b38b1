"""Parser for SBI determination result files.

The SBI tool returns a CSV with (at least) ABN and Outcome columns and
usually a Year column.  Parsing happens entirely before anything is
persisted so malformed uploads are rejected without side effects.
"""

from __future__ import annotations

import csv
import hashlib
import logging
import re

from pydantic import BaseModel, Field

from ptrs_core.errors import (
    EmptyUploadError,
    MalformedUploadError,
    MissingRequiredColumns,
    NoAbnsParsed,
    UploadDecodeError,
)
from ptrs_core.sbi.abn import MAX_ABN_LENGTH, normalize_abn
from ptrs_core.sbi.outcomes import OutcomeClassifier, SbiVerdict

logger = logging.getLogger(__name__)

ABN_HEADERS: tuple[str, ...] = ("abn", "supplier abn", "entity abn", "payee_entity_abn", "payee abn")
OUTCOME_HEADERS: tuple[str, ...] = ("outcome", "result", "status")
YEAR_HEADERS: tuple[str, ...] = ("year", "reporting year")

_LINE_BREAK = re.compile(r"\r\n|\r|\n")


class ParsedSbiResult(BaseModel):
    abn: str
    outcome: str
    year: int | None = None
    verdict: SbiVerdict

    @property
    def is_valid_abn(self) -> bool:
        return self.verdict is not SbiVerdict.INVALID_ABN


class ParsedSbiFile(BaseModel):
    """A parsed and deduplicated SBI results file."""

    file_hash: str = Field(..., description="SHA-256 hex digest of the raw bytes.")
    raw_row_count: int = Field(..., description="Data rows after the header, blank lines excluded.")
    results: dict[str, ParsedSbiResult] = Field(
        default_factory=dict,
        description="One entry per normalised ABN; later rows replace earlier ones.",
    )
    invalid_abns: int = 0
    unknown_outcomes: int = 0

    @property
    def parsed_abn_count(self) -> int:
        return len(self.results)


def sha256_hex(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def _header_index(headers: list[str], candidates: tuple[str, ...]) -> int:
    lowered = [h.strip().lower() for h in headers]
    for candidate in candidates:
        if candidate in lowered:
            return lowered.index(candidate)
    return -1


def _split_lines(text: str) -> list[tuple[int, str]]:
    """Non-blank lines with their 1-based line numbers."""
    return [(no, line) for no, line in enumerate(_LINE_BREAK.split(text), start=1) if line.strip()]


def _parse_line(line_no: int, line: str) -> list[str]:
    # One line at a time: an unbalanced quote can only swallow the rest of
    # its own line, never the rows after it.
    try:
        return next(csv.reader([line]), [])
    except csv.Error as exc:
        raise MalformedUploadError(line_no, str(exc)) from exc


def _cell(row: list[str], index: int) -> str:
    if index < 0 or index >= len(row):
        return ""
    return row[index].strip()


def _parse_year(raw: str) -> int | None:
    if not raw:
        return None
    try:
        return int(raw)
    except ValueError:
        return None


def parse_sbi_csv(file_bytes: bytes, classifier: OutcomeClassifier | None = None) -> ParsedSbiFile:
    """Parse and deduplicate an SBI results file.

    Parameters
    ----------
    file_bytes:
        Raw upload content.  A UTF-8 byte-order mark is tolerated.
    classifier:
        Outcome classifier; the default canonical phrase table when omitted.

    Raises
    ------
    EmptyUploadError
        No bytes, or nothing but blank lines.
    UploadDecodeError
        The content is not UTF-8.
    MissingRequiredColumns
        The header has no recognisable ABN or Outcome column.
    MalformedUploadError
        A line is unreadable as CSV or carries an ABN too long to store.
    NoAbnsParsed
        No data row yields a non-empty ABN.
    """
    classifier = classifier or OutcomeClassifier()

    if not file_bytes:
        raise EmptyUploadError()

    try:
        text = file_bytes.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise UploadDecodeError() from exc

    lines = _split_lines(text)
    if not lines:
        raise EmptyUploadError()

    headers = _parse_line(*lines[0])
    data_lines = lines[1:]
    abn_idx = _header_index(headers, ABN_HEADERS)
    outcome_idx = _header_index(headers, OUTCOME_HEADERS)
    year_idx = _header_index(headers, YEAR_HEADERS)

    missing = [name for name, idx in (("ABN", abn_idx), ("Outcome", outcome_idx)) if idx < 0]
    if missing:
        raise MissingRequiredColumns(missing)

    parsed = ParsedSbiFile(file_hash=sha256_hex(file_bytes), raw_row_count=len(data_lines))
    for line_no, line in data_lines:
        row = _parse_line(line_no, line)
        abn = normalize_abn(_cell(row, abn_idx))
        if not abn:
            continue
        if len(abn) > MAX_ABN_LENGTH:
            raise MalformedUploadError(line_no, f"ABN value has {len(abn)} digits")

        outcome = _cell(row, outcome_idx)
        verdict = classifier.classify(outcome)
        if verdict is SbiVerdict.INVALID_ABN:
            parsed.invalid_abns += 1
        elif verdict is SbiVerdict.UNKNOWN and outcome:
            parsed.unknown_outcomes += 1

        # Last row wins for a repeated ABN.
        parsed.results[abn] = ParsedSbiResult(
            abn=abn,
            outcome=outcome,
            year=_parse_year(_cell(row, year_idx)),
            verdict=verdict,
        )

    if not parsed.results:
        raise NoAbnsParsed()

    logger.debug(
        "Parsed SBI file hash=%s raw_rows=%d abns=%d invalid=%d unknown=%d",
        parsed.file_hash[:12],
        parsed.raw_row_count,
        parsed.parsed_abn_count,
        parsed.invalid_abns,
        parsed.unknown_outcomes,
    )
    return parsed
