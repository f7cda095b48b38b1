"""Classification of SBI outcome strings into typed verdicts."""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum

from ptrs_core.config import (
    OUTCOME_INVALID_ABN_MARKER,
    OUTCOME_NOT_SMALL_BUSINESS,
    OUTCOME_SMALL_BUSINESS,
    Settings,
)


class SbiVerdict(str, Enum):
    SMALL_BUSINESS = "SMALL_BUSINESS"
    NOT_SMALL_BUSINESS = "NOT_SMALL_BUSINESS"
    INVALID_ABN = "INVALID_ABN"
    UNKNOWN = "UNKNOWN"

    @property
    def expected_flag(self) -> bool | None:
        """The ``is_small_business`` value this verdict implies, if any."""
        if self is SbiVerdict.SMALL_BUSINESS:
            return True
        if self is SbiVerdict.NOT_SMALL_BUSINESS:
            return False
        return None


class OutcomeClassifier:
    """Map free-text SBI outcomes onto :class:`SbiVerdict`.

    Known phrases match exactly after trimming surrounding whitespace.
    Invalid-ABN markers match case-insensitively as substrings and take
    precedence over everything else.  Anything unmatched, including an
    empty outcome, is :attr:`SbiVerdict.UNKNOWN`.
    """

    def __init__(
        self,
        small_business_phrases: Iterable[str] = (OUTCOME_SMALL_BUSINESS,),
        not_small_business_phrases: Iterable[str] = (OUTCOME_NOT_SMALL_BUSINESS,),
        invalid_abn_markers: Iterable[str] = (OUTCOME_INVALID_ABN_MARKER,),
    ) -> None:
        self._small = frozenset(p.strip() for p in small_business_phrases)
        self._not_small = frozenset(p.strip() for p in not_small_business_phrases)
        self._invalid_markers = tuple(m.strip().lower() for m in invalid_abn_markers if m.strip())

    @classmethod
    def from_settings(cls, settings: Settings) -> OutcomeClassifier:
        return cls(
            settings.sbi_small_business_phrases,
            settings.sbi_not_small_business_phrases,
            settings.sbi_invalid_abn_markers,
        )

    def classify(self, outcome: str | None) -> SbiVerdict:
        text = (outcome or "").strip()
        lowered = text.lower()
        if any(marker in lowered for marker in self._invalid_markers):
            return SbiVerdict.INVALID_ABN
        if text in self._small:
            return SbiVerdict.SMALL_BUSINESS
        if text in self._not_small:
            return SbiVerdict.NOT_SMALL_BUSINESS
        return SbiVerdict.UNKNOWN
