"""Australian Business Number helpers."""

from __future__ import annotations

import re
from typing import Any

_NON_DIGITS = re.compile(r"\D+")
_ABN_RE = re.compile(r"^\d{11}$")

# Width of the ABN columns in the state store.
MAX_ABN_LENGTH = 32


def normalize_abn(value: Any) -> str:
    """Strip everything but digits; ``None`` becomes ``""``.

    >>> normalize_abn("51 824 753 556")
    '51824753556'
    """
    if value is None:
        return ""
    return _NON_DIGITS.sub("", str(value))


def is_well_formed_abn(abn: str) -> bool:
    """True for exactly eleven digits.  No checksum is applied."""
    return bool(_ABN_RE.match(abn))


def payee_abn_of(data: dict[str, Any] | None) -> str:
    """Normalised payee ABN held in a stage row payload.

    Rows ingested before the ``payee_abn`` key was introduced carry the
    value under ``payee_entity_abn``.
    """
    if not data:
        return ""
    value = data.get("payee_abn")
    if value in (None, ""):
        value = data.get("payee_entity_abn")
    return normalize_abn(value)
