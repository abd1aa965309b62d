"""Plausibility filter for raw decoder output."""

from __future__ import annotations

MIN_CODE_LENGTH = 4

# Characters that only show up in garbled camera reads
_DISALLOWED = frozenset('\\`"\'<>{}|')


def is_valid_decode(code: str, min_length: int = MIN_CODE_LENGTH) -> bool:
    """Return True if ``code`` looks like real barcode text.

    Rejects short reads, anything outside printable ASCII, and the
    punctuation that corrupted reads tend to produce.
    """
    if not isinstance(code, str) or len(code) < min_length:
        return False
    for ch in code:
        if not " " <= ch <= "~":
            return False
        if ch in _DISALLOWED:
            return False
    return True
