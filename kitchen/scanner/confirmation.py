"""Sliding-window voting that turns repeated decodes into one confirmed code.

A camera pointed at a barcode produces many decodes per second, some of
them misreads. A code is confirmed once it appears ``required_matches``
times among the last ``window_size`` valid decodes. After confirmation the
buffer locks until ``reset()`` so the same scan cannot fire twice.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

from .validator import MIN_CODE_LENGTH, is_valid_decode

REQUIRED_MATCHES = 3
WINDOW_SIZE = 7


@dataclass(frozen=True)
class BufferState:
    entries: tuple[str, ...] = ()
    locked: bool = False


@dataclass(frozen=True)
class Pending:
    code: str
    matches: int
    confidence: int  # 0-100


@dataclass(frozen=True)
class Confirmed:
    code: str


def _confidence(matches: int, required_matches: int) -> int:
    # Round half up, not Python's banker's rounding
    return min(100, math.floor(matches / required_matches * 100 + 0.5))


def observe(
    state: BufferState,
    code: str,
    *,
    required_matches: int = REQUIRED_MATCHES,
    window_size: int = WINDOW_SIZE,
    min_length: int = MIN_CODE_LENGTH,
) -> tuple[BufferState, Pending | Confirmed | None]:
    """Feed one decode into the buffer.

    Returns the new state and the outcome; the outcome is None when the
    decode was ignored (buffer locked or decode invalid) and the state is
    returned unchanged.
    """
    if state.locked or not is_valid_decode(code, min_length):
        return state, None

    entries = (state.entries + (code,))[-window_size:]
    matches = entries.count(code)

    if matches >= required_matches:
        return BufferState(entries=(), locked=True), Confirmed(code)
    return (
        BufferState(entries=entries, locked=False),
        Pending(code, matches, _confidence(matches, required_matches)),
    )


class ConfirmationBuffer:
    """Stateful wrapper around :func:`observe` for one scan session."""

    def __init__(
        self,
        required_matches: int = REQUIRED_MATCHES,
        window_size: int = WINDOW_SIZE,
        min_length: int = MIN_CODE_LENGTH,
    ) -> None:
        if required_matches < 1:
            raise ValueError("required_matches must be at least 1")
        if required_matches > window_size:
            raise ValueError(
                f"required_matches ({required_matches}) must not exceed "
                f"window_size ({window_size})"
            )
        self._required_matches = required_matches
        self._window_size = window_size
        self._min_length = min_length
        self._state = BufferState()
        self._confidence = 0

    def observe(self, code: str) -> Pending | Confirmed | None:
        self._state, outcome = observe(
            self._state,
            code,
            required_matches=self._required_matches,
            window_size=self._window_size,
            min_length=self._min_length,
        )
        if isinstance(outcome, Confirmed):
            self._confidence = 100
        elif isinstance(outcome, Pending):
            self._confidence = outcome.confidence
        return outcome

    def reset(self) -> None:
        self._state = BufferState()
        self._confidence = 0

    @property
    def state(self) -> BufferState:
        return self._state

    @property
    def locked(self) -> bool:
        return self._state.locked

    @property
    def confidence(self) -> int:
        return self._confidence

    @property
    def entries(self) -> tuple[str, ...]:
        return self._state.entries

    def __len__(self) -> int:
        return len(self._state.entries)
