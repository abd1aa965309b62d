"""Replay a recorded decode stream instead of a live camera."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import TYPE_CHECKING, Iterable

from . import (
    CameraDevice,
    CaptureBackend,
    CaptureError,
    DecodeCallback,
    FrameErrorCallback,
)

if TYPE_CHECKING:
    from ..config import CaptureProfile

logger = logging.getLogger(__name__)


class _ReplayStream:
    def __init__(self) -> None:
        self.task: asyncio.Task | None = None


class ReplayCaptureBackend(CaptureBackend):
    """Emit a fixed sequence of decodes at a steady interval.

    An empty line in a replay file stands for an unreadable frame and is
    sent to the frame-error channel.
    """

    def __init__(self, codes: Iterable[str], interval: float = 0.05) -> None:
        self._codes = list(codes)
        self._interval = interval

    @classmethod
    def from_file(cls, path: str | Path, interval: float = 0.05) -> ReplayCaptureBackend:
        p = Path(path)
        if not p.is_file():
            raise FileNotFoundError(f"Replay file not found: {p}")
        lines = p.read_text(encoding="utf-8").splitlines()
        return cls(lines, interval=interval)

    async def list_devices(self) -> list[CameraDevice] | None:
        return [CameraDevice(id="replay", label="Replay (back)")]

    async def start(
        self,
        device: CameraDevice | None,
        profile: CaptureProfile,
        on_decode: DecodeCallback,
        on_frame_error: FrameErrorCallback,
    ) -> _ReplayStream:
        if device is not None and device.id != "replay":
            raise CaptureError("NotFoundError", f"No such replay device: {device.id}")
        stream = _ReplayStream()
        stream.task = asyncio.create_task(self._play(on_decode, on_frame_error))
        logger.info("Replaying %d decodes", len(self._codes))
        return stream

    async def stop(self, handle: _ReplayStream) -> None:
        if handle.task is not None:
            handle.task.cancel()
            await asyncio.gather(handle.task, return_exceptions=True)
            handle.task = None

    async def _play(
        self, on_decode: DecodeCallback, on_frame_error: FrameErrorCallback
    ) -> None:
        for code in self._codes:
            await asyncio.sleep(self._interval)
            if code:
                on_decode(code)
            else:
                on_frame_error("replay: empty frame")
