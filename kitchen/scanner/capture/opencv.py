"""USB/built-in camera capture using OpenCV, decoded with pyzbar."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any

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


def _import_cv2():
    try:
        import cv2
    except ImportError:
        raise ImportError(
            "opencv-python is required: pip install 'kitchen-scan[camera]'"
        ) from None
    return cv2


def _import_decode():
    try:
        from pyzbar.pyzbar import decode
    except ImportError:
        raise ImportError(
            "pyzbar is required: pip install 'kitchen-scan[camera]'"
        ) from None
    return decode


class _OpenCVStream:
    def __init__(self, cap: Any, index: int) -> None:
        self.cap = cap
        self.index = index
        self.closed = asyncio.Event()
        self.task: asyncio.Task | None = None


class OpenCVCaptureBackend(CaptureBackend):
    """Read frames from a local camera and decode the centre region."""

    def __init__(self, max_probe: int = 10) -> None:
        self._max_probe = max_probe

    def is_supported(self) -> bool:
        try:
            _import_cv2()
            _import_decode()
        except ImportError as e:
            logger.warning("%s", e)
            return False
        return True

    async def list_devices(self) -> list[CameraDevice] | None:
        indices = await asyncio.to_thread(self.list_cameras, self._max_probe)
        return [CameraDevice(id=str(i), label=f"Camera {i}") for i in indices]

    async def start(
        self,
        device: CameraDevice | None,
        profile: CaptureProfile,
        on_decode: DecodeCallback,
        on_frame_error: FrameErrorCallback,
    ) -> _OpenCVStream:
        cv2 = _import_cv2()
        decode = _import_decode()

        # Without enumeration the system default camera is the best guess
        try:
            index = int(device.id) if device is not None else 0
        except ValueError:
            raise CaptureError(
                "OverconstrainedError", f"Not an OpenCV camera index: {device.id!r}"
            ) from None

        cap = await asyncio.to_thread(cv2.VideoCapture, index)
        if not cap.isOpened():
            cap.release()
            raise CaptureError("NotReadableError", f"Could not open camera {index}")

        cap.set(cv2.CAP_PROP_FRAME_WIDTH, profile.frame_width)
        cap.set(cv2.CAP_PROP_FRAME_HEIGHT, profile.frame_height)
        cap.set(cv2.CAP_PROP_FPS, profile.fps)

        stream = _OpenCVStream(cap, index)
        stream.task = asyncio.create_task(
            self._pump(stream, cv2, decode, profile, on_decode, on_frame_error)
        )
        logger.info("Camera %d opened (%dx%d @ %dfps)", index,
                    profile.frame_width, profile.frame_height, profile.fps)
        return stream

    async def stop(self, handle: _OpenCVStream) -> None:
        handle.closed.set()
        if handle.task is not None:
            await asyncio.gather(handle.task, return_exceptions=True)
            handle.task = None
        await asyncio.to_thread(handle.cap.release)
        logger.info("Camera %d released", handle.index)

    async def _pump(
        self,
        stream: _OpenCVStream,
        cv2: Any,
        decode: Any,
        profile: CaptureProfile,
        on_decode: DecodeCallback,
        on_frame_error: FrameErrorCallback,
    ) -> None:
        interval = 1.0 / max(profile.fps, 1)
        while not stream.closed.is_set():
            ok, frame = await asyncio.to_thread(stream.cap.read)
            if stream.closed.is_set():
                break
            if not ok or frame is None:
                on_frame_error(f"camera {stream.index}: frame read failed")
            else:
                try:
                    codes = decode_region(cv2, decode, frame, profile)
                except Exception as e:  # per-frame decoder failure
                    on_frame_error(f"camera {stream.index}: {e}")
                    codes = []
                for code in codes:
                    on_decode(code)
            try:
                await asyncio.wait_for(stream.closed.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass

    @staticmethod
    def list_cameras(max_check: int = 10) -> list[int]:
        """List available camera indices by probing."""
        cv2 = _import_cv2()

        available: list[int] = []
        for i in range(max_check):
            cap = cv2.VideoCapture(i)
            if cap.isOpened():
                available.append(i)
            cap.release()
        return available


def decode_region(cv2: Any, decode: Any, frame: Any, profile: CaptureProfile) -> list[str]:
    """Decode barcodes inside the centre capture region of ``frame``."""
    h, w = frame.shape[:2]
    rw = min(profile.region_width, w)
    rh = min(profile.region_height, h)
    x0 = (w - rw) // 2
    y0 = (h - rh) // 2
    roi = frame[y0:y0 + rh, x0:x0 + rw]
    if roi.ndim == 3:
        roi = cv2.cvtColor(roi, cv2.COLOR_BGR2GRAY)
    return [b.data.decode("utf-8", errors="replace") for b in decode(roi)]
