"""Capture device lifecycle for a scan session."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Sequence

from .capture import (
    CameraDevice,
    CaptureBackend,
    CaptureError,
    DecodeCallback,
    FrameErrorCallback,
)
from .config import CaptureProfile, default_fallback_profile
from .errors import (
    CameraError,
    CameraStartFailed,
    CameraUnsupported,
    DeviceBusy,
    DeviceNotFound,
    PermissionDenied,
)

logger = logging.getLogger(__name__)

DEFAULT_PREFERRED_LABELS = ("back", "rear", "environment")

_ERROR_KINDS: dict[str, type[CameraError]] = {
    "NotAllowedError": PermissionDenied,
    "PermissionDeniedError": PermissionDenied,
    "SecurityError": PermissionDenied,
    "NotFoundError": DeviceNotFound,
    "DevicesNotFoundError": DeviceNotFound,
    "OverconstrainedError": DeviceNotFound,
    "NotReadableError": DeviceBusy,
    "TrackStartError": DeviceBusy,
    "AbortError": DeviceBusy,
}


def rank_devices(
    devices: Sequence[CameraDevice],
    preferred_labels: Sequence[str] = DEFAULT_PREFERRED_LABELS,
) -> list[CameraDevice]:
    """Order devices so rear-facing cameras come first.

    Devices whose label contains one of ``preferred_labels`` (case
    insensitive) keep their relative order ahead of the rest.
    """
    labels = [p.lower() for p in preferred_labels]

    def is_preferred(device: CameraDevice) -> bool:
        label = device.label.lower()
        return any(p in label for p in labels)

    return sorted(devices, key=lambda d: not is_preferred(d))


def classify_start_error(exc: BaseException) -> CameraError:
    """Map a device failure to one of the user-facing camera errors."""
    if isinstance(exc, CameraError):
        return exc
    name = getattr(exc, "name", "") if isinstance(exc, CaptureError) else ""
    name = name or type(exc).__name__
    error_cls = _ERROR_KINDS.get(name, CameraStartFailed)
    return error_cls(cause_name=name)


class CameraController:
    """Owns the capture device for one session.

    At most one device handle exists at a time: every :meth:`start` releases
    the previous handle first, and :meth:`stop` can be called any number of
    times.
    """

    def __init__(
        self,
        backend: CaptureBackend,
        primary: CaptureProfile | None = None,
        fallback: CaptureProfile | None = None,
        preferred_labels: Sequence[str] = DEFAULT_PREFERRED_LABELS,
    ) -> None:
        self._backend = backend
        self._profiles = [primary or CaptureProfile(), fallback or default_fallback_profile()]
        self._preferred_labels = tuple(preferred_labels)
        self._handle: Any = None
        self._device: CameraDevice | None = None
        self._lock = asyncio.Lock()

    @property
    def active(self) -> bool:
        return self._handle is not None

    @property
    def device(self) -> CameraDevice | None:
        return self._device

    async def start(
        self,
        on_decode: DecodeCallback,
        on_frame_error: FrameErrorCallback | None = None,
    ) -> CameraDevice | None:
        """Acquire the best device and start delivering decodes.

        Returns the device in use (None for a generic environment-facing
        request when enumeration is unavailable).

        Raises:
            CameraError: One of its subclasses, already classified.
        """
        async with self._lock:
            await self._stop_locked()

            if not self._backend.is_supported():
                raise CameraUnsupported()

            try:
                permission = await self._backend.query_permission()
            except Exception as e:
                logger.debug("Permission query unavailable: %s", e)
                permission = "prompt"
            if permission == "denied":
                raise PermissionDenied(cause_name="NotAllowedError")

            device = await self._select_device()
            frame_errors = on_frame_error or _log_frame_error

            last_error: BaseException | None = None
            for profile in self._profiles:
                try:
                    self._handle = await self._backend.start(
                        device, profile, on_decode, frame_errors
                    )
                except Exception as e:
                    logger.warning(
                        "Camera start failed (%dx%d): %s",
                        profile.frame_width, profile.frame_height, e,
                    )
                    last_error = e
                    continue
                self._device = device
                logger.info(
                    "Camera started: %s",
                    device.label or device.id if device else "environment-facing",
                )
                return device

            error = classify_start_error(last_error or CaptureError("AbortError"))
            raise error from last_error

    async def stop(self) -> None:
        """Release the device; safe to call when nothing is running."""
        async with self._lock:
            await self._stop_locked()

    async def _stop_locked(self) -> None:
        handle, self._handle = self._handle, None
        self._device = None
        if handle is None:
            return
        try:
            await self._backend.stop(handle)
        except Exception as e:
            logger.debug("Ignoring error while stopping camera: %s", e)
        else:
            logger.info("Camera stopped")

    async def _select_device(self) -> CameraDevice | None:
        try:
            devices = await self._backend.list_devices()
        except Exception as e:
            raise classify_start_error(e) from e
        if devices is None:
            return None
        if not devices:
            raise DeviceNotFound(cause_name="NotFoundError")
        return rank_devices(devices, self._preferred_labels)[0]


def _log_frame_error(message: str) -> None:
    logger.debug("Frame error: %s", message)
