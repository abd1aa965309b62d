"""Capture backend base class, data types, and factory."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Callable

if TYPE_CHECKING:
    from ..config import CaptureProfile, ScannerConfig

DecodeCallback = Callable[[str], None]
FrameErrorCallback = Callable[[str], None]


@dataclass
class CameraDevice:
    id: str
    label: str = ""


class CaptureError(Exception):
    """A device-level failure, named after the browser media error it mirrors.

    ``name`` is one of e.g. ``NotAllowedError``, ``NotFoundError``,
    ``NotReadableError``, ``OverconstrainedError``; the camera controller
    classifies on it.
    """

    def __init__(self, name: str, message: str = "") -> None:
        super().__init__(message or name)
        self.name = name


class CaptureBackend(ABC):
    """Abstract source of decoded barcode strings."""

    def is_supported(self) -> bool:
        """Whether capture is possible at all (API present, secure context)."""
        return True

    async def query_permission(self) -> str:
        """Return ``"granted"``, ``"denied"`` or ``"prompt"``."""
        return "granted"

    @abstractmethod
    async def list_devices(self) -> list[CameraDevice] | None:
        """Enumerate capture devices.

        Returns None when enumeration is unavailable on this platform, in
        which case the caller requests a generic environment-facing camera.
        """
        ...

    @abstractmethod
    async def start(
        self,
        device: CameraDevice | None,
        profile: CaptureProfile,
        on_decode: DecodeCallback,
        on_frame_error: FrameErrorCallback,
    ) -> Any:
        """Acquire ``device`` and begin delivering decodes.

        Returns an opaque handle for :meth:`stop`.

        Raises:
            CaptureError: If the device could not be acquired.
        """
        ...

    @abstractmethod
    async def stop(self, handle: Any) -> None:
        """Release the device behind ``handle``."""
        ...


def create_backend(config: ScannerConfig) -> CaptureBackend:
    """Create a capture backend based on configuration."""
    backend_name = config.camera.backend

    match backend_name:
        case "opencv":
            from .opencv import OpenCVCaptureBackend

            return OpenCVCaptureBackend(max_probe=config.camera.max_probe)
        case "replay":
            from .replay import ReplayCaptureBackend

            return ReplayCaptureBackend.from_file(
                config.camera.replay_file,
                interval=config.camera.replay_interval,
            )
        case _:
            raise ValueError(
                f"Unknown capture backend: {backend_name!r} "
                f"(choose opencv or replay)"
            )
