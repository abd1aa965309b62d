"""Scanner error taxonomy.

Camera errors are never fatal to a session: they are stored on the session
and shown inline with a retry action. Invalid decodes are not errors at all,
they are dropped by the validator.
"""

from __future__ import annotations


class ScannerError(Exception):
    """Base class for scanner errors."""


class CameraError(ScannerError):
    kind = "start-failed"
    default_message = (
        "Failed to start the camera. Make sure the device has a working "
        "camera, or use manual entry."
    )
    retry_hint = "Retry, or switch to manual entry or search."

    def __init__(self, message: str | None = None, cause_name: str = "") -> None:
        self.message = message or self.default_message
        self.cause_name = cause_name
        super().__init__(self.message)


class CameraUnsupported(CameraError):
    kind = "unsupported"
    default_message = (
        "This device does not support camera access for barcode scanning. "
        "Camera access also requires a secure (HTTPS) connection."
    )
    retry_hint = "Use manual entry or search instead."


class PermissionDenied(CameraError):
    kind = "permission-denied"
    default_message = (
        "Camera access is denied. Allow camera access for this site and retry."
    )
    retry_hint = "Allow camera access, then retry."


class DeviceNotFound(CameraError):
    kind = "not-found"
    default_message = "No camera was detected on this device."
    retry_hint = "Connect a camera and retry, or use manual entry."


class DeviceBusy(CameraError):
    kind = "busy"
    default_message = (
        "The camera is in use by another application or encountered an error."
    )
    retry_hint = "Close other applications using the camera, then retry."


class CameraStartFailed(CameraError):
    pass
