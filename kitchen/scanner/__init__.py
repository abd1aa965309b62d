"""Barcode/QR scan confirmation and resolution engine."""

from .camera import CameraController, classify_start_error, rank_devices
from .capture import CameraDevice, CaptureBackend, CaptureError, create_backend
from .config import CaptureProfile, ScannerConfig, load_config
from .confirmation import ConfirmationBuffer, Confirmed, Pending, observe
from .errors import (
    CameraError,
    CameraStartFailed,
    CameraUnsupported,
    DeviceBusy,
    DeviceNotFound,
    PermissionDenied,
    ScannerError,
)
from .events import InventoryChanged, InventoryEvents
from .lookup import LookupPipeline, NotFound, RecipeMatch, SupplyMatch
from .recorder import ConsumptionRecorder, Failed, RecipeUsed, Recorded
from .search import NameSearch
from .session import Notification, ScanSession, ScanState, Source
from .validator import is_valid_decode

__all__ = [
    "is_valid_decode",
    "ConfirmationBuffer",
    "Confirmed",
    "Pending",
    "observe",
    "CameraController",
    "CameraDevice",
    "CaptureBackend",
    "CaptureError",
    "CaptureProfile",
    "create_backend",
    "classify_start_error",
    "rank_devices",
    "LookupPipeline",
    "SupplyMatch",
    "RecipeMatch",
    "NotFound",
    "ConsumptionRecorder",
    "Recorded",
    "RecipeUsed",
    "Failed",
    "InventoryChanged",
    "InventoryEvents",
    "NameSearch",
    "ScanSession",
    "ScanState",
    "Source",
    "Notification",
    "ScannerConfig",
    "load_config",
    "ScannerError",
    "CameraError",
    "CameraUnsupported",
    "PermissionDenied",
    "DeviceNotFound",
    "DeviceBusy",
    "CameraStartFailed",
]
