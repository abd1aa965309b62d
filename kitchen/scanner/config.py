"""TOML configuration loader for the scanner module."""

from __future__ import annotations

import os
import sys
from dataclasses import dataclass, field
from pathlib import Path

if sys.version_info >= (3, 11):
    import tomllib
else:
    try:
        import tomli as tomllib
    except ImportError:
        tomllib = None  # type: ignore[assignment]

DEFAULT_BASE_URL = "http://localhost:3000/api"


@dataclass
class ApiConfig:
    base_url: str = DEFAULT_BASE_URL
    token: str = ""
    timeout: float = 10.0


@dataclass
class CaptureProfile:
    """Capture settings for one start attempt.

    The region is the centre rectangle handed to the decoder; a wide,
    short region suits linear (1D) barcodes.
    """

    fps: int = 15
    region_width: int = 320
    region_height: int = 120
    frame_width: int = 1280
    frame_height: int = 720


def default_fallback_profile() -> CaptureProfile:
    return CaptureProfile(
        fps=10,
        region_width=250,
        region_height=100,
        frame_width=640,
        frame_height=480,
    )


@dataclass
class CameraConfig:
    backend: str = "opencv"
    mount_delay: float = 0.2
    preferred_labels: list[str] = field(
        default_factory=lambda: ["back", "rear", "environment"]
    )
    max_probe: int = 10
    replay_file: str = ""
    replay_interval: float = 0.05
    primary: CaptureProfile = field(default_factory=CaptureProfile)
    fallback: CaptureProfile = field(default_factory=default_fallback_profile)


@dataclass
class ConfirmationConfig:
    required_matches: int = 3
    window_size: int = 7
    min_length: int = 4


@dataclass
class SearchConfig:
    debounce: float = 0.35
    min_length: int = 2


@dataclass
class ScannerConfig:
    api: ApiConfig = field(default_factory=ApiConfig)
    camera: CameraConfig = field(default_factory=CameraConfig)
    confirmation: ConfirmationConfig = field(default_factory=ConfirmationConfig)
    search: SearchConfig = field(default_factory=SearchConfig)


def _load_profile(raw: dict, default: CaptureProfile) -> CaptureProfile:
    return CaptureProfile(
        fps=raw.get("fps", default.fps),
        region_width=raw.get("region_width", default.region_width),
        region_height=raw.get("region_height", default.region_height),
        frame_width=raw.get("frame_width", default.frame_width),
        frame_height=raw.get("frame_height", default.frame_height),
    )


def load_config(path: str | Path | None = None) -> ScannerConfig:
    """Load configuration from a TOML file.

    Falls back to defaults if no path is given or the file doesn't exist.
    The API URL and token can be supplied via environment variables.

    Raises:
        ValueError: If required_matches exceeds window_size.
    """
    raw: dict = {}

    if path is not None:
        p = Path(path)
        if p.exists():
            if tomllib is None:
                raise ImportError(
                    "tomli is required on Python < 3.11: pip install tomli"
                )
            with open(p, "rb") as f:
                raw = tomllib.load(f)

    api = raw.get("api", {})
    cam = raw.get("camera", {})
    cnf = raw.get("confirmation", {})
    src = raw.get("search", {})

    # Resolve API settings: config file → environment variable → default
    base_url = (
        api.get("base_url", "")
        or os.environ.get("KITCHEN_API_URL", "")
        or DEFAULT_BASE_URL
    )
    token = api.get("token", "") or os.environ.get("KITCHEN_API_TOKEN", "")

    confirmation = ConfirmationConfig(
        required_matches=cnf.get("required_matches", 3),
        window_size=cnf.get("window_size", 7),
        min_length=cnf.get("min_length", 4),
    )
    if confirmation.required_matches > confirmation.window_size:
        raise ValueError(
            f"confirmation.required_matches ({confirmation.required_matches}) "
            f"must not exceed confirmation.window_size ({confirmation.window_size})"
        )

    return ScannerConfig(
        api=ApiConfig(
            base_url=base_url,
            token=token,
            timeout=api.get("timeout", 10.0),
        ),
        camera=CameraConfig(
            backend=cam.get("backend", "opencv"),
            mount_delay=cam.get("mount_delay", 0.2),
            preferred_labels=cam.get(
                "preferred_labels", ["back", "rear", "environment"]
            ),
            max_probe=cam.get("max_probe", 10),
            replay_file=cam.get("replay_file", ""),
            replay_interval=cam.get("replay_interval", 0.05),
            primary=_load_profile(cam.get("primary", {}), CaptureProfile()),
            fallback=_load_profile(cam.get("fallback", {}), default_fallback_profile()),
        ),
        confirmation=confirmation,
        search=SearchConfig(
            debounce=src.get("debounce", 0.35),
            min_length=src.get("min_length", 2),
        ),
    )
