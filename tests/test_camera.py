"""Tests for the camera controller and capture backends (mocked OpenCV)."""

import asyncio
import sys
from unittest.mock import MagicMock, patch

import numpy as np
import pytest

from kitchen.scanner.camera import CameraController, classify_start_error, rank_devices
from kitchen.scanner.capture import CameraDevice, CaptureError, create_backend
from kitchen.scanner.capture.opencv import OpenCVCaptureBackend, decode_region
from kitchen.scanner.capture.replay import ReplayCaptureBackend
from kitchen.scanner.config import CaptureProfile, load_config
from kitchen.scanner.errors import (
    CameraStartFailed,
    CameraUnsupported,
    DeviceBusy,
    DeviceNotFound,
    PermissionDenied,
)


@pytest.fixture
def mock_cv2():
    """Inject mock cv2 and pyzbar modules into sys.modules."""
    cv2 = MagicMock()
    pyzbar = MagicMock()
    pyzbar.pyzbar.decode.return_value = []
    with patch.dict(
        sys.modules, {"cv2": cv2, "pyzbar": pyzbar, "pyzbar.pyzbar": pyzbar.pyzbar}
    ):
        yield cv2


class TestRankDevices:
    def test_back_camera_first(self):
        devices = [
            CameraDevice("1", "FaceTime HD Camera"),
            CameraDevice("2", "camera2 0, facing back"),
        ]
        assert rank_devices(devices)[0].id == "2"

    def test_keeps_order_without_match(self):
        devices = [CameraDevice("a", "USB Cam"), CameraDevice("b", "Integrated")]
        assert [d.id for d in rank_devices(devices)] == ["a", "b"]

    def test_environment_and_rear_labels(self):
        devices = [
            CameraDevice("f", "Front"),
            CameraDevice("r", "Rear Camera"),
            CameraDevice("e", "Environment facing"),
        ]
        assert [d.id for d in rank_devices(devices)] == ["r", "e", "f"]


class TestClassifyStartError:
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("NotAllowedError", PermissionDenied),
            ("PermissionDeniedError", PermissionDenied),
            ("NotFoundError", DeviceNotFound),
            ("DevicesNotFoundError", DeviceNotFound),
            ("NotReadableError", DeviceBusy),
            ("TrackStartError", DeviceBusy),
            ("SomethingElse", CameraStartFailed),
        ],
    )
    def test_capture_error_names(self, name, expected):
        error = classify_start_error(CaptureError(name))
        assert type(error) is expected
        assert error.cause_name == name

    def test_plain_exception_is_generic(self):
        assert isinstance(classify_start_error(RuntimeError("x")), CameraStartFailed)

    def test_categories_have_distinct_messages(self):
        kinds = [PermissionDenied(), DeviceNotFound(), DeviceBusy(), CameraStartFailed()]
        assert len({k.message for k in kinds}) == 4
        assert len({k.retry_hint for k in kinds}) == 4


class TestCameraController:
    @pytest.mark.asyncio
    async def test_start_prefers_back_camera(self, backend):
        cam = CameraController(backend)
        device = await cam.start(lambda code: None)
        assert device.id == "back-1"
        assert cam.active
        assert backend.started[0][1] == CaptureProfile()

    @pytest.mark.asyncio
    async def test_start_falls_back_to_reduced_profile(self, backend):
        backend.start_errors = [CaptureError("OverconstrainedError")]
        cam = CameraController(backend)
        await cam.start(lambda code: None)
        assert len(backend.started) == 2
        assert backend.started[1][1].frame_width == 640
        assert cam.active

    @pytest.mark.asyncio
    async def test_start_classifies_after_both_strategies_fail(self, backend):
        backend.start_errors = [
            CaptureError("NotReadableError"),
            CaptureError("NotReadableError"),
        ]
        cam = CameraController(backend)
        with pytest.raises(DeviceBusy):
            await cam.start(lambda code: None)
        assert not cam.active

    @pytest.mark.asyncio
    async def test_unsupported(self, backend):
        backend.supported = False
        with pytest.raises(CameraUnsupported):
            await CameraController(backend).start(lambda code: None)
        assert backend.started == []

    @pytest.mark.asyncio
    async def test_permission_denied_before_acquire(self, backend):
        backend.permission = "denied"
        with pytest.raises(PermissionDenied):
            await CameraController(backend).start(lambda code: None)
        assert backend.started == []

    @pytest.mark.asyncio
    async def test_permission_query_failure_is_not_fatal(self, backend):
        backend.permission = RuntimeError("permissions API missing")
        cam = CameraController(backend)
        await cam.start(lambda code: None)
        assert cam.active

    @pytest.mark.asyncio
    async def test_no_devices(self, backend):
        backend.devices = []
        with pytest.raises(DeviceNotFound):
            await CameraController(backend).start(lambda code: None)

    @pytest.mark.asyncio
    async def test_enumeration_unavailable_uses_environment_request(self, backend):
        backend.devices = None
        cam = CameraController(backend)
        device = await cam.start(lambda code: None)
        assert device is None
        assert backend.started[0][0] is None
        assert cam.active

    @pytest.mark.asyncio
    async def test_restart_never_holds_two_devices(self, backend):
        cam = CameraController(backend)
        await cam.start(lambda code: None)
        await cam.start(lambda code: None)
        await asyncio.gather(cam.start(lambda c: None), cam.start(lambda c: None))
        assert backend.max_active == 1
        assert len(backend.active) == 1

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, backend):
        cam = CameraController(backend)
        await cam.stop()
        await cam.start(lambda code: None)
        await cam.stop()
        await cam.stop()
        assert backend.stop_calls == 1
        assert not cam.active

    @pytest.mark.asyncio
    async def test_stop_swallows_backend_errors_and_clears_handle(self, backend):
        cam = CameraController(backend)
        await cam.start(lambda code: None)
        backend.stop_error = RuntimeError("already stopped")
        await cam.stop()
        assert not cam.active
        assert cam.device is None


class TestOpenCVBackend:
    def test_list_cameras(self, mock_cv2):
        caps = {}
        for i in range(10):
            m = MagicMock()
            m.isOpened.return_value = i in (0, 2)
            caps[i] = m
        mock_cv2.VideoCapture.side_effect = lambda i: caps[i]

        assert OpenCVCaptureBackend.list_cameras() == [0, 2]

    def test_is_supported_without_cv2(self):
        with patch.dict(sys.modules, {"cv2": None}):
            assert OpenCVCaptureBackend().is_supported() is False

    @pytest.mark.asyncio
    async def test_start_unopenable_camera_raises_not_readable(self, mock_cv2):
        cap = MagicMock()
        cap.isOpened.return_value = False
        mock_cv2.VideoCapture.return_value = cap

        with pytest.raises(CaptureError) as exc_info:
            await OpenCVCaptureBackend().start(
                CameraDevice("0"), CaptureProfile(), lambda c: None, lambda m: None
            )
        assert exc_info.value.name == "NotReadableError"
        cap.release.assert_called_once()

    @pytest.mark.asyncio
    async def test_stream_decodes_and_releases(self, mock_cv2):
        frame = np.zeros((720, 1280, 3), dtype=np.uint8)
        cap = MagicMock()
        cap.isOpened.return_value = True
        cap.read.return_value = (True, frame)
        mock_cv2.VideoCapture.return_value = cap
        mock_cv2.cvtColor.side_effect = lambda roi, code: roi[:, :, 0]

        symbol = MagicMock()
        symbol.data = b"9900111122"
        sys.modules["pyzbar.pyzbar"].decode.return_value = [symbol]

        decoded = []
        backend = OpenCVCaptureBackend()
        handle = await backend.start(
            CameraDevice("0"), CaptureProfile(fps=100), decoded.append, lambda m: None
        )
        for _ in range(50):
            if decoded:
                break
            await asyncio.sleep(0.01)
        await backend.stop(handle)

        assert decoded and decoded[0] == "9900111122"
        cap.release.assert_called_once()

    @pytest.mark.asyncio
    async def test_unreadable_frame_goes_to_frame_error_channel(self, mock_cv2):
        cap = MagicMock()
        cap.isOpened.return_value = True
        cap.read.return_value = (False, None)
        mock_cv2.VideoCapture.return_value = cap

        errors = []
        backend = OpenCVCaptureBackend()
        handle = await backend.start(
            CameraDevice("0"), CaptureProfile(fps=100), lambda c: None, errors.append
        )
        for _ in range(50):
            if errors:
                break
            await asyncio.sleep(0.01)
        await backend.stop(handle)
        assert "frame read failed" in errors[0]

    def test_decode_region_crops_centre(self, mock_cv2):
        frame = np.zeros((480, 640), dtype=np.uint8)
        decode = MagicMock(return_value=[])
        decode_region(mock_cv2, decode, frame, CaptureProfile(region_width=320, region_height=120))
        roi = decode.call_args[0][0]
        assert roi.shape == (120, 320)


class TestReplayBackend:
    @pytest.mark.asyncio
    async def test_replays_codes_and_frame_errors(self):
        decoded, errors = [], []
        backend = ReplayCaptureBackend(["AAAA", "", "BBBB"], interval=0)
        handle = await backend.start(None, CaptureProfile(), decoded.append, errors.append)
        await asyncio.gather(handle.task)
        await backend.stop(handle)
        assert decoded == ["AAAA", "BBBB"]
        assert len(errors) == 1

    def test_from_file(self, tmp_path):
        path = tmp_path / "codes.txt"
        path.write_text("AAAA\nBBBB\n", encoding="utf-8")
        backend = ReplayCaptureBackend.from_file(path)
        assert backend._codes == ["AAAA", "BBBB"]

    def test_from_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            ReplayCaptureBackend.from_file(tmp_path / "missing.txt")


class TestCreateBackend:
    def test_create_opencv_backend(self):
        assert isinstance(create_backend(load_config()), OpenCVCaptureBackend)

    def test_create_replay_backend(self, tmp_path):
        path = tmp_path / "codes.txt"
        path.write_text("AAAA\n", encoding="utf-8")
        config = load_config()
        config.camera.backend = "replay"
        config.camera.replay_file = str(path)
        assert isinstance(create_backend(config), ReplayCaptureBackend)

    def test_create_unknown_backend(self):
        config = load_config()
        config.camera.backend = "webcam9000"
        with pytest.raises(ValueError, match="Unknown capture backend"):
            create_backend(config)
