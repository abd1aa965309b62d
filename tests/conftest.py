"""Shared fakes: an in-memory kitchen API and a scriptable capture backend."""

import json

import httpx
import pytest

from kitchen.client import KitchenClient
from kitchen.scanner.capture import CameraDevice, CaptureBackend

BASE_URL = "http://kitchen.test/api"


class FakeKitchenAPI:
    """Routes requests to dictionaries; records every request it sees."""

    def __init__(self):
        self.kitchen_supplies = {}  # (barcode, kitchen_id) -> supply dict
        self.supplies = {}  # barcode -> supply dict (any kitchen)
        self.recipes = {}  # recipe id -> recipe dict
        self.search_items = {}  # query -> list of supply dicts
        self.consume_response = (200, {"success": True})
        self.use_response = (200, {"success": True})
        self.failures = {}  # path -> exception raised by the transport
        self.requests = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/api")
        params = request.url.params

        if path in self.failures:
            raise self.failures[path]

        if request.method == "GET" and path == "/food-supply":
            barcode = params.get("barcode")
            kitchen_id = params.get("kitchenId")
            if kitchen_id:
                supply = self.kitchen_supplies.get((barcode, kitchen_id))
            else:
                supply = self.supplies.get(barcode)
            return httpx.Response(200, json={"supply": supply})

        if request.method == "GET" and path == "/food-supply/search":
            items = self.search_items.get(params.get("query"), [])
            return httpx.Response(200, json={"items": items})

        if request.method == "GET" and path.startswith("/recipes/"):
            recipe = self.recipes.get(path.removeprefix("/recipes/"))
            if recipe is None:
                return httpx.Response(404, json={"error": "Recipe not found"})
            return httpx.Response(200, json=recipe)

        if request.method == "POST" and path == "/food-supply/consume":
            status, body = self.consume_response
            return httpx.Response(status, json=body)

        if request.method == "POST" and path == "/recipes/use":
            status, body = self.use_response
            return httpx.Response(status, json=body)

        return httpx.Response(404, json={"error": "No route"})

    def client(self, **kwargs) -> KitchenClient:
        return KitchenClient(
            BASE_URL, transport=httpx.MockTransport(self.handler), **kwargs
        )

    def calls(self, method, path):
        return [
            r for r in self.requests
            if r.method == method and r.url.path == "/api" + path
        ]

    def json_bodies(self, path):
        return [json.loads(r.content) for r in self.calls("POST", path)]


class FakeCaptureBackend(CaptureBackend):
    """Capture backend driven by the test instead of a camera."""

    def __init__(self, devices=None, supported=True, permission="granted"):
        if devices is None:
            devices = [
                CameraDevice("front-1", "Front Camera"),
                CameraDevice("back-1", "Back Camera"),
            ]
        self.devices = devices
        self.supported = supported
        self.permission = permission
        self.start_errors = []  # raised by successive start() calls
        self.stop_error = None
        self.started = []  # (device, profile) for every start attempt
        self.stop_calls = 0
        self.active = set()
        self.max_active = 0
        self.on_decode = None
        self.on_frame_error = None
        self._next = 0

    def is_supported(self):
        return self.supported

    async def query_permission(self):
        if isinstance(self.permission, Exception):
            raise self.permission
        return self.permission

    async def list_devices(self):
        return self.devices

    async def start(self, device, profile, on_decode, on_frame_error):
        self.started.append((device, profile))
        if self.start_errors:
            raise self.start_errors.pop(0)
        self._next += 1
        handle = self._next
        self.active.add(handle)
        self.max_active = max(self.max_active, len(self.active))
        self.on_decode = on_decode
        self.on_frame_error = on_frame_error
        return handle

    async def stop(self, handle):
        self.stop_calls += 1
        self.active.discard(handle)
        if not self.active:
            self.on_decode = None
        if self.stop_error is not None:
            raise self.stop_error

    def emit(self, *codes):
        for code in codes:
            assert self.on_decode is not None, "camera is not running"
            self.on_decode(code)


def supply_dict(id="s1", quantity=12, unit="kg", kitchen_id="k1", name="Rice"):
    return {
        "id": id,
        "name": name,
        "quantity": quantity,
        "unit": unit,
        "kitchenId": kitchen_id,
        "kitchenName": f"Kitchen {kitchen_id}",
    }


@pytest.fixture
def api():
    return FakeKitchenAPI()


@pytest.fixture
def backend():
    return FakeCaptureBackend()


@pytest.fixture
def make_supply():
    return supply_dict
