"""Async REST client for the kitchen inventory API."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

import httpx

from .types import Recipe, Supply

logger = logging.getLogger(__name__)


class KitchenAPIError(Exception):
    """The kitchen API answered with an error status."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.payload = payload


class KitchenTransportError(KitchenAPIError):
    """The request never produced a usable response (network, timeout, bad JSON)."""


class ConsumeConflict(KitchenAPIError):
    """The server refused a consumption, e.g. more than the stock on hand."""


class InsufficientIngredients(KitchenAPIError):
    """Not enough stock to prepare the requested recipe servings."""


class KitchenClient:
    """Thin wrapper over ``httpx.AsyncClient`` for the endpoints the scanner uses.

    Usable as an async context manager::

        async with KitchenClient("https://example.com/api", token=...) as client:
            supply = await client.find_supply_by_barcode("4901234567894", "k1")
    """

    def __init__(
        self,
        base_url: str,
        token: str = "",
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url
        self._token = token
        self._timeout = timeout
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> KitchenClient:
        self._get_client()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Accept": "application/json"}
            if self._token:
                headers["Authorization"] = f"Bearer {self._token}"
            self._client = httpx.AsyncClient(
                base_url=self._base_url,
                headers=headers,
                timeout=httpx.Timeout(self._timeout),
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ── Lookups ─────────────────────────────────────────────

    async def find_supply_by_barcode(
        self, barcode: str, kitchen_id: str | None = None
    ) -> Supply | None:
        """Find a supply by barcode, optionally scoped to one kitchen.

        Returns None when the API reports no matching supply.
        """
        params = {"barcode": barcode}
        if kitchen_id:
            params["kitchenId"] = kitchen_id

        resp = await self._request("GET", "/food-supply", params=params)
        if resp.status_code == 404:
            return None
        data = self._checked_json(resp, "Failed to look up barcode")

        supply = data.get("supply") if isinstance(data, dict) else None
        if not supply:
            return None
        return self._parse(Supply, supply)

    async def get_recipe(self, recipe_id: str) -> Recipe | None:
        """Fetch a recipe by id; None when it does not exist."""
        resp = await self._request("GET", f"/recipes/{quote(recipe_id, safe='')}")
        if resp.status_code == 404:
            return None
        data = self._checked_json(resp, "Failed to load recipe")

        if not isinstance(data, dict) or not data.get("id"):
            return None
        return self._parse(Recipe, data)

    async def search_supplies(self, query: str, kitchen_id: str) -> list[Supply]:
        resp = await self._request(
            "GET",
            "/food-supply/search",
            params={"query": query, "kitchenId": kitchen_id},
        )
        data = self._checked_json(resp, "Search failed")
        items = (data.get("items") if isinstance(data, dict) else None) or []
        if not isinstance(items, list):
            raise KitchenTransportError(
                f"Malformed search response: items is {type(items).__name__}",
                status_code=resp.status_code,
            )
        return [self._parse(Supply, item) for item in items]

    # ── Mutations ───────────────────────────────────────────

    async def consume_supply(
        self,
        supply_id: str,
        quantity: float,
        kitchen_id: str,
        notes: str = "",
    ) -> dict[str, Any]:
        """Record consumption of ``quantity`` units of a supply.

        Raises:
            ConsumeConflict: The server answered 409.
            KitchenAPIError: Any other error status.
            KitchenTransportError: The request failed before a response.
        """
        resp = await self._request(
            "POST",
            "/food-supply/consume",
            json={
                "supplyId": supply_id,
                "quantity": quantity,
                "kitchenId": kitchen_id,
                "notes": notes,
            },
        )
        if resp.status_code == 409:
            payload = self._json_or_none(resp)
            raise ConsumeConflict(
                self._error_message(payload, "Consumption conflicts with current stock"),
                status_code=409,
                payload=payload,
            )
        return self._checked_json(resp, "Failed to record consumption")

    async def use_recipe(
        self,
        recipe_id: str,
        kitchen_id: str,
        servings_used: int,
        notes: str = "",
        force_use: bool = False,
    ) -> dict[str, Any]:
        """Deduct the ingredients of ``servings_used`` servings of a recipe.

        Raises:
            InsufficientIngredients: The server flagged missing stock.
            KitchenAPIError: Any other error status.
        """
        resp = await self._request(
            "POST",
            "/recipes/use",
            json={
                "recipeId": recipe_id,
                "kitchenId": kitchen_id,
                "notes": notes,
                "servingsUsed": servings_used,
                "forceUse": force_use,
            },
        )
        if resp.is_error:
            payload = self._json_or_none(resp)
            if isinstance(payload, dict) and payload.get("insufficientIngredients"):
                raise InsufficientIngredients(
                    self._error_message(payload, "Not enough stock for this recipe"),
                    status_code=resp.status_code,
                    payload=payload,
                )
        return self._checked_json(resp, "Failed to use recipe")

    # ── Internals ───────────────────────────────────────────

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        client = self._get_client()
        try:
            resp = await client.request(method, path, params=params, json=json)
        except httpx.HTTPError as e:
            raise KitchenTransportError(f"{method} {path} failed: {e}") from e
        logger.debug("%s %s -> %d", method, path, resp.status_code)
        return resp

    def _checked_json(self, resp: httpx.Response, default_message: str) -> Any:
        if resp.is_error:
            payload = self._json_or_none(resp)
            raise KitchenAPIError(
                self._error_message(payload, default_message),
                status_code=resp.status_code,
                payload=payload,
            )
        try:
            return resp.json()
        except ValueError as e:
            raise KitchenTransportError(
                f"Invalid JSON from {resp.request.url}", status_code=resp.status_code
            ) from e

    @staticmethod
    def _parse(entity_cls: type, data: Any) -> Any:
        try:
            return entity_cls.from_dict(data)
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise KitchenTransportError(
                f"Malformed {entity_cls.__name__.lower()} in response: {e!r}"
            ) from e

    @staticmethod
    def _json_or_none(resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError:
            return None

    @staticmethod
    def _error_message(payload: Any, default: str) -> str:
        if isinstance(payload, dict):
            message = payload.get("error") or payload.get("message")
            if message:
                return str(message)
        return default
