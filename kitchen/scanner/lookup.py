"""Resolve a scanned code to a supply, a recipe, or nothing."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..client import KitchenAPIError, KitchenClient
from ..types import Recipe, Supply

logger = logging.getLogger(__name__)


@dataclass
class SupplyMatch:
    code: str
    supply: Supply
    cross_kitchen: bool = False


@dataclass
class RecipeMatch:
    code: str
    recipe: Recipe


@dataclass
class NotFound:
    code: str
    error: str | None = None  # set when the chain was cut short by a failure


LookupResult = SupplyMatch | RecipeMatch | NotFound


class LookupPipeline:
    """Ordered lookup: kitchen supply → any-kitchen supply → recipe.

    The first hit wins. A miss falls through to the next step; an API or
    transport error ends the chain with :class:`NotFound` carrying the error
    text, so callers never wait on retries.
    """

    def __init__(self, client: KitchenClient) -> None:
        self._client = client
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def resolve(self, code: str, kitchen_id: str) -> LookupResult:
        """Resolve ``code`` in the context of ``kitchen_id``.

        Raises:
            RuntimeError: If another resolve is still running.
        """
        if self._in_flight:
            raise RuntimeError("A lookup is already in flight")

        code = code.strip()
        if not code:
            return NotFound(code)

        self._in_flight = True
        try:
            result = await self._resolve(code, kitchen_id)
        except KitchenAPIError as e:
            logger.warning("Lookup for %r failed: %s", code, e)
            return NotFound(code, error=str(e))
        finally:
            self._in_flight = False

        logger.info("Lookup %r -> %s", code, type(result).__name__)
        return result

    async def _resolve(self, code: str, kitchen_id: str) -> LookupResult:
        # 1. Supply in the current kitchen
        supply = await self._client.find_supply_by_barcode(code, kitchen_id)
        if supply is not None:
            return SupplyMatch(code, supply)

        # 2. Supply in any kitchen
        supply = await self._client.find_supply_by_barcode(code)
        if supply is not None:
            return SupplyMatch(code, supply, cross_kitchen=True)

        # 3. Recipe whose id is the code
        recipe = await self._client.get_recipe(code)
        if recipe is not None:
            return RecipeMatch(code, recipe)

        return NotFound(code)

    async def search(self, query: str, kitchen_id: str) -> list[Supply]:
        """Search supplies by name within a kitchen."""
        return await self._client.search_supplies(query, kitchen_id)
