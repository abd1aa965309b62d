"""Commit inventory consumption for a scanned supply or recipe."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from ..client import (
    ConsumeConflict,
    InsufficientIngredients,
    KitchenAPIError,
    KitchenClient,
)
from ..types import Recipe, Supply
from .events import InventoryChanged, InventoryEvents

logger = logging.getLogger(__name__)


@dataclass
class Recorded:
    supply: Supply
    quantity: float
    remaining: float  # stock shown after the commit


@dataclass
class RecipeUsed:
    recipe: Recipe
    servings: int


@dataclass
class Failed:
    reason: str
    conflict: bool = False
    insufficient: bool = False


class ConsumptionRecorder:
    """Writes consumption to the API and announces it on success."""

    def __init__(
        self, client: KitchenClient, events: InventoryEvents | None = None
    ) -> None:
        self._client = client
        self._events = events or InventoryEvents()

    @property
    def events(self) -> InventoryEvents:
        return self._events

    async def auto_record(self, supply: Supply) -> Recorded | Failed:
        """Consume one unit without confirmation (camera scans only).

        Charged to the supply's own kitchen, which may differ from the
        kitchen the scanner was opened in.
        """
        return await self._consume(supply, 1, "")

    async def manual_record(
        self, supply: Supply, quantity: float, notes: str = ""
    ) -> Recorded | Failed:
        if quantity <= 0:
            return Failed("Quantity must be greater than 0")
        return await self._consume(supply, quantity, notes)

    async def use_recipe(
        self,
        recipe: Recipe,
        kitchen_id: str,
        servings: int,
        force_use: bool = False,
    ) -> RecipeUsed | Failed:
        if servings <= 0:
            return Failed("Servings must be greater than 0")
        try:
            await self._client.use_recipe(
                recipe.id,
                kitchen_id,
                servings_used=servings,
                notes=f"Used recipe: {recipe.name} ({servings} servings)",
                force_use=force_use,
            )
        except InsufficientIngredients as e:
            logger.info("Recipe %s: insufficient ingredients", recipe.id)
            return Failed(e.message, insufficient=True)
        except KitchenAPIError as e:
            logger.warning("Using recipe %s failed: %s", recipe.id, e)
            return Failed(e.message)

        self._events.emit(
            InventoryChanged(kitchen_id=kitchen_id, quantity=servings, recipe_id=recipe.id)
        )
        return RecipeUsed(recipe, servings)

    async def _consume(
        self, supply: Supply, quantity: float, notes: str
    ) -> Recorded | Failed:
        try:
            await self._client.consume_supply(
                supply.id, quantity, supply.kitchen_id, notes=notes
            )
        except ConsumeConflict as e:
            logger.warning("Consumption of %s refused: %s", supply.id, e)
            return Failed(e.message, conflict=True)
        except KitchenAPIError as e:
            logger.warning("Consumption of %s failed: %s", supply.id, e)
            return Failed(e.message)

        logger.info(
            "Recorded %s %s of %s (kitchen %s)",
            quantity, supply.unit, supply.name, supply.kitchen_id,
        )
        self._events.emit(
            InventoryChanged(
                kitchen_id=supply.kitchen_id, quantity=quantity, supply_id=supply.id
            )
        )
        return Recorded(supply, quantity, max(0.0, supply.quantity - quantity))
