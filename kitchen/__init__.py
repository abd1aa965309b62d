"""Kitchen inventory client and barcode scanner engine."""

from .client import KitchenClient
from .types import Recipe, Supply

__all__ = ["KitchenClient", "Supply", "Recipe"]
