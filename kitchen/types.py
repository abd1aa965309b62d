"""Inventory entities returned by the kitchen REST API."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any


@dataclass
class ExpiryStatus:
    level: str  # "expired" | "urgent" | "soon" | "ok"
    days: int
    label: str


@dataclass
class Supply:
    """A food supply row belonging to one kitchen."""

    id: str
    name: str
    quantity: float
    unit: str
    kitchen_id: str
    kitchen_name: str = ""
    price_per_unit: float | None = None
    expiration_date: str | None = None  # ISO8601
    category: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Supply:
        kitchen = data.get("kitchen") or {}
        category = data.get("category") or ""
        if isinstance(category, dict):
            category = category.get("name", "")
        price = data.get("pricePerUnit")
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            quantity=float(data.get("quantity") or 0),
            unit=data.get("unit", ""),
            kitchen_id=str(data.get("kitchenId") or kitchen.get("id") or ""),
            kitchen_name=data.get("kitchenName") or kitchen.get("name", ""),
            price_per_unit=float(price) if price is not None else None,
            expiration_date=data.get("expirationDate"),
            category=category,
        )

    def expiry_status(self, today: date | None = None) -> ExpiryStatus | None:
        """Classify the expiration date relative to ``today``.

        Returns None when the supply has no (parseable) expiration date.
        """
        if not self.expiration_date:
            return None
        try:
            expiry = datetime.fromisoformat(
                self.expiration_date.replace("Z", "+00:00")
            ).date()
        except ValueError:
            return None

        today = today or date.today()
        days = (expiry - today).days
        if days < 0:
            return ExpiryStatus("expired", days, f"Expired {abs(days)}d ago")
        if days <= 3:
            return ExpiryStatus("urgent", days, f"Expires in {days}d")
        if days <= 7:
            return ExpiryStatus("soon", days, f"Expires in {days}d")
        return ExpiryStatus("ok", days, expiry.strftime("%b %d, %Y"))


@dataclass
class Recipe:
    id: str
    name: str
    servings: int = 1
    description: str = ""
    ingredients: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Recipe:
        return cls(
            id=str(data["id"]),
            name=data.get("name", ""),
            servings=int(data.get("servings") or 1),
            description=data.get("description") or "",
            ingredients=list(data.get("ingredients") or []),
        )
