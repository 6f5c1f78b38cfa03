"""Menu data models.

The order service only reads menu items: it checks that an item exists and is
available before it goes on an order, and snapshots its name and price onto
the order line. Catalog management lives elsewhere.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class Category(str, Enum):
    """Menu section a sellable item is listed under."""

    APPETIZER = "APPETIZER"
    MAIN = "MAIN"
    DRINK = "DRINK"
    DESSERT = "DESSERT"


class FoodType(str, Enum):
    """Finer-grained food classification used for filtering and icons."""

    MEAT = "MEAT"
    PASTA = "PASTA"
    PIZZA = "PIZZA"
    SEAFOOD = "SEAFOOD"
    VEGETARIAN = "VEGETARIAN"
    SALAD = "SALAD"
    SOUP = "SOUP"
    SANDWICH = "SANDWICH"
    COFFEE = "COFFEE"
    BEVERAGE = "BEVERAGE"
    OTHER = "OTHER"


class MenuItem(BaseModel):
    """Menu item model."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str = Field(..., description="Unique identifier for the menu item")
    name: str = Field(..., description="Item name", min_length=1)
    price: Decimal = Field(..., description="Item price", gt=0)
    ingredients: list[str] = Field(default_factory=list, description="Ordered ingredient list")
    image_url: str | None = Field(None, description="URL or path to item image")
    category: Category = Field(..., description="Menu section")
    food_type: FoodType = Field(default=FoodType.OTHER, description="Food classification")
    available: bool = Field(default=True, description="Whether item can currently be ordered")
    sort_order: int = Field(default=0, description="Display position within the menu")
    created_at: datetime | None = Field(None, description="Creation timestamp")
    updated_at: datetime | None = Field(None, description="Last update timestamp")

    @field_validator("price")
    @classmethod
    def validate_price_precision(cls, v: Decimal) -> Decimal:
        """Validate that price has at most two fractional digits."""
        exponent = v.normalize().as_tuple().exponent
        if isinstance(exponent, int) and exponent < -2:
            raise ValueError("price must have at most 2 decimal places")
        return v

    def to_record(self) -> dict[str, Any]:
        """Convert to a store record.

        Returns:
            dict: Store-compatible representation
        """
        record: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "price": self.price,
            "ingredients": list(self.ingredients),
            "category": self.category.value,
            "food_type": self.food_type.value,
            "available": self.available,
            "sort_order": self.sort_order,
        }

        if self.image_url is not None:
            record["image_url"] = self.image_url

        if self.created_at is not None:
            record["created_at"] = self.created_at.isoformat()

        if self.updated_at is not None:
            record["updated_at"] = self.updated_at.isoformat()

        return record

    @classmethod
    def from_record(cls, record: dict[str, Any]) -> "MenuItem":
        """Create MenuItem from a store record.

        Args:
            record: Store record dictionary

        Returns:
            MenuItem: Parsed model instance
        """
        data: dict[str, Any] = {
            "id": record["id"],
            "name": record["name"],
            "price": Decimal(str(record["price"])),
            "ingredients": list(record.get("ingredients", [])),
            "category": Category(record["category"]),
            "food_type": FoodType(record.get("food_type", FoodType.OTHER.value)),
            "available": record.get("available", True),
            "sort_order": int(record.get("sort_order", 0)),
        }

        if record.get("image_url") is not None:
            data["image_url"] = record["image_url"]

        if "created_at" in record:
            data["created_at"] = datetime.fromisoformat(record["created_at"])

        if "updated_at" in record:
            data["updated_at"] = datetime.fromisoformat(record["updated_at"])

        return cls(**data)
