"""Shared pytest fixtures and configuration for all tests."""

import os
from decimal import Decimal

import pytest

# Keep src.main and src.lambda_handler from building real apps at import time
os.environ.setdefault("ENVIRONMENT", "test")

from restaurant_order_service.models.menu_models import Category, FoodType, MenuItem  # noqa: E402
from restaurant_order_service.repositories.base_store import Entity  # noqa: E402
from restaurant_order_service.services.order_service import OrderService  # noqa: E402
from tests.doubles import InMemoryStore, RecordingBroadcaster  # noqa: E402


@pytest.fixture
def menu_items() -> list[MenuItem]:
    """Fixture providing a small catalog, including one 86'd item."""
    return [
        MenuItem(
            id="menu_burger",
            name="Cheeseburger",
            price=Decimal("12.99"),
            ingredients=["beef", "cheddar", "bun"],
            category=Category.MAIN,
            food_type=FoodType.MEAT,
        ),
        MenuItem(
            id="menu_salad",
            name="Caesar Salad",
            price=Decimal("9.50"),
            category=Category.APPETIZER,
            food_type=FoodType.SALAD,
        ),
        MenuItem(
            id="menu_bolognese",
            name="Beef Bolognese",
            price=Decimal("16.00"),
            category=Category.MAIN,
            food_type=FoodType.PASTA,
            available=False,
        ),
    ]


@pytest.fixture
def store(menu_items: list[MenuItem]) -> InMemoryStore:
    """Fixture providing an in-memory store seeded with the catalog."""
    memory_store = InMemoryStore()
    for menu_item in menu_items:
        memory_store.seed(Entity.MENU_ITEMS, menu_item.to_record())
    return memory_store


@pytest.fixture
def broadcaster() -> RecordingBroadcaster:
    return RecordingBroadcaster()


@pytest.fixture
def order_service(store: InMemoryStore, broadcaster: RecordingBroadcaster) -> OrderService:
    """Fixture providing an order service wired to the in-memory doubles."""
    return OrderService(store=store, broadcaster=broadcaster)
