"""Main application entry point for the restaurant order service.

This module provides the FastAPI application factory and configuration
for running the service locally or in production.
"""

import logging
import os
from typing import Any

import boto3
from fastapi import FastAPI

from restaurant_order_service.broadcasters.base_broadcaster import Broadcaster
from restaurant_order_service.broadcasters.websocket_broadcaster import WebSocketBroadcaster
from restaurant_order_service.handlers.api_handler import create_app
from restaurant_order_service.observability import configure_logging, setup_observability
from restaurant_order_service.repositories.base_store import Entity, Store
from restaurant_order_service.repositories.dynamodb_store import DynamoDBStore
from restaurant_order_service.services.order_service import OrderService

logger = logging.getLogger(__name__)


def get_dynamodb_resource() -> Any:
    """Create DynamoDB resource with appropriate configuration.

    Returns:
        Boto3 DynamoDB resource configured for environment
    """
    endpoint_url = os.getenv("DYNAMODB_ENDPOINT")
    region = os.getenv("AWS_REGION", "us-east-1")

    if endpoint_url:
        # Local DynamoDB accepts any credentials
        access_key = os.getenv("AWS_ACCESS_KEY_ID", "dummy")
        secret_key = os.getenv("AWS_SECRET_ACCESS_KEY", "dummy")
        logger.info(f"Using local DynamoDB at {endpoint_url}")
        return boto3.resource(
            "dynamodb",
            endpoint_url=endpoint_url,
            region_name=region,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
        )
    else:
        logger.info(f"Using AWS DynamoDB in region {region}")
        return boto3.resource("dynamodb", region_name=region)


def get_table_names() -> dict[Entity, str]:
    """Read DynamoDB table names from environment variables.

    Returns:
        Table name for each store entity
    """
    return {
        Entity.MENU_ITEMS: os.getenv("DYNAMODB_MENU_ITEMS_TABLE", "restaurant-menu-items"),
        Entity.ORDERS: os.getenv("DYNAMODB_ORDERS_TABLE", "restaurant-orders"),
        Entity.ORDER_ITEMS: os.getenv("DYNAMODB_ORDER_ITEMS_TABLE", "restaurant-order-items"),
    }


def get_cors_origins() -> list[str]:
    origins_str = os.getenv("CORS_ORIGIN", "http://localhost:5173")
    return [origin.strip() for origin in origins_str.split(",") if origin.strip()]


def create_order_service(store: Store, broadcaster: Broadcaster) -> OrderService:
    """Create the order service with settings from environment variables.

    Args:
        store: Store for menu items, orders and order items
        broadcaster: Publisher for order events

    Returns:
        Configured OrderService instance
    """
    validate_initial_items = os.getenv("VALIDATE_INITIAL_ITEMS", "false").lower() == "true"
    max_status_attempts = int(os.getenv("STATUS_UPDATE_MAX_ATTEMPTS", "3"))

    return OrderService(
        store=store,
        broadcaster=broadcaster,
        validate_initial_items=validate_initial_items,
        max_status_attempts=max_status_attempts,
    )


def create_application() -> FastAPI:
    """Create and configure the FastAPI application with all dependencies.

    This factory function:
    1. Configures logging
    2. Creates the DynamoDB store
    3. Creates the WebSocket broadcaster and order service
    4. Creates FastAPI app with order routes and the event socket
    5. Sets up observability

    Returns:
        Configured FastAPI application instance
    """
    log_level = os.getenv("LOG_LEVEL", "INFO")
    configure_logging(log_level)

    logger.info("Initializing restaurant order service...")

    table_names = get_table_names()
    store = DynamoDBStore(dynamodb_resource=get_dynamodb_resource(), table_names=table_names)
    logger.info(
        "Store configured - "
        + ", ".join(f"{entity.value}: {name}" for entity, name in table_names.items())
    )

    broadcaster = WebSocketBroadcaster(
        send_timeout=float(os.getenv("WS_SEND_TIMEOUT_SECONDS", "5"))
    )
    order_service = create_order_service(store, broadcaster)
    logger.info("Order service initialized")

    app = create_app(
        order_service=order_service,
        websocket_broadcaster=broadcaster,
        cors_origins=get_cors_origins(),
    )
    setup_observability(app)

    logger.info("Restaurant order service initialized successfully")

    return app


# Create the FastAPI application instance (only when not in test mode)
# This prevents the app from being created during test collection
if os.getenv("ENVIRONMENT") != "test":  # noqa: SIM108
    app = create_application()
else:
    app = FastAPI()


if __name__ == "__main__":
    """Run the application with uvicorn when executed directly."""
    import uvicorn

    port = int(os.getenv("PORT", "3001"))
    host = os.getenv("HOST", "0.0.0.0")

    logger.info(f"Starting development server on {host}:{port}")

    uvicorn.run(
        "main:app",
        host=host,
        port=port,
        reload=True,
        log_level=os.getenv("LOG_LEVEL", "info").lower(),
    )
