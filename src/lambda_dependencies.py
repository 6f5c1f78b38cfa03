"""Shared dependency factory for the Lambda handler.

This module provides cached dependency initialization to optimize Lambda cold starts.
Dependencies are created once and reused across invocations within the same Lambda container.
Lambda cannot hold client sockets open, so order events go to EventBridge instead of
the in-process WebSocket broadcaster.
"""

import logging
import os
from typing import Any

import boto3
from fastapi import FastAPI

from restaurant_order_service.broadcasters.eventbridge_broadcaster import EventBridgeBroadcaster
from restaurant_order_service.handlers.api_handler import create_app
from restaurant_order_service.observability import configure_logging
from restaurant_order_service.repositories.base_store import Entity
from restaurant_order_service.repositories.dynamodb_store import DynamoDBStore
from restaurant_order_service.services.order_service import OrderService

logger = logging.getLogger(__name__)

# Module-level caches for Lambda container reuse
_dynamodb_resource: Any | None = None
_events_client: Any | None = None
_order_service: OrderService | None = None
_fastapi_app: FastAPI | None = None


def get_dynamodb_resource() -> Any:
    """Create or retrieve cached DynamoDB resource.

    Returns:
        Boto3 DynamoDB resource configured for environment
    """
    global _dynamodb_resource

    if _dynamodb_resource is not None:
        return _dynamodb_resource

    endpoint_url = os.getenv("DYNAMODB_ENDPOINT")
    region = os.getenv("AWS_REGION", "us-east-1")

    if endpoint_url:
        access_key = os.getenv("AWS_ACCESS_KEY_ID", "dummy")
        secret_key = os.getenv("AWS_SECRET_ACCESS_KEY", "dummy")
        logger.info(f"Using local DynamoDB at {endpoint_url}")
        _dynamodb_resource = boto3.resource(
            "dynamodb",
            endpoint_url=endpoint_url,
            region_name=region,
            aws_access_key_id=access_key,
            aws_secret_access_key=secret_key,
        )
    else:
        logger.info(f"Using AWS DynamoDB in region {region}")
        _dynamodb_resource = boto3.resource("dynamodb", region_name=region)

    return _dynamodb_resource


def get_events_client() -> Any:
    """Create or retrieve cached EventBridge client.

    Returns:
        Boto3 EventBridge client
    """
    global _events_client

    if _events_client is not None:
        return _events_client

    region = os.getenv("AWS_REGION", "us-east-1")
    _events_client = boto3.client("events", region_name=region)
    return _events_client


def get_order_service() -> OrderService:
    """Create or retrieve cached order service.

    Returns:
        Configured OrderService instance
    """
    global _order_service

    if _order_service is not None:
        return _order_service

    store = DynamoDBStore(
        dynamodb_resource=get_dynamodb_resource(),
        table_names={
            Entity.MENU_ITEMS: os.getenv("DYNAMODB_MENU_ITEMS_TABLE", "restaurant-menu-items"),
            Entity.ORDERS: os.getenv("DYNAMODB_ORDERS_TABLE", "restaurant-orders"),
            Entity.ORDER_ITEMS: os.getenv("DYNAMODB_ORDER_ITEMS_TABLE", "restaurant-order-items"),
        },
    )

    broadcaster = EventBridgeBroadcaster(
        events_client=get_events_client(),
        event_bus_name=os.getenv("EVENT_BUS_NAME", "default"),
        source=os.getenv("EVENT_SOURCE", "com.restaurant.orders"),
    )

    _order_service = OrderService(
        store=store,
        broadcaster=broadcaster,
        validate_initial_items=os.getenv("VALIDATE_INITIAL_ITEMS", "false").lower() == "true",
        max_status_attempts=int(os.getenv("STATUS_UPDATE_MAX_ATTEMPTS", "3")),
    )

    logger.info("Order service initialized")
    return _order_service


def get_fastapi_app() -> FastAPI:
    """Create or retrieve cached FastAPI application.

    Returns:
        Configured FastAPI application instance (without the WebSocket endpoint)
    """
    global _fastapi_app

    if _fastapi_app is not None:
        return _fastapi_app

    origins_str = os.getenv("CORS_ORIGIN", "")
    cors_origins = [origin.strip() for origin in origins_str.split(",") if origin.strip()]

    _fastapi_app = create_app(order_service=get_order_service(), cors_origins=cors_origins)

    logger.info("FastAPI application initialized")
    return _fastapi_app


def initialize_lambda_environment() -> None:
    """Initialize Lambda environment with logging.

    Should be called once during Lambda cold start.
    """
    log_level = os.getenv("LOG_LEVEL", "INFO")
    configure_logging(log_level)

    logger.info("Lambda environment initialized")
