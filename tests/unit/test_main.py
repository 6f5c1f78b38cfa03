"""Unit tests for main application entry point."""

import os
from unittest.mock import MagicMock, Mock, patch

import pytest
from fastapi import FastAPI

from restaurant_order_service.repositories.base_store import Entity
from src.main import (
    create_application,
    create_order_service,
    get_cors_origins,
    get_dynamodb_resource,
    get_table_names,
)
from tests.doubles import InMemoryStore, RecordingBroadcaster


@pytest.mark.unit
class TestGetDynamoDBResource:
    """Tests for get_dynamodb_resource function."""

    @patch.dict(os.environ, {"DYNAMODB_ENDPOINT": "", "AWS_REGION": "us-west-2"}, clear=True)
    @patch("src.main.boto3.resource")
    def test_creates_aws_resource_when_no_endpoint(self, mock_boto3_resource: Mock) -> None:
        """Test that AWS DynamoDB resource is created when no local endpoint configured."""
        mock_resource = MagicMock()
        mock_boto3_resource.return_value = mock_resource

        result = get_dynamodb_resource()

        mock_boto3_resource.assert_called_once_with("dynamodb", region_name="us-west-2")
        assert result == mock_resource

    @patch.dict(
        os.environ,
        {"DYNAMODB_ENDPOINT": "http://localhost:8000", "AWS_REGION": "us-east-1"},
        clear=True,
    )
    @patch("src.main.boto3.resource")
    def test_creates_local_resource_when_endpoint_provided(self, mock_boto3_resource: Mock) -> None:
        """Test that local DynamoDB resource is created when endpoint configured."""
        get_dynamodb_resource()

        mock_boto3_resource.assert_called_once_with(
            "dynamodb",
            endpoint_url="http://localhost:8000",
            region_name="us-east-1",
            aws_access_key_id="dummy",
            aws_secret_access_key="dummy",
        )


@pytest.mark.unit
class TestConfiguration:
    """Tests for environment-driven settings."""

    @patch.dict(os.environ, {}, clear=True)
    def test_default_table_names(self) -> None:
        assert get_table_names() == {
            Entity.MENU_ITEMS: "restaurant-menu-items",
            Entity.ORDERS: "restaurant-orders",
            Entity.ORDER_ITEMS: "restaurant-order-items",
        }

    @patch.dict(os.environ, {"DYNAMODB_ORDERS_TABLE": "prod-orders"}, clear=True)
    def test_table_name_override(self) -> None:
        assert get_table_names()[Entity.ORDERS] == "prod-orders"

    @patch.dict(
        os.environ, {"CORS_ORIGIN": "http://kitchen.local, http://floor.local,"}, clear=True
    )
    def test_cors_origins_are_split(self) -> None:
        assert get_cors_origins() == ["http://kitchen.local", "http://floor.local"]

    @patch.dict(os.environ, {}, clear=True)
    def test_order_service_defaults(self) -> None:
        service = create_order_service(InMemoryStore(), RecordingBroadcaster())

        assert service.validate_initial_items is False
        assert service.max_status_attempts == 3

    @patch.dict(
        os.environ,
        {"VALIDATE_INITIAL_ITEMS": "true", "STATUS_UPDATE_MAX_ATTEMPTS": "5"},
        clear=True,
    )
    def test_order_service_settings_from_environment(self) -> None:
        service = create_order_service(InMemoryStore(), RecordingBroadcaster())

        assert service.validate_initial_items is True
        assert service.max_status_attempts == 5


@pytest.mark.unit
class TestCreateApplication:
    """Tests for create_application function."""

    @patch.dict(os.environ, {"LOG_LEVEL": "WARNING"}, clear=True)
    @patch("src.main.setup_observability")
    @patch("src.main.configure_logging")
    @patch("src.main.get_dynamodb_resource")
    def test_creates_app_with_api_and_socket(
        self,
        mock_get_resource: Mock,
        mock_configure_logging: Mock,
        mock_setup_observability: Mock,
    ) -> None:
        """Test that the application exposes the order API and the /ws endpoint."""
        mock_get_resource.return_value = MagicMock()

        app = create_application()

        assert isinstance(app, FastAPI)
        paths = {getattr(route, "path", None) for route in app.routes}
        assert "/api/orders" in paths
        assert "/api/orders/{order_id}/items/{item_id}" in paths
        assert "/ws" in paths
        mock_configure_logging.assert_called_once_with("WARNING")
        mock_setup_observability.assert_called_once_with(app)
