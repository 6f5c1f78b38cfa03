"""Unit tests for Lambda dependency factory."""

import os
from unittest.mock import MagicMock, Mock, patch

import pytest

from restaurant_order_service.broadcasters.eventbridge_broadcaster import EventBridgeBroadcaster
from restaurant_order_service.repositories.base_store import Entity
from restaurant_order_service.repositories.dynamodb_store import DynamoDBStore
from src.lambda_dependencies import (
    get_dynamodb_resource,
    get_events_client,
    get_fastapi_app,
    get_order_service,
    initialize_lambda_environment,
)


def _clear_caches() -> None:
    import src.lambda_dependencies as deps

    deps._dynamodb_resource = None
    deps._events_client = None
    deps._order_service = None
    deps._fastapi_app = None


@pytest.mark.unit
class TestGetDynamoDBResource:
    """Tests for get_dynamodb_resource function."""

    def teardown_method(self) -> None:
        """Clear cached resources after each test."""
        _clear_caches()

    @patch.dict(os.environ, {"DYNAMODB_ENDPOINT": "", "AWS_REGION": "us-west-2"}, clear=True)
    @patch("src.lambda_dependencies.boto3.resource")
    def test_creates_aws_resource_when_no_endpoint(self, mock_boto3_resource: Mock) -> None:
        mock_resource = MagicMock()
        mock_boto3_resource.return_value = mock_resource

        result = get_dynamodb_resource()

        mock_boto3_resource.assert_called_once_with("dynamodb", region_name="us-west-2")
        assert result == mock_resource

    @patch.dict(os.environ, {"DYNAMODB_ENDPOINT": "http://localhost:8000"}, clear=True)
    @patch("src.lambda_dependencies.boto3.resource")
    def test_creates_local_resource_when_endpoint_provided(self, mock_boto3_resource: Mock) -> None:
        get_dynamodb_resource()

        mock_boto3_resource.assert_called_once_with(
            "dynamodb",
            endpoint_url="http://localhost:8000",
            region_name="us-east-1",
            aws_access_key_id="dummy",
            aws_secret_access_key="dummy",
        )

    @patch.dict(os.environ, {"DYNAMODB_ENDPOINT": ""}, clear=True)
    @patch("src.lambda_dependencies.boto3.resource")
    def test_resource_is_cached(self, mock_boto3_resource: Mock) -> None:
        """Test that DynamoDB resource is cached and reused across calls."""
        result1 = get_dynamodb_resource()
        result2 = get_dynamodb_resource()

        mock_boto3_resource.assert_called_once()
        assert result1 is result2


@pytest.mark.unit
class TestGetOrderService:
    """Tests for get_order_service function."""

    def teardown_method(self) -> None:
        _clear_caches()

    @patch.dict(
        os.environ,
        {
            "DYNAMODB_ORDERS_TABLE": "prod-orders",
            "EVENT_BUS_NAME": "orders-bus",
            "VALIDATE_INITIAL_ITEMS": "true",
        },
        clear=True,
    )
    @patch("src.lambda_dependencies.boto3.client")
    @patch("src.lambda_dependencies.boto3.resource")
    def test_wires_dynamodb_store_and_eventbridge(
        self, mock_boto3_resource: Mock, mock_boto3_client: Mock
    ) -> None:
        """Test that Lambda publishes order events to EventBridge."""
        service = get_order_service()

        assert isinstance(service.store, DynamoDBStore)
        assert service.store.table_names[Entity.ORDERS] == "prod-orders"
        assert isinstance(service.broadcaster, EventBridgeBroadcaster)
        assert service.broadcaster.event_bus_name == "orders-bus"
        assert service.validate_initial_items is True
        mock_boto3_client.assert_called_once_with("events", region_name="us-east-1")

    @patch.dict(os.environ, {}, clear=True)
    @patch("src.lambda_dependencies.boto3.client")
    @patch("src.lambda_dependencies.boto3.resource")
    def test_service_is_cached(self, mock_boto3_resource: Mock, mock_boto3_client: Mock) -> None:
        assert get_order_service() is get_order_service()
        assert get_events_client() is mock_boto3_client.return_value


@pytest.mark.unit
class TestGetFastAPIApp:
    """Tests for get_fastapi_app function."""

    def teardown_method(self) -> None:
        _clear_caches()

    @patch.dict(os.environ, {}, clear=True)
    @patch("src.lambda_dependencies.boto3.client")
    @patch("src.lambda_dependencies.boto3.resource")
    def test_app_has_no_socket_endpoint(
        self, mock_boto3_resource: Mock, mock_boto3_client: Mock
    ) -> None:
        app = get_fastapi_app()

        paths = {getattr(route, "path", None) for route in app.routes}
        assert "/api/orders" in paths
        assert "/ws" not in paths
        assert get_fastapi_app() is app


@pytest.mark.unit
class TestInitializeLambdaEnvironment:
    """Tests for initialize_lambda_environment function."""

    @patch.dict(os.environ, {"LOG_LEVEL": "DEBUG"}, clear=True)
    @patch("src.lambda_dependencies.configure_logging")
    def test_configures_logging(self, mock_configure_logging: Mock) -> None:
        initialize_lambda_environment()

        mock_configure_logging.assert_called_once_with("DEBUG")
