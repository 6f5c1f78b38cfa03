"""FastAPI application for the order API and the real-time event socket."""

import json
import logging
from typing import Generic, TypeVar

from fastapi import FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from restaurant_order_service.broadcasters.websocket_broadcaster import WebSocketBroadcaster
from restaurant_order_service.exceptions import OrderServiceError, StoreError
from restaurant_order_service.models.event_models import Channel
from restaurant_order_service.models.order_models import Order, OrderStatus
from restaurant_order_service.repositories.base_store import MAX_TRANSACTION_ITEMS
from restaurant_order_service.services.order_service import OrderItemInput, OrderService

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Client message -> (action, room)
SUBSCRIPTION_EVENTS: dict[str, tuple[str, str]] = {
    "join:kitchen": ("join", Channel.KITCHEN.value),
    "leave:kitchen": ("leave", Channel.KITCHEN.value),
    "join:orders": ("join", Channel.ORDERS.value),
    "leave:orders": ("leave", Channel.ORDERS.value),
}


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DataResponse(BaseModel, Generic[T]):
    """Success envelope: ``{"data": ...}``."""

    data: T


class OrderItemRequest(CamelModel):
    """Body for adding a line to an order (also used for initial lines)."""

    menu_item_id: str = Field(..., min_length=1)
    quantity: int = Field(..., ge=1)
    special_instructions: str | None = None


class OrderCreateRequest(CamelModel):
    """Body for creating an order. A supplied ``status`` is ignored."""

    table_number: int = Field(..., gt=0)
    server_name: str = Field(..., min_length=1)
    items: list[OrderItemRequest] | None = None


class OrderUpdateRequest(CamelModel):
    table_number: int | None = Field(None, gt=0)
    server_name: str | None = Field(None, min_length=1)


class OrderItemUpdateRequest(CamelModel):
    quantity: int | None = Field(None, ge=1)
    special_instructions: str | None = None


class StatusUpdateRequest(CamelModel):
    status: OrderStatus


class BulkStatusUpdateRequest(CamelModel):
    order_ids: list[str] = Field(..., min_length=1, max_length=MAX_TRANSACTION_ITEMS)
    status: OrderStatus


def error_body(code: str, message: str) -> dict[str, dict[str, str]]:
    return {"error": {"code": code, "message": message}}


def create_app(
    order_service: OrderService,
    websocket_broadcaster: WebSocketBroadcaster | None = None,
    cors_origins: list[str] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        order_service: Service owning the order lifecycle
        websocket_broadcaster: Room registry for the ``/ws`` endpoint; the
            endpoint is only mounted when provided
        cors_origins: Origins allowed to call the API from a browser

    Returns:
        Configured FastAPI application
    """
    app = FastAPI(
        title="Restaurant Order Service API",
        description="Order management with real-time kitchen and order board updates",
        version="1.0.0",
    )

    app.state.order_service = order_service
    app.state.websocket_broadcaster = websocket_broadcaster

    if cors_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE"],
            allow_headers=["*"],
        )

    @app.exception_handler(OrderServiceError)
    async def handle_order_service_error(_request: Request, exc: OrderServiceError) -> JSONResponse:
        if isinstance(exc, StoreError):
            logger.error(f"Store failure: {exc.message}")
            return JSONResponse(
                status_code=exc.status_code,
                content=error_body(exc.code, "An unexpected error occurred"),
            )
        return JSONResponse(status_code=exc.status_code, content=error_body(exc.code, exc.message))

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
        messages = []
        for error in exc.errors():
            location = ".".join(str(part) for part in error.get("loc", ())[1:])
            messages.append(f"{location}: {error.get('msg')}" if location else str(error.get("msg")))
        return JSONResponse(
            status_code=400,
            content=error_body("VALIDATION_ERROR", "; ".join(messages) or "Invalid request"),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(_request: Request, exc: Exception) -> JSONResponse:
        logger.exception(f"Unhandled error: {exc}")
        return JSONResponse(
            status_code=500,
            content=error_body("INTERNAL_ERROR", "An unexpected error occurred"),
        )

    @app.get("/api/orders", response_model=DataResponse[list[Order]], tags=["Orders"])
    async def list_orders(
        status: OrderStatus | None = None,
        table_number: int | None = Query(None, alias="tableNumber", gt=0),
    ) -> DataResponse[list[Order]]:
        """List orders, oldest first, optionally filtered by status and table."""
        orders = await app.state.order_service.list_orders(status=status, table_number=table_number)
        return DataResponse[list[Order]](data=orders)

    @app.post(
        "/api/orders", response_model=DataResponse[Order], status_code=201, tags=["Orders"]
    )
    async def create_order(body: OrderCreateRequest) -> DataResponse[Order]:
        """Create an order. New orders always start in PENDING."""
        items = [
            OrderItemInput(
                menu_item_id=item.menu_item_id,
                quantity=item.quantity,
                special_instructions=item.special_instructions,
            )
            for item in body.items or []
        ]
        order = await app.state.order_service.create_order(
            table_number=body.table_number,
            server_name=body.server_name,
            items=items,
        )
        return DataResponse[Order](data=order)

    @app.patch("/api/orders/status", response_model=DataResponse[list[Order]], tags=["Status"])
    async def bulk_update_status(body: BulkStatusUpdateRequest) -> DataResponse[list[Order]]:
        """Move several orders to one status; all succeed or none do."""
        orders = await app.state.order_service.bulk_update_status(
            order_ids=body.order_ids, target_status=body.status
        )
        return DataResponse[list[Order]](data=orders)

    @app.get("/api/orders/{order_id}", response_model=DataResponse[Order], tags=["Orders"])
    async def get_order(order_id: str) -> DataResponse[Order]:
        order = await app.state.order_service.get_order(order_id)
        return DataResponse[Order](data=order)

    @app.put("/api/orders/{order_id}", response_model=DataResponse[Order], tags=["Orders"])
    async def update_order(order_id: str, body: OrderUpdateRequest) -> DataResponse[Order]:
        """Update table number and/or server name."""
        order = await app.state.order_service.update_order(
            order_id,
            table_number=body.table_number,
            server_name=body.server_name,
        )
        return DataResponse[Order](data=order)

    @app.delete("/api/orders/{order_id}", response_model=DataResponse[Order], tags=["Orders"])
    async def delete_order(order_id: str) -> DataResponse[Order]:
        """Delete an order and its items, returning the deleted order."""
        order = await app.state.order_service.delete_order(order_id)
        return DataResponse[Order](data=order)

    @app.patch(
        "/api/orders/{order_id}/status", response_model=DataResponse[Order], tags=["Status"]
    )
    async def update_status(order_id: str, body: StatusUpdateRequest) -> DataResponse[Order]:
        order = await app.state.order_service.update_status(order_id, body.status)
        return DataResponse[Order](data=order)

    @app.post(
        "/api/orders/{order_id}/items",
        response_model=DataResponse[Order],
        status_code=201,
        tags=["Order Items"],
    )
    async def add_order_item(order_id: str, body: OrderItemRequest) -> DataResponse[Order]:
        order = await app.state.order_service.add_order_item(
            order_id,
            menu_item_id=body.menu_item_id,
            quantity=body.quantity,
            special_instructions=body.special_instructions,
        )
        return DataResponse[Order](data=order)

    @app.put(
        "/api/orders/{order_id}/items/{item_id}",
        response_model=DataResponse[Order],
        tags=["Order Items"],
    )
    async def update_order_item(
        order_id: str, item_id: str, body: OrderItemUpdateRequest
    ) -> DataResponse[Order]:
        order = await app.state.order_service.update_order_item(
            order_id,
            item_id,
            quantity=body.quantity,
            special_instructions=body.special_instructions,
        )
        return DataResponse[Order](data=order)

    @app.delete(
        "/api/orders/{order_id}/items/{item_id}",
        response_model=DataResponse[Order],
        tags=["Order Items"],
    )
    async def remove_order_item(order_id: str, item_id: str) -> DataResponse[Order]:
        order = await app.state.order_service.remove_order_item(order_id, item_id)
        return DataResponse[Order](data=order)

    if websocket_broadcaster is not None:

        @app.websocket("/ws")
        async def order_events(websocket: WebSocket) -> None:
            """Subscribe to kitchen/orders rooms and receive order events.

            Clients send ``{"event": "join:kitchen"}`` (or leave:kitchen,
            join:orders, leave:orders) and get ``{"event": "subscribed"}``
            back once the change has applied.
            """
            await websocket.accept()
            logger.info("Client connected")
            try:
                while True:
                    text = await websocket.receive_text()
                    try:
                        event_name = json.loads(text).get("event")
                    except (ValueError, AttributeError):
                        logger.warning("Ignoring malformed socket message")
                        continue

                    subscription = (
                        SUBSCRIPTION_EVENTS.get(event_name) if isinstance(event_name, str) else None
                    )
                    if subscription is None:
                        logger.warning(f"Ignoring unknown socket event: {event_name}")
                        continue

                    action, room = subscription
                    if action == "join":
                        await websocket_broadcaster.join(websocket, room)
                    else:
                        await websocket_broadcaster.leave(websocket, room)
                    await websocket.send_json(
                        {"event": "subscribed", "data": {"action": action, "room": room}}
                    )
            except WebSocketDisconnect:
                logger.info("Client disconnected")
            finally:
                await websocket_broadcaster.disconnect(websocket)

    return app
