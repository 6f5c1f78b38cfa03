"""EventBridge broadcaster for deployments without long-lived sockets.

Used when the API runs on AWS Lambda: events go to an event bus and a
downstream consumer (e.g. an API Gateway WebSocket fan-out) delivers them to
subscribed clients.
"""

import json
import logging
from typing import Any

from botocore.exceptions import ClientError

from restaurant_order_service.broadcasters.base_broadcaster import Broadcaster

logger = logging.getLogger(__name__)


class EventBridgeBroadcaster(Broadcaster):
    """Publishes order events as EventBridge entries."""

    def __init__(
        self,
        events_client: Any,
        event_bus_name: str = "default",
        source: str = "com.restaurant.orders",
    ) -> None:
        """Initialize the broadcaster.

        Args:
            events_client: Boto3 EventBridge client
            event_bus_name: Target event bus
            source: Source attribute stamped on every entry
        """
        self.events_client = events_client
        self.event_bus_name = event_bus_name
        self.source = source

    async def publish(self, channels: list[str], event_name: str, payload: dict[str, Any]) -> None:
        """Put one entry carrying the event and its target channels.

        Raises:
            ClientError: If the PutEvents call itself fails
        """
        entry = {
            "Source": self.source,
            "DetailType": event_name,
            "Detail": json.dumps({"channels": channels, "payload": payload}),
            "EventBusName": self.event_bus_name,
        }

        try:
            response = self.events_client.put_events(Entries=[entry])
        except ClientError as e:
            logger.error(f"Failed to put {event_name} on {self.event_bus_name}: {e}")
            raise

        if response.get("FailedEntryCount", 0):
            failed = response.get("Entries", [{}])[0]
            logger.error(
                f"EventBridge rejected {event_name}: "
                f"{failed.get('ErrorCode')} {failed.get('ErrorMessage')}"
            )
