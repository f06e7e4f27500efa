"""
RabbitMQ publisher for plan and notification messages.

Messages are JSON, sent through the default exchange with the queue name as
routing key. Plan messages go out as-is; notification messages are wrapped
in a {"pattern": ..., "data": ...} envelope.
"""
import logging
import time
from typing import Any, Mapping, Optional

from kombu import Connection, Queue
from kombu.pools import producers

from invoice_service.config import get_settings
from invoice_service.models.enums import NotificationPattern
from invoice_service.services.errors import PublishFailed
from invoice_service.services.tracking import TrackingContext

logger = logging.getLogger(__name__)
settings = get_settings()


class EventPublisher:
    """Publishes JSON messages to named durable queues. Never retries."""

    def __init__(self, url: Optional[str] = None, connect_timeout: Optional[float] = None):
        self.url = url or settings.rabbitmq_url
        self.connection = Connection(
            self.url,
            connect_timeout=connect_timeout or settings.rabbitmq_connect_timeout,
        )

    def publish_raw(
        self,
        destination: str,
        message: Mapping[str, Any],
        ctx: Optional[TrackingContext] = None,
    ) -> None:
        """
        Publish a message to a queue.

        Args:
            destination: Queue name
            message: JSON-serializable payload
            ctx: Tracking context; its correlation id is set on the message

        Raises:
            PublishFailed: On any transport or serialization error
        """
        tracking = ctx.tracking_info() if ctx else ""
        start = time.monotonic()
        logger.info(f"Sending message {tracking} | queue={destination}")
        logger.debug(f"Message payload: {message}")

        properties = {"correlation_id": ctx.correlation_id} if ctx else {}

        try:
            with producers[self.connection].acquire(block=True) as producer:
                producer.publish(
                    dict(message),
                    exchange="",
                    routing_key=destination,
                    serializer="json",
                    declare=[Queue(destination, durable=True)],
                    retry=False,
                    **properties,
                )
        except Exception as e:
            duration_ms = int((time.monotonic() - start) * 1000)
            logger.error(
                f"Failed to send message {tracking} | queue={destination} | "
                f"duration={duration_ms}ms | error={e}"
            )
            raise PublishFailed(destination, e) from e

        duration_ms = int((time.monotonic() - start) * 1000)
        logger.info(f"Message sent {tracking} | queue={destination} | duration={duration_ms}ms")

    def publish_enveloped(
        self,
        destination: str,
        pattern: NotificationPattern,
        data: Mapping[str, Any],
        ctx: Optional[TrackingContext] = None,
    ) -> None:
        """
        Publish data wrapped in a {pattern, data} envelope.

        Raises:
            PublishFailed: Unknown pattern, or the publish itself failed
        """
        try:
            pattern_name = NotificationPattern(pattern).value
        except ValueError as e:
            logger.error(f"Unknown notification pattern {pattern!r} | queue={destination}")
            raise PublishFailed(destination, e) from e

        logger.info(f"Creating notification message | queue={destination} | pattern={pattern_name}")
        self.publish_raw(destination, {"pattern": pattern_name, "data": dict(data)}, ctx)

    def close(self) -> None:
        """Release pooled producers and the underlying connection."""
        producers[self.connection].force_close_all()
        self.connection.release()
        logger.info("Closed RabbitMQ connection")


_publisher: Optional[EventPublisher] = None


def get_event_publisher() -> EventPublisher:
    """Get the process-wide publisher."""
    global _publisher

    if _publisher is None:
        _publisher = EventPublisher()
        logger.info(f"Created RabbitMQ publisher for {_publisher.connection.as_uri()}")

    return _publisher


def close_event_publisher() -> None:
    """Close the process-wide publisher; called on application shutdown."""
    global _publisher

    if _publisher is not None:
        _publisher.close()
        _publisher = None
