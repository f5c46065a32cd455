"""
Notification channels - hand payloads to the push delivery system
"""
import json
import logging
import uuid
from datetime import datetime, timezone

import pika
from pika.exceptions import AMQPConnectionError
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception_type

from dispatch.config import settings
from dispatch.schemas.notification import NotificationPayload

logger = logging.getLogger(__name__)


class ConsoleNotificationChannel:
    """
    Log notifications instead of sending them

    This is for development/testing purposes
    """

    def publish(self, payload: NotificationPayload) -> bool:
        target = payload.recipient_id or "all"
        logger.info(
            "📣 PUSH to %s:%s | %s | %s | %s",
            payload.recipient_role, target, payload.title, payload.body, payload.deep_link_target
        )
        return True


class RabbitMQNotificationPublisher:
    """Publisher for sending push notifications to RabbitMQ"""

    def __init__(self):
        self.rabbitmq_url = settings.RABBITMQ_URL
        self.exchange = settings.NOTIFICATION_EXCHANGE
        self.routing_key = settings.NOTIFICATION_ROUTING_KEY

    @retry(
        stop=stop_after_attempt(settings.MAX_RETRIES),
        wait=wait_exponential(multiplier=settings.RETRY_DELAY, min=1, max=10),
        retry=retry_if_exception_type(AMQPConnectionError),
        reraise=True
    )
    def publish(self, payload: NotificationPayload) -> bool:
        """
        Publish a notification message

        Args:
            payload: Notification to deliver

        Returns:
            True if the broker confirmed the message

        Raises:
            pika.exceptions.AMQPError: If the broker rejected the message
        """
        connection = pika.BlockingConnection(
            pika.URLParameters(self.rabbitmq_url)
        )
        try:
            channel = connection.channel()

            channel.exchange_declare(
                exchange=self.exchange,
                exchange_type='topic',
                durable=True
            )

            message = {
                "event_type": "PushNotification",
                "event_id": str(uuid.uuid4()),
                "event_version": "1.0",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "source": settings.SERVICE_NAME,
                "data": payload.model_dump()
            }

            # Enable publisher confirms
            channel.confirm_delivery()

            channel.basic_publish(
                exchange=self.exchange,
                routing_key=f"{self.routing_key}.{payload.recipient_role}",
                body=json.dumps(message),
                properties=pika.BasicProperties(
                    delivery_mode=2,  # Persistent message
                    content_type='application/json',
                    correlation_id=message["event_id"]
                )
            )
        finally:
            connection.close()

        logger.info("✓ Notification published: %s (ID: %s)", payload.title, message["event_id"])
        return True


def build_channel(name: str = None):
    """Channel selected by NOTIFICATION_CHANNEL"""
    name = name or settings.NOTIFICATION_CHANNEL
    if name == "console":
        return ConsoleNotificationChannel()
    elif name == "rabbitmq":
        return RabbitMQNotificationPublisher()
    else:
        raise ValueError(f"Unknown notification channel: {name}")
