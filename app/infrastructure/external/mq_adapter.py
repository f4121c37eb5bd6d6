import json
import logging
from typing import Optional

import pika
from fastapi.concurrency import run_in_threadpool

from app.application.interfaces import NotifierInterface
from app.config.settings import settings
from app.pipelines.recording.types import NotificationEvent

logger = logging.getLogger(__name__)


class RabbitMQNotifier(NotifierInterface):
    """Publish user-facing recording events to a durable RabbitMQ queue.

    A downstream push worker consumes the queue and delivers the
    notification to the user's devices.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        username: Optional[str] = None,
        password: Optional[str] = None,
        queue_name: Optional[str] = None,
    ):
        config = settings.notifications
        self.host = host or config.rabbitmq_host
        self.port = port or config.rabbitmq_port
        self.username = username or config.rabbitmq_username
        self.password = password or config.rabbitmq_password.get_secret_value()
        self.queue_name = queue_name or config.queue_name

        self.credentials = pika.PlainCredentials(self.username, self.password)
        self.connection_params = pika.ConnectionParameters(
            host=self.host,
            port=self.port,
            credentials=self.credentials,
        )

    def _get_connection(self):
        """Get a connection to RabbitMQ"""
        return pika.BlockingConnection(self.connection_params)

    def _publish(self, message: dict) -> None:
        connection = self._get_connection()
        try:
            channel = connection.channel()

            # Declare queue if it doesn't exist
            channel.queue_declare(queue=self.queue_name, durable=True)

            channel.basic_publish(
                exchange="",
                routing_key=self.queue_name,
                body=json.dumps(message),
                properties=pika.BasicProperties(
                    delivery_mode=2,  # Make message persistent
                    content_type="application/json",
                ),
            )
        finally:
            connection.close()

    async def notify(self, event: NotificationEvent) -> None:
        """Publish the event; transport errors propagate to the caller."""

        await run_in_threadpool(self._publish, event.as_message())
        logger.info(
            "Published %s notification for recording %s",
            event.type,
            event.recording_id,
        )
