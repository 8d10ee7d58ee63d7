"""Outbound billing messages published to Google Cloud Pub/Sub.

Responsibilities:
- Format NotificationMessage payloads (WhatsApp-style text to a phone number)
- Publish to the configured Pub/Sub topic
- Manage Pub/Sub client lifecycle

Delivery is best-effort: failures are logged and never reach the caller.
"""

from threading import RLock
from typing import Optional, Protocol

from google.cloud import pubsub_v1

from billing_engine.logging_config import get_logger
from billing_engine.models import NotificationConfig, NotificationMessage
from billing_engine.services.time_controller import TimeController

logger = get_logger(__name__)


class NotificationSink(Protocol):
    """Fire-and-forget outbound message sink."""

    def send(
        self,
        establishment_id: Optional[str],
        phone_number: Optional[str],
        message_body: str,
        message_type: str = "billing_dunning",
    ) -> bool:
        ...


class NotificationDispatcher:
    """Publishes billing messages to Pub/Sub.

    A missing phone number is a silent no-op. When notifications are
    disabled in config, messages are logged and dropped.
    """

    def __init__(self, settings: NotificationConfig, time_controller: TimeController):
        """Initialize dispatcher.

        Args:
            settings: notifications section of billing.yaml
            time_controller: clock used to stamp messages
        """
        self._lock = RLock()
        self._settings = settings
        self._time_controller = time_controller
        self._publisher: Optional[pubsub_v1.PublisherClient] = None
        self._topic_path: Optional[str] = None
        self._enabled = settings.enabled

        self._initialize()

    def _initialize(self) -> None:
        """Init Pub/Sub publisher from settings."""
        if not self._enabled:
            logger.info("notification_dispatcher_disabled", message="Billing notifications are disabled in config")
            return

        try:
            self._publisher = pubsub_v1.PublisherClient()
            self._topic_path = self._publisher.topic_path(self._settings.project_id, self._settings.topic)

            # Auto-create topic if it doesn't exist
            self._ensure_topic_exists()

            logger.info(
                "notification_dispatcher_initialized",
                project_id=self._settings.project_id,
                topic=self._settings.topic,
                topic_path=self._topic_path,
            )

        except Exception as e:
            logger.error(
                "notification_dispatcher_init_failed",
                error=str(e),
                error_type=type(e).__name__,
                exc_info=True,
            )
            # Disable dispatcher if initialization fails
            self._enabled = False

    def _ensure_topic_exists(self) -> None:
        """Ensure the Pub/Sub topic exists, create it if it doesn't."""
        if not self._publisher:
            return

        try:
            self._publisher.get_topic(request={"topic": self._topic_path})
            logger.info("pubsub_topic_exists", topic_path=self._topic_path)
        except Exception:
            topic = self._publisher.create_topic(request={"name": self._topic_path})
            logger.info("pubsub_topic_created", topic_path=topic.name)

    def is_enabled(self) -> bool:
        """True if notifications are enabled and the client is initialized."""
        return self._enabled and self._publisher is not None

    def send(
        self,
        establishment_id: Optional[str],
        phone_number: Optional[str],
        message_body: str,
        message_type: str = "billing_dunning",
    ) -> bool:
        """Publish a message to a phone number.

        Args:
            establishment_id: Establishment the message is about, if any
            phone_number: Destination; None or empty makes this a no-op
            message_body: Text to deliver
            message_type: Routing attribute for consumers

        Returns:
            True if published, False otherwise
        """
        if not phone_number:
            logger.debug("notification_skipped_no_phone", establishment_id=establishment_id)
            return False

        if not self.is_enabled():
            logger.info(
                "notification_not_published",
                reason="disabled",
                establishment_id=establishment_id,
                message_type=message_type,
            )
            return False

        message = NotificationMessage(
            establishment_id=establishment_id,
            phone_number=phone_number,
            message_type=message_type,
            message_body=message_body,
            created_at_millis=self._time_controller.get_current_time_millis(),
        )

        with self._lock:
            try:
                self._publish(message)
                logger.info(
                    "notification_published",
                    establishment_id=establishment_id,
                    message_type=message_type,
                )
                return True
            except Exception as e:
                logger.error(
                    "notification_publish_failed",
                    establishment_id=establishment_id,
                    message_type=message_type,
                    error=str(e),
                    error_type=type(e).__name__,
                    exc_info=True,
                )
                return False

    def _publish(self, message: NotificationMessage) -> None:
        """Publish a message and wait a bounded time for the ack.

        Raises:
            GoogleAPIError: If publication fails after the client's retries
        """
        if not self._publisher or not self._topic_path:
            raise RuntimeError("Publisher is not initialized")

        future = self._publisher.publish(
            self._topic_path,
            message.model_dump_json().encode("utf-8"),
            message_type=message.message_type,
            establishment_id=message.establishment_id or "",
        )
        message_id = future.result(timeout=self._settings.publish_timeout_seconds)
        logger.debug("pubsub_message_published", message_id=message_id)

    def shutdown(self) -> None:
        """Drop the publisher."""
        with self._lock:
            if self._publisher:
                logger.info("notification_dispatcher_shutting_down")
                self._publisher = None
                self._topic_path = None
