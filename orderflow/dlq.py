"""Publishing of rejected messages to the dead-letter topic."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from orderflow.broker import BrokerError, Message, Writer
from orderflow.models import DeadLetterPayload

DEAD_LETTER_TOPIC = "DeadLetterQueue"
NOTIFICATION_TOPIC = "Notification"
NOTIFICATION_GROUP = "notification-group"

log = logging.getLogger(__name__)


def notification_dlq_payload(original: bytes, reason: str) -> bytes:
    """Wrap a rejected notification with the reason and its origin."""
    return DeadLetterPayload(
        reason=reason,
        raw_message=bytes(original).decode("utf-8", "replace"),
        topic=NOTIFICATION_TOPIC,
        consumer_group=NOTIFICATION_GROUP,
    ).to_json()


def publish_notification_dlq(writer: Writer, original: bytes, reason: str) -> None:
    """Send a rejected notification to the dead-letter writer; failures are logged."""
    payload = notification_dlq_payload(original, reason)
    try:
        writer.write_messages(Message(value=payload))
    except BrokerError as exc:
        log.error("Failed to publish to DLQ: %s", exc)
        return
    log.info("Message sent to DeadLetterQueue")


def publish_raw(writer: Writer, value: bytes) -> None:
    """Send a message unchanged to the dead-letter writer under the key "error"."""
    try:
        writer.write_messages(
            Message(key=b"error", value=value, time=datetime.now(timezone.utc))
        )
    except BrokerError as exc:
        log.error("Failed to write to DLQ: %s", exc)
        return
    log.info("Message sent to DeadLetterQueue")


def inventory_dlq_message(message: bytes, reason: str) -> bytes:
    """Build the inventory dead letter: the reason plus the message with quotes escaped."""
    escaped = bytes(message).replace(b'"', b'\\"')
    return b'{"error": "' + reason.encode("utf-8") + b'", "originalMessage": ' + escaped + b"}"