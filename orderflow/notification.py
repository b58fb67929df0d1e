"""Notification consumer: delivers each notification event once."""

from __future__ import annotations

import argparse
import logging
import threading

from orderflow.broker import BrokerError, FileBroker, Reader, Writer
from orderflow.dlq import DEAD_LETTER_TOPIC, NOTIFICATION_GROUP, NOTIFICATION_TOPIC
from orderflow.dlq import publish_notification_dlq
from orderflow.models import DecodeError, NotificationEvent

log = logging.getLogger(__name__)


class NotificationService:
    """Sends notifications, skipping events already handled."""

    poll_interval = 0.5

    def __init__(self, dlq_writer: Writer) -> None:
        self.dlq_writer = dlq_writer
        self._processed: set[str] = set()
        self._lock = threading.Lock()

    def is_duplicate(self, event_id: str) -> bool:
        with self._lock:
            return event_id in self._processed

    def mark_as_processed(self, event_id: str) -> None:
        with self._lock:
            self._processed.add(event_id)

    def process_notification(self, raw: bytes) -> NotificationEvent | None:
        """Deliver one event; return it, or None if it was rejected or a duplicate."""
        try:
            event = NotificationEvent.from_json(raw)
        except DecodeError as exc:
            log.error("Failed to parse message: %s", exc)
            publish_notification_dlq(self.dlq_writer, raw, "JSON parsing failed")
            return None
        if self.is_duplicate(event.id):
            log.warning("Duplicate event skipped: %s", event.id)
            return None
        log.info('Sending notification: "%s" for Order ID: %s', event.message, event.order_id)
        self.mark_as_processed(event.id)
        return event

    def consume(self, reader: Reader, stop: threading.Event | None = None) -> None:
        """Process messages from the reader until stop is set."""
        stop = stop or threading.Event()
        log.info("Listening to Notification topic...")
        while not stop.is_set():
            try:
                msg = reader.read_message(timeout=self.poll_interval)
            except BrokerError as exc:
                log.error("Error reading message: %s", exc)
                stop.wait(self.poll_interval)
                continue
            if msg is not None:
                log.info("Received message at offset %d", msg.offset)
                self.process_notification(msg.value)


def main(argv: list[str] | None = None) -> int:
    """Run the notification consumer until interrupted."""
    parser = argparse.ArgumentParser(description="Deliver notification events.")
    parser.add_argument("--data-dir", default="orderflow-data", help="broker directory")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")

    log.info("Notification Consumer Service Started")
    broker = FileBroker(args.data_dir)
    reader = broker.reader(NOTIFICATION_TOPIC, NOTIFICATION_GROUP)
    dlq_writer = broker.writer(DEAD_LETTER_TOPIC)
    try:
        NotificationService(dlq_writer).consume(reader)
    except KeyboardInterrupt:
        pass
    finally:
        reader.close()
        dlq_writer.close()
    return 0