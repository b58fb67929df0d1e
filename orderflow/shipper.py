"""Shipper consumer: announces shipment of packed orders."""

from __future__ import annotations

import argparse
import logging
import threading

from orderflow.broker import BrokerError, FileBroker, Message, Reader, Writer
from orderflow.dlq import DEAD_LETTER_TOPIC, NOTIFICATION_TOPIC, publish_raw
from orderflow.models import DecodeError, NotificationEvent, OrderPickedAndPacked

ORDER_PICKED_AND_PACKED_TOPIC = "OrderPickedAndPacked"
CONSUMER_GROUP = "shipper-group"

log = logging.getLogger(__name__)


class ShipperService:
    """Sends a shipping notification for each packed order, once per order."""

    poll_interval = 0.5

    def __init__(self, notification_writer: Writer, dlq_writer: Writer) -> None:
        self.notification_writer = notification_writer
        self.dlq_writer = dlq_writer
        self._processed: set[str] = set()
        self._lock = threading.Lock()

    def handle_message(self, msg: Message) -> NotificationEvent | None:
        """Handle one packed order; return its notification, or None if skipped."""
        try:
            order = OrderPickedAndPacked.from_json(msg.value)
        except DecodeError as exc:
            log.error("Failed to parse order: %s", exc)
            publish_raw(self.dlq_writer, msg.value)
            return None

        with self._lock:
            if order.id in self._processed:
                log.warning("Duplicate order skipped: %s", order.id)
                return None
            self._processed.add(order.id)

        log.info(
            "Order ready to ship: ID=%s, CustomerID=%s, Items=%s, Warehouse=%s",
            order.id,
            order.customer_id,
            ", ".join(order.items),
            order.warehouse,
        )

        notification = NotificationEvent(
            id=f"notif-{order.id}",
            order_id=order.id,
            message=f"Your order {order.id} has been shipped!",
        )
        try:
            self.notification_writer.write_messages(
                Message(key=order.id.encode("utf-8"), value=notification.to_json())
            )
        except BrokerError as exc:
            log.error("Failed to publish notification: %s", exc)
            publish_raw(self.dlq_writer, msg.value)
        else:
            log.info("Notification sent for Order ID: %s", order.id)
        return notification

    def run(self, reader: Reader, stop: threading.Event | None = None) -> None:
        """Handle messages from the reader until stop is set."""
        if stop is None:
            stop = threading.Event()
        while not stop.is_set():
            try:
                msg = reader.read_message(timeout=self.poll_interval)
            except BrokerError as exc:
                log.error("Error reading message: %s", exc)
                stop.wait(self.poll_interval)
                continue
            if msg is not None:
                self.handle_message(msg)


def main(argv: list[str] | None = None) -> int:
    """Run the shipper consumer until interrupted."""
    parser = argparse.ArgumentParser(description="Ship packed orders.")
    parser.add_argument("--data-dir", default="orderflow-data", help="broker directory")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")

    print("🚚 Shipper Consumer is running and waiting for OrderPickedAndPacked events...")
    broker = FileBroker(args.data_dir)
    reader = broker.reader(ORDER_PICKED_AND_PACKED_TOPIC, CONSUMER_GROUP)
    notification_writer = broker.writer(NOTIFICATION_TOPIC)
    dlq_writer = broker.writer(DEAD_LETTER_TOPIC)
    try:
        ShipperService(notification_writer, dlq_writer).run(reader)
    except KeyboardInterrupt:
        log.info("Shutting down Shipper consumer...")
    finally:
        reader.close()
        notification_writer.close()
        dlq_writer.close()
    return 0