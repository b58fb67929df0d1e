"""Warehouse consumer: fulfils confirmed orders and reports processing latency."""

from __future__ import annotations

import argparse
import logging
import threading
import time
from datetime import datetime, timezone

from orderflow.broker import BrokerError, FileBroker, Message, Reader, Writer
from orderflow.dlq import DEAD_LETTER_TOPIC, NOTIFICATION_TOPIC, publish_raw
from orderflow.models import (
    DeadLetterPayload,
    DecodeError,
    KPIEvent,
    NotificationEvent,
    OrderConfirmedEvent,
)

ORDER_CONFIRMED_TOPIC = "OrderConfirmed"
LATENCY_KPI_TOPIC = "LatencyKPI"
CONSUMER_GROUP = "warehouse-group"

log = logging.getLogger(__name__)


def _rfc3339_now() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


class WarehouseService:
    """Turns confirmed orders into fulfilment notifications, once per order."""

    poll_interval = 0.5

    def __init__(
        self, notification_writer: Writer, dlq_writer: Writer, latency_writer: Writer
    ) -> None:
        self.notification_writer = notification_writer
        self.dlq_writer = dlq_writer
        self.latency_writer = latency_writer
        self._processed: set[str] = set()
        self._lock = threading.Lock()

    def handle_order_message(self, msg: Message) -> NotificationEvent | None:
        """Handle one confirmed order; return its notification, or None if skipped."""
        started = time.monotonic()
        try:
            order = OrderConfirmedEvent.from_json(msg.value)
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
            "Order confirmed: ID=%s, CustomerID=%s, Items=%s",
            order.id,
            order.customer_id,
            ", ".join(order.items),
        )

        notification = NotificationEvent(
            id=f"notif-{order.id}",
            order_id=order.id,
            message=f"Your order {order.id} is being fulfilled",
        )
        key = order.id.encode("utf-8")
        try:
            self.notification_writer.write_messages(
                Message(key=key, value=notification.to_json())
            )
        except BrokerError as exc:
            log.error("Failed to publish notification: %s", exc)
            payload = DeadLetterPayload(
                reason="Publishing to Notification topic failed",
                raw_message=msg.value.decode("utf-8", "replace"),
                topic=ORDER_CONFIRMED_TOPIC,
                consumer_group=CONSUMER_GROUP,
            ).to_json()
            publish_raw(self.dlq_writer, payload)
        else:
            log.info("Notification sent for Order ID: %s", order.id)

        latency_ms = int((time.monotonic() - started) * 1000)
        kpi = KPIEvent(
            kpi_name="OrderProcessingLatency",
            metric_name="latency_ms",
            value=latency_ms,
            timestamp=_rfc3339_now(),
        )
        try:
            self.latency_writer.write_messages(Message(key=key, value=kpi.to_json()))
        except BrokerError as exc:
            log.error("Failed to publish KPI event: %s", exc)
        else:
            log.info("KPI Latency Published: %d ms", latency_ms)
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
                self.handle_order_message(msg)


def main(argv: list[str] | None = None) -> int:
    """Run the warehouse consumer until interrupted."""
    parser = argparse.ArgumentParser(description="Fulfil confirmed orders.")
    parser.add_argument("--data-dir", default="orderflow-data", help="broker directory")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")

    broker = FileBroker(args.data_dir)
    reader = broker.reader(ORDER_CONFIRMED_TOPIC, CONSUMER_GROUP)
    notification_writer = broker.writer(NOTIFICATION_TOPIC)
    dlq_writer = broker.writer(DEAD_LETTER_TOPIC)
    latency_writer = broker.writer(LATENCY_KPI_TOPIC)
    service = WarehouseService(notification_writer, dlq_writer, latency_writer)
    print("🚛 Warehouse Consumer is running and waiting for OrderConfirmed events...")
    try:
        service.run(reader)
    except KeyboardInterrupt:
        print("🔴 Shutting down warehouse consumer...")
    finally:
        reader.close()
        notification_writer.close()
        dlq_writer.close()
        latency_writer.close()
    return 0