"""Inventory consumer: confirms received orders and reports KPIs."""

from __future__ import annotations

import argparse
import json
import logging
import threading
from datetime import datetime, timezone

from orderflow.broker import BrokerError, FileBroker, Message, Reader, Writer
from orderflow.dlq import inventory_dlq_message
from orderflow.models import DecodeError, Order

ORDER_RECEIVED_TOPIC = "OrderReceived"
ORDER_CONFIRMED_TOPIC = "OrderConfirmed"
DEAD_LETTER_TOPIC = "DeadLetterQueue"
INVENTORY_KPI_TOPIC = "InventoryKPI"
NOTIFICATION_TOPIC = "Notification"
CONSUMER_GROUP = "milestone4-consumer-group"

log = logging.getLogger(__name__)

_HTML_ESCAPES = {"<": "\\u003c", ">": "\\u003e", "&": "\\u0026"}


def kpi_event(kpi_name: str, metric_name: str, value: int, now: datetime | None = None) -> bytes:
    """Encode a KPI event with keys in sorted order and a UTC RFC 3339 timestamp."""
    if now is None:
        now = datetime.now(timezone.utc)
    elif now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    stamp = now.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")
    text = json.dumps(
        {"kpi_name": kpi_name, "metric_name": metric_name, "value": value, "timestamp": stamp},
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
    )
    for char, escape in _HTML_ESCAPES.items():
        text = text.replace(char, escape)
    return text.encode("utf-8")


class InventoryService:
    """Validates incoming orders, forwards new ones and counts confirmations."""

    poll_interval = 0.5
    kpi_interval = 60.0

    def __init__(self, confirmed: Writer, dlq: Writer, kpi: Writer, notification: Writer) -> None:
        self.confirmed = confirmed
        self.dlq = dlq
        self.kpi = kpi
        self.notification = notification
        self.confirmed_count = 0
        self._processed: set[str] = set()
        self._lock = threading.Lock()

    def handle_order(self, msg: Message) -> None:
        """Confirm one order message, or send it to the dead-letter topic."""
        try:
            order = Order.from_json(msg.value)
        except DecodeError as exc:
            log.error("Invalid message format: %s", exc)
            self._reject(msg.value, "Invalid JSON format")
            return

        if not order.order_id:
            log.error("Missing order ID")
            self._reject(msg.value, "Missing order ID")
            return

        with self._lock:
            if order.order_id in self._processed:
                log.warning("Duplicate order: %s", order.order_id)
                return
            self._processed.add(order.order_id)

        payload = order.to_json()
        try:
            self.confirmed.write_messages(Message(key=order.order_id.encode("utf-8"), value=payload))
        except BrokerError as exc:
            log.error("Failed to write to OrderConfirmed: %s", exc)
            self._reject(payload, "Failed to forward to OrderConfirmed")
            return

        log.info("Order confirmed: %s", order)
        with self._lock:
            self.confirmed_count += 1
            log.info("Total confirmed orders: %d", self.confirmed_count)

    def _reject(self, message: bytes, reason: str) -> None:
        self._send_to_dlq(message, reason)
        self.send_kpi_event("InventoryError", "error_per_minute", 1)

    def _send_to_dlq(self, message: bytes, reason: str) -> None:
        try:
            self.dlq.write_messages(Message(value=inventory_dlq_message(message, reason)))
        except BrokerError as exc:
            log.error("Failed to write to DeadLetterQueue: %s", exc)
            return
        log.info("Sent to Dead Letter Queue.")

    def send_kpi_event(self, kpi_name: str, metric_name: str, value: int) -> None:
        """Publish one KPI event; failures are logged."""
        try:
            self.kpi.write_messages(Message(value=kpi_event(kpi_name, metric_name, value)))
        except BrokerError as exc:
            log.error("Failed to send KPI event: %s", exc)
            return
        log.info("KPI Event sent.")

    def flush_confirmed_count(self) -> int:
        """Reset the confirmation counter, reporting it if non-zero; return the count."""
        with self._lock:
            count = self.confirmed_count
            self.confirmed_count = 0
        if count > 0:
            self.send_kpi_event("ConfirmedOrders", "orders_per_minute", count)
        return count

    def run(self, reader: Reader, stop: threading.Event | None = None) -> None:
        """Consume orders until stop is set, reporting throughput every kpi_interval."""
        if stop is None:
            stop = threading.Event()

        def report() -> None:
            while not stop.wait(self.kpi_interval):
                self.flush_confirmed_count()

        reporter = threading.Thread(target=report, name="inventory-kpi", daemon=True)
        reporter.start()
        try:
            while not stop.is_set():
                try:
                    msg = reader.read_message(timeout=self.poll_interval)
                except BrokerError as exc:
                    log.error("Error reading message: %s", exc)
                    stop.wait(self.poll_interval)
                    continue
                if msg is not None:
                    self.handle_order(msg)
        finally:
            stop.set()
            reporter.join()


def main(argv: list[str] | None = None) -> int:
    """Run the inventory consumer until interrupted."""
    parser = argparse.ArgumentParser(description="Confirm received orders.")
    parser.add_argument("--data-dir", default="orderflow-data", help="broker directory")
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(message)s")

    broker = FileBroker(args.data_dir)
    reader = broker.reader(ORDER_RECEIVED_TOPIC, CONSUMER_GROUP)
    writers = [
        broker.writer(topic)
        for topic in (ORDER_CONFIRMED_TOPIC, DEAD_LETTER_TOPIC, INVENTORY_KPI_TOPIC, NOTIFICATION_TOPIC)
    ]
    service = InventoryService(*writers)
    print("🔄 Consumer started. Listening for new orders...")
    stop = threading.Event()
    try:
        service.run(reader, stop)
    except KeyboardInterrupt:
        stop.set()
    finally:
        reader.close()
        for writer in writers:
            writer.close()
    return 0