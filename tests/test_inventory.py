import json
import threading
import time
from datetime import datetime, timedelta, timezone

import pytest

from orderflow.broker import InMemoryBroker, Message
from orderflow.dlq import inventory_dlq_message
from orderflow.inventory import InventoryService, kpi_event
from orderflow.models import Order


@pytest.fixture
def broker():
    return InMemoryBroker()


@pytest.fixture
def service(broker):
    svc = InventoryService(
        broker.writer("OrderConfirmed"),
        broker.writer("DeadLetterQueue"),
        broker.writer("InventoryKPI"),
        broker.writer("Notification"),
    )
    svc.poll_interval = 0.05
    return svc


def _kpis(broker):
    return [json.loads(m.value) for m in broker.messages("InventoryKPI")]


def _wait_for(condition, timeout=5.0):
    deadline = time.monotonic() + timeout
    while not condition() and time.monotonic() < deadline:
        time.sleep(0.01)
    return condition()


def test_kpi_event_wire_form():
    now = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert kpi_event("A", "m", 3, now) == (
        b'{"kpi_name":"A","metric_name":"m","timestamp":"2024-01-02T03:04:05Z","value":3}'
    )


def test_kpi_event_converts_to_utc():
    local = datetime(2024, 1, 2, 5, 4, 5, tzinfo=timezone(timedelta(hours=2)))
    utc = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    assert kpi_event("A", "m", 1, local) == kpi_event("A", "m", 1, utc)


def test_kpi_event_keys_are_sorted():
    keys = list(json.loads(kpi_event("ConfirmedOrders", "orders_per_minute", 4)))
    assert keys == sorted(keys)


def test_valid_order_is_confirmed(broker, service):
    order = Order("o1", "alice", 5)
    service.handle_order(Message(value=order.to_json()))
    confirmed = broker.messages("OrderConfirmed")
    assert [(m.key, Order.from_json(m.value)) for m in confirmed] == [(b"o1", order)]
    assert service.confirmed_count == 1
    assert broker.messages("DeadLetterQueue") == []


def test_invalid_json_goes_to_dlq_with_error_kpi(broker, service):
    raw = b'{"orderId": '
    service.handle_order(Message(value=raw))
    assert [m.value for m in broker.messages("DeadLetterQueue")] == [
        inventory_dlq_message(raw, "Invalid JSON format")
    ]
    kpis = _kpis(broker)
    assert [(k["kpi_name"], k["metric_name"], k["value"]) for k in kpis] == [
        ("InventoryError", "error_per_minute", 1)
    ]
    assert broker.messages("OrderConfirmed") == []


def test_missing_order_id_goes_to_dlq(broker, service):
    raw = b'{"customer": "bob", "amount": 2}'
    service.handle_order(Message(value=raw))
    assert [m.value for m in broker.messages("DeadLetterQueue")] == [
        inventory_dlq_message(raw, "Missing order ID")
    ]
    assert service.confirmed_count == 0


def test_duplicate_order_is_ignored(broker, service):
    msg = Message(value=Order("o2", "carol", 1).to_json())
    service.handle_order(msg)
    service.handle_order(msg)
    assert len(broker.messages("OrderConfirmed")) == 1
    assert broker.messages("DeadLetterQueue") == []
    assert service.confirmed_count == 1


def test_forward_failure_goes_to_dlq(broker, service):
    service.confirmed.close()
    order = Order("o3", "dave", 9)
    service.handle_order(Message(value=order.to_json()))
    assert [m.value for m in broker.messages("DeadLetterQueue")] == [
        inventory_dlq_message(order.to_json(), "Failed to forward to OrderConfirmed")
    ]
    assert [k["kpi_name"] for k in _kpis(broker)] == ["InventoryError"]
    assert service.confirmed_count == 0


def test_dlq_failure_is_tolerated(broker, service):
    service.dlq.close()
    service.handle_order(Message(value=b"garbage"))
    assert [k["kpi_name"] for k in _kpis(broker)] == ["InventoryError"]


def test_flush_reports_and_resets(broker, service):
    for order_id in ("a", "b"):
        service.handle_order(Message(value=Order(order_id).to_json()))
    assert service.flush_confirmed_count() == 2
    assert service.confirmed_count == 0
    kpis = _kpis(broker)
    assert [(k["kpi_name"], k["metric_name"], k["value"]) for k in kpis] == [
        ("ConfirmedOrders", "orders_per_minute", 2)
    ]


def test_flush_with_nothing_confirmed_sends_nothing(broker, service):
    assert service.flush_confirmed_count() == 0
    assert broker.messages("InventoryKPI") == []


def test_run_consumes_and_reports_until_stopped(broker, service):
    service.kpi_interval = 0.05
    broker.writer("OrderReceived").write_messages(Message(value=Order("o9", "eve", 2).to_json()))
    reader = broker.reader("OrderReceived", "inventory-test")
    stop = threading.Event()
    thread = threading.Thread(target=service.run, args=(reader, stop))
    thread.start()
    try:
        reported = _wait_for(
            lambda: any(k["kpi_name"] == "ConfirmedOrders" for k in _kpis(broker))
        )
    finally:
        stop.set()
        thread.join(5)
    assert reported
    assert not thread.is_alive()
    assert [Order.from_json(m.value) for m in broker.messages("OrderConfirmed")] == [
        Order("o9", "eve", 2)
    ]