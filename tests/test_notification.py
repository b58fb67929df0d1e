import json
import threading
import time

import pytest

from orderflow.broker import InMemoryBroker, Message
from orderflow.dlq import notification_dlq_payload
from orderflow.models import NotificationEvent
from orderflow.notification import NotificationService


@pytest.fixture
def broker():
    return InMemoryBroker()


@pytest.fixture
def service(broker):
    svc = NotificationService(broker.writer("DeadLetterQueue"))
    svc.poll_interval = 0.05
    return svc


def test_mark_as_processed_makes_duplicate(service):
    assert service.is_duplicate("n1") is False
    service.mark_as_processed("n1")
    assert service.is_duplicate("n1") is True


def test_valid_event_is_delivered_once(broker, service):
    event = NotificationEvent("n1", "o1", "Your order o1 has been shipped!")
    assert service.process_notification(event.to_json()) == event
    assert service.is_duplicate("n1")
    assert service.process_notification(event.to_json()) is None
    assert broker.messages("DeadLetterQueue") == []


def test_invalid_json_goes_to_dlq(broker, service):
    raw = b"{broken"
    assert service.process_notification(raw) is None
    stored = broker.messages("DeadLetterQueue")
    assert [m.value for m in stored] == [notification_dlq_payload(raw, "JSON parsing failed")]
    body = json.loads(stored[0].value)
    assert body["reason"] == "JSON parsing failed"
    assert body["raw_message"] == "{broken"
    assert body["topic"] == "Notification"
    assert body["consumer_group"] == "notification-group"


def test_events_without_id_share_the_empty_id(service):
    first = NotificationEvent(order_id="o1", message="hello")
    second = NotificationEvent(order_id="o2", message="again")
    assert service.process_notification(first.to_json()) == first
    assert service.process_notification(second.to_json()) is None


def test_dlq_failure_is_tolerated(broker, service):
    service.dlq_writer.close()
    assert service.process_notification(b"[1, 2") is None
    assert broker.messages("DeadLetterQueue") == []


def test_consume_processes_until_stopped(broker, service):
    writer = broker.writer("Notification")
    writer.write_messages(
        Message(value=NotificationEvent("n1", "o1", "first").to_json()),
        Message(value=b"not json"),
        Message(value=NotificationEvent("n2", "o2", "second").to_json()),
    )
    reader = broker.reader("Notification", "notification-test")
    stop = threading.Event()
    thread = threading.Thread(target=service.consume, args=(reader, stop))
    thread.start()
    deadline = time.monotonic() + 5
    while not service.is_duplicate("n2") and time.monotonic() < deadline:
        time.sleep(0.01)
    stop.set()
    thread.join(5)
    assert not thread.is_alive()
    assert service.is_duplicate("n1") and service.is_duplicate("n2")
    assert [m.value for m in broker.messages("DeadLetterQueue")] == [
        notification_dlq_payload(b"not json", "JSON parsing failed")
    ]