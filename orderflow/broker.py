"""Topic-based message log with consumer groups, kept in memory or on disk."""

from __future__ import annotations

import base64
import binascii
import json
import re
import threading
import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from pathlib import Path

from filelock import FileLock

_TOPIC_NAME = re.compile(r"^[A-Za-z0-9._-]+$")


class BrokerError(Exception):
    """Raised when a message cannot be written to or read from a topic."""


@dataclass(frozen=True)
class Message:
    """A record on a topic: payload, optional key, and where it was stored."""

    value: bytes = b""
    key: bytes | None = None
    topic: str = ""
    offset: int = -1
    time: datetime | None = None


def _check_topic(topic: str) -> str:
    if not isinstance(topic, str) or not _TOPIC_NAME.match(topic):
        raise BrokerError(f"invalid topic name {topic!r}")
    return topic


def _stamp(messages: tuple[Message, ...], topic: str, start: int) -> list[Message]:
    now = datetime.now(timezone.utc)
    return [
        replace(m, topic=topic, offset=start + i, time=m.time or now)
        for i, m in enumerate(messages)
    ]


class Writer:
    """Appends messages to one topic."""

    def __init__(self, broker, topic: str) -> None:
        self._broker = broker
        self.topic = topic
        self._closed = False

    def write_messages(self, *messages: Message) -> list[Message]:
        """Append the messages in order and return them as stored."""
        if self._closed:
            raise BrokerError(f"writer for topic {self.topic!r} is closed")
        return self._broker._append(self.topic, messages) if messages else []

    def close(self) -> None:
        self._closed = True


class Reader:
    """Reads one topic, sharing its position with readers of the same group."""

    def __init__(self, broker, topic: str, group_id: str | None) -> None:
        self._broker = broker
        self.topic = topic
        self.group_id = group_id
        self._position = 0
        self._closed = False

    def read_message(self, timeout: float | None = None) -> Message | None:
        """Return the next message, or None if none arrives within timeout seconds."""
        if self._closed:
            raise BrokerError(f"reader for topic {self.topic!r} is closed")
        deadline = None if timeout is None else time.monotonic() + timeout
        message = self._broker._claim(self.topic, self.group_id, self._position, deadline)
        if message is not None and self.group_id is None:
            self._position = message.offset + 1
        return message

    def close(self) -> None:
        self._closed = True


def _remaining(deadline: float | None) -> float | None:
    return None if deadline is None else deadline - time.monotonic()


class InMemoryBroker:
    """Broker whose topics live in process memory."""

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._logs: dict[str, list[Message]] = {}
        self._offsets: dict[tuple[str, str], int] = {}

    def writer(self, topic: str) -> Writer:
        return Writer(self, _check_topic(topic))

    def reader(self, topic: str, group_id: str | None = None) -> Reader:
        """Return a reader; readers without a group start at the beginning."""
        return Reader(self, _check_topic(topic), group_id)

    def messages(self, topic: str) -> list[Message]:
        """Return every message stored on the topic, oldest first."""
        with self._cond:
            return list(self._logs.get(topic, ()))

    def _append(self, topic: str, messages: tuple[Message, ...]) -> list[Message]:
        with self._cond:
            log = self._logs.setdefault(topic, [])
            stored = _stamp(messages, topic, len(log))
            log.extend(stored)
            self._cond.notify_all()
        return stored

    def _claim(self, topic, group_id, position, deadline) -> Message | None:
        with self._cond:
            while True:
                log = self._logs.get(topic, [])
                offset = position if group_id is None else self._offsets.get((topic, group_id), 0)
                if offset < len(log):
                    if group_id is not None:
                        self._offsets[(topic, group_id)] = offset + 1
                    return log[offset]
                remaining = _remaining(deadline)
                if remaining is not None and remaining <= 0:
                    return None
                self._cond.wait(remaining)


class FileBroker:
    """Broker that keeps each topic as a JSON-lines file under a directory."""

    poll_interval = 0.05

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)

    def writer(self, topic: str) -> Writer:
        return Writer(self, _check_topic(topic))

    def reader(self, topic: str, group_id: str | None = None) -> Reader:
        """Return a reader; readers without a group start at the beginning."""
        return Reader(self, _check_topic(topic), group_id)

    def messages(self, topic: str) -> list[Message]:
        """Return every message stored on the topic, oldest first."""
        with self._lock(_check_topic(topic)):
            return self._read_log(topic)

    def _log_path(self, topic: str) -> Path:
        return self.root / f"{topic}.jsonl"

    def _offset_path(self, topic: str, group_id: str) -> Path:
        return self.root / f"{topic}.{group_id.encode('utf-8').hex()}.offset"

    def _lock(self, topic: str) -> FileLock:
        return FileLock(str(self.root / f"{topic}.lock"))

    def _read_log(self, topic: str) -> list[Message]:
        try:
            lines = self._log_path(topic).read_text(encoding="utf-8").splitlines()
        except FileNotFoundError:
            return []
        except OSError as exc:
            raise BrokerError(f"cannot read topic {topic!r}: {exc}") from exc
        messages = []
        for offset, line in enumerate(lines):
            try:
                record = json.loads(line)
                key = record["key"]
                messages.append(
                    Message(
                        value=base64.b64decode(record["value"], validate=True),
                        key=None if key is None else base64.b64decode(key, validate=True),
                        topic=topic,
                        offset=offset,
                        time=datetime.fromisoformat(record["time"]),
                    )
                )
            except (ValueError, KeyError, TypeError, binascii.Error) as exc:
                raise BrokerError(f"corrupt record {offset} in topic {topic!r}") from exc
        return messages

    def _append(self, topic: str, messages: tuple[Message, ...]) -> list[Message]:
        with self._lock(topic):
            stored = _stamp(messages, topic, len(self._read_log(topic)))
            try:
                with self._log_path(topic).open("a", encoding="utf-8") as fh:
                    for m in stored:
                        record = {
                            "key": None if m.key is None else base64.b64encode(m.key).decode(),
                            "value": base64.b64encode(m.value).decode(),
                            "time": m.time.isoformat(),
                        }
                        fh.write(json.dumps(record) + "\n")
            except OSError as exc:
                raise BrokerError(f"cannot append to topic {topic!r}: {exc}") from exc
        return stored

    def _claim(self, topic, group_id, position, deadline) -> Message | None:
        while True:
            with self._lock(topic):
                log = self._read_log(topic)
                offset = position
                if group_id is not None:
                    path = self._offset_path(topic, group_id)
                    try:
                        offset = int(path.read_text(encoding="ascii")) if path.exists() else 0
                    except (OSError, ValueError) as exc:
                        raise BrokerError(f"cannot read offset of group {group_id!r}") from exc
                if offset < len(log):
                    if group_id is not None:
                        try:
                            path.write_text(str(offset + 1), encoding="ascii")
                        except OSError as exc:
                            raise BrokerError(
                                f"cannot store offset of group {group_id!r}"
                            ) from exc
                    return log[offset]
            remaining = _remaining(deadline)
            if remaining is not None and remaining <= 0:
                return None
            time.sleep(self.poll_interval if remaining is None else min(self.poll_interval, remaining))


def publish(broker, topic: str, message: str) -> None:
    """Write one text message to the topic under the key "order-key"."""
    writer = broker.writer(topic)
    try:
        writer.write_messages(Message(key=b"order-key", value=message.encode("utf-8")))
    except BrokerError as exc:
        raise BrokerError(f"failed to write message to kafka: {exc}") from exc
    finally:
        writer.close()
    print("Message published to Kafka topic:", topic)