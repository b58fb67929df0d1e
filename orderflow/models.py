"""Event payloads exchanged between the order services, with their JSON forms."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

_ESCAPES = {"<": "\\u003c", ">": "\\u003e", "&": "\\u0026", "\u2028": "\\u2028", "\u2029": "\\u2029"}


class DecodeError(ValueError):
    """Raised when a JSON payload does not fit the expected event."""


def _kind(value: object) -> str:
    kinds = ((dict, "object"), (bool, "bool"), ((int, float), "number"), (str, "string"), (list, "array"))
    return next((name for types, name in kinds if isinstance(value, types)), "null")


def _reject_constant(name: str) -> None:
    raise DecodeError(f"invalid JSON value {name}")


def _as_str(value: object, field: str) -> str:
    if not isinstance(value, str):
        raise DecodeError(f"cannot unmarshal {_kind(value)} into field {field} of type string")
    return value


def _as_int(value: object, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise DecodeError(f"cannot unmarshal {_kind(value)} into field {field} of type int")
    if not -(2**63) <= value < 2**63:
        raise DecodeError(f"number {value} overflows field {field}")
    return value


def _as_str_list(value: object, field: str) -> tuple[str, ...]:
    if not isinstance(value, list):
        raise DecodeError(f"cannot unmarshal {_kind(value)} into field {field} of type []string")
    return tuple("" if item is None else _as_str(item, field) for item in value)


def _decode(raw: str | bytes, spec: dict, type_name: str) -> dict[str, Any]:
    """Decode a JSON object into field values, matching keys case-insensitively."""
    text = bytes(raw).decode("utf-8", "replace") if isinstance(raw, (bytes, bytearray)) else raw
    try:
        doc = json.loads(text, parse_constant=_reject_constant)
    except json.JSONDecodeError as exc:
        raise DecodeError(f"invalid JSON: {exc}") from exc
    if doc is None:
        return {}
    if not isinstance(doc, dict):
        raise DecodeError(f"cannot unmarshal {_kind(doc)} into {type_name}")
    values: dict[str, Any] = {}
    for key, value in doc.items():
        name = key if key in spec else next((n for n in spec if n.casefold() == key.casefold()), None)
        if name is None:
            continue
        attr, convert = spec[name]
        if value is None:
            if convert is _as_str_list:
                values[attr] = ()
            continue
        values[attr] = convert(value, f"{type_name}.{name}")
    return values


def _marshal(fields: dict[str, object]) -> bytes:
    text = json.dumps(fields, ensure_ascii=False, separators=(",", ":"))
    for char, escape in _ESCAPES.items():
        text = text.replace(char, escape)
    return text.encode("utf-8")


_ORDER = {"orderId": ("order_id", _as_str), "customer": ("customer", _as_str), "amount": ("amount", _as_int)}
_NOTIFICATION = {"id": ("id", _as_str), "order_id": ("order_id", _as_str), "message": ("message", _as_str)}
_ORDER_CONFIRMED = {"id": ("id", _as_str), "customer_id": ("customer_id", _as_str), "items": ("items", _as_str_list)}
_PICKED_AND_PACKED = {**_ORDER_CONFIRMED, "warehouse": ("warehouse", _as_str)}


@dataclass(frozen=True)
class Order:
    """An order as received by the order service."""

    order_id: str = ""
    customer: str = ""
    amount: int = 0

    @classmethod
    def from_json(cls, raw: str | bytes) -> Order:
        return cls(**_decode(raw, _ORDER, cls.__name__))

    def to_json(self) -> bytes:
        return _marshal({"orderId": self.order_id, "customer": self.customer, "amount": self.amount})


@dataclass(frozen=True)
class NotificationEvent:
    """A message to be delivered to the customer about an order."""

    id: str = ""
    order_id: str = ""
    message: str = ""

    @classmethod
    def from_json(cls, raw: str | bytes) -> NotificationEvent:
        return cls(**_decode(raw, _NOTIFICATION, cls.__name__))

    def to_json(self) -> bytes:
        return _marshal({"id": self.id, "order_id": self.order_id, "message": self.message})


@dataclass(frozen=True)
class DeadLetterPayload:
    """Why a message was rejected, with the message itself and where it came from."""

    reason: str = ""
    raw_message: str = ""
    topic: str = ""
    consumer_group: str = ""

    def to_json(self) -> bytes:
        """Encode with keys in sorted order, as dead letters are published."""
        return _marshal(
            {
                "consumer_group": self.consumer_group,
                "raw_message": self.raw_message,
                "reason": self.reason,
                "topic": self.topic,
            }
        )


@dataclass(frozen=True)
class OrderConfirmedEvent:
    """An order that passed inventory checks."""

    id: str = ""
    customer_id: str = ""
    items: tuple[str, ...] = ()

    @classmethod
    def from_json(cls, raw: str | bytes) -> OrderConfirmedEvent:
        return cls(**_decode(raw, _ORDER_CONFIRMED, cls.__name__))


@dataclass(frozen=True)
class OrderPickedAndPacked:
    """An order packed at a warehouse and ready to ship."""

    id: str = ""
    customer_id: str = ""
    items: tuple[str, ...] = ()
    warehouse: str = ""

    @classmethod
    def from_json(cls, raw: str | bytes) -> OrderPickedAndPacked:
        return cls(**_decode(raw, _PICKED_AND_PACKED, cls.__name__))


@dataclass(frozen=True)
class KPIEvent:
    """A single performance measurement."""

    kpi_name: str = ""
    metric_name: str = ""
    value: int = 0
    timestamp: str = ""

    def to_json(self) -> bytes:
        return _marshal(
            {
                "kpi_name": self.kpi_name,
                "metric_name": self.metric_name,
                "value": self.value,
                "timestamp": self.timestamp,
            }
        )