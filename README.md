# orderflow

orderflow is a small event-driven order pipeline. One HTTP service accepts
orders, and four consumers pass them along through named topics:

| Stage | Reads topic | Writes topics |
|-------|-------------|---------------|
| order service (HTTP) | none | `OrderReceived` |
| inventory | `OrderReceived` | `OrderConfirmed`, `DeadLetterQueue`, `InventoryKPI` |
| warehouse | `OrderConfirmed` | `Notification`, `DeadLetterQueue`, `LatencyKPI` |
| shipper | `OrderPickedAndPacked` | `Notification`, `DeadLetterQueue` |
| notification | `Notification` | `DeadLetterQueue` |

Each consumer handles a given id only once. The inventory, warehouse and
shipper consumers key on the order id, and the notification consumer keys on
the event id. This memory of seen ids lasts only as long as the process.

Consumers send messages they cannot parse to `DeadLetterQueue`. The warehouse
and shipper consumers do the same when they fail to publish a notification.
The inventory consumer also rejects orders that have no `orderId`, and orders
it cannot forward to `OrderConfirmed`.

## Installation

```
pip install .
```

To run the tests, install the test extra and run pytest:

```
pip install .[test]
pytest
```

## Running the services

Each stage has its own command:

```
orderflow-order-service
orderflow-inventory
orderflow-notification
orderflow-warehouse
orderflow-shipper
```

Every command takes `--data-dir`, the directory that holds the topics. Its
default is `orderflow-data`. Start all stages with the same directory so that
they share topics. The consumers run until interrupted with Ctrl-C.

`orderflow-order-service` also accepts `--host` (default `0.0.0.0`) and
`--port` (default `8080`). It serves two endpoints:

- `GET /health` returns `200` with the body `Order service is healthy!!`.
- `POST /order` takes a JSON body such as
  `{"orderId": "o-1", "customer": "Alice", "amount": 3}` and publishes it to
  `OrderReceived`. It returns `201` on success, `400` with
  `Invalid order payload` if the body is not a valid order, and `500` if
  publishing fails.

The inventory consumer counts the orders it confirms. Every 60 seconds it
publishes that count to `InventoryKPI` as a `ConfirmedOrders` /
`orders_per_minute` event, but only when the count is non-zero. Each rejected
order adds an `InventoryError` / `error_per_minute` event with value 1.

For each order it handles, the warehouse consumer publishes an
`OrderProcessingLatency` / `latency_ms` event to `LatencyKPI`.

## Brokers

Every stage talks to a broker from `orderflow.broker`:

- `InMemoryBroker()` keeps topics in process memory. It suits tests and
  single-process use.
- `FileBroker(root)` keeps each topic as a JSON-lines file under `root` and
  guards it with a file lock. Separately started services can share it. The
  command-line services use this broker.

Topic names may contain only letters, digits, `.`, `_` and `-`.

- `broker.writer(topic)` returns a `Writer`. `Writer.write_messages(*messages)`
  appends `Message` objects and returns them with topic, offset and time
  filled in.
- `broker.reader(topic, group_id)` returns a `Reader`. Readers that share a
  group id share one position. A reader with no group starts at the beginning
  and keeps its own position. `Reader.read_message(timeout)` returns the next
  message, or `None` if nothing arrives within `timeout` seconds.
- `broker.messages(topic)` lists everything the topic holds.
- `publish(broker, topic, message)` sends one text message under the key
  `order-key`.

Problems with writing or reading, and use of a closed writer or reader, raise
`BrokerError`.

## Using the pieces from Python

The HTTP application is an ordinary Flask app:

```python
from orderflow.broker import InMemoryBroker
from orderflow.order_service import create_app

broker = InMemoryBroker()
app = create_app(broker)

client = app.test_client()
response = client.post("/order", json={"orderId": "o-1", "customer": "Alice", "amount": 3})
print(response.status_code)          # 201
print(broker.messages("OrderReceived"))
```

You can drive each consumer stage one message at a time. You can also run it
against a reader until a `threading.Event` is set:

- `InventoryService(confirmed, dlq, kpi, notification)` with `handle_order`,
  `send_kpi_event`, `flush_confirmed_count` and `run(reader, stop)`
- `WarehouseService(notification_writer, dlq_writer, latency_writer)` with
  `handle_order_message` and `run(reader, stop)`
- `ShipperService(notification_writer, dlq_writer)` with `handle_message` and
  `run(reader, stop)`
- `NotificationService(dlq_writer)` with `is_duplicate`, `mark_as_processed`,
  `process_notification` and `consume(reader, stop)`

The warehouse, shipper and notification handlers return the notification event
they produced. They return `None` when the message was rejected or was a
duplicate.

The event types the stages exchange are defined in `orderflow.models`:
`Order`, `OrderConfirmedEvent`, `OrderPickedAndPacked`, `NotificationEvent`,
`KPIEvent` and `DeadLetterPayload`. A payload that does not fit its event
raises `DecodeError`. The helpers that build and send dead letters are in
`orderflow.dlq`: `notification_dlq_payload`, `publish_notification_dlq`,
`publish_raw` and `inventory_dlq_message`.

## What it does not do

- Topics live in memory or in local files. There is no network message broker.
- No stage publishes to `OrderPickedAndPacked`. The shipper consumer only acts
  on messages that something else writes to that topic.
- The inventory consumer is given a `Notification` writer but never writes to
  it.
- The notification consumer only logs each notification. It sends no e-mail,
  SMS or other message to customers.
- Orders are not stored anywhere beyond the topics themselves.