"""HTTP front end that accepts orders and publishes them to the order topic."""

from __future__ import annotations

import argparse

from flask import Flask, Response, request

from orderflow.broker import BrokerError, FileBroker, publish
from orderflow.models import DecodeError, Order

ORDER_TOPIC = "OrderReceived"
DEFAULT_PORT = 8080
DEFAULT_DATA_DIR = "orderflow-data"


def _plain(text: str, status: int) -> Response:
    return Response(text, status=status, content_type="text/plain; charset=utf-8")


def _error(text: str, status: int) -> Response:
    response = _plain(text + "\n", status)
    response.headers["X-Content-Type-Options"] = "nosniff"
    return response


def create_app(broker) -> Flask:
    """Build the order service application publishing through the given broker."""
    app = Flask(__name__)

    @app.get("/health")
    def health() -> Response:
        return _plain("Order service is healthy!!", 200)

    @app.post("/order")
    def order() -> Response:
        try:
            received = Order.from_json(request.get_data())
        except DecodeError:
            return _error("Invalid order payload", 400)
        try:
            publish(broker, ORDER_TOPIC, received.to_json().decode("utf-8"))
        except BrokerError as exc:
            return _error(f"Failed to publish order: {exc}", 500)
        return _plain("Order received and published to Kafka!", 201)

    return app


def main(argv: list[str] | None = None) -> int:
    """Serve the order API until interrupted."""
    parser = argparse.ArgumentParser(description="Accept orders over HTTP and publish them.")
    parser.add_argument("--data-dir", default=DEFAULT_DATA_DIR, help="broker directory")
    parser.add_argument("--host", default="0.0.0.0", help="address to listen on")
    parser.add_argument("--port", type=int, default=DEFAULT_PORT, help="port to listen on")
    args = parser.parse_args(argv)

    app = create_app(FileBroker(args.data_dir))
    print(f"Server is running on http://localhost:{args.port}")
    app.run(host=args.host, port=args.port)
    return 0