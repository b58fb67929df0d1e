"""Event-driven order pipeline: HTTP intake plus inventory, warehouse, shipper and notification consumers over in-memory or file-backed topics."""

__version__ = "0.1.0"