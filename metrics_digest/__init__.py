"""Periodic Prometheus query digest delivered to a notification sink."""

__version__ = "0.1.0"
