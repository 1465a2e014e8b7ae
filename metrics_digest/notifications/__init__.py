"""Notification delivery for rendered reports."""

from .notifier import Notifier

__all__ = ["Notifier"]
