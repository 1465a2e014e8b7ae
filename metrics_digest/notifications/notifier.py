"""Delivery of rendered reports to the notification sink."""

from __future__ import annotations

import asyncio

import structlog

from ..errors import ConfigError
from ..transport import Transport

logger = structlog.get_logger(__name__)


class Notifier:
    """Posts report text to the configured sink endpoint."""

    def __init__(self, transport: Transport, notify_address: str | None):
        """Initialize notifier.

        Args:
            transport: Transport used for the form-encoded POST
            notify_address: Sink URL; when empty, every send fails with ConfigError
        """
        self.transport = transport
        self.notify_address = notify_address or ""
        if not self.notify_address:
            logger.warning("Notification endpoint not configured")

    def is_configured(self) -> bool:
        return bool(self.notify_address)

    async def notify(self, report: str, cancel: asyncio.Event | None = None) -> None:
        """Send one report. Errors propagate unchanged; there is no retry.

        Raises:
            ConfigError: no sink address is configured.
        """
        if not self.is_configured():
            raise ConfigError("Notification endpoint not configured (set --notify or NOTIFY_ADDR)")

        await self.transport.send("POST", self.notify_address, report, cancel=cancel)
        logger.info("Report sent", chars=len(report))
