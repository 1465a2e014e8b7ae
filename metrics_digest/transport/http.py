"""HTTP transport shared by the fetcher and the notifier."""

from __future__ import annotations

import asyncio
from typing import Any

import httpx
import structlog

from ..errors import CancellationError, TransportError

logger = structlog.get_logger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
MAX_ERROR_BODY_CHARS = 2000


class Transport:
    """Single-attempt HTTP exchange that can be aborted by a shared event.

    GET requests carry no body. POST requests send ``body`` as the ``message``
    form field next to a fixed ``parse_mode`` hint.
    """

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        *,
        parse_mode: str = "HTML",
        timeout_seconds: float = 30.0,
    ):
        self._owns_client = client is None
        self.client = client or httpx.AsyncClient()
        self.parse_mode = parse_mode
        self.timeout_seconds = timeout_seconds

    async def __aenter__(self) -> "Transport":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self.client.aclose()

    def _request_kwargs(self, method: str, body: str) -> dict[str, Any]:
        kwargs: dict[str, Any] = {"timeout": self.timeout_seconds}
        if method == "POST":
            kwargs["data"] = {"message": body, "parse_mode": self.parse_mode}
            kwargs["headers"] = {"Content-Type": FORM_CONTENT_TYPE}
        return kwargs

    async def _exchange(self, method: str, address: str, body: str) -> bytes:
        try:
            async with self.client.stream(method, address, **self._request_kwargs(method, body)) as resp:
                content = await resp.aread()
        except httpx.HTTPError as exc:
            raise TransportError(
                f"{method} {address} failed: {type(exc).__name__}: {exc}",
                method=method,
                address=address,
            ) from exc

        if resp.status_code != httpx.codes.OK:
            text = content.decode("utf-8", errors="replace")[:MAX_ERROR_BODY_CHARS]
            logger.warning("Unexpected response status", method=method, status_code=resp.status_code)
            raise TransportError(
                f"received code {resp.status_code}; body: {text}",
                method=method,
                address=address,
                status_code=resp.status_code,
                body=text,
            )
        return content

    async def send(
        self,
        method: str,
        address: str,
        body: str = "",
        *,
        cancel: asyncio.Event | None = None,
    ) -> bytes:
        """Send one request and return the raw response body.

        Raises:
            TransportError: network failure or a status other than 200.
            CancellationError: ``cancel`` was set before the body was fully read.
        """
        method = method.upper()
        if cancel is None:
            return await self._exchange(method, address, body)
        if cancel.is_set():
            raise CancellationError(method, address)

        exchange = asyncio.ensure_future(self._exchange(method, address, body))
        waiter = asyncio.ensure_future(cancel.wait())
        try:
            done, _pending = await asyncio.wait({exchange, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            exchange.cancel()
            await asyncio.gather(exchange, return_exceptions=True)
            raise
        finally:
            waiter.cancel()

        if exchange in done:
            return exchange.result()

        # Leaving the stream context on cancellation closes the connection.
        exchange.cancel()
        await asyncio.gather(exchange, return_exceptions=True)
        raise CancellationError(method, address)
