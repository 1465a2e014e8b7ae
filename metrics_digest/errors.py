"""Error types raised by the collection pipeline."""

from __future__ import annotations


class DigestError(Exception):
    """Base class for every error the pipeline raises on purpose."""


class TransportError(DigestError):
    """Network failure or a non-200 response from the backend or sink."""

    def __init__(
        self,
        message: str,
        *,
        method: str,
        address: str,
        status_code: int | None = None,
        body: str = "",
    ):
        super().__init__(message)
        self.method = method
        self.address = address
        self.status_code = status_code
        self.body = body


class ParseError(DigestError):
    """The backend answered with JSON we cannot interpret."""

    def __init__(self, query: str, detail: str):
        super().__init__(f"Cannot parse result of query {query!r}: {detail}")
        self.query = query
        self.detail = detail


class CancellationError(DigestError):
    """The shared cancellation signal fired while a request was in flight."""

    def __init__(self, method: str, address: str):
        super().__init__(f"{method} {address} cancelled")
        self.method = method
        self.address = address


class ConfigError(DigestError):
    """Invalid configuration file or value."""
