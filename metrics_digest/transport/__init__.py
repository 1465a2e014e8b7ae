"""HTTP transport for backend queries and sink notifications."""

from .http import Transport

__all__ = ["Transport"]
