from __future__ import annotations

import asyncio
import json
from typing import Any

import httpx
import structlog

from ..errors import ParseError
from ..transport import Transport
from .metric import LabelValue, QueryMetric, is_zero_reading

logger = structlog.get_logger(__name__)


def query_url(base_url: str, query: str) -> str:
    return str(httpx.URL(f"{base_url.rstrip('/')}/api/v1/query", params={"query": query}))


def extract_results(payload: bytes, *, query: str) -> list[Any]:
    """Return ``data.result`` from a Prometheus instant-query response."""
    try:
        data = json.loads(payload)
    except (ValueError, UnicodeDecodeError) as exc:
        raise ParseError(query, f"invalid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise ParseError(query, "response is not a JSON object")
    inner = data.get("data")
    if not isinstance(inner, dict):
        raise ParseError(query, "missing 'data' object")
    result = inner.get("result")
    if not isinstance(result, list):
        raise ParseError(query, "missing 'data.result' array")
    return result


def parse_label_values(results: list[Any], *, label_field: str) -> list[LabelValue]:
    """Keep results that have a label and a non-zero reading, in input order."""
    pairs: list[LabelValue] = []
    for res in results:
        if not isinstance(res, dict):
            continue
        labels = res.get("metric")
        label = labels.get(label_field) if isinstance(labels, dict) else None
        if not isinstance(label, str) or not label:
            continue
        sample = res.get("value")
        if not isinstance(sample, list) or len(sample) < 2:
            continue
        value = sample[1]
        if not isinstance(value, str) or not value:
            continue
        if is_zero_reading(value):
            continue
        pairs.append(LabelValue(label=label, value=value))
    return pairs


class MetricFetcher:
    """Runs a metric's query against the backend and stores the parsed pairs."""

    def __init__(self, transport: Transport, prometheus_address: str):
        self.transport = transport
        self.prometheus_address = prometheus_address

    async def fetch(self, metric: QueryMetric, cancel: asyncio.Event | None = None) -> None:
        url = query_url(self.prometheus_address, metric.query)
        payload = await self.transport.send("GET", url, cancel=cancel)
        results = extract_results(payload, query=metric.query)
        metric.values = parse_label_values(results, label_field=metric.label_field)
        logger.info(
            "Fetched metric",
            metric=metric.name,
            results=len(results),
            kept=len(metric.values),
        )
