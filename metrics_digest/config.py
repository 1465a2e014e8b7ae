"""Configuration management for the metrics digest."""

from __future__ import annotations

import math
import os
import re
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .collector.metric import QueryMetric
from .errors import ConfigError

DEFAULT_CONFIG_PATH = "config/metrics_digest.yaml"

_DURATION_PART_RE = re.compile(r"(\d+(?:\.\d+)?)(ms|h|m|s)")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_interval(value: Any) -> float:
    """Parse seconds (``3600``) or duration text (``24h``, ``1h30m``, ``500ms``)."""
    if isinstance(value, bool):
        raise ConfigError(f"Invalid interval: {value!r}")
    if isinstance(value, (int, float)):
        seconds = float(value)
    else:
        s = str(value or "").strip().lower()
        if not s:
            raise ConfigError("Interval is empty")
        try:
            seconds = float(s)
        except ValueError:
            pos = 0
            seconds = 0.0
            for match in _DURATION_PART_RE.finditer(s):
                if match.start() != pos:
                    break
                seconds += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
                pos = match.end()
            if pos != len(s):
                raise ConfigError(f"Invalid interval: {value!r}") from None
    if not math.isfinite(seconds) or seconds <= 0:
        raise ConfigError(f"Interval must be positive and finite: {value!r}")
    return seconds


class QueryMetricConfig(BaseModel):
    """One backend query to report on."""
    query: str = Field(description="PromQL instant query")
    description: str = Field(description="Report title; may contain {server}")
    label_field: str = Field(default="queue", description="Series label naming each line")
    name: str | None = Field(default=None, description="Identifier used in logs")


def _default_metrics() -> list[QueryMetricConfig]:
    return [
        QueryMetricConfig(
            query="rabbitmq_queue_messages",
            description="Queues on Hawk ({server}) 🌀",
        )
    ]


class DigestConfig(BaseModel):
    """Main configuration for the digest service."""

    # Scheduling
    interval_seconds: float = Field(default=24 * 3600, description="Scrape interval in seconds")

    # Endpoints
    prometheus_address: str = Field(default="http://localhost:9090", description="Prometheus address")
    notify_address: str = Field(default="", description="Notifications endpoint")
    request_timeout_seconds: float = Field(default=30.0, description="Per-request timeout")
    parse_mode: str = Field(default="HTML", description="Formatting hint sent with each message")

    # Report
    grafana_link: str | None = Field(default=None, description="Link to Grafana dashboard")
    server: str = Field(default="prod", description="Server name shown in report titles")

    log_level: str = Field(default="INFO", description="Logging level")

    metrics: list[QueryMetricConfig] = Field(default_factory=_default_metrics)

    @field_validator("interval_seconds", mode="before")
    @classmethod
    def _coerce_interval(cls, value: Any) -> float:
        return parse_interval(value)

    def dashboard_line(self) -> str | None:
        if not self.grafana_link:
            return None
        return f"<a href='{self.grafana_link}'>See Details</a>"

    def build_metrics(self) -> list[QueryMetric]:
        link = self.dashboard_line()
        return [
            QueryMetric(
                query=entry.query,
                description=entry.description.replace("{server}", self.server),
                label_field=entry.label_field,
                dashboard_link=link,
                name=entry.name or entry.query,
            )
            for entry in self.metrics
        ]


def load_config(
    config_path: str | None = None, overrides: dict[str, Any] | None = None
) -> DigestConfig:
    """Load configuration from file, then environment variables, then explicit overrides."""
    if config_path is None:
        config_path = os.getenv("METRICS_DIGEST_CONFIG", DEFAULT_CONFIG_PATH)

    config_data: dict[str, Any] = {}

    if os.path.exists(config_path):
        with open(config_path, "r", encoding="utf-8") as f:
            try:
                loaded = yaml.safe_load(f) or {}
            except yaml.YAMLError as exc:
                raise ConfigError(f"Cannot read {config_path}: {exc}") from exc
        if not isinstance(loaded, dict):
            raise ConfigError("Config YAML must be a mapping")
        config_data.update(loaded)

    env_overrides = {
        "interval_seconds": os.getenv("DIGEST_INTERVAL"),
        "prometheus_address": os.getenv("PROMETHEUS_ADDR"),
        "notify_address": os.getenv("NOTIFY_ADDR"),
        "grafana_link": os.getenv("GRAFANA_LINK"),
        "server": os.getenv("DIGEST_SERVER"),
        "log_level": os.getenv("LOG_LEVEL"),
    }
    for key, value in env_overrides.items():
        if value is not None:
            config_data[key] = value

    for key, value in (overrides or {}).items():
        if value is not None:
            config_data[key] = value

    try:
        return DigestConfig(**config_data)
    except ValidationError as exc:
        raise ConfigError(str(exc)) from exc
