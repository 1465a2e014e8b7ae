"""Command-line entry point for the metrics digest."""

from __future__ import annotations

import argparse
import asyncio
import logging
import os

import structlog

from .collector.fetcher import MetricFetcher
from .config import DigestConfig, load_config, parse_interval
from .errors import ConfigError
from .notifications.notifier import Notifier
from .scheduler.coordinator import CollectionCoordinator
from .scheduler.driver import DigestDriver
from .transport import Transport

logger = structlog.get_logger(__name__)


def configure_logging(log_level: str) -> None:
    level = getattr(logging, str(log_level).upper(), logging.INFO)
    structlog.configure(
        processors=[
            structlog.processors.add_log_level,
            structlog.processors.TimeStamper(fmt="ISO"),
            structlog.dev.ConsoleRenderer(),
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level),
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )
    # Sink URLs may embed bot tokens.
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Periodic Prometheus query digest")
    parser.add_argument("--config", default=None, help="Path to YAML config")
    parser.add_argument("-t", "--interval", default=None, help="Scrape interval (e.g. 24h, 30m, 3600)")
    parser.add_argument("--p8s", default=None, help="Prometheus address")
    parser.add_argument("--notify", default=None, help="Notifications endpoint")
    parser.add_argument("--grafana", default=None, help="Link to Grafana dashboard")
    parser.add_argument("--server", default=None, help="Server name")
    parser.add_argument("--once", action="store_true", help="Run one collection cycle and exit")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (INFO, WARNING, ...)",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> DigestConfig:
    overrides = {
        "interval_seconds": parse_interval(args.interval) if args.interval is not None else None,
        "prometheus_address": args.p8s,
        "notify_address": args.notify,
        "grafana_link": args.grafana,
        "server": args.server,
        "log_level": args.log_level,
    }
    return load_config(args.config, overrides)


async def run(config: DigestConfig, *, once: bool = False) -> int:
    async with Transport(
        parse_mode=config.parse_mode, timeout_seconds=config.request_timeout_seconds
    ) as transport:
        coordinator = CollectionCoordinator(
            config.build_metrics(),
            MetricFetcher(transport, config.prometheus_address),
            Notifier(transport, config.notify_address),
        )
        driver = DigestDriver(coordinator, config.interval_seconds)
        if once:
            return await driver.run_once()
        return await driver.run()


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = config_from_args(args)
    except ConfigError as exc:
        configure_logging(args.log_level or os.getenv("LOG_LEVEL", "INFO"))
        logger.error("Invalid configuration", error=str(exc))
        return 2

    configure_logging(config.log_level)
    logger.info("Starting metrics digest", server=config.server, metrics=len(config.metrics))
    return asyncio.run(run(config, once=bool(args.once)))
