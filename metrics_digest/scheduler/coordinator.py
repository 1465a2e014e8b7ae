"""Per-cycle fan-out of fetch, notify and clear across all metrics."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass

import structlog

from ..collector.fetcher import MetricFetcher
from ..collector.metric import QueryMetric
from ..errors import DigestError
from ..notifications.notifier import Notifier

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class UnitOutcome:
    metric: QueryMetric
    error: DigestError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class CycleReport:
    outcomes: list[UnitOutcome]

    @property
    def failures(self) -> list[UnitOutcome]:
        return [o for o in self.outcomes if not o.ok]

    @property
    def first_error(self) -> DigestError | None:
        for outcome in self.outcomes:
            if outcome.error is not None:
                return outcome.error
        return None

    def raise_for_errors(self) -> None:
        error = self.first_error
        if error is not None:
            raise error


class CollectionCoordinator:
    """Runs one concurrent unit per metric and reports the cycle outcome.

    A unit is fetch, then render and notify on success, then clear. The
    cycle only ends once every unit has finished all three steps.
    """

    def __init__(self, metrics: list[QueryMetric], fetcher: MetricFetcher, notifier: Notifier):
        self.metrics = metrics
        self.fetcher = fetcher
        self.notifier = notifier

    async def _run_unit(self, metric: QueryMetric, cancel: asyncio.Event | None) -> DigestError | None:
        try:
            await self.fetcher.fetch(metric, cancel)
            await self.notifier.notify(metric.render(), cancel)
        except DigestError as exc:
            logger.warning("Metric unit failed", metric=metric.name, error=str(exc))
            return exc
        finally:
            metric.clear()
        return None

    async def run_cycle(self, cancel: asyncio.Event | None = None) -> CycleReport:
        logger.info("Starting collection cycle", metrics=len(self.metrics))
        results = await asyncio.gather(
            *(self._run_unit(metric, cancel) for metric in self.metrics),
            return_exceptions=True,
        )

        outcomes: list[UnitOutcome] = []
        for metric, result in zip(self.metrics, results):
            if isinstance(result, BaseException) and not isinstance(result, DigestError):
                # Every unit has finished by now; surface the bug.
                raise result
            outcomes.append(UnitOutcome(metric=metric, error=result))

        report = CycleReport(outcomes=outcomes)
        logger.info(
            "Collection cycle finished",
            metrics=len(outcomes),
            failed=[o.metric.name for o in report.failures],
        )
        return report

    async def collect(self, cancel: asyncio.Event | None = None) -> None:
        """Run one cycle and raise its first error, in configured metric order.

        Later errors of the same cycle are logged but not raised; use
        ``run_cycle`` to inspect all of them.
        """
        report = await self.run_cycle(cancel)
        report.raise_for_errors()
