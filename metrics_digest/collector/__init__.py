"""Query metrics and the fetcher that fills them from the backend."""

from .fetcher import MetricFetcher
from .metric import LabelValue, QueryMetric

__all__ = ["MetricFetcher", "LabelValue", "QueryMetric"]
