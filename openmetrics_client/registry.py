"""Metric registry: uniqueness table and ordered rendering."""
import logging
import threading
from typing import Dict, List, Optional, Union

from openmetrics_client.base import BaseMetric, effective_name
from openmetrics_client.errors import DuplicateMetricError
from openmetrics_client.exposition import CONTENT_TYPE, render_document

logger = logging.getLogger(__name__)


def identity_key(name: str, unit: Optional[str] = None) -> str:
    """Registry identity of a metric: its effective name."""
    return effective_name(name, unit)


class Registry:
    """
    Collects metrics, enforces unique names and renders them in registration
    order as one OpenMetrics document.
    """

    content_type = CONTENT_TYPE

    def __init__(self, prefix: Optional[str] = None, auto_register: bool = False):
        self.prefix = prefix or None
        self.auto_register = auto_register
        self._metrics: Dict[str, BaseMetric] = {}
        self._lock = threading.Lock()

    def register(self, metric: BaseMetric) -> None:
        """Add a metric; raises DuplicateMetricError if its name is taken."""
        key = identity_key(metric.name)
        with self._lock:
            if key in self._metrics:
                raise DuplicateMetricError(f"Metric with name {metric.name} already registered")
            self._metrics[key] = metric

        if self.auto_register:
            metric.registry = self
        logger.info(f"Registered {metric.kind} metric: {self._display_name(metric)}")

    def unregister(self, metric: Union[str, BaseMetric]) -> bool:
        """Remove a metric by name or by reference; returns whether anything was removed."""
        with self._lock:
            if isinstance(metric, BaseMetric):
                key = identity_key(metric.name)
                if self._metrics.get(key) is not metric:
                    return False
            else:
                key = identity_key(metric)
                if key not in self._metrics:
                    return False
            removed = self._metrics.pop(key)

        if removed.registry is self:
            removed.registry = None
        logger.info(f"Unregistered metric: {self._display_name(removed)}")
        return True

    def get_metric(self, name: str) -> Optional[BaseMetric]:
        with self._lock:
            return self._metrics.get(identity_key(name))

    def get_metrics(self) -> List[BaseMetric]:
        """All registered metrics in registration order."""
        with self._lock:
            return list(self._metrics.values())

    def render(self) -> str:
        """Render every metric followed by the # EOF terminator."""
        return render_document(m.render(self.prefix) for m in self.get_metrics())

    def clear(self) -> None:
        with self._lock:
            count = len(self._metrics)
            self._metrics.clear()
        logger.info(f"Cleared {count} metrics from registry")

    def _display_name(self, metric: BaseMetric) -> str:
        return metric.full_name(self.prefix)

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return identity_key(name) in self._metrics

    def __len__(self) -> int:
        with self._lock:
            return len(self._metrics)
