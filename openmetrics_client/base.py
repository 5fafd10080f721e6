"""Base class shared by every metric type."""
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Mapping, Optional, TYPE_CHECKING

from openmetrics_client.errors import MetricError
from openmetrics_client.exposition import render_family
from openmetrics_client.labels import LabelKey, canonical_key, check_labels, validate_label_names
from openmetrics_client.series import SeriesPoint, SeriesStore

if TYPE_CHECKING:
    from openmetrics_client.registry import Registry

logger = logging.getLogger(__name__)

METRIC_NAME_RE = re.compile(r'^[a-zA-Z_:][a-zA-Z0-9_:]*$')


def effective_name(name: str, unit: Optional[str] = None) -> str:
    """Append `_<unit>` to the name unless it already ends with it."""
    if unit and not name.endswith(f"_{unit}"):
        return f"{name}_{unit}"
    return name


class LabeledMetric:
    """
    Handle bound to one series of a metric.

    Carries the owning metric and the resolved series key; mutators delegate
    to the metric's keyed operations.
    """

    __slots__ = ("metric", "key")

    def __init__(self, metric: "BaseMetric", key: LabelKey):
        self.metric = metric
        self.key = key

    @property
    def labels(self) -> Dict[str, str]:
        return dict(self.key)

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.metric.name!r}, {self.labels!r})"


class BaseMetric(ABC):
    """Base class for all metric types."""

    kind = "unknown"
    handle_class = LabeledMetric
    allows_unit = True

    def __init__(
        self,
        name: str,
        help: str,
        unit: Optional[str] = None,
        label_names: Iterable[str] = (),
    ):
        if unit and not self.allows_unit:
            raise MetricError(f"{self.kind} metrics cannot have a unit: {name}")
        if help is None:
            raise MetricError(f"Help text is required for metric {name}")

        self.name = effective_name(name, unit)
        if not METRIC_NAME_RE.match(self.name):
            raise MetricError(f"Invalid metric name: {self.name}")

        self.help = help
        self.unit = unit or None
        self.label_names = validate_label_names(label_names)
        self.registry: Optional["Registry"] = None
        self._series: SeriesStore[Any]

    def _register(self, registry: Optional["Registry"]) -> None:
        """Register with the given registry; called last in each constructor."""
        logger.debug(f"Created {self.kind} metric {self.name} with labels {list(self.label_names)}")
        if registry is not None:
            registry.register(self)
            self.registry = registry

    def _key(self, labels: Optional[Mapping[str, str]]) -> LabelKey:
        """Validate labels against the declared names and return the series key."""
        return canonical_key(check_labels(self.label_names, labels))

    def labels(self, labels: Optional[Mapping[str, str]] = None, **kwargs: str) -> Any:
        """Return a handle bound to the series identified by the given label values."""
        values = dict(labels or {})
        values.update(kwargs)
        return self.handle_class(self, self._key(values))

    def remove(self, labels: Optional[Mapping[str, str]] = None) -> bool:
        """Drop one series entirely; returns whether it existed."""
        return self._series.remove(self._key(labels)) is not None

    def series_count(self) -> int:
        return len(self._series)

    def full_name(self, prefix: Optional[str] = None) -> str:
        """Metric name with the optional registry prefix."""
        return f"{prefix}_{self.name}" if prefix else self.name

    @abstractmethod
    def collect(self, prefix: Optional[str] = None) -> List[SeriesPoint]:
        """Return every sample point of every series."""
        pass

    def render(self, prefix: Optional[str] = None) -> str:
        """Render this metric as an OpenMetrics family (no terminator)."""
        return render_family(self.full_name(prefix), self.kind, self.help, self.unit, self.collect(prefix))

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.name!r})"
