"""Summary metric: sliding-window quantiles over retained observations."""
import logging
import math
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, TYPE_CHECKING

import numpy as np

from openmetrics_client.base import BaseMetric, LabeledMetric
from openmetrics_client.errors import LabelError, MetricError
from openmetrics_client.exposition import format_value
from openmetrics_client.labels import LabelKey
from openmetrics_client.series import SeriesPoint, SeriesStore

if TYPE_CHECKING:
    from openmetrics_client.registry import Registry

logger = logging.getLogger(__name__)

DEFAULT_QUANTILES: Tuple[float, ...] = (0.5, 0.9, 0.99)
DEFAULT_MAX_AGE_SECONDS = 600.0
DEFAULT_AGE_BUCKETS = 5


@dataclass
class SummaryBucket:
    """Observations collected during one rotation slot."""
    values: List[float] = field(default_factory=list)
    sum: float = 0.0
    count: int = 0
    timestamp: float = field(default_factory=time.time)


@dataclass
class SummaryValue:
    history: List[SummaryBucket]
    current: SummaryBucket
    sum: float
    count: int
    created: float
    updated: float


@dataclass(frozen=True)
class SummaryData:
    sum: float
    count: int
    buckets: int
    current_bucket_size: int
    max_age_seconds: float
    created: float
    updated: float


def _new_summary_value() -> SummaryValue:
    now = time.time()
    return SummaryValue([], SummaryBucket(timestamp=now), 0.0, 0, now, now)


def compute_quantiles(values: Sequence[float], quantiles: Sequence[float]) -> List[float]:
    """
    Linear-interpolated quantiles over the given samples.

    For n samples the position of quantile q is p = q * (n - 1); the result
    interpolates between the two nearest ranks. NaN for every quantile when
    there are no samples.
    """
    if len(values) == 0:
        return [math.nan] * len(quantiles)
    result = np.quantile(np.asarray(values, dtype=float), list(quantiles), method="linear")
    return [float(v) for v in result]


class RotationScheduler:
    """
    Single sweep thread driving the rotation of every series of one Summary.

    Each scheduled series has its own deadline; the thread sleeps until the
    earliest one, then calls ``rotate(key, record)`` outside its own lock.
    The record is passed back so a rotation that was due for a since-replaced
    record can be recognised as stale.
    """

    def __init__(self, name: str, interval: float, rotate: Callable[[LabelKey, SummaryValue], None]):
        self.name = name
        self.interval = interval
        self._rotate = rotate
        self._cond = threading.Condition()
        self._deadlines: Dict[LabelKey, Tuple[float, SummaryValue]] = {}
        self._thread: Optional[threading.Thread] = None
        self._stopped = False

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def scheduled(self) -> int:
        with self._cond:
            return len(self._deadlines)

    def schedule(self, key: LabelKey, record: SummaryValue) -> None:
        """(Re)start the rotation schedule of one series."""
        with self._cond:
            if self._stopped:
                return
            self._deadlines[key] = (time.monotonic() + self.interval, record)
            if self._thread is None:
                self._thread = threading.Thread(
                    target=self._run,
                    name=f"summary-rotation-{self.name}",
                    daemon=True,
                )
                self._thread.start()
                logger.debug(f"Started rotation thread for summary {self.name} (interval {self.interval:.3f}s)")
            self._cond.notify()

    def cancel(self, key: LabelKey) -> None:
        with self._cond:
            self._deadlines.pop(key, None)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """Stop the sweep thread. Safe to call more than once."""
        with self._cond:
            if self._stopped:
                return
            self._stopped = True
            self._deadlines.clear()
            thread = self._thread
            self._cond.notify_all()

        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout)
        logger.debug(f"Stopped rotation thread for summary {self.name}")

    def _due(self) -> Optional[List[Tuple[LabelKey, SummaryValue]]]:
        """Wait until at least one series is due; None once stopped. Caller holds the lock."""
        while not self._stopped:
            now = time.monotonic()
            due = []
            next_deadline = None

            for key, (deadline, record) in list(self._deadlines.items()):
                if deadline <= now:
                    due.append((key, record))
                    deadline += self.interval
                    if deadline <= now:
                        # Missed slots are skipped, not replayed
                        deadline = now + self.interval
                    self._deadlines[key] = (deadline, record)
                if next_deadline is None or deadline < next_deadline:
                    next_deadline = deadline

            if due:
                return due
            self._cond.wait(None if next_deadline is None else next_deadline - now)
        return None

    def _run(self) -> None:
        while True:
            with self._cond:
                due = self._due()
            if due is None:
                return

            for key, record in due:
                try:
                    self._rotate(key, record)
                except Exception as e:
                    logger.error(f"Error rotating summary {self.name} series {dict(key)}: {e}", exc_info=True)


class SummaryChild(LabeledMetric):
    """Summary handle bound to one label set."""

    __slots__ = ()

    def observe(self, value: float) -> None:
        self.metric._observe(value, self.key)

    def reset(self) -> None:
        self.metric._reset(self.key)

    def get_snapshot(self) -> SummaryData:
        return self.metric._snapshot(self.key)


class Summary(BaseMetric):
    """
    Quantiles over a sliding time window, per label set.

    Each series keeps a list of closed buckets plus one open bucket. Every
    ``max_age_seconds / age_buckets`` the open bucket is closed, buckets
    opened before ``now - max_age_seconds`` are dropped, and sum/count are
    recomputed from what remains. A series' schedule starts with its first
    observation.

    Call ``destroy()`` (or use the summary as a context manager) to stop the
    background rotation thread.
    """

    kind = "summary"
    handle_class = SummaryChild

    def __init__(
        self,
        name: str,
        help: str,
        unit: Optional[str] = None,
        label_names: Iterable[str] = (),
        quantiles: Optional[Sequence[float]] = None,
        max_age_seconds: float = DEFAULT_MAX_AGE_SECONDS,
        age_buckets: int = DEFAULT_AGE_BUCKETS,
        registry: Optional["Registry"] = None,
    ):
        super().__init__(name, help, unit, label_names)
        if "quantile" in self.label_names:
            raise LabelError("Label name 'quantile' is reserved for summary metrics")

        self.quantiles = self._validate_quantiles(DEFAULT_QUANTILES if quantiles is None else quantiles)
        if not math.isfinite(max_age_seconds) or max_age_seconds <= 0:
            raise MetricError(f"max_age_seconds must be a positive number, got {max_age_seconds}")
        if not math.isfinite(age_buckets) or int(age_buckets) != age_buckets or age_buckets < 1:
            raise MetricError(f"age_buckets must be a positive integer, got {age_buckets}")

        self.max_age_seconds = float(max_age_seconds)
        self.age_buckets = int(age_buckets)
        self.rotation_interval = self.max_age_seconds / self.age_buckets

        self._destroyed = False
        self._series: SeriesStore[SummaryValue] = SeriesStore(_new_summary_value)
        self._scheduler = RotationScheduler(self.name, self.rotation_interval, self._rotate)
        self._register(registry)

    @staticmethod
    def _validate_quantiles(quantiles: Sequence[float]) -> Tuple[float, ...]:
        result = tuple(float(q) for q in quantiles)
        for q in result:
            if not 0 < q < 1:
                raise MetricError(f"Quantile {q} must be between 0 and 1")
        return result

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    def observe(self, value: float, labels: Optional[Mapping[str, str]] = None) -> None:
        """Record one non-negative finite observation."""
        self._observe(value, self._key(labels))

    def reset(self, labels: Optional[Mapping[str, str]] = None) -> None:
        """Replace one series with an empty window and restart its rotation schedule."""
        self._reset(self._key(labels))

    def get_snapshot(self, labels: Optional[Mapping[str, str]] = None) -> SummaryData:
        return self._snapshot(self._key(labels))

    def remove(self, labels: Optional[Mapping[str, str]] = None) -> bool:
        key = self._key(labels)
        with self._series.lock:
            self._scheduler.cancel(key)
            return self._series.remove(key) is not None

    def _observe(self, value: float, key: LabelKey) -> None:
        if not math.isfinite(value) or value < 0:
            raise MetricError(f"Summary {self.name} observations must be non-negative finite numbers, got {value}")

        with self._series.lock:
            if self._destroyed:
                logger.debug(f"Ignoring observation on destroyed summary {self.name}")
                return
            record = self._series.get(key)
            if record is None:
                record = self._series.get_or_create(key)
                self._scheduler.schedule(key, record)

            bucket = record.current
            bucket.values.append(value)
            bucket.sum += value
            bucket.count += 1
            record.sum += value
            record.count += 1
            record.updated = time.time()

    def _reset(self, key: LabelKey) -> None:
        with self._series.lock:
            if self._destroyed:
                return
            self._scheduler.cancel(key)
            record = self._series.reset(key)
            self._scheduler.schedule(key, record)

    def _rotate(self, key: LabelKey, record: SummaryValue) -> None:
        with self._series.lock:
            if self._destroyed or self._series.get(key) is not record:
                return

            record.history.append(record.current)
            now = time.time()
            cutoff = now - self.max_age_seconds
            record.history = [b for b in record.history if b.timestamp >= cutoff]
            record.sum = sum(b.sum for b in record.history)
            record.count = sum(b.count for b in record.history)
            record.current = SummaryBucket(timestamp=now)
            record.updated = now

    def _snapshot(self, key: LabelKey) -> SummaryData:
        with self._series.lock:
            record = self._series.get(key)
            if record is None:
                return SummaryData(0.0, 0, 0, 0, self.max_age_seconds, 0.0, 0.0)
            return SummaryData(
                record.sum,
                record.count,
                len(record.history),
                len(record.current.values),
                self.max_age_seconds,
                record.created,
                record.updated,
            )

    def collect(self, prefix: Optional[str] = None) -> List[SeriesPoint]:
        name = self.full_name(prefix)

        # Copy under the lock, sort outside it
        series = []

        def copy(key: LabelKey, record: SummaryValue) -> None:
            values = [v for b in record.history for v in b.values] + list(record.current.values)
            series.append((key, values, record.sum, record.count, record.created))

        self._series.for_each(copy)

        points = []
        for key, values, total, count, created in series:
            for q, v in zip(self.quantiles, compute_quantiles(values, self.quantiles)):
                points.append(SeriesPoint(name, (("quantile", format_value(q)),) + key, v))
            points.append(SeriesPoint(f"{name}_sum", key, total))
            points.append(SeriesPoint(f"{name}_count", key, count))
            points.append(SeriesPoint(f"{name}_created", key, created))
        return points

    def destroy(self) -> None:
        """Stop every series' rotation and clear all data. Idempotent."""
        with self._series.lock:
            if self._destroyed:
                return
            self._destroyed = True
            self._series.clear()
        self._scheduler.stop()
        logger.info(f"Destroyed summary {self.name}")

    def __enter__(self) -> "Summary":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.destroy()
