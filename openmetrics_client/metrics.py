"""Metric types: per-series state machines and their labeled handles."""
import bisect
import logging
import math
import time
from abc import abstractmethod
from dataclasses import dataclass
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, TYPE_CHECKING

from openmetrics_client.base import BaseMetric, LabeledMetric
from openmetrics_client.errors import LabelError, MetricError, UnknownStateError
from openmetrics_client.exposition import format_value
from openmetrics_client.labels import EMPTY_KEY, LabelKey
from openmetrics_client.series import SeriesPoint, SeriesStore

if TYPE_CHECKING:
    from openmetrics_client.registry import Registry

logger = logging.getLogger(__name__)

DEFAULT_BUCKETS: Tuple[float, ...] = (0.1, 0.5, 1, 5, 10)


# --------------------------------------------------------------------------
# Series records and read-only snapshots
# --------------------------------------------------------------------------

@dataclass
class CounterValue:
    value: float
    created: float
    updated: float


@dataclass(frozen=True)
class CounterData:
    value: float
    created: float
    updated: float


@dataclass
class GaugeValue:
    value: float
    updated: float


@dataclass(frozen=True)
class GaugeData:
    value: float
    updated: float


@dataclass
class HistogramValue:
    counts: List[float]  # cumulative, one per boundary plus +Inf last
    sum: float
    count: float
    created: float
    updated: float


@dataclass(frozen=True)
class HistogramData:
    buckets: Tuple[float, ...]
    counts: Dict[str, float]
    sum: float
    count: float
    created: float
    updated: float


@dataclass
class StateSetValue:
    states: Dict[str, bool]
    updated: float


@dataclass
class UnknownValue:
    value: float
    updated: float


def _new_counter_value() -> CounterValue:
    now = time.time()
    return CounterValue(0.0, now, now)


# --------------------------------------------------------------------------
# Counter
# --------------------------------------------------------------------------

class CounterChild(LabeledMetric):
    """Counter handle bound to one label set."""

    __slots__ = ()

    def inc(self, amount: float = 1) -> None:
        self.metric._inc(amount, self.key)

    def get(self) -> CounterData:
        return self.metric._get(self.key)

    def reset(self) -> None:
        self.metric._reset(self.key)


class Counter(BaseMetric):
    """
    Monotonically increasing counter.

    A counter without declared labels starts with its empty-label series
    already created so it renders before the first increment.
    """

    kind = "counter"
    handle_class = CounterChild

    def __init__(
        self,
        name: str,
        help: str,
        unit: Optional[str] = None,
        label_names: Iterable[str] = (),
        registry: Optional["Registry"] = None,
    ):
        # The _total suffix is added at render time
        if name.endswith("_total"):
            name = name[:-len("_total")]
        super().__init__(name, help, unit, label_names)
        self._series: SeriesStore[CounterValue] = SeriesStore(_new_counter_value)
        if not self.label_names:
            self._series.get_or_create(EMPTY_KEY)
        self._register(registry)

    def inc(self, amount: float = 1, labels: Optional[Mapping[str, str]] = None) -> None:
        """Increment by a non-negative finite amount."""
        self._inc(amount, self._key(labels))

    def get(self, labels: Optional[Mapping[str, str]] = None) -> CounterData:
        """Snapshot of one series; zeroed if the series was never written."""
        return self._get(self._key(labels))

    def reset(self, labels: Optional[Mapping[str, str]] = None) -> None:
        """Zero one series and refresh both timestamps."""
        self._reset(self._key(labels))

    def _inc(self, amount: float, key: LabelKey) -> None:
        if not math.isfinite(amount) or amount < 0:
            raise MetricError(
                f"Counter {self.name} can only be incremented by a non-negative finite amount, got {amount}"
            )
        with self._series.lock:
            record = self._series.get_or_create(key)
            record.value += amount
            record.updated = time.time()

    def _get(self, key: LabelKey) -> CounterData:
        with self._series.lock:
            record = self._series.get(key)
            if record is None:
                return CounterData(0.0, 0.0, 0.0)
            return CounterData(record.value, record.created, record.updated)

    def _reset(self, key: LabelKey) -> None:
        self._series.reset(key)

    def collect(self, prefix: Optional[str] = None) -> List[SeriesPoint]:
        name = self.full_name(prefix)
        points = []

        def visit(key: LabelKey, record: CounterValue) -> None:
            points.append(SeriesPoint(f"{name}_total", key, record.value, record.updated))
            points.append(SeriesPoint(f"{name}_created", key, record.created, record.updated))

        self._series.for_each(visit)
        return points


# --------------------------------------------------------------------------
# Gauge
# --------------------------------------------------------------------------

class GaugeChild(LabeledMetric):
    """Gauge handle bound to one label set."""

    __slots__ = ()

    def set(self, value: float) -> None:
        self.metric._set(value, self.key)

    def inc(self, amount: float = 1) -> None:
        self.metric._add(amount, self.key)

    def dec(self, amount: float = 1) -> None:
        self.metric._add(-amount, self.key)

    def get(self) -> Optional[GaugeData]:
        return self.metric._get(self.key)


class Gauge(BaseMetric):
    """Value that can go up and down. Non-finite input is ignored."""

    kind = "gauge"
    handle_class = GaugeChild

    def __init__(
        self,
        name: str,
        help: str,
        unit: Optional[str] = None,
        label_names: Iterable[str] = (),
        registry: Optional["Registry"] = None,
    ):
        super().__init__(name, help, unit, label_names)
        self._series: SeriesStore[GaugeValue] = SeriesStore(lambda: GaugeValue(0.0, time.time()))
        self._register(registry)

    def set(self, value: float, labels: Optional[Mapping[str, str]] = None) -> None:
        self._set(value, self._key(labels))

    def inc(self, amount: float = 1, labels: Optional[Mapping[str, str]] = None) -> None:
        self._add(amount, self._key(labels))

    def dec(self, amount: float = 1, labels: Optional[Mapping[str, str]] = None) -> None:
        self._add(-amount, self._key(labels))

    def get(self, labels: Optional[Mapping[str, str]] = None) -> Optional[GaugeData]:
        """Current value, or None if the series was never written."""
        return self._get(self._key(labels))

    def _set(self, value: float, key: LabelKey) -> None:
        if not math.isfinite(value):
            logger.debug(f"Ignoring non-finite value {value} for gauge {self.name}")
            return
        with self._series.lock:
            record = self._series.get_or_create(key)
            record.value = value
            record.updated = time.time()

    def _add(self, amount: float, key: LabelKey) -> None:
        if not math.isfinite(amount):
            logger.debug(f"Ignoring non-finite amount {amount} for gauge {self.name}")
            return
        with self._series.lock:
            record = self._series.get_or_create(key)
            record.value += amount
            record.updated = time.time()

    def _get(self, key: LabelKey) -> Optional[GaugeData]:
        with self._series.lock:
            record = self._series.get(key)
            if record is None:
                return None
            return GaugeData(record.value, record.updated)

    def collect(self, prefix: Optional[str] = None) -> List[SeriesPoint]:
        name = self.full_name(prefix)
        points = []
        self._series.for_each(lambda key, r: points.append(SeriesPoint(name, key, r.value, r.updated)))
        return points


# --------------------------------------------------------------------------
# Histogram / GaugeHistogram
# --------------------------------------------------------------------------

def validate_buckets(buckets: Optional[Sequence[float]], kind: str) -> Tuple[float, ...]:
    """Validate bucket boundaries: positive, finite, strictly ascending."""
    if buckets is None:
        buckets = DEFAULT_BUCKETS
    bounds = tuple(float(b) for b in buckets)

    for bound in bounds:
        if not math.isfinite(bound) or bound <= 0:
            raise MetricError(f"{kind} buckets must be positive finite numbers, got {bound}")

    for lower, upper in zip(bounds, bounds[1:]):
        if lower >= upper:
            raise MetricError(f"{kind} buckets must be in strictly ascending order")

    return bounds


class HistogramChild(LabeledMetric):
    """Histogram handle bound to one label set."""

    __slots__ = ()

    def observe(self, value: float) -> None:
        self.metric._observe(value, self.key)

    def reset(self) -> None:
        self.metric._reset(self.key)

    def get_snapshot(self) -> HistogramData:
        return self.metric._snapshot(self.key)


class _BucketedMetric(BaseMetric):
    """Shared cumulative-bucket state machine for Histogram and GaugeHistogram."""

    handle_class = HistogramChild

    def __init__(
        self,
        name: str,
        help: str,
        unit: Optional[str] = None,
        label_names: Iterable[str] = (),
        buckets: Optional[Sequence[float]] = None,
        registry: Optional["Registry"] = None,
    ):
        super().__init__(name, help, unit, label_names)
        if "le" in self.label_names:
            raise LabelError(f"Label name 'le' is reserved for {self.kind} metrics")
        self.buckets = validate_buckets(buckets, type(self).__name__)
        self._series: SeriesStore[HistogramValue] = SeriesStore(self._new_value)
        self._register(registry)

    def _new_value(self) -> HistogramValue:
        now = time.time()
        return HistogramValue([0.0] * (len(self.buckets) + 1), 0.0, 0.0, now, now)

    def _accepts(self, value: float) -> bool:
        """Return False to skip the observation, or raise to reject it."""
        return True

    def observe(self, value: float, labels: Optional[Mapping[str, str]] = None) -> None:
        self._observe(value, self._key(labels))

    def reset(self, labels: Optional[Mapping[str, str]] = None) -> None:
        """Zero bucket counts, sum and count of one series."""
        self._reset(self._key(labels))

    def get_snapshot(self, labels: Optional[Mapping[str, str]] = None) -> HistogramData:
        """Copy of one series; zeroed if never observed."""
        return self._snapshot(self._key(labels))

    def _observe(self, value: float, key: LabelKey) -> None:
        if not self._accepts(value):
            return
        # Cumulative buckets: every boundary >= value, plus +Inf
        first = bisect.bisect_left(self.buckets, value)
        with self._series.lock:
            record = self._series.get_or_create(key)
            for i in range(first, len(record.counts)):
                record.counts[i] += 1
            record.sum += value
            record.count += 1
            record.updated = time.time()

    def _reset(self, key: LabelKey) -> None:
        self._series.reset(key)

    def _snapshot(self, key: LabelKey) -> HistogramData:
        with self._series.lock:
            record = self._series.get(key)
            if record is None:
                counts = [0.0] * (len(self.buckets) + 1)
                return HistogramData(self.buckets, self._count_map(counts), 0.0, 0.0, 0.0, 0.0)
            return HistogramData(
                self.buckets,
                self._count_map(record.counts),
                record.sum,
                record.count,
                record.created,
                record.updated,
            )

    def _count_map(self, counts: List[float]) -> Dict[str, float]:
        result = {format_value(b): c for b, c in zip(self.buckets, counts)}
        result["+Inf"] = counts[-1]
        return result

    @abstractmethod
    def _tail_points(self, name: str, key: LabelKey, record: HistogramValue) -> List[SeriesPoint]:
        """Lines that follow the bucket lines of one series."""
        pass

    def collect(self, prefix: Optional[str] = None) -> List[SeriesPoint]:
        name = self.full_name(prefix)
        points = []

        def visit(key: LabelKey, record: HistogramValue) -> None:
            for bound, count in zip(self.buckets, record.counts):
                points.append(SeriesPoint(f"{name}_bucket", (("le", format_value(bound)),) + key, count))
            points.append(SeriesPoint(f"{name}_bucket", (("le", "+Inf"),) + key, record.counts[-1]))
            points.extend(self._tail_points(name, key, record))

        self._series.for_each(visit)
        return points


class Histogram(_BucketedMetric):
    """Cumulative histogram. Observations must be non-negative and finite."""

    kind = "histogram"

    def _accepts(self, value: float) -> bool:
        if not math.isfinite(value) or value < 0:
            raise MetricError(f"Histogram {self.name} observations must be non-negative finite numbers, got {value}")
        return True

    def _tail_points(self, name: str, key: LabelKey, record: HistogramValue) -> List[SeriesPoint]:
        return [
            SeriesPoint(f"{name}_count", key, record.count),
            SeriesPoint(f"{name}_sum", key, record.sum),
            SeriesPoint(f"{name}_created", key, record.created),
        ]


class GaugeHistogram(_BucketedMetric):
    """
    Histogram of a current distribution.

    Negative observations are legal; non-finite ones are silently ignored.
    """

    kind = "gaugehistogram"

    def _accepts(self, value: float) -> bool:
        if not math.isfinite(value):
            logger.debug(f"Ignoring non-finite observation {value} for gauge histogram {self.name}")
            return False
        return True

    def _tail_points(self, name: str, key: LabelKey, record: HistogramValue) -> List[SeriesPoint]:
        return [
            SeriesPoint(f"{name}_gcount", key, record.count),
            SeriesPoint(f"{name}_gsum", key, record.sum),
        ]


# --------------------------------------------------------------------------
# StateSet
# --------------------------------------------------------------------------

class StateSetChild(LabeledMetric):
    """StateSet handle bound to one label set."""

    __slots__ = ()

    def set_state(self, state: str, value: bool) -> None:
        self.metric._set_state(state, value, self.key)

    def enable_only(self, state: str) -> None:
        self.metric._enable_only(state, self.key)

    def get_state(self, state: str) -> bool:
        return self.metric._get_state(state, self.key)


class StateSet(BaseMetric):
    """
    Set of named boolean states.

    ``enable_only`` keeps exactly one state true; ``set_state`` writes a single
    flag and may leave zero or several states true.
    """

    kind = "stateset"
    handle_class = StateSetChild
    allows_unit = False

    def __init__(
        self,
        name: str,
        help: str,
        states: Sequence[str],
        unit: Optional[str] = None,
        label_names: Iterable[str] = (),
        registry: Optional["Registry"] = None,
    ):
        super().__init__(name, help, unit, label_names)
        self.states = self._validate_states(states)
        if self.name in self.label_names:
            raise LabelError(f"Label name cannot match stateset metric name: {self.name}")
        self._series: SeriesStore[StateSetValue] = SeriesStore(
            lambda: StateSetValue({s: False for s in self.states}, time.time())
        )
        self._register(registry)

    def _validate_states(self, states: Sequence[str]) -> Tuple[str, ...]:
        states = tuple(states)
        if not states:
            raise MetricError("StateSet must have at least one state")

        seen = set()
        for state in states:
            if state in seen:
                raise MetricError(f"Duplicate state name: {state}")
            if state == self.name:
                raise MetricError(f"State name cannot match metric name: {state}")
            seen.add(state)
        return states

    def _check_state(self, state: str) -> None:
        if state not in self.states:
            raise UnknownStateError(f"Unknown state: {state}")

    def set_state(self, state: str, value: bool, labels: Optional[Mapping[str, str]] = None) -> None:
        self._set_state(state, value, self._key(labels))

    def enable_only(self, state: str, labels: Optional[Mapping[str, str]] = None) -> None:
        self._enable_only(state, self._key(labels))

    def get_state(self, state: str, labels: Optional[Mapping[str, str]] = None) -> bool:
        return self._get_state(state, self._key(labels))

    def get_states(self, labels: Optional[Mapping[str, str]] = None) -> Dict[str, bool]:
        """Copy of every state flag of one series."""
        key = self._key(labels)
        with self._series.lock:
            record = self._series.get(key)
            if record is None:
                return {s: False for s in self.states}
            return dict(record.states)

    def _set_state(self, state: str, value: bool, key: LabelKey) -> None:
        self._check_state(state)
        with self._series.lock:
            record = self._series.get_or_create(key)
            record.states[state] = bool(value)
            record.updated = time.time()

    def _enable_only(self, state: str, key: LabelKey) -> None:
        self._check_state(state)
        with self._series.lock:
            record = self._series.get_or_create(key)
            for s in self.states:
                record.states[s] = s == state
            record.updated = time.time()

    def _get_state(self, state: str, key: LabelKey) -> bool:
        self._check_state(state)
        with self._series.lock:
            record = self._series.get(key)
            return bool(record and record.states[state])

    def collect(self, prefix: Optional[str] = None) -> List[SeriesPoint]:
        name = self.full_name(prefix)
        points = []

        def visit(key: LabelKey, record: StateSetValue) -> None:
            for state in self.states:
                points.append(SeriesPoint(name, key + ((self.name, state),), 1 if record.states[state] else 0))

        self._series.for_each(visit)
        return points


# --------------------------------------------------------------------------
# Info
# --------------------------------------------------------------------------

class InfoChild(LabeledMetric):
    """Info handle bound to one fact tuple."""

    __slots__ = ()

    def set(self) -> None:
        self.metric._assert_fact(self.key)


class Info(BaseMetric):
    """Static facts; each recorded label set renders with value 1."""

    kind = "info"
    handle_class = InfoChild
    allows_unit = False

    def __init__(
        self,
        name: str,
        help: str,
        label_names: Iterable[str] = (),
        registry: Optional["Registry"] = None,
    ):
        super().__init__(name, help, None, label_names)
        self._series: SeriesStore[float] = SeriesStore(time.time)
        self._register(registry)

    def set(self, labels: Optional[Mapping[str, str]] = None, **kwargs: str) -> None:
        """Record one fact tuple. Recording the same tuple twice has no effect."""
        values = dict(labels or {})
        values.update(kwargs)
        self._assert_fact(self._key(values))

    def is_set(self, labels: Optional[Mapping[str, str]] = None) -> bool:
        return self._key(labels) in self._series

    def _assert_fact(self, key: LabelKey) -> None:
        self._series.get_or_create(key)

    def collect(self, prefix: Optional[str] = None) -> List[SeriesPoint]:
        name = f"{self.full_name(prefix)}_info"
        points = []
        self._series.for_each(lambda key, _: points.append(SeriesPoint(name, key, 1)))
        return points


# --------------------------------------------------------------------------
# Unknown
# --------------------------------------------------------------------------

class UnknownChild(LabeledMetric):
    """Unknown-metric handle bound to one label set."""

    __slots__ = ()

    def set(self, value: float) -> None:
        self.metric._set(value, self.key)

    def get(self) -> Optional[float]:
        return self.metric._get(self.key)


class Unknown(BaseMetric):
    """Untyped value; the last value set is rendered as-is."""

    kind = "unknown"
    handle_class = UnknownChild

    def __init__(
        self,
        name: str,
        help: str,
        unit: Optional[str] = None,
        label_names: Iterable[str] = (),
        value: Optional[float] = None,
        registry: Optional["Registry"] = None,
    ):
        super().__init__(name, help, unit, label_names)
        self._series: SeriesStore[UnknownValue] = SeriesStore(lambda: UnknownValue(0.0, time.time()))
        if value is not None:
            if self.label_names:
                raise MetricError(f"Initial value requires a metric without labels: {self.name}")
            self._set(value, EMPTY_KEY)
        self._register(registry)

    def set(self, value: float, labels: Optional[Mapping[str, str]] = None) -> None:
        self._set(value, self._key(labels))

    def get(self, labels: Optional[Mapping[str, str]] = None) -> Optional[float]:
        """Last value set, or None."""
        return self._get(self._key(labels))

    def _set(self, value: float, key: LabelKey) -> None:
        with self._series.lock:
            record = self._series.get_or_create(key)
            record.value = value
            record.updated = time.time()

    def _get(self, key: LabelKey) -> Optional[float]:
        record = self._series.get(key)
        return None if record is None else record.value

    def collect(self, prefix: Optional[str] = None) -> List[SeriesPoint]:
        name = self.full_name(prefix)
        points = []
        self._series.for_each(lambda key, record: points.append(SeriesPoint(name, key, record.value)))
        return points
