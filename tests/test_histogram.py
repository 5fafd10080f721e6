"""Tests for Histogram and GaugeHistogram."""
import threading

import pytest

from openmetrics_client import GaugeHistogram, Histogram, LabelError, MetricError, Registry
from openmetrics_client.metrics import DEFAULT_BUCKETS, _BucketedMetric, validate_buckets


def test_cumulative_buckets():
    """Each observation counts in every bucket at or above it."""
    histogram = Histogram("latency", "", buckets=[1, 2, 3])
    for value in [0.5, 1.5, 2.5, 10]:
        histogram.observe(value)

    snapshot = histogram.get_snapshot()
    assert snapshot.counts == {"1": 1, "2": 2, "3": 3, "+Inf": 4}
    assert snapshot.sum == 14.5
    assert snapshot.count == 4
    assert snapshot.buckets == (1.0, 2.0, 3.0)


def test_boundary_value_counts_in_its_bucket():
    """A value equal to a bound counts in that bucket."""
    histogram = Histogram("edge", "", buckets=[1, 2])
    histogram.observe(1)
    histogram.observe(0)
    assert histogram.get_snapshot().counts == {"1": 2, "2": 2, "+Inf": 2}


def test_bucket_counts_are_monotonic():
    """Cumulative counts never decrease across buckets."""
    histogram = Histogram("mono", "", buckets=[0.1, 0.5, 1, 5])
    for value in [0.05, 0.3, 0.3, 0.7, 4, 6, 6, 100]:
        histogram.observe(value)
    counts = list(histogram.get_snapshot().counts.values())
    assert counts == sorted(counts)
    assert counts[-1] == 8


def test_rejects_negative_and_non_finite():
    """Bad observations raise and leave state untouched."""
    histogram = Histogram("strict", "", buckets=[1])
    histogram.observe(0.5)
    with pytest.raises(MetricError):
        histogram.observe(-1)
    with pytest.raises(MetricError):
        histogram.observe(float("nan"))
    assert histogram.get_snapshot().count == 1


def test_snapshot_of_unobserved_series_is_zeroed():
    """Unobserved series snapshot as zeros."""
    histogram = Histogram("empty", "", label_names=["path"], buckets=[1, 2])
    snapshot = histogram.get_snapshot({"path": "/"})
    assert snapshot.counts == {"1": 0, "2": 0, "+Inf": 0}
    assert snapshot.sum == 0
    assert snapshot.count == 0


def test_snapshot_is_a_copy():
    """Mutating a snapshot does not touch the series."""
    histogram = Histogram("copy", "", buckets=[1])
    histogram.observe(0.5)
    snapshot = histogram.get_snapshot()
    snapshot.counts["1"] = 99
    assert histogram.get_snapshot().counts["1"] == 1


def test_default_buckets():
    """Histograms fall back to the default buckets."""
    histogram = Histogram("defaults", "")
    assert histogram.buckets == DEFAULT_BUCKETS


@pytest.mark.parametrize("buckets", [[2, 1], [1, 1], [0, 1], [-1, 1], [1, float("inf")], [float("nan")]])
def test_invalid_buckets(buckets):
    """Buckets must be positive, finite and strictly ascending."""
    with pytest.raises(MetricError):
        validate_buckets(buckets, "Histogram")
    with pytest.raises(MetricError):
        Histogram("bad", "", buckets=buckets)


def test_empty_bucket_list_has_only_inf():
    """An empty bucket list leaves only +Inf."""
    histogram = Histogram("inf_only", "", buckets=[])
    histogram.observe(3)
    assert histogram.get_snapshot().counts == {"+Inf": 1}


def test_le_label_is_reserved():
    """le cannot be a user label."""
    with pytest.raises(LabelError):
        Histogram("reserved", "", label_names=["le"])


def test_reset_series():
    """Reset clears one series only."""
    histogram = Histogram("resettable", "", label_names=["path"], buckets=[1])
    histogram.observe(0.5, {"path": "/a"})
    histogram.observe(0.5, {"path": "/b"})
    histogram.labels(path="/a").reset()

    assert histogram.get_snapshot({"path": "/a"}).count == 0
    assert histogram.get_snapshot({"path": "/b"}).count == 1


def test_openmetrics_output(parse):
    """Bucket lines come first, then count, sum and created."""
    registry = Registry()
    histogram = Histogram("request_duration", "Request latency", unit="seconds",
                          label_names=["method"], buckets=[0.5, 1], registry=registry)
    histogram.labels(method="GET").observe(0.25)
    histogram.labels(method="GET").observe(0.75)

    output = registry.render()
    assert "# TYPE request_duration_seconds histogram" in output
    assert "# UNIT request_duration_seconds seconds" in output
    assert 'request_duration_seconds_bucket{le="0.5",method="GET"} 1\n' in output
    assert 'request_duration_seconds_bucket{le="1",method="GET"} 2\n' in output
    assert 'request_duration_seconds_bucket{le="+Inf",method="GET"} 2\n' in output
    assert 'request_duration_seconds_count{method="GET"} 2\n' in output
    assert 'request_duration_seconds_sum{method="GET"} 1\n' in output

    names = [name for name, _, _, _ in parse(output)]
    assert names == [
        "request_duration_seconds_bucket",
        "request_duration_seconds_bucket",
        "request_duration_seconds_bucket",
        "request_duration_seconds_count",
        "request_duration_seconds_sum",
        "request_duration_seconds_created",
    ]


def test_gauge_histogram_accepts_negative_values():
    """Gauge histograms take negative values and render gcount/gsum."""
    registry = Registry()
    histogram = GaugeHistogram("memory", "Memory usage", label_names=["host"],
                               buckets=[50, 500], registry=registry)
    histogram.observe(-100, {"host": "web1"})
    histogram.observe(200, {"host": "web1"})

    snapshot = histogram.get_snapshot({"host": "web1"})
    assert snapshot.counts == {"50": 1, "500": 2, "+Inf": 2}

    output = registry.render()
    assert "# TYPE memory gaugehistogram" in output
    assert 'memory_gsum{host="web1"} 100\n' in output
    assert 'memory_gcount{host="web1"} 2\n' in output
    assert "memory_created" not in output


def test_gauge_histogram_ignores_non_finite():
    """Gauge histograms skip NaN and infinities."""
    histogram = GaugeHistogram("ignored", "", buckets=[1])
    histogram.observe(0.5)
    histogram.observe(float("nan"))
    histogram.observe(float("-inf"))
    snapshot = histogram.get_snapshot()
    assert snapshot.count == 1
    assert snapshot.sum == 0.5


def test_render_never_sees_half_applied_observation(parse):
    """The +Inf bucket always equals the count while observations race with rendering."""
    histogram = Histogram("racing", "", buckets=[1, 5])
    done = threading.Event()

    def observe():
        for i in range(20000):
            histogram.observe(i % 7)
        done.set()

    thread = threading.Thread(target=observe)
    thread.start()
    while not done.is_set():
        samples = {(name, labels.get("le")): value for name, labels, value, _ in parse(histogram.render())}
        if samples:
            assert samples[("racing_bucket", "+Inf")] == samples[("racing_count", None)]
    thread.join()

    assert histogram.get_snapshot().count == 20000


def test_bucketed_base_needs_tail_lines():
    """The shared bucket base cannot be used without a tail-line renderer."""
    with pytest.raises(TypeError):
        _BucketedMetric("incomplete", "", buckets=[1])
