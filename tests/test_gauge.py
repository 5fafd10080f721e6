"""Tests for the Gauge metric."""
import math

import pytest

from openmetrics_client import Gauge, LabelError, Registry


def test_set_inc_dec():
    """set, inc and dec combine on one series."""
    gauge = Gauge("queue_depth", "Items waiting")
    gauge.set(10)
    gauge.inc()
    gauge.inc(4)
    gauge.dec(2.5)
    assert gauge.get().value == 12.5


def test_get_returns_none_for_unwritten_series():
    """Unwritten gauge series read as None."""
    gauge = Gauge("temperature", "", label_names=["room"])
    assert gauge.get({"room": "kitchen"}) is None
    assert gauge.series_count() == 0


def test_inc_creates_series_at_zero():
    """inc/dec on a new series start from zero."""
    gauge = Gauge("connections", "", label_names=["pool"])
    gauge.dec(3, {"pool": "main"})
    assert gauge.get({"pool": "main"}).value == -3


def test_non_finite_values_are_ignored():
    """NaN and infinities leave the previous value untouched."""
    gauge = Gauge("ratio", "")
    gauge.set(0.75)
    gauge.set(float("nan"))
    gauge.set(float("inf"))
    gauge.inc(float("-inf"))
    assert gauge.get().value == 0.75


def test_non_finite_on_fresh_series_creates_nothing():
    """An ignored value does not create a series."""
    gauge = Gauge("fresh", "", label_names=["k"])
    gauge.set(math.nan, {"k": "v"})
    assert gauge.series_count() == 0


def test_labeled_rendering(parse):
    """Labeled gauges render with unit metadata and timestamps."""
    registry = Registry()
    gauge = Gauge("temperature", "Room temperature", unit="celsius", label_names=["room"], registry=registry)
    gauge.labels(room="kitchen").set(21.5)
    gauge.labels(room="garage").set(-4)

    output = registry.render()
    assert output.startswith(
        "# TYPE temperature_celsius gauge\n"
        "# UNIT temperature_celsius celsius\n"
        "# HELP temperature_celsius Room temperature\n"
    )
    assert output.endswith("# EOF\n")

    samples = parse(output)
    assert [(name, labels, value) for name, labels, value, _ in samples] == [
        ("temperature_celsius", {"room": "kitchen"}, 21.5),
        ("temperature_celsius", {"room": "garage"}, -4),
    ]
    for _, labels, _, timestamp in samples:
        assert timestamp == pytest.approx(gauge.get(labels).updated)


def test_handle_operations():
    """Bound handles mutate and read their series."""
    gauge = Gauge("workers", "", label_names=["pool"])
    child = gauge.labels(pool="io")
    child.set(3)
    child.inc()
    child.dec(2)
    assert child.get().value == 2
    assert gauge.get({"pool": "io"}).value == 2


def test_strict_labels():
    """Missing, extra and non-string labels raise."""
    gauge = Gauge("strict", "", label_names=["a"])
    with pytest.raises(LabelError):
        gauge.set(1)
    with pytest.raises(LabelError):
        gauge.set(1, {"a": "x", "b": "y"})
    with pytest.raises(LabelError):
        gauge.set(1, {"a": 1})
