"""Tests for Info and Unknown metrics."""
import math

import pytest

from openmetrics_client import Info, LabelError, MetricError, Registry, Unknown


def test_info_renders_each_fact_with_value_one():
    """Each distinct fact tuple renders once with value 1."""
    registry = Registry()
    info = Info("build", "Build information", label_names=["version", "commit"], registry=registry)
    info.set(version="1.2.3", commit="abc123")
    info.set({"version": "1.2.4", "commit": "def456"})
    info.set(commit="abc123", version="1.2.3")

    output = registry.render()
    assert "# TYPE build info" in output
    assert 'build_info{commit="abc123",version="1.2.3"} 1\n' in output
    assert 'build_info{commit="def456",version="1.2.4"} 1\n' in output
    assert info.series_count() == 2


def test_info_is_set():
    """is_set reports recorded fact tuples."""
    info = Info("target", "", label_names=["env"])
    assert not info.is_set({"env": "prod"})
    info.labels(env="prod").set()
    assert info.is_set({"env": "prod"})


def test_info_strict_labels():
    """Info facts must match the declared labels."""
    info = Info("strict", "", label_names=["version"])
    with pytest.raises(LabelError):
        info.set()
    with pytest.raises(LabelError):
        info.set(version="1", extra="x")


def test_info_without_facts_renders_metadata_only():
    """An empty info renders only metadata."""
    info = Info("nothing", "Nothing yet")
    assert info.render() == "# TYPE nothing info\n# HELP nothing Nothing yet"


def test_info_cannot_have_unit():
    """Info takes no unit argument."""
    with pytest.raises(TypeError):
        Info("sized", "", unit="bytes")


def test_unknown_set_and_get():
    """Unknown stores the last value per series."""
    unknown = Unknown("mystery", "", label_names=["source"])
    assert unknown.get({"source": "a"}) is None
    unknown.set(3.5, {"source": "a"})
    unknown.labels(source="b").set(-1)
    assert unknown.get({"source": "a"}) == 3.5
    assert unknown.labels(source="b").get() == -1


def test_unknown_initial_value_and_output():
    """An initial value renders without a timestamp."""
    registry = Registry()
    Unknown("special_value", "Odd value", value=42, registry=registry)
    output = registry.render()
    assert "# TYPE special_value unknown" in output
    assert "special_value 42\n" in output


def test_unknown_accepts_any_float(parse):
    """Unknown stores special floats as-is."""
    unknown = Unknown("anything", "")
    unknown.set(float("-inf"))
    assert parse(unknown.render())[0][2] == float("-inf")
    unknown.set(float("nan"))
    assert math.isnan(unknown.get())


def test_unknown_initial_value_requires_no_labels():
    """Initial values are only allowed without labels."""
    with pytest.raises(MetricError):
        Unknown("labeled", "", label_names=["a"], value=1)
