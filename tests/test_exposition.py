"""Tests for the OpenMetrics text encoder."""
import math

from openmetrics_client import CONTENT_TYPE, Counter, Gauge, Registry, Unknown
from openmetrics_client.exposition import (
    EOF_LINE, format_value, metadata_lines, render_document, render_point,
)
from openmetrics_client.series import SeriesPoint


def test_format_value():
    """Integral values drop the fraction; special floats use their exposition names."""
    assert format_value(1) == "1"
    assert format_value(20.0) == "20"
    assert format_value(0.5) == "0.5"
    assert format_value(3.14) == "3.14"
    assert format_value(-50.0) == "-50"
    assert format_value(float("nan")) == "NaN"
    assert format_value(float("inf")) == "+Inf"
    assert format_value(float("-inf")) == "-Inf"
    assert format_value(True) == "1"


def test_metadata_lines_with_and_without_unit():
    """UNIT line appears only when a unit is set."""
    assert metadata_lines("x", "gauge", "Help") == ["# TYPE x gauge", "# HELP x Help"]
    assert metadata_lines("x_bytes", "gauge", "Help", "bytes") == [
        "# TYPE x_bytes gauge",
        "# UNIT x_bytes bytes",
        "# HELP x_bytes Help",
    ]


def test_render_point():
    """Sample lines include labels and an optional timestamp."""
    point = SeriesPoint("requests_total", (("method", "GET"),), 3.0, 1700000000.5)
    assert render_point(point) == 'requests_total{method="GET"} 3 1700000000.5'

    bare = SeriesPoint("value", (), 42)
    assert render_point(bare) == "value 42"



def test_render_document_terminator():
    """Documents always end with the EOF line."""
    assert render_document([]) == "# EOF\n"
    assert render_document(["a", "b"]) == "a\nb\n# EOF\n"
    assert EOF_LINE == "# EOF"


def test_content_type():
    """Registries advertise the OpenMetrics content type."""
    assert CONTENT_TYPE == "application/openmetrics-text; version=1.0.0; charset=utf-8"
    assert Registry.content_type == CONTENT_TYPE
    assert Registry().content_type == CONTENT_TYPE


def test_unit_suffix_appended():
    """The unit is appended to the name unless already present."""
    gauge = Gauge("request_size", "Size of the request", unit="bytes")
    gauge.set(0)
    output = gauge.render()
    assert "# TYPE request_size_bytes gauge" in output
    assert "# UNIT request_size_bytes bytes" in output
    assert "request_size_bytes 0 " in output

    already = Gauge("payload_bytes", "Payload", unit="bytes")
    assert already.name == "payload_bytes"


def test_escaped_label_values_in_output():
    """Backslash, newline and quote are escaped in label values."""
    gauge = Gauge("weird", "", label_names=["path"])
    gauge.set(1, {"path": 'C:\\dir\n"quoted"'})
    assert 'weird{path="C:\\\\dir\\n\\"quoted\\""} 1 ' in gauge.render()


def test_round_trip_of_rendered_lines(parse):
    """Every data line parses back to the name, labels and value that produced it."""
    registry = Registry()
    counter = Counter("jobs", "Jobs", label_names=["queue", "state"], registry=registry)
    gauge = Gauge("temperature", "Temp", label_names=["room"], registry=registry)
    unknown = Unknown("ratio", "Ratio", label_names=["kind"], registry=registry)

    counter.inc(3, {"state": "done", "queue": 'a"b'})
    gauge.set(-12.25, {"room": "line\nbreak"})
    unknown.set(float("nan"), {"kind": "back\\slash"})

    samples = {(name, tuple(sorted(labels.items()))): value for name, labels, value, _ in parse(registry.render())}

    assert samples[("jobs_total", (("queue", 'a"b'), ("state", "done")))] == 3
    assert samples[("temperature", (("room", "line\nbreak"),))] == -12.25
    assert math.isnan(samples[("ratio", (("kind", "back\\slash"),))])
