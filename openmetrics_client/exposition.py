"""OpenMetrics text encoder: turns sample points into exposition lines."""
import math
from typing import Iterable, List, Optional

from openmetrics_client.labels import format_labels
from openmetrics_client.series import SeriesPoint

CONTENT_TYPE = "application/openmetrics-text; version=1.0.0; charset=utf-8"
EOF_LINE = "# EOF"


def format_value(value: float) -> str:
    """Format a sample value: integral floats without a fraction, NaN and +/-Inf by name."""
    if isinstance(value, bool):
        return "1" if value else "0"
    value = float(value)
    if math.isnan(value):
        return "NaN"
    if math.isinf(value):
        return "+Inf" if value > 0 else "-Inf"
    if value.is_integer():
        return str(int(value))
    return repr(value)


def metadata_lines(name: str, kind: str, help_text: str, unit: Optional[str] = None) -> List[str]:
    """TYPE, optional UNIT, and HELP lines for one metric family."""
    lines = [f"# TYPE {name} {kind}"]
    if unit:
        lines.append(f"# UNIT {name} {unit}")
    lines.append(f"# HELP {name} {help_text}")
    return lines


def render_point(point: SeriesPoint) -> str:
    """Render one sample as `name{labels} value [timestamp]`."""
    line = f"{point.name}{format_labels(point.labels)} {format_value(point.value)}"
    if point.timestamp is not None:
        line += f" {format_value(point.timestamp)}"
    return line


def render_family(name: str, kind: str, help_text: str, unit: Optional[str],
                  points: Iterable[SeriesPoint]) -> str:
    """Render a full metric family (metadata followed by data lines)."""
    lines = metadata_lines(name, kind, help_text, unit)
    lines.extend(render_point(p) for p in points)
    return "\n".join(lines)


def render_document(families: Iterable[str]) -> str:
    """Join rendered families and append the terminator line."""
    return "".join(f"{text}\n" for text in families) + EOF_LINE + "\n"
