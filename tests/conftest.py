"""Shared test helpers."""
import re
from typing import Dict, List, Optional, Tuple

import pytest

SAMPLE_RE = re.compile(r'^([a-zA-Z_:][a-zA-Z0-9_:]*)(?:\{(.*)\})? (\S+)(?: (\S+))?$')
LABEL_RE = re.compile(r'([a-zA-Z_][a-zA-Z0-9_]*)="((?:[^"\\]|\\.)*)"')


def _unescape(value: str) -> str:
    return re.sub(r'\\(.)', lambda m: {"n": "\n"}.get(m.group(1), m.group(1)), value)


def parse_samples(text: str) -> List[Tuple[str, Dict[str, str], float, Optional[float]]]:
    """Parse every data line of an exposition into (name, labels, value, timestamp)."""
    samples = []
    for line in text.splitlines():
        if not line or line.startswith("#"):
            continue
        match = SAMPLE_RE.match(line)
        assert match, f"Unparseable line: {line!r}"
        name, label_str, value, timestamp = match.groups()
        labels = {k: _unescape(v) for k, v in LABEL_RE.findall(label_str or "")}
        samples.append((name, labels, float(value), float(timestamp) if timestamp else None))
    return samples


@pytest.fixture
def parse():
    """Exposition parser used to check rendered output."""
    return parse_samples
