"""Label-set keying and validation."""
import re
from typing import Dict, Iterable, Mapping, Optional, Sequence, Tuple

from openmetrics_client.errors import LabelError

LABEL_NAME_RE = re.compile(r'^[a-zA-Z_][a-zA-Z0-9_]*$')

# Sorted tuple of (name, value) pairs
LabelKey = Tuple[Tuple[str, str], ...]

EMPTY_KEY: LabelKey = ()


def validate_label_names(label_names: Iterable[str]) -> Tuple[str, ...]:
    """
    Validate declared label names.

    Label names must match [a-zA-Z_][a-zA-Z0-9_]* and must not repeat.
    """
    names = tuple(label_names)
    seen = set()
    for name in names:
        if not isinstance(name, str) or not LABEL_NAME_RE.match(name):
            raise LabelError(f"Invalid label name: {name}")
        if name in seen:
            raise LabelError(f"Duplicate label name: {name}")
        seen.add(name)
    return names


def check_labels(label_names: Sequence[str], labels: Optional[Mapping[str, str]]) -> Dict[str, str]:
    """Check a label-value mapping against the declared names (strict schema)."""
    labels = dict(labels or {})

    for name, value in labels.items():
        if name not in label_names:
            raise LabelError(f"Unexpected label: {name}")
        if not isinstance(value, str):
            raise LabelError(f"Label value for '{name}' must be a string, got {type(value).__name__}")

    for name in label_names:
        if name not in labels:
            raise LabelError(f"Missing label: {name}")

    return labels


def canonical_key(labels: Optional[Mapping[str, str]]) -> LabelKey:
    """Generate a stable, order-independent key from labels."""
    return tuple(sorted((labels or {}).items()))


def escape_label_value(value: str) -> str:
    """Escape backslash, newline and double-quote for exposition."""
    return value.replace('\\', '\\\\').replace('\n', '\\n').replace('"', '\\"')


def format_labels(pairs: Iterable[Tuple[str, str]]) -> str:
    """Render label pairs as {k1="v1",k2="v2"}; empty string when there are none."""
    rendered = [f'{k}="{escape_label_value(v)}"' for k, v in pairs]
    if not rendered:
        return ""
    return "{" + ",".join(rendered) + "}"
