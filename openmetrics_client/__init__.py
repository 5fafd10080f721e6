"""In-process OpenMetrics instrumentation: labeled metrics, sliding-window summaries and text exposition."""
from openmetrics_client.errors import DuplicateMetricError, LabelError, MetricError, UnknownStateError
from openmetrics_client.exposition import CONTENT_TYPE
from openmetrics_client.labels import canonical_key
from openmetrics_client.metrics import Counter, Gauge, GaugeHistogram, Histogram, Info, StateSet, Unknown
from openmetrics_client.registry import Registry, identity_key
from openmetrics_client.summary import Summary

__version__ = "0.1.0"

__all__ = [
    "CONTENT_TYPE",
    "Counter",
    "DuplicateMetricError",
    "Gauge",
    "GaugeHistogram",
    "Histogram",
    "Info",
    "LabelError",
    "MetricError",
    "Registry",
    "StateSet",
    "Summary",
    "Unknown",
    "UnknownStateError",
    "canonical_key",
    "identity_key",
]
