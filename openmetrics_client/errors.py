"""Exception types raised by metric construction and mutation."""


class MetricError(ValueError):
    """Base class for metric validation errors."""


class LabelError(MetricError):
    """Label names or label values do not match the metric's schema."""


class DuplicateMetricError(MetricError):
    """A metric with the same identity is already registered."""


class UnknownStateError(MetricError):
    """A StateSet operation referenced an undeclared state."""
