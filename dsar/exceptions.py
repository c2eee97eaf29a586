"""Custom exceptions for dsar."""

from typing import Iterable


class ClassificationError(Exception):
    """Raised when a scraped sample does not match the metric registry.

    A classification error means the exposition format of a monitored
    target changed incompatibly. It is fatal: the collector stops instead
    of storing statistics it can no longer interpret.
    """

    def __init__(self, metric: str, message: str):
        self.metric = metric
        super().__init__(message)


class ValueKindMismatchError(ClassificationError):
    """Raised when a sample's declared value kind is not the registered one.

    For example a sample declared ``gauge`` arriving for a metric name the
    registry records as a counter.
    """

    def __init__(self, metric: str, expected: Iterable[str], actual: str):
        self.expected = sorted(expected)
        self.actual = actual
        super().__init__(
            metric,
            f"{metric} value kind should be {' or '.join(self.expected)}, got {actual}",
        )


class MissingLabelError(ClassificationError):
    """Raised when a label needed to build the statistics key is absent."""

    def __init__(self, metric: str, label: str):
        self.label = label
        super().__init__(metric, f"{metric} sample has no '{label}' label")


class ExpositionParseError(Exception):
    """Raised when a metrics endpoint body is not valid text exposition."""
    pass
