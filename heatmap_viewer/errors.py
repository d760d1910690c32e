"""
Error classifications for the heatmap engine.

Malformed events are rejected one at a time and never fail a batch.
Empty-sample statistics are a caller contract violation.
"""

from typing import Any, Dict, Optional


class HeatmapViewerError(Exception):
    """Base class for heatmap viewer errors."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context or {}
        self.recoverable = True


class MalformedEventError(HeatmapViewerError, ValueError):
    """Normalized event with missing or non-finite numeric fields."""

    def __init__(self, message: str, event: Any = None, field: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.event = event
        self.field = field
        if field is not None:
            self.context.setdefault('field', field)


class EmptySampleError(HeatmapViewerError, ValueError):
    """Robust statistic requested over an empty sample."""

    def __init__(self, message: str = "sample must not be empty", **kwargs):
        super().__init__(message, **kwargs)
        self.recoverable = False


class TransportError(HeatmapViewerError):
    """Feed connection failed or closed unexpectedly."""

    def __init__(self, message: str, url: Optional[str] = None, **kwargs):
        super().__init__(message, **kwargs)
        self.url = url
