"""Exception types raised by the scan pipeline."""
from __future__ import annotations


class PerfAuditError(Exception):
    """Base class for all perf-audit errors."""


class ConfigurationError(PerfAuditError, ValueError):
    """Detector or settings definitions are invalid."""


class UsageError(PerfAuditError):
    """The tool was invoked with arguments it cannot act on."""


class RenderError(PerfAuditError):
    """A report template could not be filled in."""


class ScanCancelled(PerfAuditError):
    """The scan was aborted before aggregation."""
