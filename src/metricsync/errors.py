"""Exception types raised across metricsync."""


class MetricSyncError(Exception):
    """Base class for metricsync errors."""


class FetchError(MetricSyncError):
    """A fetcher call failed, timed out or returned an unusable payload."""

    def __init__(self, message: str, metric_id: str | None = None, status_code: int | None = None):
        super().__init__(message)
        self.metric_id = metric_id
        self.status_code = status_code


class SampleParseError(MetricSyncError, ValueError):
    """A wire record could not be turned into a Sample."""
