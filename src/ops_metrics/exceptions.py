"""Domain-specific exceptions for ops_metrics.

This module defines custom exceptions that are part of the public API.
All exceptions inherit from OpsMetricsError for easy catching.

Data-quality conditions (unknown teams, zero wage cost, mismatching
reference rows) never raise; they are logged or reported as discrepancies.
Only structural failures of the pipeline itself surface as exceptions.
"""


class OpsMetricsError(Exception):
    """Base exception for all ops_metrics errors.

    Users can catch this exception to handle any ops_metrics error.
    """

    pass


class ConfigError(OpsMetricsError):
    """Raised when there is a configuration error.

    This exception is raised when:
    - Directory snapshots (locations.json, workers.json) cannot be loaded
    - Invalid configuration values are provided
    - Required paths are missing
    """

    pass


class DataQualityError(OpsMetricsError):
    """Raised when an input frame cannot be processed at all.

    This exception is raised when:
    - Required columns are missing from input data
    - A reference file has no recognizable header
    """

    pass


class AggregationError(OpsMetricsError):
    """Raised when an aggregation stage fails for a subject.

    Caught per subject by the orchestrator and reported in the run's
    error list; it never aborts a whole run.
    """

    pass


class StoreError(OpsMetricsError):
    """Raised when a stored aggregate document cannot be read or written."""

    pass


class StoreUnavailableError(StoreError):
    """Raised when the aggregate store cannot be reached at all.

    This is the only fatal condition of an aggregation run: it aborts the
    run instead of being collected into the error list.
    """

    pass
