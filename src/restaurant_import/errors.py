"""
Exceptions raised by the import pipeline.

Correctness errors (validation, partial writes, unexpected failures) propagate to the
caller so the invoking infrastructure can redrive the import. Observability errors are
always absorbed by the component that raised them.
"""


class ImportPipelineError(Exception):
    """Base error for the import pipeline."""

    pass


class ValidationError(ImportPipelineError, ValueError):
    """Request rejected before any write: unknown table, empty or malformed item list."""

    pass


class PartialWriteFailure(ImportPipelineError):
    """Some items stayed unprocessed after every batch exhausted its retries."""

    def __init__(self, import_id: str, failure_count: int, total_items: int):
        self.import_id = import_id
        self.failure_count = failure_count
        self.total_items = total_items
        super().__init__(
            f"Import completed with {failure_count} failures out of {total_items} items"
        )


class BackendError(ImportPipelineError):
    """Storage backend rejected the write call."""

    pass


class TransientBackendError(BackendError):
    """Throttling or temporary backend failure; safe to retry with backoff."""

    pass


class ObservabilityError(ImportPipelineError):
    """Status event or metric could not be delivered."""

    pass


class ConfigurationError(ImportPipelineError):
    """Settings do not describe a usable pipeline (e.g. missing event bus name)."""

    pass


class AccountingError(ImportPipelineError):
    """A batch chain resolved a different number of items than it was handed."""

    pass


_TRANSIENT_AWS_CODES = {
    "ProvisionedThroughputExceededException",
    "ThrottlingException",
    "RequestLimitExceeded",
    "InternalServerError",
    "ServiceUnavailable",
    "TransactionConflictException",
}


def map_backend_error(e: Exception) -> BackendError:
    if isinstance(e, BackendError):
        return e

    from botocore.exceptions import ClientError, EndpointConnectionError

    if isinstance(e, ClientError):
        code = e.response.get("Error", {}).get("Code", "")
        if code in _TRANSIENT_AWS_CODES:
            return TransientBackendError(str(e))
        return BackendError(str(e))
    if isinstance(e, EndpointConnectionError):
        return TransientBackendError(str(e))

    import psycopg
    import psycopg.errors as E

    if isinstance(e, (E.SerializationFailure, E.DeadlockDetected, psycopg.OperationalError)):
        return TransientBackendError(str(e))
    if isinstance(e, (TimeoutError, ConnectionError)):
        return TransientBackendError(str(e))
    return BackendError(str(e))
