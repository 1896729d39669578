"""Exceptions raised by the indexer client."""

from typing import Optional


class IndexerError(Exception):
    """Base class for all indexer failures."""

    pass


class TransportError(IndexerError):
    """Network, HTTP, or envelope-level failure of a single GraphQL request."""

    def __init__(self, message: str, http_status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.http_status = http_status

    def __str__(self) -> str:
        if self.http_status is not None:
            return f"HTTP {self.http_status}: {self.message}"
        return self.message


class ShapeMismatchError(IndexerError):
    """The response did not have the shape a query variant expected."""

    def __init__(self, variant: str):
        super().__init__(f"Unexpected response shape for variant '{variant}'")
        self.variant = variant


class AllVariantsExhaustedError(IndexerError):
    """Every candidate variant of a logical operation failed."""

    def __init__(self, operation: str, last_error: Optional[Exception] = None):
        detail = str(last_error) if last_error else "no candidates"
        super().__init__(f"all variants failed for '{operation}': {detail}")
        self.operation = operation
        self.last_error = last_error


class CursorInvalidatedError(IndexerError):
    """A cursor can no longer be replayed against the variant that issued it."""

    def __init__(self, operation: str, variant: Optional[str] = None):
        issuer = f"'{variant}'" if variant else "an unknown variant"
        super().__init__(f"cursor issued by {issuer} is no longer valid for '{operation}'")
        self.operation = operation
        self.variant = variant


class PartialBatchFailure(IndexerError):
    """Some entities of a batch lookup could not be resolved."""

    def __init__(self, failed_keys: set[str], resolved: int):
        super().__init__(
            f"{len(failed_keys)} entities failed ({resolved} resolved)"
        )
        self.failed_keys = failed_keys
        self.resolved = resolved
