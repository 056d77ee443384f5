"""Error taxonomy for the deal pipeline.

Every error carries a user-facing message and whether retrying the same
call can plausibly succeed.
"""

from __future__ import annotations


class DealHunterError(Exception):
    retryable: bool = False

    def __init__(self, message: str, *, retryable: bool | None = None) -> None:
        super().__init__(message)
        self.message = message
        if retryable is not None:
            self.retryable = retryable


class InitializationError(DealHunterError):
    """The embedding model or the classifier worker failed to start."""

    retryable = True


class ResponseValidationError(DealHunterError):
    """An oracle response did not match its declared schema."""

    def __init__(self, agent: str, message: str) -> None:
        super().__init__(f"{agent} response validation failed: {message}")
        self.agent = agent


class OracleError(DealHunterError):
    """The hosted model call itself failed."""

    retryable = True


class ClassifierTimeoutError(DealHunterError, TimeoutError):
    retryable = True


class WorkerError(DealHunterError):
    """The classifier worker answered a request with an ERROR message."""


class ShardFailureError(DealHunterError):
    def __init__(self, shard_index: int, total_shards: int, cause: BaseException) -> None:
        super().__init__(
            f"Batch {shard_index + 1} of {total_shards} failed: {cause}",
            retryable=getattr(cause, "retryable", False),
        )
        self.shard_index = shard_index
        self.total_shards = total_shards


class EmptyExtractionError(DealHunterError):
    def __init__(self) -> None:
        super().__init__(
            "Could not identify any products in the uploaded files. "
            "Please ensure they are clear images or PDFs."
        )


class DimensionMismatchError(DealHunterError, ValueError):
    def __init__(self, left: int, right: int) -> None:
        super().__init__(f"Vectors must have the same length (got {left} and {right})")
        self.left = left
        self.right = right


class UnsupportedFileError(DealHunterError):
    pass
