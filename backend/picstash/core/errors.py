"""Exceptions raised across the core.

Algorithm entry points report expected outcomes (missing image, no history, ...)
as enum values rather than exceptions; the classes here are for broken
preconditions the caller must fix.
"""


class DimensionMismatchError(ValueError):
    """Raised when a vector does not have the store's fixed dimension."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}"
        )


class InvalidJobTransitionError(RuntimeError):
    """Raised when a job status change is not allowed from its current status."""

    def __init__(self, job_id: str, current: str, target: str):
        self.job_id = job_id
        self.current = current
        self.target = target
        super().__init__(
            f"Job {job_id} cannot move from '{current}' to '{target}'"
        )


class JobNotFoundError(LookupError):
    """Raised when a job id does not exist in the ledger."""

    def __init__(self, job_id: str):
        self.job_id = job_id
        super().__init__(f"Job not found: {job_id}")
