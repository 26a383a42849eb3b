"""Custom exceptions for the lifeseed ledger.

This module provides exception classes used throughout the system.
Ledger errors propagate to the calling workflow; nothing here is swallowed
inside the ledger layer.
"""


class LifeseedError(Exception):
    """Base exception for all lifeseed errors."""

    def __init__(self, message: str, details: dict | None = None):
        """Initialize exception with message and optional details.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error context
        """
        super().__init__(message)
        self.message = message
        self.details = details


class ResourceNotFound(LifeseedError):
    """Exception raised when a requested resource is not found."""

    pass


class TreeNotFoundError(ResourceNotFound):
    """Exception raised when a referenced Lifetree does not exist.

    Non-retryable: the tree id is wrong or the tree was deleted.
    """

    pass


class ValidationError(LifeseedError):
    """Exception raised when input validation fails."""

    pass


class PermissionDenied(LifeseedError):
    """Exception raised when access is denied due to insufficient permissions."""

    pass


class DuplicateTreeError(LifeseedError):
    """Exception raised when an owner plants while holding an unvalidated tree.

    Non-retryable until the existing tree has been validated.
    """

    pass


class ConcurrentAppendError(LifeseedError):
    """Exception raised when a chain append loses a write race.

    Raised when the tree's chain head moved between the read and the
    compare-and-set of an append, or when the caller supplied a
    based_on_hash that is no longer the tree's latest hash.

    Retryable: re-read the head and rebuild the append from fresh state.

    Attributes:
        tree_uuid: UUID of the tree whose head moved
        expected_hash: The head the losing append was based on
        actual_hash: The head found at commit time (None if unknown)
    """

    tree_uuid: str
    expected_hash: str | None
    actual_hash: str | None

    def __init__(
        self,
        message: str,
        tree_uuid: str,
        expected_hash: str | None = None,
        actual_hash: str | None = None,
    ):
        """Initialize concurrent append error.

        Args:
            message: Human-readable error message
            tree_uuid: UUID of the tree whose head moved
            expected_hash: The head the losing append was based on
            actual_hash: The head found at commit time
        """
        super().__init__(
            message,
            details={
                "tree_uuid": tree_uuid,
                "expected_hash": expected_hash,
                "actual_hash": actual_hash,
            },
        )
        self.tree_uuid = tree_uuid
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash


class ValidatorNotTrustedError(LifeseedError):
    """Exception raised when an unvalidated tree tries to validate another.

    Non-retryable until the validator tree has itself been validated.
    """

    pass


class AlreadyProcessedError(LifeseedError):
    """Exception raised when a match proposal is no longer pending."""

    pass


class StorageError(LifeseedError):
    """Exception raised when blob storage cannot persist an image.

    Raised before any chain append, so the ledger is untouched.
    Surfaced to the user as a retryable action.
    """

    pass


class ConsistencyError(LifeseedError):
    """Exception raised when a chain audit must be treated as fatal.

    Attributes:
        broken_chains: List of per-tree findings (if applicable)
    """

    broken_chains: list[dict]

    def __init__(self, message: str, details: dict | None = None):
        """Initialize consistency error.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error context
        """
        super().__init__(message, details)
        self.broken_chains = details.get("broken_chains", []) if details else []
