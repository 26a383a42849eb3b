"""lifeseed: per-tree hash-chain ledger.

Users plant Lifetrees; every pulse minted on a tree is appended to that
tree's own tamper-evident chain. See lifeseed.ledger for the session API
and lifeseed.services for the workflows built on it.
"""

__version__ = "0.1.0"

from .config import Settings
from .exceptions import (
    AlreadyProcessedError,
    ConcurrentAppendError,
    ConsistencyError,
    DuplicateTreeError,
    LifeseedError,
    PermissionDenied,
    ResourceNotFound,
    StorageError,
    TreeNotFoundError,
    ValidationError,
    ValidatorNotTrustedError,
)
from .ledger import Ledger, get_ledger, init_db

__all__ = [
    "AlreadyProcessedError",
    "ConcurrentAppendError",
    "ConsistencyError",
    "DuplicateTreeError",
    "Ledger",
    "LifeseedError",
    "PermissionDenied",
    "ResourceNotFound",
    "Settings",
    "StorageError",
    "TreeNotFoundError",
    "ValidationError",
    "ValidatorNotTrustedError",
    "get_ledger",
    "init_db",
]
