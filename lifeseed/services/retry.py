"""Bounded retry for chain appends.

with_append_retry(operation, attempts) calls operation() until it stops
raising ConcurrentAppendError, at most `attempts` times. Each call must
open its own Ledger session and read a fresh head, so a retry rebuilds the
append from current state; the losing attempt was rolled back and left
nothing behind.
"""

import logging
from typing import Callable, TypeVar

from ..exceptions import ConcurrentAppendError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def with_append_retry(operation: Callable[[], T], attempts: int) -> T:
    """Run operation, retrying on ConcurrentAppendError.

    Args:
        operation: Zero-argument callable performing one full append session
        attempts: Maximum number of calls (at least 1)

    Returns:
        Whatever operation returns on its first successful call

    Raises:
        ValueError: If attempts < 1
        ConcurrentAppendError: If every attempt lost its race
    """
    if attempts < 1:
        raise ValueError(f"attempts must be at least 1, got {attempts}")

    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except ConcurrentAppendError as e:
            if attempt == attempts:
                logger.warning(
                    "Append to %s failed after %d attempts", e.tree_uuid, attempts
                )
                raise
            logger.info(
                "Append to %s lost a race (attempt %d/%d); retrying",
                e.tree_uuid, attempt, attempts,
            )

    # Unreachable: the loop either returns or re-raises
    raise RuntimeError("with_append_retry exhausted without result")
