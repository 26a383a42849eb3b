"""UUID generation for ledger records."""

import uuid as uuid_lib

from ..exceptions import ValidationError


def generate_uuid() -> str:
    """Generate a plain UUID v4 string (no prefix)."""
    return str(uuid_lib.uuid4())


def normalize(record_id: str) -> str:
    """Strip surrounding whitespace from a caller-supplied id.

    Every operation that takes a tree, record or user id passes it through
    here before reading or writing, so stored and compared ids agree.

    Args:
        record_id: Id as received from the caller

    Returns:
        The id with whitespace removed

    Raises:
        ValidationError: If the id is empty
    """
    record_id = (record_id or "").strip()
    if not record_id:
        raise ValidationError("Record id must not be empty", {"record_id": record_id})
    return record_id
