"""Block hash computation for per-tree ledgers.

HASH CHAIN:
- hash = SHA256(canonical_json(payload) + previous_hash + str(timestamp_ms))
- Rendered as 64 lowercase hex characters
- previous_hash "0" is reserved for genesis blocks (no predecessor)

canonical_json sorts keys and uses compact separators so that the same
payload always serialises to the same bytes, regardless of dict
insertion order.
"""

import hashlib
import json
from typing import Any, Mapping

GENESIS_PREVIOUS_HASH = "0"
HASH_HEX_LENGTH = 64


def canonical_json(payload: Mapping[str, Any]) -> str:
    """Serialise a payload deterministically.

    Args:
        payload: JSON-compatible mapping

    Returns:
        JSON text with sorted keys and no insignificant whitespace

    Raises:
        TypeError: If the payload contains values JSON cannot encode
    """
    return json.dumps(
        payload,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def compute_block_hash(
    previous_hash: str,
    payload: Mapping[str, Any],
    timestamp_ms: int,
) -> str:
    """Compute the content hash of a block.

    Pure function: no I/O, same inputs always give the same digest.

    Args:
        previous_hash: Hash of the predecessor block, or "0" for genesis
        payload: Block payload (serialised with canonical_json)
        timestamp_ms: Block timestamp in epoch milliseconds

    Returns:
        Lowercase hex SHA-256 digest

    Examples:
        >>> len(compute_block_hash("0", {"message": "Genesis"}, 0))
        64
    """
    if not previous_hash:
        raise ValueError("previous_hash must not be empty (use '0' for genesis)")
    if isinstance(timestamp_ms, bool) or not isinstance(timestamp_ms, int):
        raise TypeError(f"timestamp_ms must be an int, got {type(timestamp_ms).__name__}")

    material = canonical_json(payload) + previous_hash + str(timestamp_ms)
    return hashlib.sha256(material.encode("utf-8")).hexdigest()


def verify_link(
    block: Mapping[str, Any],
    expected_previous: str,
) -> str | None:
    """Check one block of a chain against its expected predecessor.

    Args:
        block: Mapping with 'payload' (dict or canonical JSON string),
               'previous_hash', 'hash' and 'timestamp_ms'
        expected_previous: Hash the block must link to

    Returns:
        None if the block is intact, otherwise a short description of the break
    """
    if block["previous_hash"] != expected_previous:
        return (
            f"previous_hash {block['previous_hash'][:12]} does not link to "
            f"{expected_previous[:12]}"
        )

    payload = block["payload"]
    if isinstance(payload, str):
        payload = json.loads(payload)

    recomputed = compute_block_hash(block["previous_hash"], payload, block["timestamp_ms"])
    if recomputed != block["hash"]:
        return f"hash {block['hash'][:12]} does not match recomputed {recomputed[:12]}"

    return None
