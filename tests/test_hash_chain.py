"""Tests for the block hash primitive.

Coverage:
- Determinism and key-order independence
- Digest shape (64 lowercase hex)
- Sensitivity to every input
- Argument validation
- Link verification
"""

import hashlib
import json

import pytest

from lifeseed.utils.hash_chain import (
    GENESIS_PREVIOUS_HASH,
    canonical_json,
    compute_block_hash,
    verify_link,
)


PAYLOAD = {"title": "Spring", "body": "Buds", "image": "", "author": "alice", "type": "STANDARD"}


class TestCanonicalJson:
    def test_sorted_compact(self):
        assert canonical_json({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'

    def test_unicode_kept(self):
        assert canonical_json({"name": "Érable"}) == '{"name":"Érable"}'

    def test_nan_rejected(self):
        with pytest.raises(ValueError):
            canonical_json({"x": float("nan")})


class TestComputeBlockHash:
    def test_known_digest(self):
        """Digest is SHA-256 over canonical JSON + previous hash + timestamp."""
        expected = hashlib.sha256(('{"a":1}' + "0" + "5").encode("utf-8")).hexdigest()
        assert compute_block_hash("0", {"a": 1}, 5) == expected

    def test_deterministic(self):
        first = compute_block_hash("abc", PAYLOAD, 1_700_000_000_000)
        second = compute_block_hash("abc", dict(PAYLOAD), 1_700_000_000_000)
        assert first == second

    def test_key_order_irrelevant(self):
        reordered = dict(reversed(list(PAYLOAD.items())))
        assert compute_block_hash("0", PAYLOAD, 1) == compute_block_hash("0", reordered, 1)

    def test_digest_shape(self):
        digest = compute_block_hash(GENESIS_PREVIOUS_HASH, {"message": "Genesis"}, 0)
        assert len(digest) == 64
        assert digest == digest.lower()
        int(digest, 16)

    @pytest.mark.parametrize("change", ["previous", "payload", "timestamp"])
    def test_every_input_matters(self, change):
        base = compute_block_hash("prev", PAYLOAD, 10)
        if change == "previous":
            other = compute_block_hash("prev2", PAYLOAD, 10)
        elif change == "payload":
            other = compute_block_hash("prev", {**PAYLOAD, "body": "Leaves"}, 10)
        else:
            other = compute_block_hash("prev", PAYLOAD, 11)
        assert base != other

    def test_empty_previous_hash_rejected(self):
        with pytest.raises(ValueError):
            compute_block_hash("", PAYLOAD, 1)

    @pytest.mark.parametrize("timestamp", [1.5, "1", True, None])
    def test_timestamp_must_be_int(self, timestamp):
        with pytest.raises(TypeError):
            compute_block_hash("0", PAYLOAD, timestamp)


class TestVerifyLink:
    def _block(self, previous_hash="0", payload=PAYLOAD, timestamp_ms=42):
        return {
            "previous_hash": previous_hash,
            "payload": payload,
            "timestamp_ms": timestamp_ms,
            "hash": compute_block_hash(previous_hash, payload, timestamp_ms),
        }

    def test_intact_block(self):
        assert verify_link(self._block(), "0") is None

    def test_payload_as_json_text(self):
        block = self._block()
        block["payload"] = canonical_json(PAYLOAD)
        assert verify_link(block, "0") is None

    def test_wrong_predecessor(self):
        problem = verify_link(self._block(previous_hash="a" * 64), "b" * 64)
        assert problem is not None
        assert "does not link" in problem

    def test_tampered_payload(self):
        block = self._block()
        block["payload"] = json.dumps({**PAYLOAD, "body": "forged"})
        problem = verify_link(block, "0")
        assert problem is not None
        assert "recomputed" in problem
