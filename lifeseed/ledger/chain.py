"""Per-tree hash chain operations.

Each Lifetree carries a chain cursor (latest_hash, block_height). Blocks
are pulse rows linked by previous_hash.

APPEND PROTOCOL (one Ledger transaction):
1. Read the tree; TreeNotFoundError if absent
2. Optional based_on_hash check against latest_hash
3. hash = compute_block_hash(latest_hash, payload, now)
4. Compare-and-set the cursor:
       UPDATE lifetree ... WHERE uuid = ? AND latest_hash = ? AND block_height = ?
   rowcount 0 means another append won -> ConcurrentAppendError
5. Insert the block; UNIQUE(lifetree_uuid, previous_hash) rejects any
   second block on the same predecessor -> ConcurrentAppendError

Nothing is durable until the Ledger commits, so a losing attempt leaves
no trace and callers retry from a fresh read.

INVARIANTS:
- block_height == number of blocks of the tree
- latest_hash == hash of the highest block (genesis_hash when there are none)
- block n links to block n-1 (block 1 links to genesis_hash)
"""

import json
import logging
import sqlite3
from typing import TYPE_CHECKING

from ..exceptions import ConcurrentAppendError, ResourceNotFound, ValidationError
from ..models import (
    Block,
    ChainHead,
    ChainVerification,
    Lightseed,
    PulsePayload,
    PulseType,
)
from ..utils import hash_chain, uid
from .query import Page, build_where_clause, keyset_clause, paginate

if TYPE_CHECKING:
    from . import Ledger

logger = logging.getLogger(__name__)


def _is_lock_contention(error: sqlite3.OperationalError) -> bool:
    message = str(error).lower()
    return "locked" in message or "busy" in message


class ChainOperations:
    """Read, append to and verify per-tree chains."""

    def __init__(self, ledger: "Ledger"):
        self._ledger = ledger

    @property
    def _conn(self) -> sqlite3.Connection:
        return self._ledger._get_conn()

    def head(self, tree_id: str) -> ChainHead:
        """Current chain cursor of a tree.

        Raises:
            TreeNotFoundError: If the tree does not exist
        """
        row = self._ledger.lifetree._get_row(tree_id)
        return ChainHead(
            tree_uuid=row["uuid"],
            latest_hash=row["latest_hash"],
            block_height=row["block_height"],
        )

    def append_block(
        self,
        tree_id: str,
        payload: PulsePayload,
        author: Lightseed,
        based_on_hash: str | None = None,
    ) -> Block:
        """Append one block to a tree's chain.

        Args:
            tree_id: Tree to append to
            payload: Validated pulse payload (image already persisted)
            author: Authenticated author
            based_on_hash: Optional head the caller built this append on; if
                           the head has moved the append is refused

        Returns:
            The new Block

        Raises:
            ValidationError: If the payload is malformed
            TreeNotFoundError: If the tree does not exist
            ConcurrentAppendError: If another append moved the head first
        """
        try:
            payload.validate()
        except ValueError as e:
            raise ValidationError(str(e), {"tree_uuid": tree_id}) from e

        try:
            return self._append(tree_id, payload, author, based_on_hash)
        except sqlite3.OperationalError as e:
            if _is_lock_contention(e):
                raise ConcurrentAppendError(
                    f"Lifetree '{tree_id}' is locked by a concurrent append",
                    tree_uuid=tree_id,
                    expected_hash=based_on_hash,
                ) from e
            raise

    def _append(
        self,
        tree_id: str,
        payload: PulsePayload,
        author: Lightseed,
        based_on_hash: str | None,
    ) -> Block:
        author_id = uid.normalize(author.uid)
        tree = self._ledger.lifetree._get_row(tree_id)
        tree_id = tree["uuid"]
        previous_hash = tree["latest_hash"]
        height = tree["block_height"] + 1

        if based_on_hash is not None and based_on_hash != previous_hash:
            raise ConcurrentAppendError(
                f"Lifetree '{tree_id}' head moved since {based_on_hash[:12]}",
                tree_uuid=tree_id,
                expected_hash=based_on_hash,
                actual_hash=previous_hash,
            )

        timestamp_ms = self._ledger.now_ms()
        hash_payload = payload.to_hash_payload(author_id)
        block_hash = hash_chain.compute_block_hash(previous_hash, hash_payload, timestamp_ms)

        cover_image = payload.image_url if payload.type is PulseType.GROWTH else None
        cursor = self._conn.execute(
            """UPDATE lifetree
               SET latest_hash = ?, block_height = block_height + 1,
                   image_url = COALESCE(?, image_url)
               WHERE uuid = ? AND latest_hash = ? AND block_height = ?""",
            (block_hash, cover_image, tree_id, previous_hash, height - 1),
        )
        if cursor.rowcount != 1:
            current = self._ledger.lifetree._get_row(tree_id)
            raise ConcurrentAppendError(
                f"Lifetree '{tree_id}' head moved during append",
                tree_uuid=tree_id,
                expected_hash=previous_hash,
                actual_hash=current["latest_hash"],
            )

        block_uuid = uid.generate_uuid()
        try:
            self._conn.execute(
                """INSERT INTO pulse (
                       uuid, lifetree_uuid, height, type, title, body, image_url,
                       author_id, author_name, author_photo, created_at, timestamp_ms,
                       payload, previous_hash, hash
                   ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    block_uuid, tree_id, height, payload.type.value,
                    payload.title, payload.body, payload.image_url,
                    author_id, author.display_name or "", author.photo_url,
                    self._ledger.stamp(timestamp_ms), timestamp_ms,
                    hash_chain.canonical_json(hash_payload), previous_hash, block_hash,
                ),
            )
        except sqlite3.IntegrityError as e:
            if "UNIQUE" not in str(e):
                raise
            raise ConcurrentAppendError(
                f"Lifetree '{tree_id}' already has a block on {previous_hash[:12]}",
                tree_uuid=tree_id,
                expected_hash=previous_hash,
            ) from e

        logger.info(
            "Appended %s block %d to lifetree %s (%s)",
            payload.type.value, height, tree_id, block_hash[:12],
        )
        return self.get_block(block_uuid)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_block(self, pulse_id: str) -> Block:
        """Get a block by pulse id.

        Raises:
            ResourceNotFound: If no pulse has this id
        """
        row = self._conn.execute(
            "SELECT * FROM pulse WHERE uuid = ?", (pulse_id,)
        ).fetchone()
        if row is None:
            raise ResourceNotFound(f"Pulse '{pulse_id}' not found", {"pulse_uuid": pulse_id})
        return Block.from_row(row)

    def blocks(self, tree_id: str) -> list[Block]:
        """All blocks of a tree in chain order (height ascending)."""
        rows = self._conn.execute(
            "SELECT * FROM pulse WHERE lifetree_uuid = ? ORDER BY height",
            (tree_id,),
        ).fetchall()
        return [Block.from_row(row) for row in rows]

    def growth_blocks(self, tree_id: str) -> list[Block]:
        """GROWTH snapshots of a tree, oldest first."""
        rows = self._conn.execute(
            "SELECT * FROM pulse WHERE lifetree_uuid = ? AND type = ? ORDER BY height",
            (tree_id, PulseType.GROWTH.value),
        ).fetchall()
        return [Block.from_row(row) for row in rows]

    def by_author(self, author_id: str) -> list[Block]:
        """Blocks written by author_id, newest first."""
        author_id = uid.normalize(author_id)
        rows = self._conn.execute(
            "SELECT * FROM pulse WHERE author_id = ? ORDER BY created_at DESC, uuid DESC",
            (author_id,),
        ).fetchall()
        return [Block.from_row(row) for row in rows]

    def feed(
        self,
        cursor: str | None = None,
        limit: int | None = None,
        tree_id: str | None = None,
        pulse_type: PulseType | None = None,
    ) -> Page[Block]:
        """Page through blocks, newest first.

        Raises:
            ValueError: If the cursor is malformed or limit is not positive
        """
        limit = limit or self._ledger.settings.page_size
        if limit < 1:
            raise ValueError(f"limit must be positive, got {limit}")

        filter_clause, params = build_where_clause({
            "lifetree_uuid": tree_id,
            "type": None if pulse_type is None else PulseType(pulse_type).value,
        })
        key_clause, key_params = keyset_clause(cursor)
        rows = self._conn.execute(
            f"""SELECT * FROM pulse
                WHERE {filter_clause} AND {key_clause}
                ORDER BY created_at DESC, uuid DESC
                LIMIT ?""",
            params + key_params + [limit + 1],
        ).fetchall()
        return paginate(rows, limit, Block.from_row)

    # ------------------------------------------------------------------
    # Verification
    # ------------------------------------------------------------------

    def verify(self, tree_id: str) -> ChainVerification:
        """Replay a tree's chain from genesis.

        Recomputes the genesis hash and every block hash, checks each link,
        and compares the stored cursor with the blocks actually present.

        Returns:
            ChainVerification; valid is False on any break or cursor drift

        Raises:
            TreeNotFoundError: If the tree does not exist
        """
        tree = self._ledger.lifetree._get_row(tree_id)
        tree_id = tree["uuid"]
        result = ChainVerification(
            tree_uuid=tree_id,
            valid=True,
            block_height=tree["block_height"],
            verified_blocks=0,
        )

        genesis = hash_chain.compute_block_hash(
            hash_chain.GENESIS_PREVIOUS_HASH,
            json.loads(tree["genesis_payload"]),
            tree["genesis_ms"],
        )
        if genesis != tree["genesis_hash"]:
            result.valid = False
            result.first_break_height = 0
            result.message = "genesis hash does not match genesis payload"
            return result

        rows = self._conn.execute(
            """SELECT height, payload, previous_hash, hash, timestamp_ms
               FROM pulse WHERE lifetree_uuid = ? ORDER BY height""",
            (tree_id,),
        ).fetchall()

        expected_previous = tree["genesis_hash"]
        for expected_height, row in enumerate(rows, start=1):
            if row["height"] != expected_height:
                problem = f"height {row['height']} found where {expected_height} expected"
            else:
                problem = hash_chain.verify_link(row, expected_previous)
            if problem:
                result.valid = False
                result.first_break_height = expected_height
                result.message = problem
                return result
            result.verified_blocks += 1
            expected_previous = row["hash"]

        if len(rows) != tree["block_height"] or expected_previous != tree["latest_hash"]:
            result.valid = False
            result.cursor_drift = True
            result.message = (
                f"cursor at height {tree['block_height']} but {len(rows)} blocks present"
                if len(rows) != tree["block_height"]
                else "latest_hash does not match the last block"
            )
        return result
