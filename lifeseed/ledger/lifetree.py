"""Lifetree operations.

A Lifetree is the root of one hash chain. Planting computes its genesis
hash; every later append moves latest_hash/block_height forward (see
chain.py). This module owns the remaining tree axes:

TRUST (one-way):
- plant() starts a tree unvalidated, except for the narrow bootstrap rules
  configured in Settings (first tree ever, configured root names)
- validate() flips validated 0 -> 1 once; a trigger forbids the reverse

GUARDIANSHIP (set-based, idempotent):
- Guardians live in the guardian table, so join/leave never write the
  lifetree row that appends compare-and-set on

DANGER (guardian-only, flips both ways):
- toggle_status() is a single conditional UPDATE of the status column

CONNECTION LIFECYCLE:
- Operations receive the Ledger, not a direct Connection
- All operations use self._conn, which calls ledger._get_conn()
"""

import logging
import sqlite3
from typing import TYPE_CHECKING, Any

from ..exceptions import (
    DuplicateTreeError,
    PermissionDenied,
    TreeNotFoundError,
    ValidationError,
    ValidatorNotTrustedError,
)
from ..models import (
    DEFAULT_LOCATION_NAME,
    GENESIS_VALIDATOR,
    SYSTEM_VALIDATOR,
    GeoPoint,
    Lifetree,
    TreeStatus,
)
from ..utils import hash_chain, uid
from .query import Page, build_update_clause, build_where_clause, keyset_clause, paginate

if TYPE_CHECKING:
    from . import Ledger

logger = logging.getLogger(__name__)

ROOT_VISION_TITLE = "Root Vision"
GENESIS_MESSAGE = "Genesis"

# Fields an owner or guardian may edit; everything else is ledger state
EDITABLE_FIELDS = frozenset({
    "name",
    "short_title",
    "body",
    "image_url",
    "latitude",
    "longitude",
    "location_name",
})


class LifetreeOperations:
    """Plant, read, validate and steward Lifetrees."""

    def __init__(self, ledger: "Ledger"):
        self._ledger = ledger

    @property
    def _conn(self) -> sqlite3.Connection:
        return self._ledger._get_conn()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _get_row(self, tree_id: str) -> sqlite3.Row:
        """Fetch the raw lifetree row.

        Raises:
            TreeNotFoundError: If no tree has this id
        """
        tree_id = uid.normalize(tree_id)
        row = self._conn.execute(
            "SELECT * FROM lifetree WHERE uuid = ?", (tree_id,)
        ).fetchone()
        if row is None:
            raise TreeNotFoundError(
                f"Lifetree '{tree_id}' not found", {"tree_uuid": tree_id}
            )
        return row

    def _guardians_by_tree(self, tree_ids: list[str]) -> dict[str, list[str]]:
        if not tree_ids:
            return {}
        placeholders = ", ".join("?" for _ in tree_ids)
        rows = self._conn.execute(
            f"""SELECT lifetree_uuid, user_id FROM guardian
                WHERE lifetree_uuid IN ({placeholders})
                ORDER BY joined_at, user_id""",
            tree_ids,
        ).fetchall()
        result: dict[str, list[str]] = {tree_id: [] for tree_id in tree_ids}
        for row in rows:
            result[row["lifetree_uuid"]].append(row["user_id"])
        return result

    def _hydrate(self, rows: list[sqlite3.Row]) -> list[Lifetree]:
        guardians = self._guardians_by_tree([row["uuid"] for row in rows])
        return [Lifetree.from_row(row, guardians[row["uuid"]]) for row in rows]

    def get_by_id(self, tree_id: str) -> Lifetree:
        """Get a Lifetree with its guardian roster.

        Raises:
            TreeNotFoundError: If no tree has this id
        """
        return self._hydrate([self._get_row(tree_id)])[0]

    def exists(self, tree_id: str) -> bool:
        row = self._conn.execute(
            "SELECT 1 FROM lifetree WHERE uuid = ?", (tree_id,)
        ).fetchone()
        return row is not None

    def list_by_owner(self, owner_id: str) -> list[Lifetree]:
        """All trees planted by owner_id, oldest first."""
        owner_id = uid.normalize(owner_id)
        rows = self._conn.execute(
            "SELECT * FROM lifetree WHERE owner_id = ? ORDER BY created_at, uuid",
            (owner_id,),
        ).fetchall()
        return self._hydrate(rows)

    def find_by_owner(self, owner_id: str) -> Lifetree | None:
        """First tree of owner_id, or None."""
        trees = self.list_by_owner(owner_id)
        return trees[0] if trees else None

    def list_guarded_by(self, user_id: str) -> list[Lifetree]:
        user_id = uid.normalize(user_id)
        rows = self._conn.execute(
            """SELECT t.* FROM lifetree t
               JOIN guardian g ON g.lifetree_uuid = t.uuid
               WHERE g.user_id = ?
               ORDER BY t.created_at, t.uuid""",
            (user_id,),
        ).fetchall()
        return self._hydrate(rows)

    def feed(
        self,
        cursor: str | None = None,
        limit: int | None = None,
        validated: bool | None = None,
        status: TreeStatus | None = None,
    ) -> Page[Lifetree]:
        """Page through all trees, newest first.

        Args:
            cursor: Cursor from the previous page, None for the first page
            limit: Page size (defaults to settings.page_size)
            validated: Optional trust filter
            status: Optional danger-axis filter

        Returns:
            Page of Lifetrees

        Raises:
            ValueError: If the cursor is malformed or limit is not positive
        """
        limit = limit or self._ledger.settings.page_size
        if limit < 1:
            raise ValueError(f"limit must be positive, got {limit}")

        filter_clause, params = build_where_clause({
            "validated": None if validated is None else int(validated),
            "status": None if status is None else TreeStatus(status).value,
        })
        key_clause, key_params = keyset_clause(cursor)

        rows = self._conn.execute(
            f"""SELECT * FROM lifetree
                WHERE {filter_clause} AND {key_clause}
                ORDER BY created_at DESC, uuid DESC
                LIMIT ?""",
            params + key_params + [limit + 1],
        ).fetchall()
        page = paginate(rows, limit, lambda row: row)
        return Page(items=self._hydrate(page.items), cursor=page.cursor)

    def ids(self) -> list[str]:
        """Every tree id, oldest first."""
        rows = self._conn.execute(
            "SELECT uuid FROM lifetree ORDER BY created_at, uuid"
        ).fetchall()
        return [row["uuid"] for row in rows]

    def count(self) -> int:
        return self._conn.execute("SELECT COUNT(*) FROM lifetree").fetchone()[0]

    # ------------------------------------------------------------------
    # Planting
    # ------------------------------------------------------------------

    def _bootstrap_validator(self, name: str) -> str | None:
        """Validator sentinel for trust granted at plant time, if any."""
        settings = self._ledger.settings
        if settings.bootstrap_first_tree and self.count() == 0:
            return GENESIS_VALIDATOR
        if settings.is_root_name(name):
            return SYSTEM_VALIDATOR
        return None

    def plant(
        self,
        owner_id: str,
        name: str,
        body: str,
        short_title: str | None = None,
        image_url: str | None = None,
        geo: GeoPoint | None = None,
        validator_id: str | None = None,
    ) -> Lifetree:
        """Plant a new Lifetree and open its chain.

        Computes the genesis hash over {"message", "owner", "timestamp"} with
        previous hash "0", sets latest_hash = genesis_hash and height 0, and
        creates the tree's Root Vision in the same transaction.

        Args:
            owner_id: Authenticated planter
            name: Tree name
            body: Vision text for the tree
            short_title: Optional short title
            image_url: Optional already-persisted image reference
            geo: Optional coordinates; None means no location
            validator_id: Explicit trust sentinel (used by genesis seeding
                          only); None applies the bootstrap rules

        Returns:
            The planted Lifetree

        Raises:
            ValidationError: If the name is empty
            DuplicateTreeError: If the owner still holds an unvalidated tree
        """
        owner_id = uid.normalize(owner_id)
        if not name or not name.strip():
            raise ValidationError("Lifetree name must not be empty", {"owner_id": owner_id})
        name = name.strip()

        # The first-tree and pending-tree checks must see every committed plant
        self._ledger.begin_write()
        pending = self._conn.execute(
            "SELECT uuid FROM lifetree WHERE owner_id = ? AND validated = 0",
            (owner_id,),
        ).fetchone()
        if pending is not None:
            raise DuplicateTreeError(
                "Existing Lifetree is not validated yet; cannot plant another",
                {"owner_id": owner_id, "tree_uuid": pending["uuid"]},
            )

        if validator_id is None:
            validator_id = self._bootstrap_validator(name)

        genesis_ms = self._ledger.now_ms()
        genesis_payload = {
            "message": GENESIS_MESSAGE,
            "owner": owner_id,
            "timestamp": genesis_ms,
        }
        genesis_hash = hash_chain.compute_block_hash(
            hash_chain.GENESIS_PREVIOUS_HASH, genesis_payload, genesis_ms
        )

        tree_uuid = uid.generate_uuid()
        created_at = self._ledger.stamp(genesis_ms)

        try:
            self._conn.execute(
                """INSERT INTO lifetree (
                       uuid, owner_id, name, short_title, body, image_url,
                       latitude, longitude, location_name, created_at,
                       genesis_payload, genesis_ms, genesis_hash, latest_hash,
                       block_height, validated, validator_id, status
                   ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, 0, ?, ?, ?)""",
                (
                    tree_uuid, owner_id, name, short_title, body or "", image_url,
                    geo.latitude if geo else None,
                    geo.longitude if geo else None,
                    (geo.location_name if geo and geo.location_name else DEFAULT_LOCATION_NAME),
                    created_at,
                    hash_chain.canonical_json(genesis_payload), genesis_ms,
                    genesis_hash, genesis_hash,
                    1 if validator_id else 0, validator_id,
                    TreeStatus.HEALTHY.value,
                ),
            )
        except sqlite3.IntegrityError as e:
            # Partial unique index: a concurrent plant by the same owner won
            if "lifetree.owner_id" in str(e):
                raise DuplicateTreeError(
                    "Existing Lifetree is not validated yet; cannot plant another",
                    {"owner_id": owner_id},
                ) from e
            raise

        self._ledger.vision.create(
            tree_uuid,
            author_id=owner_id,
            title=ROOT_VISION_TITLE,
            body=body or "",
            image_url=image_url,
            created_ms=genesis_ms,
        )

        logger.info(
            "Planted lifetree %s for %s (validated=%s)",
            tree_uuid, owner_id, bool(validator_id),
        )
        return self.get_by_id(tree_uuid)

    # ------------------------------------------------------------------
    # Trust
    # ------------------------------------------------------------------

    def validate(self, target_id: str, validator_id: str) -> Lifetree:
        """Validate target_id on the authority of tree validator_id.

        Idempotent: an already validated target is returned unchanged and
        keeps its original validator.

        Raises:
            ValidationError: If a tree tries to validate itself
            TreeNotFoundError: If either tree is missing
            ValidatorNotTrustedError: If the validator tree is unvalidated
        """
        target_id = uid.normalize(target_id)
        validator_id = uid.normalize(validator_id)
        if target_id == validator_id:
            raise ValidationError(
                "A Lifetree cannot validate itself", {"tree_uuid": target_id}
            )

        validator = self._get_row(validator_id)
        target = self._get_row(target_id)

        if not validator["validated"]:
            raise ValidatorNotTrustedError(
                "Only a validated Lifetree can validate others",
                {"validator_uuid": validator_id, "target_uuid": target_id},
            )

        if target["validated"]:
            logger.debug("Lifetree %s already validated by %s", target_id, target["validator_id"])
            return self.get_by_id(target_id)

        # Conditional flip; a concurrent validation leaves rowcount 0, which is fine
        self._conn.execute(
            "UPDATE lifetree SET validated = 1, validator_id = ? WHERE uuid = ? AND validated = 0",
            (validator_id, target_id),
        )
        logger.info("Lifetree %s validated by %s", target_id, validator_id)
        return self.get_by_id(target_id)

    # ------------------------------------------------------------------
    # Guardianship and danger status
    # ------------------------------------------------------------------

    def guardians(self, tree_id: str) -> list[str]:
        tree_id = self._get_row(tree_id)["uuid"]
        return self._guardians_by_tree([tree_id])[tree_id]

    def is_guardian(self, tree_id: str, user_id: str) -> bool:
        tree_id = uid.normalize(tree_id)
        user_id = uid.normalize(user_id)
        row = self._conn.execute(
            "SELECT 1 FROM guardian WHERE lifetree_uuid = ? AND user_id = ?",
            (tree_id, user_id),
        ).fetchone()
        return row is not None

    def join_guardians(self, tree_id: str, user_id: str) -> list[str]:
        """Add user_id to the guardian set (no-op if already present).

        Returns:
            The guardian roster after the join
        """
        tree_id = self._get_row(tree_id)["uuid"]
        user_id = uid.normalize(user_id)
        self._conn.execute(
            """INSERT OR IGNORE INTO guardian (lifetree_uuid, user_id, joined_at)
               VALUES (?, ?, ?)""",
            (tree_id, user_id, self._ledger.stamp()),
        )
        return self._guardians_by_tree([tree_id])[tree_id]

    def leave_guardians(self, tree_id: str, user_id: str) -> list[str]:
        """Remove user_id from the guardian set (no-op if absent)."""
        tree_id = self._get_row(tree_id)["uuid"]
        user_id = uid.normalize(user_id)
        self._conn.execute(
            "DELETE FROM guardian WHERE lifetree_uuid = ? AND user_id = ?",
            (tree_id, user_id),
        )
        return self._guardians_by_tree([tree_id])[tree_id]

    def toggle_status(self, tree_id: str, user_id: str) -> TreeStatus:
        """Flip HEALTHY <-> DANGER. Guardians only.

        Returns:
            The new status

        Raises:
            TreeNotFoundError: If the tree is missing
            PermissionDenied: If user_id is not a guardian of the tree
        """
        tree_id = uid.normalize(tree_id)
        user_id = uid.normalize(user_id)
        cursor = self._conn.execute(
            """UPDATE lifetree
               SET status = CASE status WHEN 'HEALTHY' THEN 'DANGER' ELSE 'HEALTHY' END
               WHERE uuid = ?
                 AND EXISTS (
                     SELECT 1 FROM guardian WHERE lifetree_uuid = ? AND user_id = ?
                 )""",
            (tree_id, tree_id, user_id),
        )
        if cursor.rowcount == 0:
            self._get_row(tree_id)
            raise PermissionDenied(
                "Only guardians can change a Lifetree's status",
                {"tree_uuid": tree_id, "user_id": user_id},
            )

        status = TreeStatus(self._get_row(tree_id)["status"])
        logger.info("Lifetree %s status set to %s by %s", tree_id, status.value, user_id)
        return status

    # ------------------------------------------------------------------
    # Descriptive edits and deletion
    # ------------------------------------------------------------------

    def update(self, tree_id: str, acting_user: str, fields: dict[str, Any]) -> Lifetree:
        """Edit descriptive fields of a tree.

        Args:
            tree_id: Tree to edit
            acting_user: Must be the owner or a guardian
            fields: Subset of EDITABLE_FIELDS; None values are left unchanged

        Returns:
            The updated Lifetree

        Raises:
            ValidationError: If fields names ledger state or an unknown column
            PermissionDenied: If acting_user is neither owner nor guardian
        """
        acting_user = uid.normalize(acting_user)
        rejected = sorted(set(fields) - EDITABLE_FIELDS)
        if rejected:
            raise ValidationError(
                f"Fields cannot be edited: {', '.join(rejected)}",
                {"tree_uuid": tree_id, "fields": rejected},
            )
        if "name" in fields and fields["name"] is not None and not fields["name"].strip():
            raise ValidationError("Lifetree name must not be empty", {"tree_uuid": tree_id})

        tree = self.get_by_id(tree_id)
        if not tree.can_edit(acting_user):
            raise PermissionDenied(
                "Only the owner or a guardian can edit this Lifetree",
                {"tree_uuid": tree.uuid, "user_id": acting_user},
            )

        latitude = fields.get("latitude")
        longitude = fields.get("longitude")
        if latitude is not None or longitude is not None:
            try:
                GeoPoint(
                    latitude if latitude is not None else tree.latitude or 0.0,
                    longitude if longitude is not None else tree.longitude or 0.0,
                )
            except ValueError as e:
                raise ValidationError(str(e), {"tree_uuid": tree.uuid}) from e

        update_clause, params = build_update_clause(fields)
        if not update_clause:
            return tree

        self._conn.execute(
            f"UPDATE lifetree SET {update_clause} WHERE uuid = ?",
            params + [tree.uuid],
        )
        return self.get_by_id(tree.uuid)

    def delete(self, tree_id: str, acting_user: str) -> None:
        """Delete a tree and everything hanging off it. Owner only.

        Pulses, visions, guardians, loves, comments and match proposals
        referencing the tree are removed by foreign key cascades.

        Raises:
            TreeNotFoundError: If the tree is missing
            PermissionDenied: If acting_user is not the owner
        """
        acting_user = uid.normalize(acting_user)
        row = self._get_row(tree_id)
        if row["owner_id"] != acting_user:
            raise PermissionDenied(
                "Only the owner can delete this Lifetree",
                {"tree_uuid": row["uuid"], "user_id": acting_user},
            )
        self._conn.execute("DELETE FROM lifetree WHERE uuid = ?", (row["uuid"],))
        logger.info("Lifetree %s deleted by %s", row["uuid"], acting_user)
