"""Vision operations.

Visions are aspirational records attached to a tree. They are not part of
the hash chain: creating or editing one never touches latest_hash or
block_height. Only the author may edit or delete a vision; anyone may
join or leave its participant set.
"""

import logging
import sqlite3
from typing import TYPE_CHECKING, Any

from ..exceptions import PermissionDenied, ResourceNotFound, TreeNotFoundError, ValidationError
from ..models import Vision
from ..utils import uid
from .query import Page, build_update_clause, keyset_clause, paginate

if TYPE_CHECKING:
    from . import Ledger

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = frozenset({"title", "body", "link", "image_url"})


class VisionOperations:
    """Create, read and edit Visions."""

    def __init__(self, ledger: "Ledger"):
        self._ledger = ledger

    @property
    def _conn(self) -> sqlite3.Connection:
        return self._ledger._get_conn()

    def _participants(self, vision_ids: list[str]) -> dict[str, list[str]]:
        if not vision_ids:
            return {}
        placeholders = ", ".join("?" for _ in vision_ids)
        rows = self._conn.execute(
            f"""SELECT vision_uuid, user_id FROM vision_participant
                WHERE vision_uuid IN ({placeholders})
                ORDER BY joined_at, user_id""",
            vision_ids,
        ).fetchall()
        result: dict[str, list[str]] = {vision_id: [] for vision_id in vision_ids}
        for row in rows:
            result[row["vision_uuid"]].append(row["user_id"])
        return result

    def _hydrate(self, rows: list[sqlite3.Row]) -> list[Vision]:
        participants = self._participants([row["uuid"] for row in rows])
        return [Vision.from_row(row, participants[row["uuid"]]) for row in rows]

    def create(
        self,
        tree_id: str,
        author_id: str,
        title: str,
        body: str,
        link: str | None = None,
        image_url: str | None = None,
        created_ms: int | None = None,
    ) -> Vision:
        """Create a vision on a tree.

        Args:
            tree_id: Tree the vision belongs to
            author_id: Authenticated author
            title: Vision title
            body: Vision text
            link: Optional external link
            image_url: Optional already-persisted image reference
            created_ms: Creation time (defaults to the session clock)

        Returns:
            The created Vision

        Raises:
            ValidationError: If the title is empty
            TreeNotFoundError: If the tree does not exist
        """
        if not title or not title.strip():
            raise ValidationError("Vision title must not be empty", {"tree_uuid": tree_id})
        tree_id = uid.normalize(tree_id)
        if not self._ledger.lifetree.exists(tree_id):
            raise TreeNotFoundError(f"Lifetree '{tree_id}' not found", {"tree_uuid": tree_id})

        vision_uuid = uid.generate_uuid()
        self._conn.execute(
            """INSERT INTO vision (uuid, lifetree_uuid, author_id, title, body, link, image_url, created_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                vision_uuid, tree_id, uid.normalize(author_id), title.strip(), body or "",
                link or None, image_url, self._ledger.stamp(created_ms),
            ),
        )
        return self.get_by_id(vision_uuid)

    def get_by_id(self, vision_id: str) -> Vision:
        """Get a vision by id.

        Raises:
            ResourceNotFound: If no vision has this id
        """
        row = self._conn.execute(
            "SELECT * FROM vision WHERE uuid = ?", (vision_id,)
        ).fetchone()
        if row is None:
            raise ResourceNotFound(f"Vision '{vision_id}' not found", {"vision_uuid": vision_id})
        return self._hydrate([row])[0]

    def list_by_tree(self, tree_id: str) -> list[Vision]:
        rows = self._conn.execute(
            "SELECT * FROM vision WHERE lifetree_uuid = ? ORDER BY created_at, uuid",
            (tree_id,),
        ).fetchall()
        return self._hydrate(rows)

    def list_by_author(self, author_id: str) -> list[Vision]:
        author_id = uid.normalize(author_id)
        rows = self._conn.execute(
            "SELECT * FROM vision WHERE author_id = ? ORDER BY created_at DESC, uuid DESC",
            (author_id,),
        ).fetchall()
        return self._hydrate(rows)

    def feed(self, cursor: str | None = None, limit: int | None = None) -> Page[Vision]:
        """Page through all visions, newest first."""
        limit = limit or self._ledger.settings.page_size
        if limit < 1:
            raise ValueError(f"limit must be positive, got {limit}")
        key_clause, params = keyset_clause(cursor)
        rows = self._conn.execute(
            f"""SELECT * FROM vision WHERE {key_clause}
                ORDER BY created_at DESC, uuid DESC LIMIT ?""",
            params + [limit + 1],
        ).fetchall()
        page = paginate(rows, limit, lambda row: row)
        return Page(items=self._hydrate(page.items), cursor=page.cursor)

    def _require_author(self, vision_id: str, acting_user: str) -> Vision:
        acting_user = uid.normalize(acting_user)
        vision = self.get_by_id(vision_id)
        if vision.author_id != acting_user:
            raise PermissionDenied(
                "Only the author can change this Vision",
                {"vision_uuid": vision_id, "user_id": acting_user},
            )
        return vision

    def update(self, vision_id: str, acting_user: str, fields: dict[str, Any]) -> Vision:
        """Edit a vision. Author only.

        Raises:
            ValidationError: If fields names a non-editable column
            PermissionDenied: If acting_user is not the author
        """
        rejected = sorted(set(fields) - EDITABLE_FIELDS)
        if rejected:
            raise ValidationError(
                f"Fields cannot be edited: {', '.join(rejected)}",
                {"vision_uuid": vision_id, "fields": rejected},
            )
        vision = self._require_author(vision_id, acting_user)

        update_clause, params = build_update_clause(fields)
        if not update_clause:
            return vision
        self._conn.execute(
            f"UPDATE vision SET {update_clause}, updated_at = ? WHERE uuid = ?",
            params + [self._ledger.stamp(), vision.uuid],
        )
        return self.get_by_id(vision.uuid)

    def delete(self, vision_id: str, acting_user: str) -> None:
        vision = self._require_author(vision_id, acting_user)
        self._conn.execute("DELETE FROM vision WHERE uuid = ?", (vision.uuid,))
        logger.info("Vision %s deleted by %s", vision.uuid, acting_user)

    def join(self, vision_id: str, user_id: str) -> list[str]:
        """Add user_id to the participant set (idempotent)."""
        vision = self.get_by_id(vision_id)
        self._conn.execute(
            """INSERT OR IGNORE INTO vision_participant (vision_uuid, user_id, joined_at)
               VALUES (?, ?, ?)""",
            (vision.uuid, uid.normalize(user_id), self._ledger.stamp()),
        )
        return self._participants([vision.uuid])[vision.uuid]

    def leave(self, vision_id: str, user_id: str) -> list[str]:
        """Remove user_id from the participant set (idempotent)."""
        vision = self.get_by_id(vision_id)
        self._conn.execute(
            "DELETE FROM vision_participant WHERE vision_uuid = ? AND user_id = ?",
            (vision.uuid, uid.normalize(user_id)),
        )
        return self._participants([vision.uuid])[vision.uuid]
