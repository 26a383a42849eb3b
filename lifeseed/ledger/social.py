"""Off-chain engagement: loves and comments.

Engagement is not hashed. love_count and comment_count live on the pulse
row (the immutability trigger allows exactly these two columns to change)
and move in the same transaction as the love/comment rows they count.
"""

import logging
import sqlite3
from typing import TYPE_CHECKING

from ..exceptions import ResourceNotFound, ValidationError
from ..models import Comment, Lightseed
from ..utils import uid

if TYPE_CHECKING:
    from . import Ledger

logger = logging.getLogger(__name__)


class SocialOperations:
    """Love toggles and comments on pulses."""

    def __init__(self, ledger: "Ledger"):
        self._ledger = ledger

    @property
    def _conn(self) -> sqlite3.Connection:
        return self._ledger._get_conn()

    def _require_pulse(self, pulse_id: str) -> None:
        row = self._conn.execute(
            "SELECT 1 FROM pulse WHERE uuid = ?", (pulse_id,)
        ).fetchone()
        if row is None:
            raise ResourceNotFound(f"Pulse '{pulse_id}' not found", {"pulse_uuid": pulse_id})

    def is_loved(self, pulse_id: str, user_id: str) -> bool:
        if not user_id:
            return False
        user_id = user_id.strip()
        row = self._conn.execute(
            "SELECT 1 FROM pulse_love WHERE pulse_uuid = ? AND user_id = ?",
            (pulse_id, user_id),
        ).fetchone()
        return row is not None

    def toggle_love(self, pulse_id: str, user_id: str) -> int:
        """Love a pulse, or take the love back if already given.

        Returns:
            The pulse's love count after the toggle

        Raises:
            ResourceNotFound: If the pulse does not exist
        """
        self._require_pulse(pulse_id)
        user_id = uid.normalize(user_id)

        removed = self._conn.execute(
            "DELETE FROM pulse_love WHERE pulse_uuid = ? AND user_id = ?",
            (pulse_id, user_id),
        ).rowcount
        if removed:
            self._conn.execute(
                "UPDATE pulse SET love_count = MAX(love_count - 1, 0) WHERE uuid = ?",
                (pulse_id,),
            )
        else:
            self._conn.execute(
                "INSERT INTO pulse_love (pulse_uuid, user_id, created_at) VALUES (?, ?, ?)",
                (pulse_id, user_id, self._ledger.stamp()),
            )
            self._conn.execute(
                "UPDATE pulse SET love_count = love_count + 1 WHERE uuid = ?",
                (pulse_id,),
            )

        return self._conn.execute(
            "SELECT love_count FROM pulse WHERE uuid = ?", (pulse_id,)
        ).fetchone()[0]

    def add_comment(self, pulse_id: str, author: Lightseed, body: str) -> Comment:
        """Comment on a pulse.

        Raises:
            ValidationError: If the body is empty
            ResourceNotFound: If the pulse does not exist
        """
        if not body or not body.strip():
            raise ValidationError("Comment must not be empty", {"pulse_uuid": pulse_id})
        self._require_pulse(pulse_id)

        comment_uuid = uid.generate_uuid()
        self._conn.execute(
            """INSERT INTO pulse_comment (uuid, pulse_uuid, body, author_id, author_name, created_at)
               VALUES (?, ?, ?, ?, ?, ?)""",
            (
                comment_uuid, pulse_id, body.strip(), uid.normalize(author.uid),
                author.display_name or "", self._ledger.stamp(),
            ),
        )
        self._conn.execute(
            "UPDATE pulse SET comment_count = comment_count + 1 WHERE uuid = ?",
            (pulse_id,),
        )
        row = self._conn.execute(
            "SELECT * FROM pulse_comment WHERE uuid = ?", (comment_uuid,)
        ).fetchone()
        return Comment.from_row(row)

    def comments(self, pulse_id: str) -> list[Comment]:
        """Comments on a pulse, oldest first."""
        rows = self._conn.execute(
            "SELECT * FROM pulse_comment WHERE pulse_uuid = ? ORDER BY created_at, uuid",
            (pulse_id,),
        ).fetchall()
        return [Comment.from_row(row) for row in rows]
