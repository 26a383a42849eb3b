"""Match proposal operations.

States: PENDING -> ACCEPTED | REJECTED (both terminal). Only the target
party may resolve a proposal. Resolution is a conditional UPDATE guarded
by status = 'PENDING', so of two racing resolutions exactly one wins and
the other sees AlreadyProcessedError. Matches never touch the chains.
"""

import logging
import sqlite3
from typing import TYPE_CHECKING

from ..exceptions import (
    AlreadyProcessedError,
    PermissionDenied,
    ResourceNotFound,
    ValidationError,
)
from ..models import MatchProposal, MatchStatus
from ..utils import uid

if TYPE_CHECKING:
    from . import Ledger

logger = logging.getLogger(__name__)


class MatchOperations:
    """Propose and resolve matches between pulses of two trees."""

    def __init__(self, ledger: "Ledger"):
        self._ledger = ledger

    @property
    def _conn(self) -> sqlite3.Connection:
        return self._ledger._get_conn()

    def _require_pulse_on_tree(self, pulse_id: str, tree_id: str) -> None:
        block = self._ledger.chain.get_block(pulse_id)
        if block.lifetree_uuid != tree_id:
            raise ValidationError(
                f"Pulse '{pulse_id}' does not belong to Lifetree '{tree_id}'",
                {"pulse_uuid": pulse_id, "tree_uuid": tree_id},
            )

    def propose(
        self,
        initiator_tree_id: str,
        initiator_pulse_id: str,
        initiator_uid: str,
        target_tree_id: str,
        target_pulse_id: str,
        target_uid: str,
    ) -> MatchProposal:
        """Create a PENDING match proposal.

        Raises:
            ValidationError: If both sides name the same tree, or a pulse is
                             not on its stated tree
            TreeNotFoundError: If either tree is missing
            ResourceNotFound: If either pulse is missing
        """
        initiator_tree_id = uid.normalize(initiator_tree_id)
        target_tree_id = uid.normalize(target_tree_id)
        if initiator_tree_id == target_tree_id:
            raise ValidationError(
                "A Lifetree cannot match with itself", {"tree_uuid": target_tree_id}
            )
        self._ledger.lifetree._get_row(initiator_tree_id)
        self._ledger.lifetree._get_row(target_tree_id)
        self._require_pulse_on_tree(initiator_pulse_id, initiator_tree_id)
        self._require_pulse_on_tree(target_pulse_id, target_tree_id)

        proposal_uuid = uid.generate_uuid()
        self._conn.execute(
            """INSERT INTO match_proposal (
                   uuid, initiator_tree_uuid, initiator_pulse_uuid, initiator_uid,
                   target_tree_uuid, target_pulse_uuid, target_uid, status, created_at
               ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)""",
            (
                proposal_uuid, initiator_tree_id, initiator_pulse_id,
                uid.normalize(initiator_uid),
                target_tree_id, target_pulse_id, uid.normalize(target_uid),
                MatchStatus.PENDING.value, self._ledger.stamp(),
            ),
        )
        logger.info("Match %s proposed by %s to %s", proposal_uuid, initiator_uid, target_uid)
        return self.get_by_id(proposal_uuid)

    def get_by_id(self, proposal_id: str) -> MatchProposal:
        """Get a proposal by id.

        Raises:
            ResourceNotFound: If no proposal has this id
        """
        row = self._conn.execute(
            "SELECT * FROM match_proposal WHERE uuid = ?", (proposal_id,)
        ).fetchone()
        if row is None:
            raise ResourceNotFound(
                f"Match proposal '{proposal_id}' not found", {"proposal_uuid": proposal_id}
            )
        return MatchProposal.from_row(row)

    def _resolve(self, proposal_id: str, acting_user: str, status: MatchStatus) -> MatchProposal:
        acting_user = uid.normalize(acting_user)
        proposal = self.get_by_id(proposal_id)
        if proposal.target_uid != acting_user:
            raise PermissionDenied(
                "Only the target of a match can resolve it",
                {"proposal_uuid": proposal_id, "user_id": acting_user},
            )

        cursor = self._conn.execute(
            """UPDATE match_proposal SET status = ?, resolved_at = ?
               WHERE uuid = ? AND status = 'PENDING'""",
            (status.value, self._ledger.stamp(), proposal.uuid),
        )
        if cursor.rowcount == 0:
            current = self.get_by_id(proposal.uuid)
            raise AlreadyProcessedError(
                f"Match proposal '{proposal.uuid}' already {current.status.value.lower()}",
                {"proposal_uuid": proposal.uuid, "status": current.status.value},
            )

        logger.info("Match %s %s by %s", proposal.uuid, status.value.lower(), acting_user)
        return self.get_by_id(proposal.uuid)

    def accept(self, proposal_id: str, acting_user: str) -> MatchProposal:
        """Flip PENDING -> ACCEPTED.

        Raises:
            ResourceNotFound: If the proposal does not exist
            PermissionDenied: If acting_user is not the target party
            AlreadyProcessedError: If the proposal is no longer pending
        """
        return self._resolve(proposal_id, acting_user, MatchStatus.ACCEPTED)

    def reject(self, proposal_id: str, acting_user: str) -> MatchProposal:
        """Flip PENDING -> REJECTED. Same guards as accept()."""
        return self._resolve(proposal_id, acting_user, MatchStatus.REJECTED)

    def pending_for(self, user_id: str) -> list[MatchProposal]:
        """Proposals awaiting user_id's decision, newest first."""
        user_id = uid.normalize(user_id)
        rows = self._conn.execute(
            """SELECT * FROM match_proposal
               WHERE target_uid = ? AND status = 'PENDING'
               ORDER BY created_at DESC, uuid DESC""",
            (user_id,),
        ).fetchall()
        return [MatchProposal.from_row(row) for row in rows]

    def history(self, user_id: str) -> list[MatchProposal]:
        """Accepted matches where user_id is either party, newest first."""
        user_id = uid.normalize(user_id)
        rows = self._conn.execute(
            """SELECT * FROM match_proposal
               WHERE status = 'ACCEPTED' AND (target_uid = ? OR initiator_uid = ?)
               ORDER BY created_at DESC, uuid DESC""",
            (user_id, user_id),
        ).fetchall()
        return [MatchProposal.from_row(row) for row in rows]
