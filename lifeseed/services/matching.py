"""Match proposal workflow.

Each call is one Ledger session. Resolution is guarded in the ledger by a
conditional UPDATE on status = 'PENDING'; see ledger/match.py.
"""

from typing import Callable, Optional

from ..config import Settings
from ..ledger import Ledger, get_ledger
from ..models import MatchProposal


class MatchingService:
    """Propose, accept and reject matches."""

    def __init__(
        self,
        settings: Settings,
        ledger_factory: Optional[Callable[[], Ledger]] = None,
    ):
        self.settings = settings
        self._ledger_factory = ledger_factory or (lambda: get_ledger(settings))

    def propose(
        self,
        initiator_tree_id: str,
        initiator_pulse_id: str,
        initiator_uid: str,
        target_tree_id: str,
        target_pulse_id: str,
        target_uid: str,
    ) -> MatchProposal:
        with self._ledger_factory() as ledger:
            return ledger.match.propose(
                initiator_tree_id, initiator_pulse_id, initiator_uid,
                target_tree_id, target_pulse_id, target_uid,
            )

    def accept(self, proposal_id: str, acting_user: str) -> MatchProposal:
        with self._ledger_factory() as ledger:
            return ledger.match.accept(proposal_id, acting_user)

    def reject(self, proposal_id: str, acting_user: str) -> MatchProposal:
        with self._ledger_factory() as ledger:
            return ledger.match.reject(proposal_id, acting_user)

    def pending_for(self, user_id: str) -> list[MatchProposal]:
        with self._ledger_factory() as ledger:
            return ledger.match.pending_for(user_id)

    def history(self, user_id: str) -> list[MatchProposal]:
        with self._ledger_factory() as ledger:
            return ledger.match.history(user_id)
