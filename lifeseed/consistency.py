"""Chain audit and startup consistency check.

The auditor replays every tree's chain from its genesis payload and
classifies the ledger:

SYSTEM STATUS MODES:
- NORMAL: Every chain replays and every cursor matches its blocks
- INCONSISTENT: A cursor drifted (block_height or latest_hash disagrees
  with the blocks actually stored) but every link is intact
- SAFE_MODE: A hash link or digest is broken (tampering or corruption)

The ledger is usable regardless of state: check_consistency() logs its
findings and returns a status, it never raises. Callers that must refuse
to start use ensure_consistent(), which raises ConsistencyError.

USAGE:
    auditor = ChainAuditor(settings)
    status = auditor.check_consistency()
    if status != SystemStatus.NORMAL:
        # Handle inconsistency
        pass
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Callable, Optional

from .config import Settings
from .exceptions import ConsistencyError
from .ledger import Ledger, get_ledger

logger = logging.getLogger(__name__)


class SystemStatus(Enum):
    """Ledger health modes."""

    NORMAL = "normal"
    INCONSISTENT = "inconsistent"
    SAFE_MODE = "safe_mode"


class ChainAuditor:
    """
    Replays per-tree chains and reports broken ones.

    Attributes:
        settings: Settings locating the ledger database
    """

    def __init__(
        self,
        settings: Settings,
        ledger_factory: Optional[Callable[[], Ledger]] = None,
    ):
        """Initialize the auditor.

        Args:
            settings: Settings for the ledger to audit
            ledger_factory: Optional session factory (defaults to get_ledger)
        """
        self.settings = settings
        self._ledger_factory = ledger_factory or (lambda: get_ledger(settings))

    def find_broken_chains(self) -> list[dict]:
        """
        Verify every tree's chain.

        Returns:
            List of findings, one per failing tree, with tree_uuid,
            first_break_height, cursor_drift and message
        """
        findings = []
        with self._ledger_factory() as ledger:
            for tree_id in ledger.lifetree.ids():
                result = ledger.chain.verify(tree_id)
                if result.valid:
                    continue
                findings.append({
                    "tree_uuid": result.tree_uuid,
                    "first_break_height": result.first_break_height,
                    "cursor_drift": result.cursor_drift,
                    "message": result.message,
                })
        return findings

    def check_consistency(self) -> SystemStatus:
        """
        Classify the ledger from its chain findings.

        Returns:
            SystemStatus indicating the health of the ledger
        """
        findings = self.find_broken_chains()
        if not findings:
            return SystemStatus.NORMAL

        for finding in findings:
            logger.warning(
                "Lifetree %s chain check failed: %s",
                finding["tree_uuid"], finding["message"],
            )

        if any(not finding["cursor_drift"] for finding in findings):
            return SystemStatus.SAFE_MODE
        return SystemStatus.INCONSISTENT

    def ensure_consistent(self) -> None:
        """Raise if any chain fails verification.

        Raises:
            ConsistencyError: With the findings in broken_chains
        """
        findings = self.find_broken_chains()
        if findings:
            raise ConsistencyError(
                f"Found {len(findings)} broken hash chains",
                {"broken_chains": findings},
            )
