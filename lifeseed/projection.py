"""Optimistic display state for an in-flight append.

A client that mints a pulse wants to show the result before the ledger
confirms it. PendingAppend makes that explicit and two-phase:

    PENDING --confirm(block)--> CONFIRMED
    PENDING --rollback()------> ROLLED_BACK

While PENDING the projected view shows the predicted height and, for
GROWTH pulses, the new cover image. It never shows a predicted
latest_hash: hashes come only from the ledger. Once resolved, the view is
either the server's result or the snapshot taken before the append.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Callable

from .models import Block, Lifetree, PulsePayload, PulseType


class AppendState(str, Enum):
    PENDING = "PENDING"
    CONFIRMED = "CONFIRMED"
    ROLLED_BACK = "ROLLED_BACK"


@dataclass(frozen=True)
class TreeView:
    """What a client displays for a tree."""

    tree_uuid: str
    block_height: int
    latest_hash: str
    image_url: str | None
    pending: bool = False


class PendingAppend:
    """One optimistic append against a snapshot of its tree."""

    def __init__(self, tree: Lifetree, payload: PulsePayload):
        self.payload = payload
        self.state = AppendState.PENDING
        self.block: Block | None = None
        self._snapshot = TreeView(
            tree_uuid=tree.uuid,
            block_height=tree.block_height,
            latest_hash=tree.latest_hash,
            image_url=tree.image_url,
        )

    @property
    def snapshot(self) -> TreeView:
        return self._snapshot

    @property
    def view(self) -> TreeView:
        """Projected tree state for display."""
        if self.state is AppendState.CONFIRMED:
            image_url = self._snapshot.image_url
            if self.block.type is PulseType.GROWTH and self.block.image_url:
                image_url = self.block.image_url
            return TreeView(
                tree_uuid=self._snapshot.tree_uuid,
                block_height=self.block.height,
                latest_hash=self.block.hash,
                image_url=image_url,
            )

        if self.state is AppendState.ROLLED_BACK:
            return self._snapshot

        image_url = self._snapshot.image_url
        if self.payload.type is PulseType.GROWTH and self.payload.image_url:
            image_url = self.payload.image_url
        return TreeView(
            tree_uuid=self._snapshot.tree_uuid,
            block_height=self._snapshot.block_height + 1,
            latest_hash=self._snapshot.latest_hash,
            image_url=image_url,
            pending=True,
        )

    def _require_pending(self) -> None:
        if self.state is not AppendState.PENDING:
            raise RuntimeError(f"Append already {self.state.value.lower()}")

    def confirm(self, block: Block) -> TreeView:
        """Reconcile with the block the ledger accepted.

        Raises:
            RuntimeError: If the append is no longer pending
            ValueError: If the block belongs to another tree
        """
        self._require_pending()
        if block.lifetree_uuid != self._snapshot.tree_uuid:
            raise ValueError(
                f"Block {block.uuid} belongs to {block.lifetree_uuid}, "
                f"not {self._snapshot.tree_uuid}"
            )
        self.block = block
        self.state = AppendState.CONFIRMED
        return self.view

    def rollback(self) -> TreeView:
        """Discard the optimistic state and restore the snapshot."""
        self._require_pending()
        self.state = AppendState.ROLLED_BACK
        return self.view

    def resolve(self, operation: Callable[[], Block]) -> Block:
        """Run the real append, confirming on success and rolling back on error."""
        try:
            block = operation()
        except Exception:
            self.rollback()
            raise
        self.confirm(block)
        return block
