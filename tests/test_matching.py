"""Tests for match proposals.

Coverage:
- propose() validation (distinct trees, pulses on their stated trees)
- accept()/reject() permission and single-resolution guards
- pending and history listings
- Matches never move chain cursors
"""

import pytest

from lifeseed.exceptions import (
    AlreadyProcessedError,
    PermissionDenied,
    ResourceNotFound,
    TreeNotFoundError,
    ValidationError,
)
from lifeseed.models import MatchStatus, StandardPayload
from lifeseed.services import MatchingService


@pytest.fixture
def matching(settings, ledger_factory):
    return MatchingService(settings, ledger_factory=ledger_factory)


@pytest.fixture
def pulses(ledger_factory, root_tree, sapling, alice, bob):
    """One pulse on each tree: (alice's pulse, bob's pulse)."""
    with ledger_factory() as ledger:
        mine = ledger.chain.append_block(root_tree.uuid, StandardPayload("Offer", "Seeds"), alice)
        theirs = ledger.chain.append_block(sapling.uuid, StandardPayload("Need", "Seeds"), bob)
    return mine, theirs


@pytest.fixture
def proposal(matching, root_tree, sapling, pulses):
    mine, theirs = pulses
    return matching.propose(root_tree.uuid, mine.uuid, "alice", sapling.uuid, theirs.uuid, "bob")


class TestPropose:
    def test_pending_proposal(self, proposal, root_tree, sapling):
        assert proposal.status == MatchStatus.PENDING
        assert proposal.initiator_tree_uuid == root_tree.uuid
        assert proposal.target_tree_uuid == sapling.uuid
        assert proposal.resolved_at is None

    def test_same_tree_rejected(self, matching, root_tree, pulses):
        mine, _ = pulses
        with pytest.raises(ValidationError):
            matching.propose(root_tree.uuid, mine.uuid, "alice", root_tree.uuid, mine.uuid, "alice")

    def test_pulse_on_wrong_tree(self, matching, root_tree, sapling, pulses):
        mine, theirs = pulses
        with pytest.raises(ValidationError):
            matching.propose(root_tree.uuid, theirs.uuid, "alice", sapling.uuid, mine.uuid, "bob")

    def test_missing_tree(self, matching, root_tree, pulses):
        mine, theirs = pulses
        with pytest.raises(TreeNotFoundError):
            matching.propose(root_tree.uuid, mine.uuid, "alice", "missing", theirs.uuid, "bob")

    def test_missing_pulse(self, matching, root_tree, sapling, pulses):
        mine, _ = pulses
        with pytest.raises(ResourceNotFound):
            matching.propose(root_tree.uuid, mine.uuid, "alice", sapling.uuid, "missing", "bob")


class TestResolve:
    def test_accept_by_target(self, matching, proposal):
        accepted = matching.accept(proposal.uuid, "bob")
        assert accepted.status == MatchStatus.ACCEPTED
        assert accepted.resolved_at is not None

    def test_accept_by_initiator_denied(self, matching, proposal):
        with pytest.raises(PermissionDenied):
            matching.accept(proposal.uuid, "alice")

    def test_second_resolution_refused(self, matching, proposal):
        matching.accept(proposal.uuid, "bob")
        with pytest.raises(AlreadyProcessedError):
            matching.accept(proposal.uuid, "bob")
        with pytest.raises(AlreadyProcessedError):
            matching.reject(proposal.uuid, "bob")

    def test_reject(self, matching, proposal):
        rejected = matching.reject(proposal.uuid, "bob")
        assert rejected.status == MatchStatus.REJECTED
        with pytest.raises(AlreadyProcessedError):
            matching.accept(proposal.uuid, "bob")

    def test_missing_proposal(self, matching):
        with pytest.raises(ResourceNotFound):
            matching.accept("missing", "bob")

    def test_chains_untouched(self, matching, ledger_factory, proposal, root_tree, sapling):
        with ledger_factory() as ledger:
            before = [ledger.chain.head(root_tree.uuid), ledger.chain.head(sapling.uuid)]

        matching.accept(proposal.uuid, "bob")

        with ledger_factory() as ledger:
            after = [ledger.chain.head(root_tree.uuid), ledger.chain.head(sapling.uuid)]
        assert before == after


class TestListings:
    def test_pending_for_target(self, matching, proposal):
        assert [p.uuid for p in matching.pending_for("bob")] == [proposal.uuid]
        assert matching.pending_for("alice") == []

    def test_padded_user_id(self, matching, proposal):
        assert [p.uuid for p in matching.pending_for(" bob ")] == [proposal.uuid]
        assert matching.accept(proposal.uuid, " bob ").status == MatchStatus.ACCEPTED
        assert [p.uuid for p in matching.history("bob ")] == [proposal.uuid]

    def test_history_after_accept(self, matching, proposal):
        assert matching.history("alice") == []
        matching.accept(proposal.uuid, "bob")

        assert [p.uuid for p in matching.history("alice")] == [proposal.uuid]
        assert [p.uuid for p in matching.history("bob")] == [proposal.uuid]
        assert matching.pending_for("bob") == []

    def test_rejected_not_in_history(self, matching, proposal):
        matching.reject(proposal.uuid, "bob")
        assert matching.history("bob") == []
