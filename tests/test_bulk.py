"""
Tests for all-or-nothing bulk refinement and acceptance.

Batches are evaluated in submission order: an item sees the effects of
the items before it, and any failure leaves the ledger untouched.
"""

from __future__ import annotations

from datetime import timedelta

import pytest

from proofledger.proof.bulk import BulkCoordinator, ChildSpec
from proofledger.proof.errors import (
    BatchRejectedError,
    BlockingChallengesError,
    EXIT_BLOCKED,
    InvalidInputError,
    MissingDependencyError,
    OwnerMismatchError,
    TerminalStateError,
    UnvalidatedDependenciesError,
)
from proofledger.proof.schema import EpistemicState, NodeType
from proofledger.proof.service import ProofService


def _states(service: ProofService) -> dict[str, str]:
    return {str(n.node_id): n.epistemic_state.value for n in service.load_state().all_nodes()}


def test_refine_bulk_creates_all_children(claimed_root: ProofService) -> None:
    ids = claimed_root.refine_node_bulk(
        "1",
        "prover",
        [ChildSpec("Case even", node_type="case"), ChildSpec("Case odd", node_type=NodeType.CASE), ChildSpec("QED")],
    )

    assert [str(i) for i in ids] == ["1.1", "1.2", "1.3"]
    state = claimed_root.load_state()
    assert state.get_node("1.2").node_type is NodeType.CASE
    assert state.get_node("1.3").inference == "assumption"
    # One append for the whole batch
    assert [e.seq for e in claimed_root.ledger.read_all()][-3:] == [3, 4, 5]


def test_refine_bulk_continues_numbering(claimed_root: ProofService) -> None:
    claimed_root.refine_node("1", "prover", "first")
    ids = claimed_root.refine_node_bulk("1", "prover", [ChildSpec("second"), ChildSpec("third")])
    assert [str(i) for i in ids] == ["1.2", "1.3"]


def test_refine_bulk_later_items_may_depend_on_earlier(claimed_root: ProofService) -> None:
    ids = claimed_root.refine_node_bulk(
        "1", "prover", [ChildSpec("lemma"), ChildSpec("uses lemma", validation_dependencies=("1.1",))]
    )
    assert claimed_root.load_state().get_node(ids[1]).validation_dependencies == (ids[0],)


def test_refine_bulk_failure_appends_nothing(claimed_root: ProofService) -> None:
    before = claimed_root.ledger.read_all()

    with pytest.raises(BatchRejectedError) as excinfo:
        claimed_root.refine_node_bulk(
            "1", "prover", [ChildSpec("ok"), ChildSpec("bad", dependencies=("1.9",)), ChildSpec("never checked")]
        )

    assert excinfo.value.index == 1
    assert str(excinfo.value.item) == "1.2"
    assert isinstance(excinfo.value.cause, MissingDependencyError)
    assert isinstance(excinfo.value.__cause__, MissingDependencyError)
    assert claimed_root.ledger.read_all() == before


def test_refine_bulk_ownership_failure(claimed_root: ProofService) -> None:
    with pytest.raises(BatchRejectedError) as excinfo:
        claimed_root.refine_node_bulk("1", "intruder", [ChildSpec("x")])
    assert isinstance(excinfo.value.cause, OwnerMismatchError)
    assert excinfo.value.exit_code == 1


def test_refine_bulk_respects_child_limit(claimed_root: ProofService) -> None:
    specs = [ChildSpec(f"step {i}") for i in range(11)]
    with pytest.raises(BatchRejectedError, match="item 11"):
        claimed_root.refine_node_bulk("1", "prover", specs)
    assert claimed_root.load_state().children_of("1") == []


def test_empty_batches_rejected(claimed_root: ProofService) -> None:
    with pytest.raises(InvalidInputError):
        claimed_root.refine_node_bulk("1", "prover", [])
    with pytest.raises(InvalidInputError):
        claimed_root.accept_node_bulk([])


def test_accept_bulk_in_submission_order(claimed_root: ProofService) -> None:
    claimed_root.refine_node("1", "prover", "A")
    claimed_root.refine_node("1", "prover", "B")
    claimed_root.refine_node("1", "prover", "C", validation_dependencies=["1.1"])

    summaries = claimed_root.accept_node_bulk(["1.1", "1.3"], note="batch")

    assert [str(s.node_id) for s in summaries] == ["1.1", "1.3"]
    assert all(s.note == "batch" for s in summaries)
    assert _states(claimed_root) == {"1": "pending", "1.1": "validated", "1.2": "pending", "1.3": "validated"}


def test_accept_bulk_reverse_order_fails_whole_batch(claimed_root: ProofService) -> None:
    claimed_root.refine_node("1", "prover", "A")
    claimed_root.refine_node("1", "prover", "B", validation_dependencies=["1.1"])
    before = claimed_root.ledger.count()

    with pytest.raises(BatchRejectedError) as excinfo:
        claimed_root.accept_node_bulk(["1.2", "1.1"])

    assert excinfo.value.index == 0
    assert isinstance(excinfo.value.cause, UnvalidatedDependenciesError)
    assert excinfo.value.exit_code == EXIT_BLOCKED
    assert claimed_root.ledger.count() == before
    assert _states(claimed_root)["1.1"] == "pending"


def test_accept_bulk_blocked_item_rejects_batch(claimed_root: ProofService) -> None:
    claimed_root.refine_node("1", "prover", "A")
    claimed_root.refine_node("1", "prover", "B")
    claimed_root.raise_challenge("c1", "1.2", "gap", "hole", "critical")
    before = _states(claimed_root)

    with pytest.raises(BatchRejectedError) as excinfo:
        claimed_root.accept_node_bulk(["1.1", "1.2"])

    assert isinstance(excinfo.value.cause, BlockingChallengesError)
    assert _states(claimed_root) == before


def test_accept_bulk_duplicate_id_rejected(claimed_root: ProofService) -> None:
    claimed_root.refine_node("1", "prover", "A")
    with pytest.raises(BatchRejectedError) as excinfo:
        claimed_root.accept_node_bulk(["1.1", "1.1"])
    assert isinstance(excinfo.value.cause, TerminalStateError)
    assert _states(claimed_root)["1.1"] == "pending"


def test_coordinator_does_not_touch_given_state(claimed_root: ProofService, clock) -> None:
    claimed_root.refine_node("1", "prover", "A")
    state = claimed_root.load_state()
    snapshot = state.copy()

    plan = BulkCoordinator(state.config).accept_many(state, ["1.1"], "verifier", clock())

    assert len(plan.events) == 1
    assert plan.expected_seq == state.latest_seq
    assert state == snapshot
    assert state.get_node("1.1").epistemic_state is EpistemicState.PENDING


def test_bulk_refine_under_expired_claim_fails(claimed_root: ProofService, clock) -> None:
    clock.advance(timedelta(hours=2))
    with pytest.raises(BatchRejectedError):
        claimed_root.refine_node_bulk("1", "prover", [ChildSpec("late")])
