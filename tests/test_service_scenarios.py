"""End-to-end scenarios through the proof service."""

from __future__ import annotations

import json
from datetime import timedelta
from pathlib import Path

import pytest

from proofledger.proof.config import META_FILENAME, ProofConfig, load_meta
from proofledger.proof.errors import (
    AlreadyInitializedError,
    BlockingChallengesError,
    ChallengeClosedError,
    ChallengeExistsError,
    ChallengeNotFoundError,
    ConcurrentModificationError,
    DefinitionExistsError,
    InvalidInputError,
    LedgerCorruptionError,
    NotInitializedError,
    OwnerMismatchError,
    UnvalidatedDependenciesError,
)
from proofledger.proof.events import CHALLENGE_SUPERSEDED, NODE_AMENDED, NODE_CREATED, NODE_REFUTED, node_validated
from proofledger.proof.nodeid import NodeID
from proofledger.proof.schema import ChallengeStatus, EpistemicState
from proofledger.proof.service import ProofService, init_proof, open_proof
from proofledger.proof.state import replay


def test_dependency_gated_acceptance(claimed_root: ProofService) -> None:
    claimed_root.refine_node("1", "prover", "Q1")
    claimed_root.refine_node("1", "prover", "Q2")
    claimed_root.refine_node("1", "prover", "Q1 and Q2", validation_dependencies=["1.1", "1.2"])

    with pytest.raises(UnvalidatedDependenciesError) as excinfo:
        claimed_root.accept_node("1.3")
    assert "1.1" in str(excinfo.value) and "1.2" in str(excinfo.value)

    claimed_root.accept_node("1.1")
    claimed_root.accept_node("1.2")
    claimed_root.accept_node("1.3")
    assert claimed_root.load_state().get_node("1.3").epistemic_state is EpistemicState.VALIDATED


def test_challenge_gated_acceptance(service: ProofService) -> None:
    service.raise_challenge("c1", "1", "gap", "step missing", "critical", raised_by="verifier")

    with pytest.raises(BlockingChallengesError, match="c1"):
        service.accept_node("1")

    service.resolve_challenge("c1", actor="prover", resolution="added the step")
    summary = service.accept_node("1")

    assert summary.challenges_raised == 1
    assert summary.challenges_resolved == 1
    assert service.load_state().get_node("1").epistemic_state is EpistemicState.VALIDATED


def test_lease_ownership_scenario(service: ProofService) -> None:
    service.claim_node("1", "A", timedelta(hours=1))

    with pytest.raises(OwnerMismatchError):
        service.refine_node("1", "B", "from B")
    assert str(service.refine_node("1", "A", "from A")) == "1.1"


def test_init_and_open(proof_dir: Path, clock) -> None:
    with pytest.raises(NotInitializedError):
        open_proof(proof_dir)

    init_proof(proof_dir, "Every even n > 2 is a sum of two primes", "alice", ProofConfig(max_depth=8), clock=clock)

    service = open_proof(proof_dir)
    state = service.load_state()
    assert state.conjecture.startswith("Every even")
    assert state.config.max_depth == 8
    assert load_meta(proof_dir) == ProofConfig(max_depth=8)
    meta = json.loads((proof_dir / META_FILENAME).read_text(encoding="utf-8"))
    assert meta["config"]["lease_timeout_seconds"] == 300

    with pytest.raises(AlreadyInitializedError):
        init_proof(proof_dir, "again", "bob")


def test_init_validates_input(proof_dir: Path) -> None:
    with pytest.raises(InvalidInputError):
        init_proof(proof_dir, "", "alice")
    with pytest.raises(InvalidInputError):
        init_proof(proof_dir, "P", "alice", ProofConfig(max_depth=101))
    with pytest.raises(InvalidInputError):
        init_proof(proof_dir, "P", "alice", ProofConfig(lease_timeout=timedelta(hours=25)))
    assert load_meta(proof_dir) is None


def test_stale_writer_is_rejected(claimed_root: ProofService) -> None:
    claimed_root.refine_node("1", "prover", "A")
    stale = claimed_root.load_state()

    # Another process appends in between
    claimed_root.accept_node("1.1")

    with pytest.raises(ConcurrentModificationError):
        claimed_root.ledger.append(node_validated(NodeID.parse("1.1"), "late"), expected_seq=stale.latest_seq)
    assert claimed_root.load_state().latest_seq == stale.latest_seq + 1


def test_challenge_lifecycle_errors(service: ProofService) -> None:
    service.raise_challenge("c1", "1", "scope", "too broad", "minor")
    with pytest.raises(ChallengeExistsError):
        service.raise_challenge("c1", "1", "scope", "again")
    with pytest.raises(InvalidInputError):
        service.raise_challenge("c2", "1", "vibes", "no such target")
    with pytest.raises(InvalidInputError):
        service.raise_challenge("c2", "1", "scope", "x", "fatal")
    with pytest.raises(ChallengeNotFoundError):
        service.resolve_challenge("missing")

    service.withdraw_challenge("c1")
    with pytest.raises(ChallengeClosedError):
        service.resolve_challenge("c1")


def test_refutation_supersedes_open_challenges(service: ProofService) -> None:
    service.raise_challenge("c1", "1", "gap", "step missing", "critical")
    service.raise_challenge("c2", "1", "statement", "typo", "minor")
    service.raise_challenge("c3", "1", "scope", "too broad", "major")
    service.resolve_challenge("c2")
    before = service.ledger.count()

    assert service.refute_node("1", actor="verifier", reason="counterexample") == ["c1", "c3"]

    # Refutation and supersessions land in one append
    new = service.ledger.read_all()[before:]
    assert [e.event_type for e in new] == [NODE_REFUTED, CHALLENGE_SUPERSEDED, CHALLENGE_SUPERSEDED]
    state = service.load_state()
    assert state.get_challenge("c1").status is ChallengeStatus.SUPERSEDED
    assert state.get_challenge("c2").status is ChallengeStatus.RESOLVED
    assert state.get_challenge("c3").status is ChallengeStatus.SUPERSEDED
    assert not any(c.is_open for c in state.all_challenges())
    with pytest.raises(ChallengeClosedError):
        service.resolve_challenge("c1")


def test_refutation_without_challenges(service: ProofService) -> None:
    assert service.refute_node("1") == []
    assert [e.event_type for e in service.history()][-1] == NODE_REFUTED


def test_amendment_recorded_in_history(claimed_root: ProofService) -> None:
    claimed_root.refine_node("1", "prover", "A")
    claimed_root.amend_node("1.1", "prover", "A, corrected")

    (event,) = claimed_root.history("1.1", event_type=NODE_AMENDED)
    assert event.payload["previous_statement"] == "A"
    assert event.payload["new_statement"] == "A, corrected"
    assert event.actor == "prover"
    assert replay(claimed_root.ledger.read_all()).get_node("1.1").statement == "A, corrected"


def test_definitions(service: ProofService) -> None:
    definition_id = service.add_definition("prime", "an integer > 1 with no proper divisors")
    assert len(definition_id) == 26
    with pytest.raises(DefinitionExistsError):
        service.add_definition("prime", "redefined")
    with pytest.raises(InvalidInputError):
        service.add_definition("-bad", "name")
    assert [d.name for d in service.load_state().all_definitions()] == ["prime"]


def test_history(claimed_root: ProofService) -> None:
    claimed_root.refine_node("1", "prover", "A")
    claimed_root.refine_node("1", "prover", "B")
    claimed_root.accept_node("1.1")

    assert [e.event_type for e in claimed_root.history("1.1")] == [NODE_CREATED, "node.validated"]
    newest = claimed_root.history(newest_first=True, limit=1)
    assert newest[0].node_id == "1.1"
    assert [e.seq for e in claimed_root.history(event_type=NODE_CREATED)] == [3, 4]


def test_ledger_is_append_only_across_operations(claimed_root: ProofService) -> None:
    seen = claimed_root.ledger.read_all()
    claimed_root.refine_node("1", "prover", "A")
    claimed_root.raise_challenge("c1", "1.1", "gap", "?", "note")
    claimed_root.accept_node("1.1")

    now = claimed_root.ledger.read_all()
    assert now[: len(seen)] == seen
    assert replay(now) == claimed_root.load_state()


def test_corrupt_ledger_is_fatal(service: ProofService) -> None:
    with service.ledger.ledger_path.open("a", encoding="utf-8") as f:
        f.write("{broken\n")
    with pytest.raises(LedgerCorruptionError):
        service.load_state()
