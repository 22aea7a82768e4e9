"""
Tests for the append-only proof ledger.

Covers sequence assignment, compare-and-append, query filters and
detection of damaged ledger files.
"""

from __future__ import annotations

import multiprocessing
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from proofledger.proof.errors import ConcurrentModificationError, LedgerCorruptionError
from proofledger.proof.events import (
    NODE_CLAIMED,
    ProofEvent,
    node_claimed,
    node_created,
    proof_initialized,
)
from proofledger.proof.ledger import ProofLedger
from proofledger.proof.nodeid import NodeID

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)
ROOT = NodeID.root()


@pytest.fixture
def ledger(tmp_path: Path) -> ProofLedger:
    """Create a fresh ledger for testing."""
    return ProofLedger(tmp_path / ".proof")


def _child(n: int) -> ProofEvent:
    return node_created(ROOT.child(n), ROOT, "claim", f"step {n}", "assumption", "prover", timestamp=T0)


def test_empty_ledger(ledger: ProofLedger) -> None:
    assert ledger.read_all() == []
    assert ledger.count() == 0
    assert ledger.last_seq() == 0
    assert not ledger.exists()


def test_append_assigns_contiguous_seq(ledger: ProofLedger) -> None:
    assert ledger.append(proof_initialized("P", "alice", timestamp=T0)) == 1
    assert ledger.append_many([_child(1), _child(2)]) == [2, 3]

    events = ledger.read_all()
    assert [e.seq for e in events] == [1, 2, 3]
    assert events[1].node_id == "1.1"
    assert ledger.lock_path.exists()


def test_append_never_rewrites_existing_lines(ledger: ProofLedger) -> None:
    ledger.append(proof_initialized("P", "alice", timestamp=T0))
    before = ledger.ledger_path.read_text(encoding="utf-8")

    ledger.append(_child(1))
    after = ledger.ledger_path.read_text(encoding="utf-8")

    assert after.startswith(before)
    assert len(after.splitlines()) == 2


def test_events_round_trip_through_file(ledger: ProofLedger) -> None:
    original = proof_initialized("P", "alice", config={"max_depth": 5}, timestamp=T0)
    ledger.append(original)

    (stored,) = ledger.read_all()
    assert stored.event_id == original.event_id
    assert stored.timestamp == T0
    assert stored.payload == original.payload
    assert stored.seq == 1


def test_expected_seq_mismatch_appends_nothing(ledger: ProofLedger) -> None:
    ledger.append(proof_initialized("P", "alice", timestamp=T0))

    with pytest.raises(ConcurrentModificationError):
        ledger.append_many([_child(1), _child(2)], expected_seq=0)

    assert ledger.count() == 1
    assert ledger.append(_child(1), expected_seq=1) == 2


def test_append_many_empty_is_noop(ledger: ProofLedger) -> None:
    assert ledger.append_many([]) == []
    assert not ledger.exists()


def test_query_filters(ledger: ProofLedger) -> None:
    ledger.append(proof_initialized("P", "alice", timestamp=T0))
    ledger.append(_child(1))
    ledger.append(node_claimed(ROOT.child(1), "bob", T0 + timedelta(hours=1), timestamp=T0 + timedelta(minutes=5)))
    ledger.append(_child(2))

    assert [e.seq for e in ledger.query(node_id="1.1")] == [2, 3]
    assert [e.seq for e in ledger.query(event_type=NODE_CLAIMED)] == [3]
    assert [e.seq for e in ledger.query(actor="prover")] == [2, 4]
    assert [e.seq for e in ledger.query(since=T0 + timedelta(minutes=1))] == [3]
    assert [e.seq for e in ledger.query(order="desc", limit=2)] == [4, 3]
    assert [e.seq for e in ledger.query(where=lambda e: e.seq is not None and e.seq % 2 == 0)] == [2, 4]


def test_truncated_record_is_corruption(ledger: ProofLedger) -> None:
    ledger.append(proof_initialized("P", "alice", timestamp=T0))
    with ledger.ledger_path.open("a", encoding="utf-8") as f:
        f.write('{"seq": 2, "event_type": "node.cre')

    with pytest.raises(LedgerCorruptionError):
        ledger.read_all()


def test_garbled_record_is_corruption(ledger: ProofLedger) -> None:
    ledger.append(proof_initialized("P", "alice", timestamp=T0))
    with ledger.ledger_path.open("a", encoding="utf-8") as f:
        f.write("not json\n")

    with pytest.raises(LedgerCorruptionError) as excinfo:
        ledger.read_all()
    assert excinfo.value.seq == 2


def test_sequence_gap_is_corruption(ledger: ProofLedger) -> None:
    ledger.append(proof_initialized("P", "alice", timestamp=T0))
    line = ledger.ledger_path.read_text(encoding="utf-8")
    ledger.ledger_path.write_text(line + line.replace('"seq":1', '"seq":3'), encoding="utf-8")

    with pytest.raises(LedgerCorruptionError, match="expected seq 2"):
        ledger.read_all()


def test_non_object_payload_is_corruption(ledger: ProofLedger) -> None:
    ledger.append(proof_initialized("P", "alice", timestamp=T0))
    with ledger.ledger_path.open("a", encoding="utf-8") as f:
        f.write(
            '{"seq":2,"event_id":"01J0000000000000000000000A","event_type":"node.refuted",'
            '"timestamp":"2026-01-01T00:00:00+00:00","actor":"v","payload":["1"]}\n'
        )

    with pytest.raises(LedgerCorruptionError, match="payload must be an object") as excinfo:
        ledger.read_all()
    assert excinfo.value.seq == 2


def test_unknown_event_type_is_corruption(ledger: ProofLedger) -> None:
    ledger.append(proof_initialized("P", "alice", timestamp=T0))
    line = ledger.ledger_path.read_text(encoding="utf-8")
    bogus = line.replace('"seq":1', '"seq":2').replace("proof.initialized", "node.exploded")
    with ledger.ledger_path.open("a", encoding="utf-8") as f:
        f.write(bogus)

    with pytest.raises(LedgerCorruptionError):
        ledger.read_all()


# -----------------------------------------------------------------------------
# Appends from several processes
# -----------------------------------------------------------------------------

WORKERS = 4
APPENDS_PER_WORKER = 25


def _append_from_worker(proof_dir: str, worker: int) -> None:
    ledger = ProofLedger(Path(proof_dir))
    for i in range(APPENDS_PER_WORKER):
        event = node_created(
            ROOT.child(worker * APPENDS_PER_WORKER + i + 1), ROOT, "claim", f"w{worker} #{i}", "assumption", f"w{worker}"
        )
        ledger.append(event)


def test_appends_from_separate_processes_are_serialized(ledger: ProofLedger) -> None:
    ledger.append(proof_initialized("P", "alice", timestamp=T0))

    ctx = multiprocessing.get_context("fork")
    procs = [
        ctx.Process(target=_append_from_worker, args=(str(ledger.proof_dir), w)) for w in range(WORKERS)
    ]
    for p in procs:
        p.start()
    for p in procs:
        p.join(timeout=60)
    assert [p.exitcode for p in procs] == [0] * WORKERS

    events = ledger.read_all()
    total = 1 + WORKERS * APPENDS_PER_WORKER
    assert [e.seq for e in events] == list(range(1, total + 1))
    assert len({e.event_id for e in events}) == total
    for w in range(WORKERS):
        mine = [e.payload["statement"] for e in events if e.actor == f"w{w}"]
        assert mine == [f"w{w} #{i}" for i in range(APPENDS_PER_WORKER)]
