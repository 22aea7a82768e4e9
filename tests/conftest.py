"""Pytest configuration and fixtures."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from proofledger.proof.service import ProofService, init_proof


class FixedClock:
    """Injectable clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, delta: timedelta) -> None:
        self.current = self.current + delta


@pytest.fixture
def clock() -> FixedClock:
    return FixedClock(datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def proof_dir(tmp_path: Path) -> Path:
    """Path for a fresh (not yet initialized) proof."""
    return tmp_path / ".proof"


@pytest.fixture
def service(proof_dir: Path, clock: FixedClock) -> ProofService:
    """An initialized proof of conjecture "P"."""
    return init_proof(proof_dir, "P", "alice", clock=clock)


@pytest.fixture
def claimed_root(service: ProofService) -> ProofService:
    """Service whose root node is claimed by "prover" for an hour."""
    service.claim_node("1", "prover", timedelta(hours=1))
    return service
