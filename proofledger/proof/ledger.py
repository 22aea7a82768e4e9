"""
Append-only proof event ledger.

The ledger is the source of truth for all proof state. It contains
only ProofEvent entries, written once and never modified. Current
state is computed by replaying events (see state.py).

Storage format: JSON Lines (ledger.jsonl), one event per line, each
carrying a contiguous 1-based ``seq``. Writers hold an exclusive
``fcntl`` lock on a sidecar ``ledger.jsonl.lock`` file; readers hold a
shared lock so they never observe half of a batch.
"""

from __future__ import annotations

import fcntl
import logging
import os
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Callable, Iterator, Literal, Sequence

from .errors import ConcurrentModificationError, LedgerCorruptionError
from .events import ProofEvent

logger = logging.getLogger(__name__)

LEDGER_FILENAME = "ledger.jsonl"
_LOCK_SUFFIX = ".lock"


class ProofLedger:
    """
    Append-only event ledger for a single proof.

    INVARIANT: This class NEVER modifies existing ledger lines.
    The only write operations are append() and append_many().
    """

    def __init__(self, proof_dir: Path):
        """
        Initialize ledger.

        Args:
            proof_dir: Path to the proof directory
        """
        self.proof_dir = proof_dir
        self.ledger_path = proof_dir / LEDGER_FILENAME
        self.lock_path = self.ledger_path.with_suffix(self.ledger_path.suffix + _LOCK_SUFFIX)

    def _ensure_dir(self) -> None:
        """Ensure the proof directory exists."""
        self.proof_dir.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _locked(self, *, exclusive: bool) -> Iterator[None]:
        """Hold the sidecar file lock for the duration of the context."""
        self._ensure_dir()
        with self.lock_path.open("a+", encoding="utf-8") as lock_handle:
            fcntl.flock(lock_handle.fileno(), fcntl.LOCK_EX if exclusive else fcntl.LOCK_SH)
            try:
                yield
            finally:
                fcntl.flock(lock_handle.fileno(), fcntl.LOCK_UN)

    def exists(self) -> bool:
        return self.ledger_path.exists()

    # --- Reading ---

    def _read_unlocked(self) -> list[ProofEvent]:
        if not self.ledger_path.exists():
            return []

        events: list[ProofEvent] = []
        with self.ledger_path.open("r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                if not line.endswith("\n"):
                    raise LedgerCorruptionError("truncated final record", seq=lineno)
                line = line.strip()
                if not line:
                    continue
                try:
                    event = ProofEvent.from_json(line)
                except (ValueError, KeyError, TypeError) as exc:
                    raise LedgerCorruptionError(f"unreadable record: {exc}", seq=len(events) + 1) from exc
                expected = len(events) + 1
                if event.seq != expected:
                    raise LedgerCorruptionError(f"expected seq {expected}, found {event.seq}", seq=expected)
                events.append(event)
        return events

    def read_all(self) -> list[ProofEvent]:
        """Read all events in append order."""
        with self._locked(exclusive=False):
            return self._read_unlocked()

    def count(self) -> int:
        """Count total events in ledger."""
        return len(self.read_all())

    def last_seq(self) -> int:
        """Sequence number of the newest event (0 for an empty ledger)."""
        return self.count()

    # --- Writing ---

    def append(self, event: ProofEvent, *, expected_seq: int | None = None) -> int:
        """
        Append an event to the ledger and return its sequence number.

        This is the commit point: the event is durable once this returns.
        """
        return self.append_many([event], expected_seq=expected_seq)[0]

    def append_many(self, events: Sequence[ProofEvent], *, expected_seq: int | None = None) -> list[int]:
        """
        Append multiple events atomically.

        All events are written in a single file operation while the
        exclusive lock is held. If ``expected_seq`` is given and another
        writer has appended since the caller read the ledger, nothing is
        written and ConcurrentModificationError is raised.
        """
        if not events:
            return []

        with self._locked(exclusive=True):
            current = len(self._read_unlocked())
            if expected_seq is not None and current != expected_seq:
                raise ConcurrentModificationError(
                    f"ledger advanced from seq {expected_seq} to {current} since state was loaded; reload and retry"
                )

            stamped = [replace(event, seq=current + i) for i, event in enumerate(events, start=1)]
            data = "".join(e.to_json() + "\n" for e in stamped)
            with self.ledger_path.open("a", encoding="utf-8") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())

        seqs = [e.seq for e in stamped if e.seq is not None]
        logger.debug("appended %d event(s) at seq %d-%d", len(seqs), seqs[0], seqs[-1])
        return seqs

    # --- Queries ---

    def query(
        self,
        *,
        node_id: str | None = None,
        event_type: str | None = None,
        actor: str | None = None,
        since: datetime | None = None,
        until: datetime | None = None,
        where: Callable[[ProofEvent], bool] | None = None,
        limit: int | None = None,
        order: Literal["asc", "desc"] = "asc",
    ) -> list[ProofEvent]:
        """
        Query events with composable filters.

        Args:
            node_id: Filter by the node an event concerns (dotted form)
            event_type: Filter by event type
            actor: Filter by actor
            since: Filter events on or after this timestamp
            until: Filter events on or before this timestamp
            where: Custom filter predicate
            limit: Maximum number of events to return (applied after ordering)
            order: "asc" = append order, "desc" = newest first

        Returns:
            List of matching events in specified order
        """
        events = self.read_all()
        if order == "desc":
            events.reverse()

        results: list[ProofEvent] = []
        for event in events:
            if node_id is not None and event.node_id != node_id:
                continue
            if event_type is not None and event.event_type != event_type:
                continue
            if actor is not None and event.actor != actor:
                continue
            if since is not None and event.timestamp < since:
                continue
            if until is not None and event.timestamp > until:
                continue
            if where is not None and not where(event):
                continue

            results.append(event)
            if limit is not None and len(results) >= limit:
                break

        return results
