"""
Immutable event types for the proof ledger.

Events are the atomic unit of the ledger - each line in ledger.jsonl is one event.
Current state is computed by folding events, never by mutating prior entries.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Sequence

from .nodeid import NodeID
from .util import new_ulid, utc_now

# Event type constants
PROOF_INITIALIZED = "proof.initialized"
NODE_CREATED = "node.created"
NODE_CLAIMED = "node.claimed"
NODE_RELEASED = "node.released"
NODE_VALIDATED = "node.validated"
NODE_REFUTED = "node.refuted"
NODE_AMENDED = "node.amended"
CHALLENGE_RAISED = "challenge.raised"
CHALLENGE_RESOLVED = "challenge.resolved"
CHALLENGE_WITHDRAWN = "challenge.withdrawn"
CHALLENGE_SUPERSEDED = "challenge.superseded"
DEFINITION_ADDED = "definition.added"

# All valid event types
EVENT_TYPES = frozenset({
    PROOF_INITIALIZED,
    NODE_CREATED,
    NODE_CLAIMED,
    NODE_RELEASED,
    NODE_VALIDATED,
    NODE_REFUTED,
    NODE_AMENDED,
    CHALLENGE_RAISED,
    CHALLENGE_RESOLVED,
    CHALLENGE_WITHDRAWN,
    CHALLENGE_SUPERSEDED,
    DEFINITION_ADDED,
})

# Payload keys that must be present for each event type
REQUIRED_PAYLOAD_FIELDS: dict[str, frozenset[str]] = {
    PROOF_INITIALIZED: frozenset({"conjecture", "author"}),
    NODE_CREATED: frozenset({"node_id", "parent_id", "node_type", "statement", "inference"}),
    NODE_CLAIMED: frozenset({"node_id", "owner", "expires_at"}),
    NODE_RELEASED: frozenset({"node_id", "owner"}),
    NODE_VALIDATED: frozenset({"node_id"}),
    NODE_REFUTED: frozenset({"node_id"}),
    NODE_AMENDED: frozenset({"node_id", "previous_statement", "new_statement", "owner"}),
    CHALLENGE_RAISED: frozenset({"challenge_id", "node_id", "target", "reason", "severity"}),
    CHALLENGE_RESOLVED: frozenset({"challenge_id"}),
    CHALLENGE_WITHDRAWN: frozenset({"challenge_id"}),
    CHALLENGE_SUPERSEDED: frozenset({"challenge_id", "node_id"}),
    DEFINITION_ADDED: frozenset({"definition_id", "name", "description"}),
}


@dataclass(frozen=True)
class ProofEvent:
    """
    Immutable event in the proof ledger.

    Events are append-only - once written, they are never modified.
    ``seq`` is None until the ledger assigns a position on append.
    """

    event_type: str  # One of EVENT_TYPES
    timestamp: datetime
    actor: str  # Prover/verifier identity, or "system"
    payload: dict[str, Any] = field(default_factory=dict)
    event_id: str = field(default_factory=new_ulid)
    seq: int | None = None

    def __post_init__(self) -> None:
        """Validate event structure."""
        if self.event_type not in EVENT_TYPES:
            raise ValueError(f"Invalid event_type: {self.event_type}")
        if not isinstance(self.payload, dict):
            raise ValueError(f"{self.event_type} payload must be an object, got {type(self.payload).__name__}")
        missing = REQUIRED_PAYLOAD_FIELDS[self.event_type] - self.payload.keys()
        if missing:
            raise ValueError(f"{self.event_type} payload missing field(s): {', '.join(sorted(missing))}")

    @property
    def node_id(self) -> str | None:
        """Node this event concerns, if any (dotted form)."""
        return self.payload.get("node_id")

    def to_dict(self) -> dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        result: dict[str, Any] = {}
        if self.seq is not None:
            result["seq"] = self.seq
        result.update({
            "event_id": self.event_id,
            "event_type": self.event_type,
            "timestamp": self.timestamp.isoformat(),
            "actor": self.actor,
            "payload": self.payload,
        })
        return result

    def to_json(self) -> str:
        """Serialize to JSON string (single line)."""
        return json.dumps(self.to_dict(), separators=(",", ":"), sort_keys=True)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProofEvent:
        """Reconstruct from JSON dict."""
        return cls(
            event_type=data["event_type"],
            timestamp=datetime.fromisoformat(data["timestamp"]),
            actor=data["actor"],
            payload=data.get("payload", {}),
            event_id=data["event_id"],
            seq=data.get("seq"),
        )

    @classmethod
    def from_json(cls, line: str) -> ProofEvent:
        """Parse from JSON string."""
        return cls.from_dict(json.loads(line))


def create_event(
    event_type: str,
    actor: str,
    payload: dict[str, Any],
    *,
    timestamp: datetime | None = None,
) -> ProofEvent:
    """
    Factory function for creating events.

    Ensures consistent timestamp handling and validation.
    """
    return ProofEvent(
        event_type=event_type,
        timestamp=timestamp or utc_now(),
        actor=actor,
        payload=payload,
    )


# -----------------------------------------------------------------------------
# Per-kind constructors
# -----------------------------------------------------------------------------


def _ids(values: Sequence[NodeID]) -> list[str]:
    return [str(v) for v in values]


def proof_initialized(
    conjecture: str,
    author: str,
    *,
    config: dict[str, Any] | None = None,
    timestamp: datetime | None = None,
) -> ProofEvent:
    payload: dict[str, Any] = {"conjecture": conjecture, "author": author}
    if config is not None:
        payload["config"] = config
    return create_event(PROOF_INITIALIZED, author, payload, timestamp=timestamp)


def node_created(
    node_id: NodeID,
    parent_id: NodeID,
    node_type: str,
    statement: str,
    inference: str,
    owner: str,
    *,
    dependencies: Sequence[NodeID] = (),
    validation_dependencies: Sequence[NodeID] = (),
    timestamp: datetime | None = None,
) -> ProofEvent:
    return create_event(
        NODE_CREATED,
        owner,
        {
            "node_id": str(node_id),
            "parent_id": str(parent_id),
            "node_type": node_type,
            "statement": statement,
            "inference": inference,
            "dependencies": _ids(dependencies),
            "validation_dependencies": _ids(validation_dependencies),
        },
        timestamp=timestamp,
    )


def node_claimed(
    node_id: NodeID, owner: str, expires_at: datetime, *, timestamp: datetime | None = None
) -> ProofEvent:
    return create_event(
        NODE_CLAIMED,
        owner,
        {"node_id": str(node_id), "owner": owner, "expires_at": expires_at.isoformat()},
        timestamp=timestamp,
    )


def node_released(node_id: NodeID, owner: str, *, timestamp: datetime | None = None) -> ProofEvent:
    return create_event(NODE_RELEASED, owner, {"node_id": str(node_id), "owner": owner}, timestamp=timestamp)


def node_validated(
    node_id: NodeID, actor: str, *, note: str | None = None, timestamp: datetime | None = None
) -> ProofEvent:
    payload: dict[str, Any] = {"node_id": str(node_id)}
    if note is not None:
        payload["note"] = note
    return create_event(NODE_VALIDATED, actor, payload, timestamp=timestamp)


def node_refuted(
    node_id: NodeID, actor: str, *, reason: str | None = None, timestamp: datetime | None = None
) -> ProofEvent:
    payload: dict[str, Any] = {"node_id": str(node_id)}
    if reason:
        payload["reason"] = reason
    return create_event(NODE_REFUTED, actor, payload, timestamp=timestamp)


def node_amended(
    node_id: NodeID,
    previous_statement: str,
    new_statement: str,
    owner: str,
    *,
    timestamp: datetime | None = None,
) -> ProofEvent:
    return create_event(
        NODE_AMENDED,
        owner,
        {
            "node_id": str(node_id),
            "previous_statement": previous_statement,
            "new_statement": new_statement,
            "owner": owner,
        },
        timestamp=timestamp,
    )


def challenge_raised(
    challenge_id: str,
    node_id: NodeID,
    target: str,
    reason: str,
    severity: str,
    *,
    raised_by: str | None = None,
    timestamp: datetime | None = None,
) -> ProofEvent:
    payload: dict[str, Any] = {
        "challenge_id": challenge_id,
        "node_id": str(node_id),
        "target": target,
        "reason": reason,
        "severity": severity,
    }
    if raised_by:
        payload["raised_by"] = raised_by
    return create_event(CHALLENGE_RAISED, raised_by or "system", payload, timestamp=timestamp)


def challenge_resolved(
    challenge_id: str, actor: str, *, resolution: str | None = None, timestamp: datetime | None = None
) -> ProofEvent:
    payload: dict[str, Any] = {"challenge_id": challenge_id}
    if resolution:
        payload["resolution"] = resolution
    return create_event(CHALLENGE_RESOLVED, actor, payload, timestamp=timestamp)


def challenge_withdrawn(challenge_id: str, actor: str, *, timestamp: datetime | None = None) -> ProofEvent:
    return create_event(CHALLENGE_WITHDRAWN, actor, {"challenge_id": challenge_id}, timestamp=timestamp)


def challenge_superseded(
    challenge_id: str, node_id: NodeID, actor: str, *, timestamp: datetime | None = None
) -> ProofEvent:
    """The challenge's node was refuted, so the challenge no longer needs an answer."""
    return create_event(
        CHALLENGE_SUPERSEDED,
        actor,
        {"challenge_id": challenge_id, "node_id": str(node_id)},
        timestamp=timestamp,
    )


def definition_added(
    name: str,
    description: str,
    actor: str,
    *,
    definition_id: str | None = None,
    timestamp: datetime | None = None,
) -> ProofEvent:
    return create_event(
        DEFINITION_ADDED,
        actor,
        {"definition_id": definition_id or new_ulid(), "name": name, "description": description},
        timestamp=timestamp,
    )
