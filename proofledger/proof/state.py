"""
Proof state projection from the event stream.

State is computed - it is derived by folding events, never stored as
the source of truth. Every view handed out (Node, Lease, Challenge,
Definition) is a frozen dataclass, so callers cannot mutate what
replay produced.

An event that the gate should have rejected (unknown node, duplicate
ID, transition out of a terminal state, gap in ``seq``) raises
LedgerCorruptionError: the ledger itself is suspect.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Iterable

from .config import ProofConfig
from .errors import InvalidNodeIDError, LedgerCorruptionError
from .events import (
    ProofEvent,
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
)
from .nodeid import NodeID, parse_node_id
from .schema import (
    ChallengeSeverity,
    ChallengeStatus,
    ChallengeTarget,
    EpistemicState,
    InferenceType,
    NodeType,
)
from .util import ensure_utc


# -----------------------------------------------------------------------------
# Views
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class Lease:
    owner: str
    expires_at: datetime

    def is_active(self, now: datetime) -> bool:
        return ensure_utc(now) < self.expires_at


@dataclass(frozen=True)
class Amendment:
    """One correction of a node's statement; earlier text is kept, never overwritten."""

    previous_statement: str
    new_statement: str
    owner: str
    amended_at: datetime | None = None


@dataclass(frozen=True)
class Node:
    node_id: NodeID
    node_type: NodeType
    statement: str
    inference: str
    epistemic_state: EpistemicState = EpistemicState.PENDING
    lease: Lease | None = None
    dependencies: tuple[NodeID, ...] = ()
    validation_dependencies: tuple[NodeID, ...] = ()
    created_at: datetime | None = None
    created_by: str | None = None
    validation_note: str | None = None
    refutation_reason: str | None = None
    amendments: tuple[Amendment, ...] = ()

    @property
    def parent_id(self) -> NodeID | None:
        return self.node_id.parent()

    @property
    def is_terminal(self) -> bool:
        return self.epistemic_state.is_terminal

    def active_lease(self, now: datetime) -> Lease | None:
        """The lease if it has not expired at ``now``."""
        if self.lease is not None and self.lease.is_active(now):
            return self.lease
        return None


@dataclass(frozen=True)
class Challenge:
    challenge_id: str
    node_id: NodeID
    target: ChallengeTarget
    reason: str
    severity: ChallengeSeverity
    raised_by: str | None = None
    raised_at: datetime | None = None
    status: ChallengeStatus = ChallengeStatus.OPEN
    resolution: str | None = None

    @property
    def resolved(self) -> bool:
        return self.status is ChallengeStatus.RESOLVED

    @property
    def is_open(self) -> bool:
        return self.status is ChallengeStatus.OPEN

    @property
    def is_blocking(self) -> bool:
        """Open and severe enough to block acceptance."""
        return self.is_open and self.severity.blocks_acceptance


@dataclass(frozen=True)
class Definition:
    definition_id: str
    name: str
    description: str
    created_at: datetime | None = None
    created_by: str | None = None


# -----------------------------------------------------------------------------
# State
# -----------------------------------------------------------------------------


@dataclass
class ProofState:
    """
    Materialized proof tree at ``latest_seq``.

    This is a projection, not stored data. It can always be recomputed
    from the ledger with replay().
    """

    conjecture: str | None = None
    author: str | None = None
    config: ProofConfig = field(default_factory=ProofConfig)
    latest_seq: int = 0

    # Insertion-ordered indexes; exposed only through the accessors below
    nodes: dict[NodeID, Node] = field(default_factory=dict, repr=False)
    challenges: dict[str, Challenge] = field(default_factory=dict, repr=False)
    definitions: dict[str, Definition] = field(default_factory=dict, repr=False)

    @property
    def initialized(self) -> bool:
        return self.conjecture is not None

    def copy(self) -> ProofState:
        """Independent working copy; views are frozen so only the indexes are copied."""
        return replace(
            self,
            nodes=dict(self.nodes),
            challenges=dict(self.challenges),
            definitions=dict(self.definitions),
        )

    # --- Nodes ---

    def get_node(self, node_id: NodeID | str) -> Node | None:
        try:
            return self.nodes.get(parse_node_id(node_id))
        except InvalidNodeIDError:
            return None

    def all_nodes(self) -> list[Node]:
        """All nodes in creation order."""
        return list(self.nodes.values())

    def pending_nodes(self, now: datetime) -> list[Node]:
        """Pending nodes with no active lease: the available jobs."""
        return [n for n in self.nodes.values() if not n.is_terminal and n.active_lease(now) is None]

    def children_of(self, node_id: NodeID | str) -> list[Node]:
        parent = parse_node_id(node_id)
        return [n for n in self.nodes.values() if n.node_id.parent() == parent]

    # --- Challenges ---

    def get_challenge(self, challenge_id: str) -> Challenge | None:
        return self.challenges.get(challenge_id)

    def all_challenges(self) -> list[Challenge]:
        return list(self.challenges.values())

    def challenges_for(self, node_id: NodeID | str) -> list[Challenge]:
        target = parse_node_id(node_id)
        return [c for c in self.challenges.values() if c.node_id == target]

    def blocking_challenges(self, node_id: NodeID | str) -> list[Challenge]:
        return [c for c in self.challenges_for(node_id) if c.is_blocking]

    # --- Definitions ---

    def get_definition(self, name: str) -> Definition | None:
        return self.definitions.get(name)

    def all_definitions(self) -> list[Definition]:
        return list(self.definitions.values())


# -----------------------------------------------------------------------------
# Replay
# -----------------------------------------------------------------------------


def replay(events: Iterable[ProofEvent]) -> ProofState:
    """
    Compute proof state by folding events in ledger order.

    Pure: the same event sequence always yields an equal state.
    """
    state = ProofState()
    for event in events:
        apply_event(state, event)
    return state


def apply_event(state: ProofState, event: ProofEvent) -> None:
    """Apply a single event to ``state`` in place."""
    expected = state.latest_seq + 1
    if event.seq is not None and event.seq != expected:
        raise LedgerCorruptionError(f"expected seq {expected}, found {event.seq}", seq=event.seq)

    if event.event_type != PROOF_INITIALIZED and not state.initialized:
        raise LedgerCorruptionError(f"{event.event_type} before {PROOF_INITIALIZED}", seq=expected)

    handler = _HANDLERS.get(event.event_type)
    if handler is None:
        raise LedgerCorruptionError(f"unknown event type {event.event_type!r}", seq=expected)

    try:
        handler(state, event, expected)
    except (KeyError, ValueError, TypeError, AttributeError) as exc:
        raise LedgerCorruptionError(f"malformed {event.event_type} payload: {exc}", seq=expected) from exc

    state.latest_seq = expected


def _node_ref(state: ProofState, raw: str, seq: int, *, allow_terminal: bool = False) -> Node:
    node = state.nodes.get(parse_node_id(raw))
    if node is None:
        raise LedgerCorruptionError(f"reference to unknown node {raw}", seq=seq)
    if node.is_terminal and not allow_terminal:
        raise LedgerCorruptionError(f"node {raw} is already {node.epistemic_state.value}", seq=seq)
    return node


def _challenge_ref(state: ProofState, challenge_id: str, seq: int) -> Challenge:
    challenge = state.challenges.get(challenge_id)
    if challenge is None:
        raise LedgerCorruptionError(f"reference to unknown challenge {challenge_id}", seq=seq)
    if not challenge.is_open:
        raise LedgerCorruptionError(f"challenge {challenge_id} is already {challenge.status.value}", seq=seq)
    return challenge


def _on_initialized(state: ProofState, event: ProofEvent, seq: int) -> None:
    if state.initialized:
        raise LedgerCorruptionError("proof initialized twice", seq=seq)
    p = event.payload
    state.conjecture = p["conjecture"]
    state.author = p["author"]
    config = p.get("config") or {}
    if not isinstance(config, dict):
        raise LedgerCorruptionError(f"config must be an object, got {type(config).__name__}", seq=seq)
    state.config = ProofConfig.from_dict(config)
    root = NodeID.root()
    state.nodes[root] = Node(
        node_id=root,
        node_type=NodeType.CLAIM,
        statement=p["conjecture"],
        inference=InferenceType.ASSUMPTION.value,
        created_at=event.timestamp,
        created_by=p["author"],
    )


def _on_created(state: ProofState, event: ProofEvent, seq: int) -> None:
    p = event.payload
    node_id = parse_node_id(p["node_id"])
    if node_id in state.nodes:
        raise LedgerCorruptionError(f"node {node_id} created twice", seq=seq)
    parent = _node_ref(state, p["parent_id"], seq)
    if node_id.parent() != parent.node_id:
        raise LedgerCorruptionError(f"node {node_id} is not a child of {parent.node_id}", seq=seq)
    dependencies = tuple(_node_ref(state, d, seq, allow_terminal=True).node_id for d in p.get("dependencies", ()))
    validation_dependencies = tuple(
        _node_ref(state, d, seq, allow_terminal=True).node_id for d in p.get("validation_dependencies", ())
    )
    state.nodes[node_id] = Node(
        node_id=node_id,
        node_type=NodeType(p["node_type"]),
        statement=p["statement"],
        inference=p["inference"],
        dependencies=dependencies,
        validation_dependencies=validation_dependencies,
        created_at=event.timestamp,
        created_by=event.actor,
    )


def _on_claimed(state: ProofState, event: ProofEvent, seq: int) -> None:
    p = event.payload
    node = _node_ref(state, p["node_id"], seq)
    lease = Lease(owner=p["owner"], expires_at=ensure_utc(datetime.fromisoformat(p["expires_at"])))
    state.nodes[node.node_id] = replace(node, lease=lease)


def _on_released(state: ProofState, event: ProofEvent, seq: int) -> None:
    node = _node_ref(state, event.payload["node_id"], seq)
    state.nodes[node.node_id] = replace(node, lease=None)


def _on_validated(state: ProofState, event: ProofEvent, seq: int) -> None:
    node = _node_ref(state, event.payload["node_id"], seq)
    state.nodes[node.node_id] = replace(
        node,
        epistemic_state=EpistemicState.VALIDATED,
        validation_note=event.payload.get("note"),
        lease=None,
    )


def _on_refuted(state: ProofState, event: ProofEvent, seq: int) -> None:
    node = _node_ref(state, event.payload["node_id"], seq)
    state.nodes[node.node_id] = replace(
        node,
        epistemic_state=EpistemicState.REFUTED,
        refutation_reason=event.payload.get("reason"),
        lease=None,
    )


def _on_amended(state: ProofState, event: ProofEvent, seq: int) -> None:
    p = event.payload
    node = _node_ref(state, p["node_id"], seq)
    if p["previous_statement"] != node.statement:
        raise LedgerCorruptionError(f"amendment of {node.node_id} does not match its current statement", seq=seq)
    amendment = Amendment(
        previous_statement=p["previous_statement"],
        new_statement=p["new_statement"],
        owner=p["owner"],
        amended_at=event.timestamp,
    )
    state.nodes[node.node_id] = replace(
        node, statement=p["new_statement"], amendments=node.amendments + (amendment,)
    )


def _on_challenge_raised(state: ProofState, event: ProofEvent, seq: int) -> None:
    p = event.payload
    challenge_id = p["challenge_id"]
    if challenge_id in state.challenges:
        raise LedgerCorruptionError(f"challenge {challenge_id} raised twice", seq=seq)
    node = _node_ref(state, p["node_id"], seq)
    state.challenges[challenge_id] = Challenge(
        challenge_id=challenge_id,
        node_id=node.node_id,
        target=ChallengeTarget(p["target"]),
        reason=p["reason"],
        severity=ChallengeSeverity(p["severity"]),
        raised_by=p.get("raised_by"),
        raised_at=event.timestamp,
    )


def _on_challenge_resolved(state: ProofState, event: ProofEvent, seq: int) -> None:
    challenge = _challenge_ref(state, event.payload["challenge_id"], seq)
    state.challenges[challenge.challenge_id] = replace(
        challenge, status=ChallengeStatus.RESOLVED, resolution=event.payload.get("resolution")
    )


def _on_challenge_withdrawn(state: ProofState, event: ProofEvent, seq: int) -> None:
    challenge = _challenge_ref(state, event.payload["challenge_id"], seq)
    state.challenges[challenge.challenge_id] = replace(challenge, status=ChallengeStatus.WITHDRAWN)


def _on_challenge_superseded(state: ProofState, event: ProofEvent, seq: int) -> None:
    challenge = _challenge_ref(state, event.payload["challenge_id"], seq)
    node = _node_ref(state, event.payload["node_id"], seq, allow_terminal=True)
    if challenge.node_id != node.node_id or node.epistemic_state is not EpistemicState.REFUTED:
        raise LedgerCorruptionError(
            f"challenge {challenge.challenge_id} superseded but node {node.node_id} is not its refuted node", seq=seq
        )
    state.challenges[challenge.challenge_id] = replace(challenge, status=ChallengeStatus.SUPERSEDED)


def _on_definition_added(state: ProofState, event: ProofEvent, seq: int) -> None:
    p = event.payload
    if p["name"] in state.definitions:
        raise LedgerCorruptionError(f"definition {p['name']} added twice", seq=seq)
    state.definitions[p["name"]] = Definition(
        definition_id=p["definition_id"],
        name=p["name"],
        description=p["description"],
        created_at=event.timestamp,
        created_by=event.actor,
    )


_HANDLERS = {
    PROOF_INITIALIZED: _on_initialized,
    NODE_CREATED: _on_created,
    NODE_CLAIMED: _on_claimed,
    NODE_RELEASED: _on_released,
    NODE_VALIDATED: _on_validated,
    NODE_REFUTED: _on_refuted,
    NODE_AMENDED: _on_amended,
    CHALLENGE_RAISED: _on_challenge_raised,
    CHALLENGE_RESOLVED: _on_challenge_resolved,
    CHALLENGE_WITHDRAWN: _on_challenge_withdrawn,
    CHALLENGE_SUPERSEDED: _on_challenge_superseded,
    DEFINITION_ADDED: _on_definition_added,
}
