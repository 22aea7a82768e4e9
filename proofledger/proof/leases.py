"""
Lease (claim) rules for proof nodes.

Leases expire lazily: an expiry is only a timestamp compared against
the caller's clock, so nothing runs in the background. Functions here
are pure checks against a replayed ProofState and return the event to
append; the service decides when to append it.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from .errors import (
    AlreadyClaimedError,
    InvalidInputError,
    NodeNotFoundError,
    NotClaimedError,
    OwnerMismatchError,
    TerminalStateError,
)
from .events import ProofEvent, node_claimed, node_released
from .nodeid import NodeID
from .state import Lease, Node, ProofState
from .util import ensure_utc


def _pending_node(state: ProofState, node_id: NodeID) -> Node:
    node = state.get_node(node_id)
    if node is None:
        raise NodeNotFoundError(node_id)
    if node.is_terminal:
        raise TerminalStateError(node_id, node.epistemic_state.value)
    return node


def _require_owner(owner: str) -> None:
    if not owner or not owner.strip():
        raise InvalidInputError("owner cannot be empty")


def evaluate_claim(
    state: ProofState,
    node_id: NodeID,
    owner: str,
    duration: timedelta,
    now: datetime,
) -> ProofEvent:
    """
    Check that ``owner`` may claim ``node_id`` and build the claim event.

    A node can be claimed if it is pending and has no active lease, or
    its lease already belongs to ``owner`` (re-claim refreshes expiry).
    """
    _require_owner(owner)
    if duration <= timedelta(0):
        raise InvalidInputError(f"lease duration must be positive, got {duration}")

    node = _pending_node(state, node_id)
    now = ensure_utc(now)
    lease = node.active_lease(now)
    if lease is not None and lease.owner != owner:
        raise AlreadyClaimedError(node_id, lease.owner, lease.expires_at.isoformat())

    return node_claimed(node_id, owner, now + duration, timestamp=now)


def check_ownership(state: ProofState, node_id: NodeID, owner: str, now: datetime) -> Lease:
    """
    Require that ``owner`` holds an active lease on ``node_id``.

    Returns the lease; raises NotClaimedError or OwnerMismatchError.
    """
    node = state.get_node(node_id)
    if node is None:
        raise NodeNotFoundError(node_id)
    lease = node.active_lease(now)
    if lease is None:
        raise NotClaimedError(f"node {node_id} is not claimed; claim it before refining")
    if lease.owner != owner:
        raise OwnerMismatchError(node_id, lease.owner, owner)
    return lease


def evaluate_release(state: ProofState, node_id: NodeID, owner: str, now: datetime) -> ProofEvent:
    """Only the current lease holder may release a node early."""
    _require_owner(owner)
    _pending_node(state, node_id)
    check_ownership(state, node_id, owner, now)
    return node_released(node_id, owner, timestamp=ensure_utc(now))
