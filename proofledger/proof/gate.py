"""
Admission checks for proof events.

Every check runs against freshly replayed state immediately before the
resulting event is appended. Checks never append anything themselves;
they raise a ProofError describing every offending item, or return.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Sequence

from .config import ProofConfig
from .errors import (
    BlockingChallengesError,
    ChallengeClosedError,
    ChallengeExistsError,
    ChallengeNotFoundError,
    ChildLimitExceededError,
    DefinitionExistsError,
    DepthExceededError,
    InvalidInputError,
    InvalidParentError,
    MissingDefinitionError,
    MissingDependencyError,
    NodeExistsError,
    NodeNotFoundError,
    OwnerMismatchError,
    ParentNotFoundError,
    TerminalStateError,
    UnchallengedAcceptanceError,
    UnvalidatedDependenciesError,
)
from .events import ProofEvent, node_created
from .leases import check_ownership
from .nodeid import NodeID, parse_node_id
from .schema import EpistemicState, InferenceType, NodeType, parse_enum
from .state import Challenge, Node, ProofState


DEF_CITATION = re.compile(r"def:([a-zA-Z0-9][a-zA-Z0-9_-]*)")
DEF_NAME = re.compile(r"[a-zA-Z0-9][a-zA-Z0-9_-]*")


class DepthWarning(UserWarning):
    """A node was created deeper than the proof's warn_depth."""


def extract_definition_citations(text: str) -> list[str]:
    """Names cited as ``def:<name>`` in ``text``, first occurrence order, no repeats."""
    return list(dict.fromkeys(DEF_CITATION.findall(text)))


def _check_citations(state: ProofState, statement: str) -> None:
    undefined = [name for name in extract_definition_citations(statement) if state.get_definition(name) is None]
    if undefined:
        raise MissingDefinitionError(undefined)


# -----------------------------------------------------------------------------
# Creation gate
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class CreationRequest:
    """A fully parsed request to create one node under a claimed parent."""

    node_id: NodeID
    owner: str
    node_type: NodeType
    statement: str
    inference: InferenceType
    dependencies: tuple[NodeID, ...] = ()
    validation_dependencies: tuple[NodeID, ...] = ()

    @classmethod
    def build(
        cls,
        node_id: NodeID | str,
        owner: str,
        node_type: NodeType | str,
        statement: str,
        inference: InferenceType | str,
        *,
        dependencies: Sequence[NodeID | str] = (),
        validation_dependencies: Sequence[NodeID | str] = (),
    ) -> CreationRequest:
        """Parse caller input; raises InvalidNodeIDError or InvalidInputError."""
        return cls(
            node_id=parse_node_id(node_id),
            owner=owner,
            node_type=parse_enum(NodeType, node_type, field="node type"),
            statement=statement,
            inference=parse_enum(InferenceType, inference, field="inference"),
            dependencies=tuple(parse_node_id(d) for d in dependencies),
            validation_dependencies=tuple(parse_node_id(d) for d in validation_dependencies),
        )

    @property
    def parent_id(self) -> NodeID | None:
        return self.node_id.parent()

    def to_event(self, *, timestamp: datetime | None = None) -> ProofEvent:
        parent_id = self.parent_id
        assert parent_id is not None
        return node_created(
            self.node_id,
            parent_id,
            self.node_type.value,
            self.statement,
            self.inference.value,
            self.owner,
            dependencies=self.dependencies,
            validation_dependencies=self.validation_dependencies,
            timestamp=timestamp,
        )


def check_creation(
    state: ProofState,
    request: CreationRequest,
    config: ProofConfig,
    now: datetime,
) -> list[str]:
    """
    Admit a node.created event, or raise.

    Returns non-fatal warnings (currently only the soft depth limit).
    """
    if not request.owner or not request.owner.strip():
        raise InvalidInputError("owner cannot be empty")
    if not request.statement or not request.statement.strip():
        raise InvalidInputError("statement cannot be empty")

    node_id = request.node_id
    parent_id = request.parent_id
    if parent_id is None:
        raise InvalidParentError("the root node is created by proof initialization")

    parent = state.get_node(parent_id)
    if parent is None:
        raise ParentNotFoundError(parent_id)
    if parent.is_terminal:
        raise TerminalStateError(parent_id, parent.epistemic_state.value)
    check_ownership(state, parent_id, request.owner, now)

    if state.get_node(node_id) is not None:
        raise NodeExistsError(f"node {node_id} already exists")

    if node_id.depth > config.max_depth:
        raise DepthExceededError(
            f"node {node_id} has depth {node_id.depth}, exceeding max_depth {config.max_depth}"
        )
    children = len(state.children_of(parent_id))
    if children >= config.max_children:
        raise ChildLimitExceededError(
            f"node {parent_id} already has {children} children (max_children {config.max_children})"
        )

    missing = [d for d in request.dependencies if state.get_node(d) is None]
    if missing:
        raise MissingDependencyError(missing)
    missing = [d for d in request.validation_dependencies if state.get_node(d) is None]
    if missing:
        raise MissingDependencyError(missing, kind="validation dependency")

    _check_citations(state, request.statement)

    warnings: list[str] = []
    if node_id.depth > config.warn_depth:
        warnings.append(
            f"node {node_id} is at depth {node_id.depth} (warn_depth {config.warn_depth}); "
            "consider restructuring with lemmas"
        )
    return warnings


# -----------------------------------------------------------------------------
# Acceptance gate
# -----------------------------------------------------------------------------


@dataclass(frozen=True)
class AcceptanceSummary:
    """What the verifier sees after a node is accepted."""

    node_id: NodeID
    note: str | None = None
    challenges_raised: int = 0
    challenges_resolved: int = 0
    open_challenges: tuple[Challenge, ...] = ()  # Open but non-blocking
    validation_dependencies: tuple[NodeID, ...] = ()


def _pending(state: ProofState, node_id: NodeID) -> Node:
    node = state.get_node(node_id)
    if node is None:
        raise NodeNotFoundError(node_id)
    if node.is_terminal:
        raise TerminalStateError(node_id, node.epistemic_state.value)
    return node


def check_acceptance(
    state: ProofState,
    node_id: NodeID,
    *,
    agent: str | None = None,
    confirm: bool = False,
) -> Node:
    """
    Admit a node.validated event, or raise.

    Checks run in order: node pending, validation dependencies
    validated, no blocking challenge, then the acting-agent policy.
    Unvalidated dependencies and blocking challenges are reported
    together so one retry can address both.
    """
    node = _pending(state, node_id)

    unvalidated = [d for d in node.validation_dependencies if not _is_validated(state, d)]
    blocking = state.blocking_challenges(node_id)
    if unvalidated:
        raise UnvalidatedDependenciesError(node_id, unvalidated, blocking=blocking)
    if blocking:
        raise BlockingChallengesError(node_id, blocking)

    if agent is not None and not confirm:
        raised = [c for c in state.challenges_for(node_id) if c.raised_by == agent]
        if not raised:
            raise UnchallengedAcceptanceError(node_id, agent)

    return node


def _is_validated(state: ProofState, node_id: NodeID) -> bool:
    node = state.get_node(node_id)
    return node is not None and node.epistemic_state is EpistemicState.VALIDATED


def summarize_acceptance(state: ProofState, node_id: NodeID, *, note: str | None = None) -> AcceptanceSummary:
    challenges = state.challenges_for(node_id)
    node = state.get_node(node_id)
    return AcceptanceSummary(
        node_id=node_id,
        note=note,
        challenges_raised=len(challenges),
        challenges_resolved=sum(1 for c in challenges if c.resolved),
        open_challenges=tuple(c for c in challenges if c.is_open),
        validation_dependencies=node.validation_dependencies if node is not None else (),
    )


def check_amendment(state: ProofState, node_id: NodeID, owner: str, statement: str, now: datetime) -> Node:
    """
    Admit a node.amended event, or raise.

    The node must be pending. While it is claimed only the lease holder
    may amend it; an unclaimed node may be amended by anyone. The new
    statement passes the same citation check as a new node.
    """
    if not owner or not owner.strip():
        raise InvalidInputError("owner cannot be empty")
    if not statement or not statement.strip():
        raise InvalidInputError("statement cannot be empty")
    node = _pending(state, node_id)
    lease = node.active_lease(now)
    if lease is not None and lease.owner != owner:
        raise OwnerMismatchError(node_id, lease.owner, owner)
    if statement == node.statement:
        raise InvalidInputError(f"node {node_id} already has that statement")
    _check_citations(state, statement)
    return node


def check_refutation(state: ProofState, node_id: NodeID) -> Node:
    """Any agent may refute a pending node."""
    return _pending(state, node_id)


# -----------------------------------------------------------------------------
# Challenges and definitions
# -----------------------------------------------------------------------------


def check_challenge_raise(state: ProofState, challenge_id: str, node_id: NodeID, reason: str) -> Node:
    if not challenge_id or not challenge_id.strip():
        raise InvalidInputError("challenge ID cannot be empty")
    if not reason or not reason.strip():
        raise InvalidInputError("challenge reason cannot be empty")
    if state.get_challenge(challenge_id) is not None:
        raise ChallengeExistsError(f"challenge {challenge_id} already exists")
    return _pending(state, node_id)


def check_challenge_open(state: ProofState, challenge_id: str) -> Challenge:
    challenge = state.get_challenge(challenge_id)
    if challenge is None:
        raise ChallengeNotFoundError(f"challenge {challenge_id} not found")
    if not challenge.is_open:
        raise ChallengeClosedError(f"challenge {challenge_id} is already {challenge.status.value}")
    return challenge


def check_definition(state: ProofState, name: str, description: str) -> None:
    if not DEF_NAME.fullmatch(name or ""):
        raise InvalidInputError(
            f"invalid definition name {name!r}: use letters, digits, '_' or '-', starting with a letter or digit"
        )
    if not description or not description.strip():
        raise InvalidInputError("definition description cannot be empty")
    if state.get_definition(name) is not None:
        raise DefinitionExistsError(f"definition {name} already exists")
