"""
Proof service: the single entry point for reading and changing a proof.

Every write follows the same sequence: replay the ledger, run the gate
against that fresh state, then append with ``expected_seq`` set to the
sequence the state was built from. If another process appended in
between, the append fails with ConcurrentModificationError and nothing
is written. There are no automatic retries.
"""

from __future__ import annotations

import logging
import warnings
from datetime import datetime, timedelta
from pathlib import Path
from typing import Sequence

from .bulk import BulkCoordinator, ChildSpec, next_free_child
from .config import ProofConfig, save_meta
from .errors import (
    AlreadyInitializedError,
    ConcurrentModificationError,
    InvalidInputError,
    InvalidParentError,
    NodeNotFoundError,
    NotInitializedError,
    ParentNotFoundError,
    ProofError,
)
from .events import (
    ProofEvent,
    challenge_raised,
    challenge_resolved,
    challenge_superseded,
    challenge_withdrawn,
    definition_added,
    node_amended,
    node_refuted,
    node_validated,
    proof_initialized,
)
from .gate import (
    AcceptanceSummary,
    CreationRequest,
    DepthWarning,
    check_acceptance,
    check_amendment,
    check_challenge_open,
    check_challenge_raise,
    check_creation,
    check_definition,
    check_refutation,
    summarize_acceptance,
)
from .leases import evaluate_claim, evaluate_release
from .ledger import LEDGER_FILENAME, ProofLedger
from .nodeid import NodeID, parse_node_id
from .schema import (
    DEFAULT_SEVERITY,
    ChallengeSeverity,
    ChallengeTarget,
    InferenceType,
    NodeType,
    parse_enum,
)
from .state import Amendment, Lease, ProofState, replay
from .util import Clock, ensure_utc, utc_now

logger = logging.getLogger(__name__)

SYSTEM_ACTOR = "system"


def init_proof(
    path: Path,
    conjecture: str,
    author: str,
    config: ProofConfig | None = None,
    *,
    clock: Clock | None = None,
) -> ProofService:
    """
    Create the proof store at ``path`` and record the conjecture as node 1.

    Raises AlreadyInitializedError if ``path`` already holds a proof.
    """
    if not conjecture or not conjecture.strip():
        raise InvalidInputError("conjecture cannot be empty")
    if not author or not author.strip():
        raise InvalidInputError("author cannot be empty")
    config = config or ProofConfig()
    config.validate()

    service = ProofService(path, clock=clock)
    if service.ledger.count() > 0:
        raise AlreadyInitializedError(f"proof already initialized at {service.proof_dir}")

    event = proof_initialized(conjecture, author, config=config.to_dict(), timestamp=service.now())
    try:
        service.ledger.append(event, expected_seq=0)
    except ConcurrentModificationError as exc:
        raise AlreadyInitializedError(f"proof already initialized at {service.proof_dir}") from exc
    save_meta(service.proof_dir, config, conjecture=conjecture)

    logger.info("initialized proof at %s", service.proof_dir)
    return service


def open_proof(path: Path, *, clock: Clock | None = None) -> ProofService:
    """Open an existing proof store; never creates one."""
    if not (path / LEDGER_FILENAME).exists():
        raise NotInitializedError(f"no proof found at {path}; run init first")
    return ProofService(path, clock=clock)


class ProofService:
    def __init__(self, proof_dir: Path, *, clock: Clock | None = None):
        self.proof_dir = proof_dir.resolve()
        self.ledger = ProofLedger(self.proof_dir)
        self.clock = clock or utc_now

    def now(self) -> datetime:
        return ensure_utc(self.clock())

    # --- Reading ---

    def load_state(self) -> ProofState:
        """Full replay of the ledger. The result is a read-only snapshot."""
        state = replay(self.ledger.read_all())
        if not state.initialized:
            raise NotInitializedError(f"proof at {self.proof_dir} is not initialized")
        return state

    def next_child_id(self, parent_id: NodeID | str) -> NodeID:
        """
        Next unused child ID under ``parent_id``.

        Only a hint: another agent may take it before the caller refines.
        refine_node() allocates under the ledger's sequence check instead.
        """
        state = self.load_state()
        parent = parse_node_id(parent_id)
        if state.get_node(parent) is None:
            raise ParentNotFoundError(parent)
        return next_free_child(state, parent)

    def history(
        self,
        node_id: NodeID | str | None = None,
        *,
        event_type: str | None = None,
        actor: str | None = None,
        limit: int | None = None,
        newest_first: bool = False,
    ) -> list[ProofEvent]:
        """Ledger events, optionally filtered to one node, type or actor."""
        return self.ledger.query(
            node_id=str(parse_node_id(node_id)) if node_id is not None else None,
            event_type=event_type,
            actor=actor,
            limit=limit,
            order="desc" if newest_first else "asc",
        )

    # --- Internals ---

    def _commit(self, state: ProofState, events: Sequence[ProofEvent]) -> list[int]:
        return self.ledger.append_many(events, expected_seq=state.latest_seq)

    def _emit(self, messages: Sequence[str]) -> None:
        for message in messages:
            logger.warning(message)
            warnings.warn(message, DepthWarning, stacklevel=3)

    # --- Leases ---

    def claim_node(self, node_id: NodeID | str, owner: str, duration: timedelta | None = None) -> Lease:
        """Claim a pending node for ``owner``; defaults to the proof's lease_timeout."""
        node_id = parse_node_id(node_id)
        state = self.load_state()
        now = self.now()
        if duration is None:
            duration = state.config.lease_timeout
        event = evaluate_claim(state, node_id, owner, duration, now)
        self._commit(state, [event])
        lease = Lease(owner=owner, expires_at=datetime.fromisoformat(event.payload["expires_at"]))
        logger.info("node %s claimed by %s until %s", node_id, owner, lease.expires_at.isoformat())
        return lease

    def release_node(self, node_id: NodeID | str, owner: str) -> None:
        node_id = parse_node_id(node_id)
        state = self.load_state()
        event = evaluate_release(state, node_id, owner, self.now())
        self._commit(state, [event])
        logger.info("node %s released by %s", node_id, owner)

    # --- Creation ---

    def create_node(
        self,
        node_id: NodeID | str,
        owner: str,
        statement: str,
        *,
        node_type: NodeType | str = NodeType.CLAIM,
        inference: InferenceType | str = InferenceType.ASSUMPTION,
        dependencies: Sequence[NodeID | str] = (),
        validation_dependencies: Sequence[NodeID | str] = (),
    ) -> NodeID:
        """Create a node at an explicit ID under its (claimed) parent."""
        request = CreationRequest.build(
            node_id,
            owner,
            node_type,
            statement,
            inference,
            dependencies=dependencies,
            validation_dependencies=validation_dependencies,
        )
        state = self.load_state()
        now = self.now()
        try:
            messages = check_creation(state, request, state.config, now)
        except ProofError as exc:
            logger.debug("create %s rejected: %s", request.node_id, exc)
            raise
        self._commit(state, [request.to_event(timestamp=now)])
        self._emit(messages)
        logger.info("node %s created by %s", request.node_id, owner)
        return request.node_id

    def refine_node(
        self,
        parent_id: NodeID | str,
        owner: str,
        statement: str,
        *,
        child_id: NodeID | str | None = None,
        node_type: NodeType | str = NodeType.CLAIM,
        inference: InferenceType | str = InferenceType.ASSUMPTION,
        dependencies: Sequence[NodeID | str] = (),
        validation_dependencies: Sequence[NodeID | str] = (),
    ) -> NodeID:
        """
        Add one child under a claimed parent.

        The child ID is the next free one unless ``child_id`` is given,
        in which case it must be a direct child of ``parent_id``.
        """
        parent = parse_node_id(parent_id)
        if child_id is None:
            target = self.next_child_id(parent)
        else:
            target = parse_node_id(child_id)
            if target.parent() != parent:
                raise InvalidParentError(f"node {target} is not a direct child of {parent}")
        return self.create_node(
            target,
            owner,
            statement,
            node_type=node_type,
            inference=inference,
            dependencies=dependencies,
            validation_dependencies=validation_dependencies,
        )

    def refine_node_bulk(self, parent_id: NodeID | str, owner: str, specs: Sequence[ChildSpec]) -> list[NodeID]:
        """Add several children atomically; returns their IDs in order."""
        state = self.load_state()
        now = self.now()
        plan = BulkCoordinator(state.config).refine_many(state, parent_id, owner, specs, now)
        self.ledger.append_many(plan.events, expected_seq=plan.expected_seq)
        self._emit(plan.warnings)
        logger.info("created %d node(s) under %s: %s", len(plan.node_ids), parent_id, ", ".join(map(str, plan.node_ids)))
        return plan.node_ids

    # --- Acceptance and refutation ---

    def accept_node(
        self,
        node_id: NodeID | str,
        *,
        agent: str | None = None,
        confirm: bool = False,
    ) -> AcceptanceSummary:
        return self.accept_node_with_note(node_id, None, agent=agent, confirm=confirm)

    def accept_node_with_note(
        self,
        node_id: NodeID | str,
        note: str | None,
        *,
        agent: str | None = None,
        confirm: bool = False,
    ) -> AcceptanceSummary:
        """
        Validate a node, recording ``note`` verbatim.

        Raises UnvalidatedDependenciesError or BlockingChallengesError
        listing every offending item, and UnchallengedAcceptanceError if
        ``agent`` raised no challenges on the node and ``confirm`` is false.
        """
        node_id = parse_node_id(node_id)
        state = self.load_state()
        try:
            check_acceptance(state, node_id, agent=agent, confirm=confirm)
        except ProofError as exc:
            logger.debug("accept %s rejected: %s", node_id, exc)
            raise
        summary = summarize_acceptance(state, node_id, note=note)
        self._commit(state, [node_validated(node_id, agent or SYSTEM_ACTOR, note=note, timestamp=self.now())])
        logger.info("node %s validated", node_id)
        return summary

    def accept_node_bulk(
        self,
        node_ids: Sequence[NodeID | str],
        *,
        note: str | None = None,
        agent: str | None = None,
        confirm: bool = False,
    ) -> list[AcceptanceSummary]:
        """Validate several nodes atomically, in the order given."""
        state = self.load_state()
        plan = BulkCoordinator(state.config).accept_many(
            state, node_ids, agent or SYSTEM_ACTOR, self.now(), note=note, agent=agent, confirm=confirm
        )
        self.ledger.append_many(plan.events, expected_seq=plan.expected_seq)
        logger.info("validated %d node(s): %s", len(plan.node_ids), ", ".join(map(str, plan.node_ids)))
        return plan.summaries

    def refute_node(self, node_id: NodeID | str, *, actor: str = SYSTEM_ACTOR, reason: str | None = None) -> list[str]:
        """
        Refute a pending node.

        Challenges still open on the node are superseded in the same
        append. Returns the IDs of the superseded challenges.
        """
        node_id = parse_node_id(node_id)
        state = self.load_state()
        check_refutation(state, node_id)
        now = self.now()
        open_ids = [c.challenge_id for c in state.challenges_for(node_id) if c.is_open]
        events = [node_refuted(node_id, actor, reason=reason, timestamp=now)]
        events.extend(challenge_superseded(cid, node_id, actor, timestamp=now) for cid in open_ids)
        self._commit(state, events)
        logger.info("node %s refuted by %s", node_id, actor)
        if open_ids:
            logger.info("superseded challenge(s) on %s: %s", node_id, ", ".join(open_ids))
        return open_ids

    # --- Amendment ---

    def amend_node(self, node_id: NodeID | str, owner: str, statement: str) -> Amendment:
        """Replace a pending node's statement, keeping the old one in its history."""
        node_id = parse_node_id(node_id)
        state = self.load_state()
        now = self.now()
        try:
            node = check_amendment(state, node_id, owner, statement, now)
        except ProofError as exc:
            logger.debug("amend %s rejected: %s", node_id, exc)
            raise
        self._commit(state, [node_amended(node_id, node.statement, statement, owner, timestamp=now)])
        logger.info("node %s amended by %s", node_id, owner)
        return Amendment(previous_statement=node.statement, new_statement=statement, owner=owner, amended_at=now)

    def amendment_history(self, node_id: NodeID | str) -> list[Amendment]:
        """Amendments of ``node_id``, oldest first; empty if never amended."""
        node_id = parse_node_id(node_id)
        node = self.load_state().get_node(node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return list(node.amendments)

    # --- Challenges ---

    def raise_challenge(
        self,
        challenge_id: str,
        node_id: NodeID | str,
        target: ChallengeTarget | str,
        reason: str,
        severity: ChallengeSeverity | str = DEFAULT_SEVERITY,
        *,
        raised_by: str | None = None,
    ) -> str:
        node_id = parse_node_id(node_id)
        target = parse_enum(ChallengeTarget, target, field="challenge target")
        severity = parse_enum(ChallengeSeverity, severity, field="severity")
        state = self.load_state()
        check_challenge_raise(state, challenge_id, node_id, reason)
        event = challenge_raised(
            challenge_id,
            node_id,
            target.value,
            reason,
            severity.value,
            raised_by=raised_by,
            timestamp=self.now(),
        )
        self._commit(state, [event])
        logger.info("challenge %s [%s] raised on node %s", challenge_id, severity.value, node_id)
        return challenge_id

    def resolve_challenge(
        self, challenge_id: str, *, actor: str = SYSTEM_ACTOR, resolution: str | None = None
    ) -> None:
        state = self.load_state()
        check_challenge_open(state, challenge_id)
        self._commit(state, [challenge_resolved(challenge_id, actor, resolution=resolution, timestamp=self.now())])
        logger.info("challenge %s resolved", challenge_id)

    def withdraw_challenge(self, challenge_id: str, *, actor: str = SYSTEM_ACTOR) -> None:
        state = self.load_state()
        check_challenge_open(state, challenge_id)
        self._commit(state, [challenge_withdrawn(challenge_id, actor, timestamp=self.now())])
        logger.info("challenge %s withdrawn", challenge_id)

    # --- Definitions ---

    def add_definition(self, name: str, description: str, *, actor: str = SYSTEM_ACTOR) -> str:
        """Add a named definition; returns its definition ID."""
        state = self.load_state()
        check_definition(state, name, description)
        event = definition_added(name, description, actor, timestamp=self.now())
        self._commit(state, [event])
        logger.info("definition %s added", name)
        return event.payload["definition_id"]
