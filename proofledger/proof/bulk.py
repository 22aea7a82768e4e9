"""
All-or-nothing batches of creations and acceptances.

Items are validated in submission order against a private working copy
of the replayed state; each admitted item's event is folded into the
copy before the next item is checked, so later items see the effects
of earlier ones. The first failure rejects the whole batch. Nothing
here touches the ledger: the caller appends the returned events in one
append_many() call guarded by ``expected_seq``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Sequence

from .config import ProofConfig
from .errors import BatchRejectedError, InvalidInputError, ParentNotFoundError, ProofError
from .events import ProofEvent, node_validated
from .gate import AcceptanceSummary, CreationRequest, check_acceptance, check_creation, summarize_acceptance
from .nodeid import NodeID, parse_node_id
from .schema import InferenceType, NodeType
from .state import ProofState, apply_event

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ChildSpec:
    """One child in a bulk refinement; its ID is allocated by the coordinator."""

    statement: str
    node_type: NodeType | str = NodeType.CLAIM
    inference: InferenceType | str = InferenceType.ASSUMPTION
    dependencies: tuple[NodeID | str, ...] = ()
    validation_dependencies: tuple[NodeID | str, ...] = ()


@dataclass
class BulkPlan:
    """Events ready to append, plus what the caller reports back."""

    expected_seq: int
    events: list[ProofEvent] = field(default_factory=list)
    node_ids: list[NodeID] = field(default_factory=list)
    summaries: list[AcceptanceSummary] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


def next_free_child(state: ProofState, parent_id: NodeID) -> NodeID:
    """Lowest-numbered child ID not yet used under ``parent_id``."""
    n = 1
    while state.get_node(parent_id.child(n)) is not None:
        n += 1
    return parent_id.child(n)


class BulkCoordinator:
    def __init__(self, config: ProofConfig):
        self.config = config

    def refine_many(
        self,
        state: ProofState,
        parent_id: NodeID | str,
        owner: str,
        specs: Sequence[ChildSpec],
        now: datetime,
    ) -> BulkPlan:
        """Plan the creation of every child in ``specs`` under ``parent_id``."""
        if not specs:
            raise InvalidInputError("at least one child specification is required")

        parent = parse_node_id(parent_id)
        if state.get_node(parent) is None:
            raise ParentNotFoundError(parent)

        work = state.copy()
        plan = BulkPlan(expected_seq=state.latest_seq)
        for index, spec in enumerate(specs):
            child_id = next_free_child(work, parent)
            try:
                request = CreationRequest.build(
                    child_id,
                    owner,
                    spec.node_type,
                    spec.statement,
                    spec.inference,
                    dependencies=spec.dependencies,
                    validation_dependencies=spec.validation_dependencies,
                )
                plan.warnings.extend(check_creation(work, request, self.config, now))
            except ProofError as exc:
                logger.debug("refine batch rejected at item %d: %s", index + 1, exc)
                raise BatchRejectedError(index, child_id, exc) from exc

            event = request.to_event(timestamp=now)
            apply_event(work, event)
            plan.events.append(event)
            plan.node_ids.append(child_id)

        return plan

    def accept_many(
        self,
        state: ProofState,
        node_ids: Sequence[NodeID | str],
        actor: str,
        now: datetime,
        *,
        note: str | None = None,
        agent: str | None = None,
        confirm: bool = False,
    ) -> BulkPlan:
        """Plan the acceptance of every node in ``node_ids``, in order."""
        if not node_ids:
            raise InvalidInputError("at least one node ID is required")

        work = state.copy()
        plan = BulkPlan(expected_seq=state.latest_seq)
        for index, raw in enumerate(node_ids):
            try:
                node_id = parse_node_id(raw)
                check_acceptance(work, node_id, agent=agent, confirm=confirm)
            except ProofError as exc:
                logger.debug("accept batch rejected at item %d: %s", index + 1, exc)
                raise BatchRejectedError(index, raw, exc) from exc

            plan.summaries.append(summarize_acceptance(work, node_id, note=note))
            event = node_validated(node_id, actor, note=note, timestamp=now)
            apply_event(work, event)
            plan.events.append(event)
            plan.node_ids.append(node_id)

        return plan
