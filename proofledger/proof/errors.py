"""
Error taxonomy for proof operations.

Every recoverable failure is a ProofError carrying a stable ``code``.
Format and precondition errors name the offending IDs; gate errors
enumerate every offending item so a caller can fix them all at once.

LedgerCorruptionError is deliberately outside the ProofError tree: it
means a replayed event violates an invariant that should have been
rejected before append, so the ledger itself is suspect.
"""

from __future__ import annotations

from typing import Any, Sequence


# Exit codes used by the CLI
EXIT_OWNERSHIP = 1
EXIT_BLOCKED = 2
EXIT_PRECONDITION = 3
EXIT_CORRUPTION = 4


def _text(value: Any) -> str:
    """Plain string for enum members and strings alike."""
    return str(getattr(value, "value", value))


class ProofError(Exception):
    """Base class for recoverable proof errors."""

    code = "PROOF_ERROR"
    exit_code = EXIT_PRECONDITION

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": str(self)}


# -----------------------------------------------------------------------------
# Format errors
# -----------------------------------------------------------------------------


class InvalidNodeIDError(ProofError, ValueError):
    code = "INVALID_NODE_ID"


class InvalidInputError(ProofError, ValueError):
    code = "INVALID_INPUT"


# -----------------------------------------------------------------------------
# Precondition errors
# -----------------------------------------------------------------------------


class NotInitializedError(ProofError):
    code = "NOT_INITIALIZED"


class AlreadyInitializedError(ProofError):
    code = "ALREADY_INITIALIZED"


class NodeNotFoundError(ProofError):
    code = "NODE_NOT_FOUND"

    def __init__(self, node_id: object, *, what: str = "node"):
        self.node_id = str(node_id)
        super().__init__(f"{what} {self.node_id} not found")


class ParentNotFoundError(NodeNotFoundError):
    code = "PARENT_NOT_FOUND"

    def __init__(self, node_id: object):
        super().__init__(node_id, what="parent node")


class NodeExistsError(ProofError):
    code = "ALREADY_EXISTS"


class InvalidParentError(ProofError):
    code = "INVALID_PARENT"


class NotClaimedError(ProofError):
    code = "NOT_CLAIMED"
    exit_code = EXIT_OWNERSHIP


class OwnerMismatchError(ProofError):
    code = "NOT_CLAIM_HOLDER"
    exit_code = EXIT_OWNERSHIP

    def __init__(self, node_id: object, holder: str, caller: str):
        self.node_id = str(node_id)
        self.holder = holder
        self.caller = caller
        super().__init__(f"node {self.node_id} is claimed by {holder}, not {caller}")


class AlreadyClaimedError(ProofError):
    code = "ALREADY_CLAIMED"
    exit_code = EXIT_OWNERSHIP

    def __init__(self, node_id: object, holder: str, expires_at: object):
        self.node_id = str(node_id)
        self.holder = holder
        self.expires_at = expires_at
        super().__init__(f"node {self.node_id} is already claimed by {holder} until {expires_at}")


class TerminalStateError(ProofError):
    code = "INVALID_STATE"

    def __init__(self, node_id: object, state: str):
        self.node_id = str(node_id)
        self.state = state
        super().__init__(f"node {self.node_id} is {state}; only pending nodes can change")


class DepthExceededError(ProofError):
    code = "DEPTH_EXCEEDED"


class ChildLimitExceededError(ProofError):
    code = "REFINEMENT_LIMIT_EXCEEDED"


class MissingDependencyError(ProofError):
    code = "DEPENDENCY_NOT_FOUND"

    def __init__(self, missing: Sequence[object], *, kind: str = "dependency"):
        self.missing = [str(m) for m in missing]
        self.kind = kind
        super().__init__(f"invalid {kind}: node(s) not found: {', '.join(self.missing)}")


class MissingDefinitionError(ProofError):
    code = "DEF_NOT_FOUND"

    def __init__(self, missing: Sequence[str]):
        self.missing = list(missing)
        names = ", ".join(f"def:{name}" for name in self.missing)
        super().__init__(f"undefined definition citation(s): {names}")


class DefinitionExistsError(ProofError):
    code = "ALREADY_EXISTS"


class ChallengeNotFoundError(ProofError):
    code = "CHALLENGE_NOT_FOUND"


class ChallengeExistsError(ProofError):
    code = "ALREADY_EXISTS"


class ChallengeClosedError(ProofError):
    code = "INVALID_STATE"


# -----------------------------------------------------------------------------
# Gate errors
# -----------------------------------------------------------------------------


class GateError(ProofError):
    code = "NODE_BLOCKED"
    exit_code = EXIT_BLOCKED


def _challenge_lines(challenges: Sequence[Any]) -> list[str]:
    lines = [f"  {c.challenge_id} [{_text(c.severity)}] {_text(c.target)}: {c.reason}" for c in challenges]
    lines.append("resolve each challenge (resolve-challenge) or refine the node to address it, then retry")
    return lines


class UnvalidatedDependenciesError(GateError):
    """Validation dependencies are pending; any blocking challenges are listed too."""

    code = "VALIDATION_DEPS_UNSATISFIED"

    def __init__(self, node_id: object, unvalidated: Sequence[object], *, blocking: Sequence[Any] = ()):
        self.node_id = str(node_id)
        self.unvalidated = [str(u) for u in unvalidated]
        self.challenges = list(blocking)
        lines = [
            f"cannot accept node {self.node_id}: validation dependencies not yet validated: "
            f"{', '.join(self.unvalidated)}"
        ]
        if self.challenges:
            lines.append(f"also {len(self.challenges)} blocking challenge(s):")
            lines.extend(_challenge_lines(self.challenges))
        super().__init__("\n".join(lines))


class BlockingChallengesError(GateError):
    code = "NODE_BLOCKED"

    def __init__(self, node_id: object, challenges: Sequence[Any]):
        self.node_id = str(node_id)
        self.challenges = list(challenges)
        lines = [
            f"cannot accept node {self.node_id}: {len(self.challenges)} blocking challenge(s):",
        ]
        lines.extend(_challenge_lines(self.challenges))
        super().__init__("\n".join(lines))


class UnchallengedAcceptanceError(GateError):
    code = "NO_CHALLENGES_RAISED"

    def __init__(self, node_id: object, agent: str):
        self.node_id = str(node_id)
        self.agent = agent
        super().__init__(
            f"agent {agent} has not raised any challenges for node {self.node_id}; "
            "pass confirm=True to accept anyway"
        )


# -----------------------------------------------------------------------------
# Batch and concurrency errors
# -----------------------------------------------------------------------------


class BatchRejectedError(ProofError):
    """A bulk operation failed validation; nothing was appended."""

    code = "BATCH_REJECTED"

    def __init__(self, index: int, item: object, cause: ProofError):
        self.index = index
        self.item = item
        self.cause = cause
        self.exit_code = cause.exit_code
        super().__init__(f"batch rejected at item {index + 1} ({item}): {cause}")


class ConcurrentModificationError(ProofError):
    code = "CONCURRENT_MODIFICATION"


# -----------------------------------------------------------------------------
# Fatal
# -----------------------------------------------------------------------------


class LedgerCorruptionError(RuntimeError):
    """A ledger record violates a replay invariant. Not recoverable."""

    code = "LEDGER_INCONSISTENT"
    exit_code = EXIT_CORRUPTION

    def __init__(self, message: str, *, seq: int | None = None):
        self.seq = seq
        prefix = f"ledger corrupt at seq {seq}: " if seq is not None else "ledger corrupt: "
        super().__init__(prefix + message)
