"""
Vocabulary for proof nodes and challenges.

All values are persisted in the ledger as their string form, so enum
values must never be renamed once written.
"""

from __future__ import annotations

from enum import Enum
from typing import TypeVar

from .errors import InvalidInputError


class NodeType(str, Enum):
    CLAIM = "claim"
    LOCAL_ASSUME = "local_assume"  # Opens a local assumption scope
    LOCAL_DISCHARGE = "local_discharge"  # Closes the innermost local assumption
    CASE = "case"  # One branch of a case split
    QED = "qed"


class EpistemicState(str, Enum):
    PENDING = "pending"
    VALIDATED = "validated"
    REFUTED = "refuted"

    @property
    def is_terminal(self) -> bool:
        return self is not EpistemicState.PENDING


class ChallengeSeverity(str, Enum):
    CRITICAL = "critical"  # Fundamental error that must be fixed
    MAJOR = "major"  # Significant issue that should be addressed
    MINOR = "minor"  # Could be improved; never blocks
    NOTE = "note"  # Clarification request; never blocks

    @property
    def blocks_acceptance(self) -> bool:
        return self in {ChallengeSeverity.CRITICAL, ChallengeSeverity.MAJOR}


DEFAULT_SEVERITY = ChallengeSeverity.MAJOR


class ChallengeTarget(str, Enum):
    STATEMENT = "statement"
    INFERENCE = "inference"
    CONTEXT = "context"
    DEPENDENCIES = "dependencies"
    SCOPE = "scope"
    GAP = "gap"
    TYPE_ERROR = "type_error"
    DOMAIN = "domain"
    COMPLETENESS = "completeness"


class ChallengeStatus(str, Enum):
    OPEN = "open"
    RESOLVED = "resolved"
    WITHDRAWN = "withdrawn"
    SUPERSEDED = "superseded"  # Node was refuted while the challenge was open


class InferenceType(str, Enum):
    MODUS_PONENS = "modus_ponens"
    MODUS_TOLLENS = "modus_tollens"
    UNIVERSAL_INSTANTIATION = "universal_instantiation"
    EXISTENTIAL_INSTANTIATION = "existential_instantiation"
    UNIVERSAL_GENERALIZATION = "universal_generalization"
    EXISTENTIAL_GENERALIZATION = "existential_generalization"
    BY_DEFINITION = "by_definition"
    ASSUMPTION = "assumption"
    LOCAL_ASSUME = "local_assume"
    LOCAL_DISCHARGE = "local_discharge"
    CONTRADICTION = "contradiction"


E = TypeVar("E", bound=Enum)


def parse_enum(enum_cls: type[E], value: E | str, *, field: str) -> E:
    """Coerce a user-supplied string into ``enum_cls``, raising InvalidInputError."""
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip().lower())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_cls)
        raise InvalidInputError(f"invalid {field} {value!r} (expected one of: {allowed})") from None
