"""
Event-sourced proof ledger.

A proof is a tree of claims rooted at the conjecture (node ``1``). Every
change is an immutable event appended to ``ledger.jsonl``; the tree is
recomputed by replaying the ledger. Writes go through ProofService,
which checks each event against freshly replayed state before appending:

- Leases: a node is refined only by the agent holding its claim
- Gate: acceptance waits for validation dependencies and blocking challenges
- Bulk: batches of refinements or acceptances apply all-or-nothing
- Concurrency: appends are serialized by a file lock and a sequence check
"""

from .bulk import BulkCoordinator, ChildSpec
from .config import ProofConfig
from .errors import (
    BatchRejectedError,
    BlockingChallengesError,
    ConcurrentModificationError,
    GateError,
    LedgerCorruptionError,
    ProofError,
    UnvalidatedDependenciesError,
)
from .events import ProofEvent, EVENT_TYPES
from .gate import AcceptanceSummary, DepthWarning
from .ledger import ProofLedger
from .nodeid import NodeID, parse_node_id
from .schema import (
    ChallengeSeverity,
    ChallengeStatus,
    ChallengeTarget,
    EpistemicState,
    InferenceType,
    NodeType,
)
from .service import ProofService, init_proof, open_proof
from .state import Amendment, Challenge, Definition, Lease, Node, ProofState, replay

__all__ = [
    # Addressing
    "NodeID",
    "parse_node_id",
    # Events and storage
    "ProofEvent",
    "EVENT_TYPES",
    "ProofLedger",
    # State
    "ProofState",
    "Node",
    "Lease",
    "Challenge",
    "Definition",
    "Amendment",
    "replay",
    # Vocabulary
    "NodeType",
    "EpistemicState",
    "ChallengeSeverity",
    "ChallengeTarget",
    "ChallengeStatus",
    "InferenceType",
    # Operations
    "ProofConfig",
    "ProofService",
    "init_proof",
    "open_proof",
    "BulkCoordinator",
    "ChildSpec",
    "AcceptanceSummary",
    "DepthWarning",
    # Errors
    "ProofError",
    "GateError",
    "UnvalidatedDependenciesError",
    "BlockingChallengesError",
    "BatchRejectedError",
    "ConcurrentModificationError",
    "LedgerCorruptionError",
]
