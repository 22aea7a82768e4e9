"""
Proof configuration.

Thresholds are fixed when a proof is initialized. They are written to
``meta.json`` for humans and tooling, and embedded in the
``proof.initialized`` event, which is the copy replay trusts.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any

from .errors import InvalidInputError


META_FILENAME = "meta.json"

MAX_DEPTH_LIMIT = 100
MAX_CHILDREN_LIMIT = 50
MIN_LEASE_TIMEOUT = timedelta(seconds=1)
MAX_LEASE_TIMEOUT = timedelta(hours=24)


@dataclass(frozen=True)
class ProofConfig:
    max_depth: int = 20  # Hard limit: creation beyond this fails
    warn_depth: int = 3  # Soft limit: creation beyond this warns
    max_children: int = 10
    lease_timeout: timedelta = timedelta(minutes=5)

    def validate(self) -> None:
        """Raise InvalidInputError if any threshold is out of bounds."""
        if not 1 <= self.max_depth <= MAX_DEPTH_LIMIT:
            raise InvalidInputError(f"max_depth must be between 1 and {MAX_DEPTH_LIMIT}, got {self.max_depth}")
        if self.warn_depth < 1:
            raise InvalidInputError(f"warn_depth must be at least 1, got {self.warn_depth}")
        if not 1 <= self.max_children <= MAX_CHILDREN_LIMIT:
            raise InvalidInputError(
                f"max_children must be between 1 and {MAX_CHILDREN_LIMIT}, got {self.max_children}"
            )
        if not MIN_LEASE_TIMEOUT <= self.lease_timeout <= MAX_LEASE_TIMEOUT:
            raise InvalidInputError(f"lease_timeout must be between 1s and 24h, got {self.lease_timeout}")

    def to_dict(self) -> dict[str, Any]:
        """Serialize to JSON-compatible dict."""
        return {
            "max_depth": self.max_depth,
            "warn_depth": self.warn_depth,
            "max_children": self.max_children,
            "lease_timeout_seconds": int(self.lease_timeout.total_seconds()),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ProofConfig:
        """Reconstruct from JSON dict, filling defaults for missing keys."""
        default = cls()
        timeout = data.get("lease_timeout_seconds")
        return cls(
            max_depth=int(data.get("max_depth", default.max_depth)),
            warn_depth=int(data.get("warn_depth", default.warn_depth)),
            max_children=int(data.get("max_children", default.max_children)),
            lease_timeout=timedelta(seconds=int(timeout)) if timeout is not None else default.lease_timeout,
        )


def save_meta(proof_dir: Path, config: ProofConfig, *, conjecture: str) -> Path:
    path = proof_dir / META_FILENAME
    data = {"conjecture": conjecture, "config": config.to_dict()}
    path.write_text(json.dumps(data, indent=2, sort_keys=True) + "\n", encoding="utf-8")
    return path


def load_meta(proof_dir: Path) -> ProofConfig | None:
    """Read ``meta.json``; returns None if it does not exist."""
    path = proof_dir / META_FILENAME
    if not path.exists():
        return None
    data = json.loads(path.read_text(encoding="utf-8"))
    return ProofConfig.from_dict(data.get("config", {}))
