"""proofledger - adversarial proof trees on an append-only event ledger."""

__version__ = "0.1.0"
