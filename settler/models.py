"""
models.py - Data model definitions

This file defines the Transaction dataclass shared by the ledger, the session
snapshots and the CSV import/export. A Transaction is either an expense
record (payer paid `amount` for everyone in `participants`) or a settlement
transfer produced by Ledger.settle() (payer must pay `amount` to the single
creditor in `participants`).
"""

import math
from dataclasses import dataclass, field
from typing import List, Dict, Any


@dataclass
class Transaction:
    """
    Represents an expense or a settlement transfer.

    Fields:
      - payer: participant handle of whoever paid (or must pay, for transfers)
      - participants: handles sharing the expense; duplicates are each charged
        their own share. For settlement output it holds exactly the creditor.
      - amount: non-negative total amount of the expense or transfer
    """
    payer: str = ""
    participants: List[str] = field(default_factory=list)
    amount: float = 0.0

    def share(self) -> float:
        """Per-head share, counting duplicated participants."""
        return self.amount / len(self.participants)

    def copy(self) -> "Transaction":
        return Transaction(self.payer, list(self.participants), self.amount)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert to a plain dict suitable for JSON serialization.
        """
        return {
            "payer": self.payer,
            "participants": list(self.participants),
            "amount": self.amount,
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "Transaction":
        """
        Construct a Transaction from a dict (inverse of to_dict).
        Unlike the UI forms, persisted data is not trusted: wrong types raise
        ValueError instead of being replaced with defaults.
        """
        if not isinstance(d, dict):
            raise ValueError(f"transaction must be an object, got {type(d).__name__}")
        payer = d.get("payer")
        participants = d.get("participants")
        amount = d.get("amount")
        if not isinstance(payer, str) or not payer:
            raise ValueError("transaction payer must be a non-empty string")
        if not isinstance(participants, list) or not participants:
            raise ValueError("transaction participants must be a non-empty list")
        if not all(isinstance(p, str) and p for p in participants):
            raise ValueError("transaction participants must be non-empty strings")
        # bool is an int subclass, reject it explicitly
        if isinstance(amount, bool) or not isinstance(amount, (int, float)):
            raise ValueError("transaction amount must be a number")
        if not math.isfinite(amount) or amount < 0:
            raise ValueError(f"transaction amount must be finite and >= 0, got {amount}")
        return Transaction(payer=payer, participants=list(participants), amount=float(amount))
