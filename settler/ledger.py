"""
ledger.py - settlement engine for a single conversation

Responsibilities:
 - keep the expenses of one conversation keyed by a monotonically increasing id
 - keep running per-participant balances (positive = is owed, negative = owes)
 - compute settle-up transfers with a greedy largest-creditor/largest-debtor loop
 - export/replay the expense list for snapshots and CSV imports

Every public method takes the ledger's own lock, so two callers holding the
same Ledger (e.g. two concurrent commands in one conversation) never observe
a half-applied expense.
"""

import math
import threading
from typing import List, Dict, Tuple, Iterable, Optional

from settler.models import Transaction

# balances within EPSILON of zero are considered settled
EPSILON = 0.001


class InvalidExpenseError(ValueError):
    """Raised when an expense cannot be recorded (empty participants, bad amount...)."""


def validate_expense(payer: str, participants: Iterable[str], amount: float) -> Tuple[List[str], float]:
    """Return the participants as a list and the amount as a float, or raise."""
    if not isinstance(payer, str) or not payer:
        raise InvalidExpenseError(f"payer must be a non-empty string, got {payer!r}")
    if isinstance(participants, str):
        raise InvalidExpenseError("participants must be a list of names, not a single string")
    try:
        participants = list(participants)
    except TypeError:
        raise InvalidExpenseError(f"participants must be a list of names, got {participants!r}")
    if not participants:
        raise InvalidExpenseError("at least one participant is required")
    if any(not isinstance(p, str) or not p for p in participants):
        raise InvalidExpenseError("participant names must be non-empty strings")
    if isinstance(amount, bool):
        raise InvalidExpenseError(f"invalid amount: {amount!r}")
    try:
        amount = float(amount)
    except (TypeError, ValueError):
        raise InvalidExpenseError(f"invalid amount: {amount!r}")
    if not math.isfinite(amount) or amount < 0:
        raise InvalidExpenseError(f"amount must be finite and >= 0, got {amount}")
    return participants, amount


def settle_balances(balances: Dict[str, float], epsilon: float = EPSILON) -> List[Transaction]:
    """
    Compute the transfers that bring `balances` to zero. The input is not modified.

    Each round picks the participant with the largest positive balance
    (creditor) and the one with the most negative balance (debtor), and moves
    min(credit, debt) from the debtor to the creditor. Rounds stop once both
    extremes are within `epsilon` of zero or one side is missing. Ties are
    broken by participant name so the output is reproducible.
    """
    working = dict(balances)
    order = sorted(working)
    result: List[Transaction] = []
    while True:
        max_creditor: Optional[str] = None
        max_debtor: Optional[str] = None
        max_amount = 0.0
        min_amount = 0.0
        for person in order:
            balance = working[person]
            if balance > max_amount:
                max_creditor, max_amount = person, balance
            if balance < min_amount:
                max_debtor, min_amount = person, balance
        if max_amount <= epsilon and abs(min_amount) <= epsilon:
            break
        if max_creditor is None or max_debtor is None:
            break
        settle_amount = min(max_amount, abs(min_amount))
        working[max_creditor] -= settle_amount
        working[max_debtor] += settle_amount
        result.append(Transaction(payer=max_debtor, participants=[max_creditor], amount=settle_amount))
    return result


class Ledger:
    """
    Expenses and balances of one conversation.

    Ids start at 1 and are never reused until clean() resets the counter.
    """

    def __init__(self):
        self._lock = threading.RLock()
        self._expenses: Dict[int, Transaction] = {}
        self._balances: Dict[str, float] = {}
        self._last_id = 0

    @classmethod
    def from_transactions(cls, transactions: Iterable[Transaction]) -> "Ledger":
        """Build a fresh ledger by replaying expenses in order (ids restart at 1)."""
        ledger = cls()
        for t in transactions:
            ledger.add_expense(t.payer, t.participants, t.amount)
        return ledger

    def __len__(self) -> int:
        with self._lock:
            return len(self._expenses)

    @property
    def last_id(self) -> int:
        with self._lock:
            return self._last_id

    def add_expense(self, payer: str, participants: List[str], amount: float) -> int:
        """
        Record that `payer` paid `amount` for `participants` and return the new id.

        The payer is credited the full amount and every listed participant
        (the payer too, if listed) is debited an equal share. Nothing is
        mutated when validation fails.
        """
        participants, amount = validate_expense(payer, participants, amount)
        expense = Transaction(payer=payer, participants=participants, amount=amount)
        with self._lock:
            self._last_id += 1
            self._expenses[self._last_id] = expense
            self._apply(expense, 1)
            return self._last_id

    def remove_expense(self, expense_id: int) -> bool:
        """
        Remove an expense and revert its effect on the balances.
        Unknown ids are ignored; returns True only when something was removed.
        """
        with self._lock:
            expense = self._expenses.pop(expense_id, None)
            if expense is None:
                return False
            self._apply(expense, -1)
            return True

    def _apply(self, expense: Transaction, sign: int):
        share = expense.share()
        self._balances[expense.payer] = self._balances.get(expense.payer, 0.0) + sign * expense.amount
        for p in expense.participants:
            self._balances[p] = self._balances.get(p, 0.0) - sign * share

    def list_expenses(self) -> Tuple[List[Transaction], List[int]]:
        """Return (expenses, ids), index-aligned and sorted by ascending id."""
        with self._lock:
            ids = sorted(self._expenses)
            return [self._expenses[i].copy() for i in ids], ids

    def list_balances(self) -> Dict[str, float]:
        with self._lock:
            return dict(self._balances)

    def summary(self) -> Tuple[Dict[str, float], List[Transaction]]:
        """Balances and the transfers that settle them, taken in one critical section."""
        with self._lock:
            return dict(self._balances), settle_balances(self._balances)

    def export_transactions(self) -> List[Transaction]:
        expenses, _ = self.list_expenses()
        return expenses

    def settle(self, clean: bool = False) -> List[Transaction]:
        """
        Return the settle-up transfers for the current balances.
        With clean=True the ledger is emptied in the same critical section.
        """
        with self._lock:
            result = settle_balances(self._balances)
            if clean:
                self.clean()
            return result

    def clean(self):
        """Drop every expense and balance and restart ids from 1."""
        with self._lock:
            self._expenses = {}
            self._balances = {}
            self._last_id = 0

    def replace_expenses(self, transactions: Iterable[Transaction]) -> int:
        """
        Replace the whole expense list, e.g. from a CSV import.
        All rows are validated before the ledger is cleaned.
        """
        rows = list(transactions)
        for t in rows:
            validate_expense(t.payer, t.participants, t.amount)
        with self._lock:
            self.clean()
            for t in rows:
                self.add_expense(t.payer, t.participants, t.amount)
        return len(rows)
