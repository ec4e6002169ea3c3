"""
snapshots.py - wire format of the session snapshot

A snapshot is a UTF-8 JSON document:

    {
      "sessions": [
        {"id": <conversation id>, "expire": <unix timestamp>,
         "transactions": [{"payer": "...", "participants": ["..."], "amount": 12.5}]}
      ]
    }

Balances are not stored: they are rebuilt by replaying the transactions, so
the two can never drift. decode_snapshot() validates the whole document
before returning anything, which lets the session store apply an import
all-or-nothing.
"""

import json
import math
from dataclasses import dataclass, field
from typing import List, Dict, Any, Union, Hashable

from settler.models import Transaction


class SnapshotError(ValueError):
    """Raised when a snapshot cannot be encoded or decoded."""


@dataclass
class SessionSnapshot:
    id: Hashable
    expire: float
    transactions: List[Transaction] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "expire": self.expire,
            "transactions": [t.to_dict() for t in self.transactions],
        }

    @staticmethod
    def from_dict(d: Dict[str, Any]) -> "SessionSnapshot":
        if not isinstance(d, dict):
            raise SnapshotError(f"session must be an object, got {type(d).__name__}")
        session_id = d.get("id")
        if isinstance(session_id, bool) or not isinstance(session_id, (int, str)):
            raise SnapshotError(f"session id must be an integer or a string, got {session_id!r}")
        expire = d.get("expire")
        if isinstance(expire, bool) or not isinstance(expire, (int, float)) or not math.isfinite(expire):
            raise SnapshotError(f"session {session_id!r}: expire must be a unix timestamp, got {expire!r}")
        raw_transactions = d.get("transactions")
        if raw_transactions is None:
            raw_transactions = []
        if not isinstance(raw_transactions, list):
            raise SnapshotError(f"session {session_id!r}: transactions must be a list")
        transactions = []
        for idx, raw in enumerate(raw_transactions):
            try:
                transactions.append(Transaction.from_dict(raw))
            except ValueError as exc:
                raise SnapshotError(f"session {session_id!r}, transaction {idx}: {exc}") from exc
        return SessionSnapshot(id=session_id, expire=expire, transactions=transactions)


def encode_snapshot(sessions: List[SessionSnapshot]) -> bytes:
    """
    Encode sessions, refusing anything decode_snapshot() would reject so a
    saved snapshot can always be loaded again.
    """
    data = {"sessions": [SessionSnapshot.from_dict(s.to_dict()).to_dict() for s in sessions]}
    ids = [s["id"] for s in data["sessions"]]
    if len(set(ids)) != len(ids):
        raise SnapshotError("duplicate session id in snapshot")
    try:
        return json.dumps(data, ensure_ascii=False, allow_nan=False).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise SnapshotError(f"failed to encode snapshot: {exc}") from exc


def decode_snapshot(blob: Union[bytes, str, None]) -> List[SessionSnapshot]:
    """
    Parse and validate a snapshot. An empty blob or a missing/empty
    "sessions" list decodes to an empty list.
    """
    if blob is None:
        return []
    if isinstance(blob, bytes):
        try:
            blob = blob.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise SnapshotError(f"snapshot is not valid UTF-8: {exc}") from exc
    if not blob.strip():
        return []
    try:
        data = json.loads(blob)
    except json.JSONDecodeError as exc:
        raise SnapshotError(f"snapshot is not valid JSON: {exc}") from exc
    if not isinstance(data, dict):
        raise SnapshotError("snapshot must be a JSON object")
    raw_sessions = data.get("sessions")
    if raw_sessions is None:
        raw_sessions = []
    if not isinstance(raw_sessions, list):
        raise SnapshotError("snapshot sessions must be a list")

    sessions = [SessionSnapshot.from_dict(raw) for raw in raw_sessions]
    seen = set()
    for s in sessions:
        if s.id in seen:
            raise SnapshotError(f"duplicate session id {s.id!r}")
        seen.add(s.id)
    return sessions
