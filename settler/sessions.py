"""
sessions.py - per-conversation ledgers with sliding expiration

The SessionStore maps a conversation id to a payload (a Ledger by default)
and an absolute expiry timestamp. A single ReadWriteLock guards the map:
get_or_create, reset, clean_expired and import_snapshot take it exclusively,
passive reads and export_snapshot take it shared. Payload operations are
synchronized by the payload itself.

Payloads are anything implementing the Exportable protocol; the importer
rebuilds a payload from its exported transactions when a snapshot is loaded.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, List, Optional, Protocol

from settler.ledger import Ledger
from settler.locks import ReadWriteLock
from settler.models import Transaction
from settler.snapshots import SessionSnapshot, SnapshotError, decode_snapshot, encode_snapshot

SECONDS_PER_DAY = 24 * 60 * 60


def check_session_id(session_id: Hashable):
    """Conversation ids must be ints or strings to survive a snapshot."""
    if isinstance(session_id, bool) or not isinstance(session_id, (int, str)):
        raise TypeError(f"session id must be an int or a str, got {session_id!r}")


class Exportable(Protocol):
    def export_transactions(self) -> List[Transaction]:
        ...


@dataclass
class Session:
    id: Hashable
    ledger: Any
    expire_at: float


class SessionStore:
    """
    Thread-safe conversation id -> Session map.

    Parameters:
      - ttl_days: sliding expiration window, refreshed by get_or_create only
      - importer: builds a payload from a list of transactions (snapshot import)
      - clock: returns the current unix time; injectable for tests
    """

    def __init__(
        self,
        ttl_days: float,
        importer: Callable[[List[Transaction]], Exportable] = Ledger.from_transactions,
        clock: Callable[[], float] = time.time,
    ):
        if ttl_days <= 0:
            raise ValueError(f"ttl_days must be positive, got {ttl_days}")
        self.ttl_days = ttl_days
        self.importer = importer
        self._clock = clock
        self._lock = ReadWriteLock()
        self._sessions: Dict[Hashable, Session] = {}

    def _next_expiry(self) -> float:
        return self._clock() + self.ttl_days * SECONDS_PER_DAY

    def get_or_create(self, session_id: Hashable, factory: Callable[[], Exportable] = Ledger) -> Exportable:
        """
        Return the payload of `session_id`, creating it with `factory` on first
        use. Either way the session expiry moves to now + ttl_days.
        """
        check_session_id(session_id)
        with self._lock.write_locked():
            session = self._sessions.get(session_id)
            if session is None:
                session = Session(id=session_id, ledger=factory(), expire_at=self._next_expiry())
                self._sessions[session_id] = session
            else:
                session.expire_at = self._next_expiry()
            return session.ledger

    def get(self, session_id: Hashable) -> Optional[Exportable]:
        """Passive lookup; does not extend the session."""
        with self._lock.read_locked():
            session = self._sessions.get(session_id)
            return session.ledger if session else None

    def expire_at(self, session_id: Hashable) -> Optional[float]:
        with self._lock.read_locked():
            session = self._sessions.get(session_id)
            return session.expire_at if session else None

    def session_ids(self) -> List[Hashable]:
        with self._lock.read_locked():
            return list(self._sessions)

    def sessions(self) -> List[Session]:
        """Copies of the session records, soonest expiry first."""
        with self._lock.read_locked():
            records = [Session(s.id, s.ledger, s.expire_at) for s in self._sessions.values()]
        records.sort(key=lambda s: s.expire_at)
        return records

    def __len__(self) -> int:
        with self._lock.read_locked():
            return len(self._sessions)

    def __contains__(self, session_id: Hashable) -> bool:
        with self._lock.read_locked():
            return session_id in self._sessions

    def reset(self, session_id: Hashable) -> bool:
        """Drop a conversation immediately. Returns False if it did not exist."""
        with self._lock.write_locked():
            return self._sessions.pop(session_id, None) is not None

    def clean_expired(self) -> List[Hashable]:
        """
        Remove every session whose expiry is strictly in the past and return
        their ids, so the caller can notify those conversations.
        """
        with self._lock.write_locked():
            now = self._clock()
            expired = [sid for sid, s in self._sessions.items() if s.expire_at < now]
            for sid in expired:
                del self._sessions[sid]
            return expired

    def export_snapshot(self) -> bytes:
        """
        Serialize every live session. The lock only covers collecting the
        records; encoding happens after it is released and no I/O is done here.
        """
        with self._lock.read_locked():
            records = [
                SessionSnapshot(id=s.id, expire=s.expire_at, transactions=s.ledger.export_transactions())
                for s in self._sessions.values()
            ]
        return encode_snapshot(records)

    def import_snapshot(self, blob) -> List[Hashable]:
        """
        Restore sessions from a snapshot and return the restored ids.

        The whole blob is decoded and every payload rebuilt before the map is
        touched, so a malformed snapshot (SnapshotError) changes nothing.
        Restored sessions keep their persisted expiry, so stale ones go away on
        the next clean_expired(). Sessions not in the snapshot are kept.
        """
        restored = []
        for r in decode_snapshot(blob):
            try:
                payload = self.importer(r.transactions)
            except ValueError as exc:
                raise SnapshotError(f"session {r.id!r}: {exc}") from exc
            restored.append(Session(id=r.id, ledger=payload, expire_at=float(r.expire)))
        if not restored:
            return []
        with self._lock.write_locked():
            for session in restored:
                self._sessions[session.id] = session
        return [s.id for s in restored]
