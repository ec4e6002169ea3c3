"""
runtime.py - process wiring around the session store

SettlerRuntime owns the SessionStore, restores it from the last snapshot on
start(), evicts expired conversations on a background thread and writes a
snapshot on stop(). Callers (the Streamlit UI, scripts) only go through
ledger_for() to reach a conversation's ledger.

Failures in the sweep thread or while saving at shutdown are logged and never
propagate: losing one sweep or one save must not take the process down.
"""

import logging
import threading
from typing import Callable, Hashable, List, Optional

from settler.config import Settings
from settler.ledger import Ledger
from settler.sessions import SessionStore
from settler.storage import GoogleSheetsSnapshotBackend, SnapshotPersistence

logger = logging.getLogger(__name__)


class SettlerRuntime:
    def __init__(
        self,
        settings: Settings,
        store: Optional[SessionStore] = None,
        persistence: Optional[SnapshotPersistence] = None,
        on_expired: Optional[Callable[[Hashable], None]] = None,
    ):
        self.settings = settings
        self.store = store if store is not None else SessionStore(settings.ttl_days)
        if persistence is None:
            persistence = SnapshotPersistence(settings.snapshot_path, GoogleSheetsSnapshotBackend())
        self.persistence = persistence
        self.on_expired = on_expired
        self._stop = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

    def ledger_for(self, conversation_id: Hashable) -> Ledger:
        return self.store.get_or_create(conversation_id, Ledger)

    def load_snapshot(self) -> int:
        """
        Import the stored snapshot, if any. Returns the number of restored
        conversations. A malformed snapshot raises SnapshotError.
        """
        blob = self.persistence.load()
        if not blob:
            logger.info("No snapshot to restore")
            return 0
        restored = self.store.import_snapshot(blob)
        logger.info("Restored %d conversations from snapshot", len(restored))
        return len(restored)

    def save_snapshot(self) -> bool:
        try:
            blob = self.store.export_snapshot()
            # the store lock is already released here, the write can be slow
            self.persistence.save(blob)
            return True
        except Exception:
            logger.exception("Failed to save snapshot")
            return False

    def sweep(self) -> List[Hashable]:
        """Evict expired conversations and notify each of them."""
        expired = self.store.clean_expired()
        if expired:
            logger.info("Cleaned %d expired sessions", len(expired))
        if self.on_expired is not None:
            for conversation_id in expired:
                try:
                    self.on_expired(conversation_id)
                except Exception:
                    logger.exception("Failed to notify expired conversation %r", conversation_id)
        return expired

    def _sweep_loop(self):
        interval = self.settings.sweep_interval_hours * 3600
        while not self._stop.wait(interval):
            try:
                self.sweep()
            except Exception:
                logger.exception("Session sweep failed")

    def start(self):
        if self._sweeper is not None:
            return
        self.load_snapshot()
        self._stop.clear()
        self._sweeper = threading.Thread(target=self._sweep_loop, name="settler-sweeper", daemon=True)
        self._sweeper.start()
        logger.info(
            "Runtime started (ttl=%s days, sweep every %s hours)",
            self.settings.ttl_days, self.settings.sweep_interval_hours,
        )

    def stop(self) -> bool:
        """Stop the sweeper and persist all live conversations."""
        self._stop.set()
        if self._sweeper is not None:
            self._sweeper.join()
            self._sweeper = None
        return self.save_snapshot()

    @property
    def running(self) -> bool:
        return self._sweeper is not None
