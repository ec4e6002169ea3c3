"""
storage.py - durable storage for session snapshots

Two backends are available:
 - GoogleSheetsSnapshotBackend: one worksheet row per conversation (preferred
   when GOOGLE_SHEET_ID and service account credentials are configured)
 - LocalSnapshotFile: the raw snapshot JSON written atomically to disk

SnapshotPersistence picks Google Sheets when it is available and falls back
to the local file otherwise. The backends only move bytes around: encoding
and validation live in settler.snapshots, and the session store builds the
blob before any of this code runs, so no store lock is held during I/O.
"""

import ast
import json
import logging
import os
import shutil
import tempfile
from typing import Any, List, Optional, Tuple

from settler.snapshots import SessionSnapshot, decode_snapshot, encode_snapshot
from settler.models import Transaction

# Optional Google Sheets backend imports; without them the backend reports
# itself unavailable and the local file is used.
try:
    import gspread
    from google.oauth2.service_account import Credentials
except ImportError:
    gspread = None
    Credentials = None

logger = logging.getLogger(__name__)


class LocalSnapshotFile:
    """Snapshot stored as a JSON file on the local disk."""

    def __init__(self, path: str):
        self.path = os.path.abspath(path)

    def load(self) -> Optional[bytes]:
        """Return the stored blob, or None when no snapshot was saved yet."""
        if not os.path.exists(self.path):
            return None
        with open(self.path, "rb") as f:
            return f.read()

    def save(self, blob: bytes):
        """
        Write the blob atomically: temp file in the same directory, fsync,
        then move over the target.
        """
        dirn = os.path.dirname(self.path)
        os.makedirs(dirn, exist_ok=True)
        logger.info("Saving snapshot to %s (%d bytes)", self.path, len(blob))
        fd, tmp_path = tempfile.mkstemp(prefix="tmp_snapshot_", dir=dirn)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(blob)
                f.flush()
                os.fsync(f.fileno())
            shutil.move(tmp_path, self.path)
        except Exception:
            logger.exception("Failed to save snapshot file")
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise


class GoogleSheetsSnapshotBackend:
    """
    Google Sheets snapshot backend.

    Data layout:
      - worksheet "sessions": one row per conversation with the JSON-encoded id
        (so numeric chat ids and string ids survive the round trip), the expiry
        as a unix timestamp and the transactions as a JSON list
    """

    SESSIONS_SHEET_NAME = "sessions"
    SESSION_HEADERS = ["id_json", "expire", "transactions_json"]
    SCOPES = ["https://www.googleapis.com/auth/spreadsheets"]

    def __init__(self):
        self.available = False
        self.reason = ""
        self.sheet_id = (os.getenv("GOOGLE_SHEET_ID") or "").strip()
        self._spreadsheet = None
        self._sessions_ws = None

        if not self.sheet_id:
            self.reason = "GOOGLE_SHEET_ID is not set"
            return
        if gspread is None or Credentials is None:
            self.reason = "Google Sheets dependencies are unavailable"
            return

        try:
            creds = self._build_credentials()
            client = gspread.authorize(creds)
            self._spreadsheet = client.open_by_key(self.sheet_id)
            self._sessions_ws = self._get_or_create_worksheet(
                self.SESSIONS_SHEET_NAME, rows=1000, cols=len(self.SESSION_HEADERS)
            )
            self._ensure_headers()
            self.available = True
        except Exception as exc:
            self.available = False
            self.reason = f"Google Sheets init failed ({exc.__class__.__name__})"
            logger.warning("Google Sheets backend unavailable: %s", self.reason)

    def _build_credentials(self):
        service_account_json = (os.getenv("GOOGLE_SERVICE_ACCOUNT_JSON") or "").strip()
        service_account_file = (os.getenv("GOOGLE_SERVICE_ACCOUNT_FILE") or "").strip()

        if service_account_json:
            try:
                info = json.loads(service_account_json)
            except ValueError:
                # tolerate Python-dict style strings often pasted into env vars
                info = ast.literal_eval(service_account_json)
            if not isinstance(info, dict):
                raise ValueError("GOOGLE_SERVICE_ACCOUNT_JSON must decode to an object")
            return Credentials.from_service_account_info(info, scopes=self.SCOPES)

        if service_account_file:
            return Credentials.from_service_account_file(service_account_file, scopes=self.SCOPES)

        import google.auth
        creds, _ = google.auth.default(scopes=self.SCOPES)
        return creds

    def _get_or_create_worksheet(self, title: str, rows: int, cols: int):
        try:
            return self._spreadsheet.worksheet(title)
        except gspread.exceptions.WorksheetNotFound:
            return self._spreadsheet.add_worksheet(title=title, rows=rows, cols=cols)

    def _ensure_headers(self):
        first = self._sessions_ws.row_values(1) or []
        if [x.strip() for x in first] != self.SESSION_HEADERS:
            self._sessions_ws.update(
                range_name="A1",
                values=[self.SESSION_HEADERS],
                value_input_option="RAW",
            )

    @classmethod
    def snapshot_to_rows(cls, blob: bytes) -> List[List[str]]:
        rows = [list(cls.SESSION_HEADERS)]
        for s in decode_snapshot(blob):
            rows.append([
                json.dumps(s.id),
                repr(float(s.expire)),
                json.dumps([t.to_dict() for t in s.transactions], ensure_ascii=False),
            ])
        return rows

    @classmethod
    def rows_to_snapshot(cls, values: List[List[Any]]) -> bytes:
        """Inverse of snapshot_to_rows; blank rows are skipped."""
        sessions = []
        for row in values[1:]:
            cells = [str(c).strip() for c in row] + [""] * len(cls.SESSION_HEADERS)
            id_json, expire, transactions_json = cells[:3]
            if not id_json:
                continue
            sessions.append(SessionSnapshot(
                id=json.loads(id_json),
                expire=float(expire),
                transactions=[Transaction.from_dict(d) for d in json.loads(transactions_json or "[]")],
            ))
        return encode_snapshot(sessions)

    def save(self, blob: bytes) -> bool:
        if not self.available:
            return False
        try:
            rows = self.snapshot_to_rows(blob)
            logger.info("Saving snapshot to Google Sheets (sessions=%d)", len(rows) - 1)
            # Use RAW so participant names are never interpreted as formulas.
            self._sessions_ws.clear()
            self._sessions_ws.update(range_name="A1", values=rows, value_input_option="RAW")
            return True
        except Exception:
            logger.exception("Failed to save snapshot to Google Sheets")
            return False

    def load(self) -> Optional[bytes]:
        if not self.available:
            return None
        try:
            values = self._sessions_ws.get_all_values() or []
        except Exception:
            logger.exception("Failed to load snapshot from Google Sheets")
            return None
        try:
            return self.rows_to_snapshot(values)
        except (ValueError, TypeError):
            # SnapshotError, bad JSON cells and non-list transaction cells
            logger.exception(
                "Google Sheets snapshot rejected: worksheet %r holds malformed rows (%d rows)",
                self.SESSIONS_SHEET_NAME, max(0, len(values) - 1),
            )
            return None


class SnapshotPersistence:
    """Google Sheets when configured, local JSON file otherwise."""

    def __init__(self, path: str, sheets_backend: Optional[GoogleSheetsSnapshotBackend] = None):
        self.local = LocalSnapshotFile(path)
        self.sheets = sheets_backend

    def uses_google_sheets(self) -> bool:
        return bool(self.sheets and self.sheets.available)

    def status(self) -> Tuple[str, str]:
        """Return current storage backend and a short diagnostic message for the UI."""
        if self.uses_google_sheets():
            return "google_sheets", "Persistent storage active (Google Sheets)."
        reason = getattr(self.sheets, "reason", "Google Sheets not configured")
        return "local_json", f"Using local file fallback: {reason}."

    def load(self) -> Optional[bytes]:
        if self.uses_google_sheets():
            logger.info("Loading snapshot from Google Sheets")
            blob = self.sheets.load()
            if blob is not None:
                return blob
            logger.warning("Google Sheets load failed, falling back to local JSON")
        return self.local.load()

    def save(self, blob: bytes):
        if self.uses_google_sheets():
            if self.sheets.save(blob):
                return
            logger.warning("Google Sheets save failed, falling back to local JSON")
        self.local.save(blob)
