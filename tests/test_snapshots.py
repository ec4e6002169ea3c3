import json
import os

import pytest

from settler.models import Transaction
from settler.snapshots import SessionSnapshot, SnapshotError, decode_snapshot, encode_snapshot
from settler.storage import GoogleSheetsSnapshotBackend, LocalSnapshotFile, SnapshotPersistence


def _sample():
    return [
        SessionSnapshot(id=123456789, expire=1_700_000_000.5, transactions=[
            Transaction("@alice", ["@bob", "@carol"], 30.0),
            Transaction("@carol", ["@bob"], 20.0),
        ]),
        SessionSnapshot(id="group", expire=1_700_000_100, transactions=[]),
    ]


def test_encode_layout():
    data = json.loads(encode_snapshot(_sample()))
    assert data["sessions"][0] == {
        "id": 123456789,
        "expire": 1_700_000_000.5,
        "transactions": [
            {"payer": "@alice", "participants": ["@bob", "@carol"], "amount": 30.0},
            {"payer": "@carol", "participants": ["@bob"], "amount": 20.0},
        ],
    }


def test_decode_inverts_encode():
    decoded = decode_snapshot(encode_snapshot(_sample()))
    assert decoded == _sample()


@pytest.mark.parametrize("blob", [None, b"", "  ", "{}", '{"sessions": null}', '{"sessions": []}'])
def test_decode_empty(blob):
    assert decode_snapshot(blob) == []


@pytest.mark.parametrize("blob", [
    "[1, 2]",
    "{broken",
    b"\xff\xfe",
    '{"sessions": {}}',
    '{"sessions": [{"id": 1.5, "expire": 1, "transactions": []}]}',
    '{"sessions": [{"id": true, "expire": 1, "transactions": []}]}',
    '{"sessions": [{"id": 1, "expire": "soon", "transactions": []}]}',
    '{"sessions": [{"id": 1, "expire": 1, "transactions": {}}]}',
    '{"sessions": [{"id": 1, "expire": 1, "transactions": [{"payer": "a", "participants": ["b"], "amount": -1}]}]}',
    '{"sessions": [{"id": 1, "expire": 1, "transactions": [{"payer": "", "participants": ["b"], "amount": 1}]}]}',
    '{"sessions": [{"id": 1, "expire": 1, "transactions": [{"payer": "a", "participants": "b", "amount": 1}]}]}',
    '{"sessions": [{"id": 1, "expire": 1}, {"id": 1, "expire": 2}]}',
])
def test_decode_rejects_malformed(blob):
    with pytest.raises(SnapshotError):
        decode_snapshot(blob)


def test_local_file_missing_returns_none(tmp_path):
    assert LocalSnapshotFile(str(tmp_path / "missing.json")).load() is None


def test_local_file_save_and_load(tmp_path):
    path = tmp_path / "nested" / "snapshot.json"
    store = LocalSnapshotFile(str(path))
    blob = encode_snapshot(_sample())
    store.save(blob)
    assert store.load() == blob
    # no temp files left behind
    assert os.listdir(path.parent) == ["snapshot.json"]


def test_sheets_rows_round_trip():
    blob = encode_snapshot(_sample())
    rows = GoogleSheetsSnapshotBackend.snapshot_to_rows(blob)
    assert rows[0] == GoogleSheetsSnapshotBackend.SESSION_HEADERS
    assert rows[1][0] == "123456789"
    assert rows[2][0] == '"group"'
    assert decode_snapshot(GoogleSheetsSnapshotBackend.rows_to_snapshot(rows)) == _sample()


def test_sheets_rows_skip_blank_lines():
    rows = [GoogleSheetsSnapshotBackend.SESSION_HEADERS, ["", "", ""], ["5", "10.0"]]
    sessions = decode_snapshot(GoogleSheetsSnapshotBackend.rows_to_snapshot(rows))
    assert sessions == [SessionSnapshot(id=5, expire=10.0, transactions=[])]


def test_sheets_backend_unavailable_without_sheet_id(monkeypatch):
    monkeypatch.delenv("GOOGLE_SHEET_ID", raising=False)
    backend = GoogleSheetsSnapshotBackend()
    assert backend.available is False
    assert backend.reason == "GOOGLE_SHEET_ID is not set"
    assert backend.load() is None
    assert backend.save(b"{}") is False


class FailingSheets:
    available = True
    reason = ""

    def __init__(self):
        self.saved = []

    def load(self):
        return None

    def save(self, blob):
        return False


def test_persistence_falls_back_to_local_file(tmp_path):
    sheets = FailingSheets()
    persistence = SnapshotPersistence(str(tmp_path / "snapshot.json"), sheets)
    assert persistence.status()[0] == "google_sheets"
    persistence.save(b'{"sessions": []}')
    assert persistence.load() == b'{"sessions": []}'


def test_persistence_status_without_sheets(tmp_path):
    persistence = SnapshotPersistence(str(tmp_path / "snapshot.json"))
    name, message = persistence.status()
    assert name == "local_json"
    assert "Google Sheets not configured" in message


@pytest.mark.parametrize("session", [
    SessionSnapshot(id=("chat", 1), expire=1.0),
    SessionSnapshot(id=1, expire=1.0, transactions=[Transaction(42, ["Bob"], 1.0)]),
    SessionSnapshot(id=1, expire=float("inf")),
])
def test_encode_rejects_what_decode_would_reject(session):
    with pytest.raises(SnapshotError):
        encode_snapshot([session])


def test_encode_rejects_duplicate_ids():
    with pytest.raises(SnapshotError):
        encode_snapshot([SessionSnapshot(id=1, expire=1.0), SessionSnapshot(id=1, expire=2.0)])


class FakeWorksheet:
    def __init__(self, values):
        self.values = values

    def get_all_values(self):
        return self.values


def _sheets_backend(values, monkeypatch):
    monkeypatch.delenv("GOOGLE_SHEET_ID", raising=False)
    backend = GoogleSheetsSnapshotBackend()
    backend.available = True
    backend._sessions_ws = FakeWorksheet(values)
    return backend


@pytest.mark.parametrize("row", [["1", "10.0", "{broken"], ["1", "soon", "[]"], ["1", "10.0", "5"]])
def test_sheets_load_rejects_malformed_rows(monkeypatch, caplog, row):
    backend = _sheets_backend([GoogleSheetsSnapshotBackend.SESSION_HEADERS, row], monkeypatch)
    assert backend.load() is None
    assert "snapshot rejected" in caplog.text


def test_sheets_load_valid_rows(monkeypatch):
    rows = GoogleSheetsSnapshotBackend.snapshot_to_rows(encode_snapshot(_sample()))
    backend = _sheets_backend(rows, monkeypatch)
    assert decode_snapshot(backend.load()) == _sample()
