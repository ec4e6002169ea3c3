import json

import pytest

from settler.config import Settings
from settler.runtime import SettlerRuntime
from settler.sessions import SECONDS_PER_DAY, SessionStore
from settler.snapshots import SnapshotError
from settler.storage import SnapshotPersistence


class FakeClock:
    def __init__(self, now=1_700_000_000.0):
        self.now = now

    def __call__(self):
        return self.now


def _runtime(tmp_path, clock=None, on_expired=None):
    settings = Settings(snapshot_path=str(tmp_path / "snapshot.json"), ttl_days=3, sweep_interval_hours=24)
    store = SessionStore(settings.ttl_days, clock=clock or FakeClock())
    persistence = SnapshotPersistence(settings.snapshot_path)
    return SettlerRuntime(settings, store=store, persistence=persistence, on_expired=on_expired)


def test_start_without_snapshot(tmp_path):
    runtime = _runtime(tmp_path)
    runtime.start()
    assert runtime.running
    assert runtime.stop() is True
    assert not runtime.running
    assert json.loads((tmp_path / "snapshot.json").read_text()) == {"sessions": []}


def test_stop_then_start_restores_conversations(tmp_path):
    runtime = _runtime(tmp_path)
    runtime.start()
    runtime.ledger_for(10).add_expense("Alice", ["Bob", "Carol"], 30.0)
    runtime.ledger_for("team").add_expense("Carol", ["Bob"], 20.0)
    balances = runtime.ledger_for(10).list_balances()
    runtime.stop()

    restarted = _runtime(tmp_path)
    restarted.start()
    try:
        assert sorted(map(str, restarted.store.session_ids())) == ["10", "team"]
        assert restarted.store.get(10).list_balances() == pytest.approx(balances)
    finally:
        restarted.stop()


def test_start_with_malformed_snapshot_raises(tmp_path):
    (tmp_path / "snapshot.json").write_text("{not json")
    runtime = _runtime(tmp_path)
    with pytest.raises(SnapshotError):
        runtime.start()
    assert not runtime.running


def test_sweep_notifies_expired_conversations(tmp_path):
    clock = FakeClock()
    notified = []
    runtime = _runtime(tmp_path, clock=clock, on_expired=notified.append)
    runtime.ledger_for(1)
    runtime.ledger_for(2)
    clock.now += 2 * SECONDS_PER_DAY
    runtime.ledger_for(2)
    clock.now += 2 * SECONDS_PER_DAY

    assert runtime.sweep() == [1]
    assert notified == [1]
    assert runtime.sweep() == []


def test_sweep_survives_notifier_errors(tmp_path):
    clock = FakeClock()
    calls = []

    def notify(conversation_id):
        calls.append(conversation_id)
        raise RuntimeError("chat is gone")

    runtime = _runtime(tmp_path, clock=clock, on_expired=notify)
    runtime.ledger_for(1)
    runtime.ledger_for(2)
    clock.now += 4 * SECONDS_PER_DAY
    assert sorted(runtime.sweep()) == [1, 2]
    assert sorted(calls) == [1, 2]


class BrokenPersistence:
    def load(self):
        return None

    def save(self, blob):
        raise OSError("disk full")


def test_save_failure_is_reported_not_raised(tmp_path):
    settings = Settings(snapshot_path=str(tmp_path / "snapshot.json"))
    runtime = SettlerRuntime(settings, persistence=BrokenPersistence())
    runtime.ledger_for(1).add_expense("Alice", ["Bob"], 1.0)
    assert runtime.save_snapshot() is False


def test_settings_from_env(monkeypatch):
    monkeypatch.setenv("SNAPSHOT_PATH", "/tmp/x.json")
    monkeypatch.setenv("SESSION_TTL_DAYS", "30")
    monkeypatch.setenv("SWEEP_INTERVAL_HOURS", "0.5")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    settings = Settings.from_env()
    assert settings == Settings(snapshot_path="/tmp/x.json", ttl_days=30.0, sweep_interval_hours=0.5, log_level="DEBUG")


def test_settings_defaults(monkeypatch):
    for name in ("SNAPSHOT_PATH", "SESSION_TTL_DAYS", "SWEEP_INTERVAL_HOURS", "LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    settings = Settings.from_env()
    assert settings.ttl_days == 120
    assert settings.sweep_interval_hours == 24.0
    assert settings.snapshot_path.endswith("snapshot.json")


@pytest.mark.parametrize("value", ["abc", "0", "-3"])
def test_settings_reject_bad_numbers(monkeypatch, value):
    monkeypatch.setenv("SESSION_TTL_DAYS", value)
    with pytest.raises(ValueError, match="SESSION_TTL_DAYS"):
        Settings.from_env()


def test_injected_empty_store_is_kept(tmp_path):
    settings = Settings(snapshot_path=str(tmp_path / "snapshot.json"), ttl_days=3)
    store = SessionStore(ttl_days=3, clock=FakeClock())
    runtime = SettlerRuntime(settings, store=store, persistence=SnapshotPersistence(settings.snapshot_path))
    assert runtime.store is store
