"""
config.py - environment configuration and logging setup

Settings are read from environment variables. When running on Streamlit
Cloud, app.py copies the app secrets into the environment first.

  SNAPSHOT_PATH         local snapshot file (default data/snapshot.json)
  SESSION_TTL_DAYS      days a conversation survives without activity (default 120)
  SWEEP_INTERVAL_HOURS  how often expired conversations are evicted (default 24)
  LOG_LEVEL             logging level name (default INFO)
"""

import logging
import os
from dataclasses import dataclass

DEFAULT_SNAPSHOT_PATH = os.path.join(os.path.dirname(__file__), "..", "data", "snapshot.json")
DEFAULT_TTL_DAYS = 120
DEFAULT_SWEEP_INTERVAL_HOURS = 24.0


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        value = float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")
    if value <= 0:
        raise ValueError(f"{name} must be positive, got {raw!r}")
    return value


@dataclass
class Settings:
    snapshot_path: str = DEFAULT_SNAPSHOT_PATH
    ttl_days: float = DEFAULT_TTL_DAYS
    sweep_interval_hours: float = DEFAULT_SWEEP_INTERVAL_HOURS
    log_level: str = "INFO"

    @staticmethod
    def from_env() -> "Settings":
        return Settings(
            snapshot_path=(os.getenv("SNAPSHOT_PATH") or "").strip() or DEFAULT_SNAPSHOT_PATH,
            ttl_days=_env_float("SESSION_TTL_DAYS", DEFAULT_TTL_DAYS),
            sweep_interval_hours=_env_float("SWEEP_INTERVAL_HOURS", DEFAULT_SWEEP_INTERVAL_HOURS),
            log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper(),
        )


def configure_logging(level: str = "INFO") -> logging.Logger:
    """Attach a stream handler to the package logger once and set its level."""
    logger = logging.getLogger("settler")
    if not logger.handlers:
        handler = logging.StreamHandler()
        handler.setFormatter(logging.Formatter("%(asctime)s %(levelname)s %(message)s"))
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, level, logging.INFO))
    return logger
