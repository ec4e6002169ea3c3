"""
app.py - minimal entrypoint for Streamlit app

Keep this file tiny so streamlit can import it without side-effects.
Run the app with:
    streamlit run app.py

This module simply delegates to settler.ui.dashboard.main().

"""
import os
import json as _json

import streamlit as _st

# If running on Streamlit Cloud, transfer secrets to env vars so backend can read them
_SECRET_KEYS = (
    "GOOGLE_SHEET_ID",
    "GOOGLE_SERVICE_ACCOUNT_JSON",
    "GOOGLE_SERVICE_ACCOUNT_FILE",
    "SNAPSHOT_PATH",
    "SESSION_TTL_DAYS",
    "SWEEP_INTERVAL_HOURS",
    "LOG_LEVEL",
)


def _export_secrets():
    try:
        secrets = dict(_st.secrets)
    except FileNotFoundError:
        # no secrets.toml, plain environment configuration
        return
    for key in _SECRET_KEYS:
        if secrets.get(key) and key not in os.environ:
            os.environ[key] = str(secrets[key])
    # Also support the standard Streamlit table-style service account secret:
    # [gcp_service_account] ...fields...
    if "GOOGLE_SERVICE_ACCOUNT_JSON" not in os.environ and secrets.get("gcp_service_account"):
        os.environ["GOOGLE_SERVICE_ACCOUNT_JSON"] = _json.dumps(dict(secrets["gcp_service_account"]))


_export_secrets()

from settler.ui import dashboard  # noqa: E402


def main():
    dashboard.main()


if __name__ == "__main__":
    main()
