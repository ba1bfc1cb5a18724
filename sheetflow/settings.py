"""Runtime configuration, read from the environment (and an optional .env file)."""

import os

from dotenv import load_dotenv


def _data_path(name):
    """Resolve a default data file against the working directory."""
    return os.path.join(os.getcwd(), name)


load_dotenv(_data_path(".env"))


def _env_int(name, default):
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


# ── Storage backend ─────────────────────────────────────────────────────────

BACKEND = os.getenv("SHEETFLOW_BACKEND", "workbook").strip().lower()
WORKBOOK_PATH = os.getenv("SHEETFLOW_WORKBOOK", _data_path("sheetflow.xlsx"))
GOOGLE_SHEET_ID = os.getenv("GOOGLE_SHEET_ID", "").strip()
GOOGLE_CREDENTIALS = os.getenv("GOOGLE_CREDENTIALS", _data_path("credentials.json"))

# Ticket timestamps are written in a fixed offset (Bangladesh Standard Time)
UTC_OFFSET_HOURS = _env_int("SHEETFLOW_UTC_OFFSET_HOURS", 6)

# ── Logging ─────────────────────────────────────────────────────────────────

LOG_LEVEL = os.getenv("SHEETFLOW_LOG_LEVEL", "INFO").upper()
LOG_FILE = os.getenv("SHEETFLOW_LOG_FILE", "").strip() or None

# ── Server ──────────────────────────────────────────────────────────────────

HOST = os.getenv("SHEETFLOW_HOST", "0.0.0.0")
PORT = _env_int("SHEETFLOW_PORT", 8000)
