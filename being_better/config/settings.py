"""Application-wide configuration loaded from environment variables."""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

# Local state directory (preferences file, Google session file)
DATA_DIR: Path = Path(
    os.getenv("DATA_DIR", str(Path(__file__).resolve().parent.parent.parent / "data"))
)
PREFERENCES_FILE: str = "preferences.json"
GOOGLE_SESSION_FILE: str = "google_session.json"

# ── Storage backend selection ────────────────────────────────────────────

# google | local_api | redis
DATA_BACKEND: str = os.getenv("DATA_BACKEND", "google")

# Redis (embedded store + REST backend persistence)
REDIS_URL: str = os.getenv("REDIS_URL", "redis://localhost:6379")
REDIS_KEY_PREFIX: str = os.getenv("REDIS_KEY_PREFIX", "being_better")

# REST backend
LOCAL_API_BASE_URL: str = os.getenv("LOCAL_API_BASE_URL", "http://localhost:8787")
LOCAL_API_TIMEOUT: float = float(os.getenv("LOCAL_API_TIMEOUT", "10"))

# ── Google Sheets ────────────────────────────────────────────────────────

GOOGLE_CLIENT_ID: str = os.getenv("GOOGLE_CLIENT_ID", "")
GOOGLE_CLIENT_SECRET: str = os.getenv("GOOGLE_CLIENT_SECRET", "")
GOOGLE_SPREADSHEET_TITLE: str = os.getenv("GOOGLE_SPREADSHEET_TITLE", "being better")
GOOGLE_API_READY_TIMEOUT: float = float(os.getenv("GOOGLE_API_READY_TIMEOUT", "15"))
GOOGLE_SCOPES: list[str] = [
    "https://www.googleapis.com/auth/drive.file",
    "https://www.googleapis.com/auth/spreadsheets",
]

# ── Reminders & push ─────────────────────────────────────────────────────

DEFAULT_REMINDER_TIME: str = "20:00"
REMINDER_POLL_SECONDS: int = int(os.getenv("REMINDER_POLL_SECONDS", "30"))
PUSH_API_BASE_URL: str = os.getenv("PUSH_API_BASE_URL", "")
PUSH_VAPID_PUBLIC_KEY: str = os.getenv("PUSH_VAPID_PUBLIC_KEY", "")

# ── Server Configuration ─────────────────────────────────────────────────

SERVER_HOST: str = os.getenv("SERVER_HOST", "0.0.0.0")
SERVER_PORT: int = int(os.getenv("SERVER_PORT", "8787"))
