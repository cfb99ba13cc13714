"""Google Sheets adapter.

Stores ratings, check-ins and settings in a spreadsheet named
``GOOGLE_SPREADSHEET_TITLE`` in the user's Drive root. The spreadsheet is
found or created on connect, missing tabs are added and header rows are
normalized, so callers only ever see a fully provisioned sheet or
``needs_login``.

Security Features:
- The access token is persisted in DATA_DIR/google_session.json with 0600
  permissions, together with its expiry
- An expired or unusable token is deleted on startup and never retried

Environment Variables:
- GOOGLE_CLIENT_ID: OAuth 2.0 client ID (required)
- GOOGLE_CLIENT_SECRET: OAuth 2.0 client secret for the installed-app flow
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Optional

import httplib2
from google.auth.exceptions import GoogleAuthError
from google.oauth2.credentials import Credentials
from google_auth_oauthlib.flow import InstalledAppFlow
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from being_better.adapters.base import AuthState, SignInSlot
from being_better.config.settings import (
    DATA_DIR,
    GOOGLE_API_READY_TIMEOUT,
    GOOGLE_CLIENT_ID,
    GOOGLE_CLIENT_SECRET,
    GOOGLE_SCOPES,
    GOOGLE_SESSION_FILE,
    GOOGLE_SPREADSHEET_TITLE,
)
from being_better.errors import (
    AuthError,
    MissingGoogleClientIdError,
    NotConnectedError,
    SetupError,
    StorageError,
    ValidationError,
)
from being_better.models.entries import (
    INTENSITY_AXES,
    CheckInEntry,
    RatingEntry,
    RatingsRange,
    parse_intensity_input,
    parse_timestamp,
)

logger = logging.getLogger(__name__)

DATA_SHEET_TITLE = "data"
CHECKINS_SHEET_TITLE = "checkins"
CONFIG_SHEET_TITLE = "config"
REQUIRED_SHEETS = (DATA_SHEET_TITLE, CHECKINS_SHEET_TITLE, CONFIG_SHEET_TITLE)

RATING_HEADERS = ["timestamp", "rating"]
CHECKIN_HEADERS = [
    "timestamp",
    "words",
    *(f"intensity_{axis}" for axis in INTENSITY_AXES),
    "context_tags",
    "suggested_words_used",
]
CONFIG_HEADERS = ["key", "value"]
SHEET_HEADERS = {
    DATA_SHEET_TITLE: RATING_HEADERS,
    CHECKINS_SHEET_TITLE: CHECKIN_HEADERS,
    CONFIG_SHEET_TITLE: CONFIG_HEADERS,
}

SPREADSHEET_MIME_TYPE = "application/vnd.google-apps.spreadsheet"


@dataclass
class TokenGrant:
    access_token: str
    expires_in: int  # seconds


@dataclass
class GoogleServices:
    drive: Any
    sheets: Any


Authorizer = Callable[[str], Awaitable[TokenGrant]]
ServiceFactory = Callable[[str], GoogleServices]


# ── Defaults wired to the real Google libraries ──────────────────────────


def build_google_services(access_token: str) -> GoogleServices:
    """Build Drive v3 + Sheets v4 clients for a bare access token."""
    creds = Credentials(token=access_token)
    return GoogleServices(
        drive=build("drive", "v3", credentials=creds, cache_discovery=False),
        sheets=build("sheets", "v4", credentials=creds, cache_discovery=False),
    )


def installed_app_authorizer(
    client_id: str,
    client_secret: str,
    scopes: list[str] | None = None,
) -> Authorizer:
    """Interactive OAuth via a local redirect server and the system browser."""
    client_config = {
        "installed": {
            "client_id": client_id,
            "client_secret": client_secret,
            "auth_uri": "https://accounts.google.com/o/oauth2/auth",
            "token_uri": "https://oauth2.googleapis.com/token",
            "redirect_uris": ["http://localhost"],
        }
    }

    async def authorize(prompt: str) -> TokenGrant:
        flow = InstalledAppFlow.from_client_config(client_config, scopes=scopes or GOOGLE_SCOPES)
        kwargs: dict[str, Any] = {"port": 0}
        if prompt:
            kwargs["prompt"] = prompt
        creds = await asyncio.to_thread(flow.run_local_server, **kwargs)
        if creds.expiry:
            now = datetime.now(timezone.utc).replace(tzinfo=None)
            expires_in = int((creds.expiry - now).total_seconds())
        else:
            expires_in = 3600
        return TokenGrant(access_token=creds.token, expires_in=expires_in)

    return authorize


# ── Session persistence ──────────────────────────────────────────────────


class GoogleSessionFile:
    """Persisted ``{access_token, expires_at_ms}`` with owner-only permissions."""

    def __init__(self, path: Path | None = None):
        self.path = path or DATA_DIR / GOOGLE_SESSION_FILE

    def read(self) -> Optional[dict[str, Any]]:
        if not self.path.exists():
            return None
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError):
            return None
        if (
            not isinstance(data, dict)
            or not data.get("access_token")
            or not isinstance(data.get("expires_at_ms"), (int, float))
        ):
            return None
        return data

    def save(self, access_token: str, expires_at_ms: int) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump({"access_token": access_token, "expires_at_ms": expires_at_ms}, f)
        os.chmod(self.path, 0o600)

    def clear(self) -> None:
        try:
            self.path.unlink()
        except FileNotFoundError:
            pass


# ── Adapter ──────────────────────────────────────────────────────────────


class GoogleSheetsAdapter:
    def __init__(
        self,
        client_id: str = GOOGLE_CLIENT_ID,
        client_secret: str = GOOGLE_CLIENT_SECRET,
        spreadsheet_title: str = GOOGLE_SPREADSHEET_TITLE,
        session_file: GoogleSessionFile | None = None,
        authorizer: Authorizer | None = None,
        service_factory: ServiceFactory = build_google_services,
        ready_timeout: float = GOOGLE_API_READY_TIMEOUT,
        clock: Callable[[], float] = time.time,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.spreadsheet_title = spreadsheet_title
        self.ready_timeout = ready_timeout
        self._session_file = session_file or GoogleSessionFile()
        self._custom_authorizer = authorizer
        self._authorizer: Optional[Authorizer] = None
        self._service_factory = service_factory
        self._clock = clock

        self._services: Optional[GoogleServices] = None
        self._spreadsheet_id: Optional[str] = None
        self._has_granted_token = False
        self._auth_state = AuthState.INITIALIZING
        self._sign_in = SignInSlot()

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def init(self) -> None:
        if not self.client_id:
            self._auth_state = AuthState.NEEDS_LOGIN
            raise MissingGoogleClientIdError()

        self._authorizer = self._custom_authorizer or installed_app_authorizer(
            self.client_id, self.client_secret
        )
        await self._restore_session()

        if self._spreadsheet_id is None:
            self._auth_state = AuthState.NEEDS_LOGIN

    async def request_sign_in(self) -> None:
        if self._authorizer is None:
            raise AuthError("OAuth client is not ready")
        await self._sign_in.run(self._sign_in_flow)

    def is_ready(self) -> bool:
        return self._spreadsheet_id is not None

    def get_auth_state(self) -> AuthState:
        return self._auth_state

    # ── Entries ──────────────────────────────────────────────────────────

    async def append_rating(self, entry: RatingEntry) -> None:
        await self._append_row(DATA_SHEET_TITLE, "A:B", [entry.timestamp, str(entry.rating)])

    async def list_ratings(self, range_: RatingsRange) -> list[RatingEntry]:
        rows = await self._get_values(f"{DATA_SHEET_TITLE}!A2:B")
        entries = []
        for row in rows:
            entry = _rating_from_row(row)
            if entry is not None and range_.contains(entry.timestamp):
                entries.append(entry)
        return entries

    async def append_check_in(self, entry: CheckInEntry) -> None:
        await self._append_row(CHECKINS_SHEET_TITLE, "A:H", _check_in_to_row(entry))

    async def list_check_ins(self, range_: RatingsRange) -> list[CheckInEntry]:
        rows = await self._get_values(f"{CHECKINS_SHEET_TITLE}!A2:H")
        entries = []
        for row in rows:
            entry = _check_in_from_row(row)
            if entry is not None and range_.contains(entry.timestamp):
                entries.append(entry)
        return entries

    # ── Settings ─────────────────────────────────────────────────────────

    async def save_settings(self, blob: dict[str, str]) -> None:
        rows = await self._get_values(f"{CONFIG_SHEET_TITLE}!A2:B")
        row_by_key = {
            row[0]: index + 2 for index, row in enumerate(rows) if row and row[0]
        }

        updates = []
        new_rows = []
        for key, value in blob.items():
            if key in row_by_key:
                updates.append({
                    "range": f"{CONFIG_SHEET_TITLE}!B{row_by_key[key]}",
                    "values": [[str(value)]],
                })
            else:
                new_rows.append([key, str(value)])

        services, spreadsheet_id = self._require_connection()
        if updates:
            await _execute(services.sheets.spreadsheets().values().batchUpdate(
                spreadsheetId=spreadsheet_id,
                body={"valueInputOption": "RAW", "data": updates},
            ))
        if new_rows:
            await _execute(services.sheets.spreadsheets().values().append(
                spreadsheetId=spreadsheet_id,
                range=f"{CONFIG_SHEET_TITLE}!A:B",
                valueInputOption="RAW",
                insertDataOption="INSERT_ROWS",
                body={"values": new_rows},
            ))

    async def load_settings(self) -> dict[str, str]:
        rows = await self._get_values(f"{CONFIG_SHEET_TITLE}!A2:B")
        return {row[0]: (row[1] if len(row) > 1 else "") for row in rows if row and row[0]}

    # ── Session handling ─────────────────────────────────────────────────

    async def _sign_in_flow(self) -> None:
        self._auth_state = AuthState.INITIALIZING
        prompt = "" if self._has_granted_token else "consent"
        try:
            grant = await self._authorizer(prompt)
        except AuthError:
            self._auth_state = AuthState.NEEDS_LOGIN
            raise
        except Exception as exc:
            self._auth_state = AuthState.NEEDS_LOGIN
            raise AuthError(f"Google sign-in failed: {exc}") from exc

        try:
            if not grant.access_token:
                raise AuthError("Missing access token")
            expires_at_ms = int(self._clock() * 1000 + grant.expires_in * 1000)
            self._session_file.save(grant.access_token, expires_at_ms)
            self._has_granted_token = True
            await self._connect(grant.access_token)
        except AuthError:
            self._disconnect()
            raise
        except Exception as exc:
            self._disconnect()
            raise AuthError(f"Google sign-in failed: {exc}") from exc

        self._auth_state = AuthState.CONNECTED
        logger.info("Google sign-in complete (spreadsheet %s)", self._spreadsheet_id)

    async def _restore_session(self) -> None:
        session = self._session_file.read()
        if not session:
            return

        if self._clock() * 1000 >= session["expires_at_ms"]:
            logger.info("Stored Google session expired, clearing it")
            self._session_file.clear()
            return

        try:
            self._has_granted_token = True
            await self._connect(session["access_token"])
            self._auth_state = AuthState.CONNECTED
            logger.info("Google session restored")
        except Exception as exc:
            logger.warning("Could not restore Google session: %s", exc)
            self._disconnect()

    async def _connect(self, access_token: str) -> None:
        try:
            self._services = await asyncio.wait_for(
                asyncio.to_thread(self._service_factory, access_token),
                timeout=self.ready_timeout,
            )
        except asyncio.TimeoutError as exc:
            raise SetupError("Timeout while loading Google APIs") from exc
        except Exception as exc:
            raise SetupError(f"Failed to load Google APIs: {exc}") from exc
        self._spreadsheet_id = await ensure_spreadsheet(self._services, self.spreadsheet_title)

    def _disconnect(self) -> None:
        self._session_file.clear()
        self._services = None
        self._spreadsheet_id = None
        self._auth_state = AuthState.NEEDS_LOGIN

    # ── Internals ────────────────────────────────────────────────────────

    def _require_connection(self) -> tuple[GoogleServices, str]:
        if self._services is None or self._spreadsheet_id is None:
            raise NotConnectedError()
        return self._services, self._spreadsheet_id

    async def _append_row(self, sheet: str, columns: str, row: list[str]) -> None:
        services, spreadsheet_id = self._require_connection()
        await _execute(services.sheets.spreadsheets().values().append(
            spreadsheetId=spreadsheet_id,
            range=f"{sheet}!{columns}",
            valueInputOption="RAW",
            insertDataOption="INSERT_ROWS",
            body={"values": [row]},
        ))

    async def _get_values(self, a1_range: str) -> list[list[str]]:
        services, spreadsheet_id = self._require_connection()
        result = await _execute(services.sheets.spreadsheets().values().get(
            spreadsheetId=spreadsheet_id,
            range=a1_range,
        ))
        return result.get("values") or []


# ── Provisioning ─────────────────────────────────────────────────────────


async def _execute(request: Any) -> dict[str, Any]:
    """Run a googleapiclient request off the event loop."""
    try:
        result = await asyncio.to_thread(request.execute)
    except (HttpError, httplib2.HttpLib2Error, GoogleAuthError, OSError) as exc:
        raise StorageError(f"Google API error: {exc}") from exc
    return result or {}


def _escape_drive_string(value: str) -> str:
    return value.replace("\\", "\\\\").replace("'", "\\'")


async def find_spreadsheet_id_by_name(services: GoogleServices, name: str) -> Optional[str]:
    result = await _execute(services.drive.files().list(
        q=(
            f"name = '{_escape_drive_string(name)}' and mimeType = '{SPREADSHEET_MIME_TYPE}' "
            "and trashed = false and 'root' in parents"
        ),
        spaces="drive",
        fields="files(id, createdTime)",
        orderBy="createdTime asc",
        pageSize=10,
    ))
    files = result.get("files") or []
    if not files:
        return None
    return files[0].get("id")


async def ensure_required_sheets(services: GoogleServices, spreadsheet_id: str) -> None:
    result = await _execute(services.sheets.spreadsheets().get(
        spreadsheetId=spreadsheet_id,
        fields="sheets.properties.title",
    ))
    existing = {
        sheet.get("properties", {}).get("title")
        for sheet in result.get("sheets") or []
    }
    requests = [
        {"addSheet": {"properties": {"title": title}}}
        for title in REQUIRED_SHEETS
        if title not in existing
    ]
    if not requests:
        return
    await _execute(services.sheets.spreadsheets().batchUpdate(
        spreadsheetId=spreadsheet_id,
        body={"requests": requests},
    ))


async def ensure_headers(services: GoogleServices, spreadsheet_id: str) -> None:
    for sheet, headers in SHEET_HEADERS.items():
        end_column = chr(ord("A") + len(headers) - 1)
        header_range = f"{sheet}!A1:{end_column}1"
        result = await _execute(services.sheets.spreadsheets().values().get(
            spreadsheetId=spreadsheet_id,
            range=header_range,
        ))
        row = (result.get("values") or [[]])[0]
        if row[: len(headers)] == headers:
            continue
        await _execute(services.sheets.spreadsheets().values().update(
            spreadsheetId=spreadsheet_id,
            range=header_range,
            valueInputOption="RAW",
            body={"values": [headers]},
        ))


async def ensure_spreadsheet(services: GoogleServices, title: str) -> str:
    """Find or create the spreadsheet and bring it to the expected shape."""
    existing_id = await find_spreadsheet_id_by_name(services, title)
    if existing_id:
        await ensure_required_sheets(services, existing_id)
        await ensure_headers(services, existing_id)
        return existing_id

    result = await _execute(services.sheets.spreadsheets().create(
        body={
            "properties": {"title": title},
            "sheets": [{"properties": {"title": t}} for t in REQUIRED_SHEETS],
        },
        fields="spreadsheetId",
    ))
    spreadsheet_id = result.get("spreadsheetId")
    if not spreadsheet_id:
        raise StorageError("Sheets create returned no spreadsheetId")

    await ensure_headers(services, spreadsheet_id)
    logger.info("Created spreadsheet '%s' (%s)", title, spreadsheet_id)
    return spreadsheet_id


# ── Row mapping ──────────────────────────────────────────────────────────


def _cell(row: list[str], index: int) -> str:
    return row[index] if index < len(row) and row[index] is not None else ""


def _split_list(cell: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in cell.split(",") if item.strip())


def _rating_from_row(row: list[str]) -> Optional[RatingEntry]:
    timestamp = _cell(row, 0)
    if parse_timestamp(timestamp) is None:
        return None
    try:
        return RatingEntry.from_dict({"timestamp": timestamp, "rating": _cell(row, 1)})
    except ValidationError:
        return None


def _check_in_to_row(entry: CheckInEntry) -> list[str]:
    intensity = [
        "" if entry.intensity.get(axis) is None else str(entry.intensity[axis])
        for axis in INTENSITY_AXES
    ]
    return [
        entry.timestamp,
        " ".join(entry.words),
        *intensity,
        ",".join(entry.context_tags),
        ",".join(entry.suggested_words_used),
    ]


def _check_in_from_row(row: list[str]) -> Optional[CheckInEntry]:
    timestamp = _cell(row, 0)
    if parse_timestamp(timestamp) is None:
        return None
    axis_offset = 2
    intensity = {
        axis: parse_intensity_input(_cell(row, axis_offset + i))
        for i, axis in enumerate(INTENSITY_AXES)
    }
    tags_index = axis_offset + len(INTENSITY_AXES)
    try:
        return CheckInEntry(
            timestamp=timestamp,
            words=tuple(_cell(row, 1).split()),
            intensity=intensity,
            context_tags=_split_list(_cell(row, tags_index)),
            suggested_words_used=_split_list(_cell(row, tags_index + 1)),
        )
    except ValidationError:
        return None
