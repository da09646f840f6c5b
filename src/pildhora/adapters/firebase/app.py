"""Firebase Admin app initialization and OAuth access tokens."""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from logging import getLogger
from typing import TYPE_CHECKING

import firebase_admin
from firebase_admin import credentials

if TYPE_CHECKING:
    from pildhora.config import FirebaseConfig

log = getLogger(__name__)

APP_NAME = "pildhora"
TOKEN_REFRESH_MARGIN = timedelta(seconds=60)


def initialize_firebase(config: FirebaseConfig) -> firebase_admin.App:
    """Return the named Firebase app, initializing it on first use."""

    try:
        return firebase_admin.get_app(APP_NAME)
    except ValueError:
        log.debug("Initializing Firebase app %s", APP_NAME)

    cred = credentials.Certificate(str(config.credentials_path))
    options: dict[str, str] = {"databaseURL": config.database_url}
    if config.project_id:
        options["projectId"] = config.project_id
    return firebase_admin.initialize_app(cred, options, name=APP_NAME)


class AccessTokenSource:
    """Cache the app credential's OAuth token until shortly before it expires.

    Token refresh is blocking I/O in google-auth, so it runs in a worker thread.
    """

    def __init__(self, credential: credentials.Base) -> None:
        self._credential = credential
        self._token: str | None = None
        self._expiry: datetime | None = None
        self._lock = asyncio.Lock()

    @classmethod
    def for_app(cls, app: firebase_admin.App) -> AccessTokenSource:
        return cls(app.credential)

    async def __call__(self) -> str:
        async with self._lock:
            if self._token is None or self._expired():
                info = await asyncio.to_thread(self._credential.get_access_token)
                self._token = info.access_token
                self._expiry = _as_utc(info.expiry)
                log.debug("Refreshed access token, expires at %s", self._expiry)
            return self._token

    def _expired(self) -> bool:
        if self._expiry is None:
            return False
        return datetime.now(UTC) >= self._expiry - TOKEN_REFRESH_MARGIN


def _as_utc(value: datetime | None) -> datetime | None:
    # google-auth reports expiry as naive UTC
    if value is None:
        return None
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)
