"""
Google Sheets access for stock-sync.

``SheetsClient`` talks to the Sheets v4 REST API with a service account.
``SheetDataSource`` is the only gateway the rest of the code uses: it fronts
table reads with the TTL cache and forwards batched coordinate writes.

API Documentation: https://developers.google.com/sheets/api/reference/rest
"""

import logging
import time
from typing import Any
from urllib.parse import quote

import httpx
from google.auth import crypt
from google.auth import jwt as google_jwt

from .cache import MISS, TTLCache
from .config import SheetsConfig
from .errors import ExternalServiceError

logger = logging.getLogger(__name__)

SHEETS_SCOPE = "https://www.googleapis.com/auth/spreadsheets"
JWT_BEARER_GRANT = "urn:ietf:params:oauth:grant-type:jwt-bearer"
TOKEN_LIFETIME_SECONDS = 3600
# Refresh the token this long before Google says it expires
TOKEN_REFRESH_MARGIN_SECONDS = 60

Rows = list[list[str]]


class SheetsClient:
    """
    Client for one Google Sheets document.

    Provides full-range reads and batched value writes.
    """

    def __init__(
        self,
        spreadsheet_id: str | None,
        service_account_email: str | None,
        private_key: str | None,
        api_base: str = "https://sheets.googleapis.com",
        token_uri: str = "https://oauth2.googleapis.com/token",
        timeout_seconds: float = 30.0,
    ):
        self.spreadsheet_id = spreadsheet_id
        self.service_account_email = service_account_email
        self.private_key = private_key
        self.api_base = api_base.rstrip("/")
        self.token_uri = token_uri
        self.timeout = timeout_seconds
        self._token: str | None = None
        self._token_expires_at: float = 0.0

    @classmethod
    def from_config(cls, config: SheetsConfig) -> "SheetsClient":
        return cls(
            spreadsheet_id=config.get_spreadsheet_id(),
            service_account_email=config.get_service_account_email(),
            private_key=config.get_private_key(),
            api_base=config.api_base,
            token_uri=config.token_uri,
            timeout_seconds=config.timeout_seconds,
        )

    def _values_url(self, suffix: str) -> str:
        if not self.spreadsheet_id:
            raise ExternalServiceError("sheets", "spreadsheet id is not configured")
        return f"{self.api_base}/v4/spreadsheets/{self.spreadsheet_id}/values{suffix}"

    def _build_assertion(self) -> str:
        """Sign a service-account JWT for the token exchange."""
        if not self.service_account_email or not self.private_key:
            raise ExternalServiceError("sheets", "service account credentials are not configured")

        now = int(time.time())
        payload = {
            "iss": self.service_account_email,
            "scope": SHEETS_SCOPE,
            "aud": self.token_uri,
            "iat": now,
            "exp": now + TOKEN_LIFETIME_SECONDS,
        }
        try:
            signer = crypt.RSASigner.from_string(self.private_key)
        except ValueError as e:
            raise ExternalServiceError("sheets", f"invalid private key: {e}") from e
        assertion = google_jwt.encode(signer, payload)
        return assertion.decode("utf-8") if isinstance(assertion, bytes) else assertion

    async def _get_token(self) -> str:
        """Get an OAuth2 access token, reusing the cached one until it nears expiry."""
        if self._token and time.time() < self._token_expires_at - TOKEN_REFRESH_MARGIN_SECONDS:
            return self._token

        assertion = self._build_assertion()
        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(
                    self.token_uri,
                    data={"grant_type": JWT_BEARER_GRANT, "assertion": assertion},
                )
                response.raise_for_status()
                data = response.json()
                token = data["access_token"]
            except (httpx.HTTPError, ValueError, KeyError, TypeError) as e:
                raise ExternalServiceError("sheets", f"token request failed: {e!r}") from e

        self._token = token
        self._token_expires_at = time.time() + data.get("expires_in", TOKEN_LIFETIME_SECONDS)
        return self._token

    async def get_values(self, range_name: str) -> Rows:
        """
        Read every row of a named range.

        Args:
            range_name: Sheet name or A1 range

        Returns:
            Rows of string cells (empty list if the range has no values)
        """
        url = self._values_url(f"/{quote(range_name, safe='!:')}")
        token = await self._get_token()

        logger.info(f"Google Sheets API read: {range_name}")

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.get(
                    url,
                    headers={"Authorization": f"Bearer {token}"},
                )
                response.raise_for_status()
                values = response.json().get("values", [])
            except (httpx.HTTPError, ValueError, AttributeError) as e:
                logger.error(f"Error reading sheet {range_name}: {e}")
                raise ExternalServiceError("sheets", f"read of {range_name} failed: {e}") from e

        return [[str(value) for value in row] for row in values]

    async def batch_update(self, data: list[dict[str, Any]]) -> dict[str, Any]:
        """
        Write several ranges in one call.

        Args:
            data: ValueRange dicts with ``range`` and ``values`` keys

        Returns:
            The API response body
        """
        url = self._values_url(":batchUpdate")
        token = await self._get_token()
        body = {"valueInputOption": "USER_ENTERED", "data": data}

        async with httpx.AsyncClient(timeout=self.timeout) as client:
            try:
                response = await client.post(
                    url,
                    headers={"Authorization": f"Bearer {token}"},
                    json=body,
                )
                response.raise_for_status()
                return response.json()
            except (httpx.HTTPError, ValueError) as e:
                logger.error(f"Batch update of {len(data)} range(s) failed: {e}")
                raise ExternalServiceError("sheets", f"batch update failed: {e}") from e


def table_cache_key(name: str) -> str:
    return f"sheet_{name}"


class SheetDataSource:
    """Cached access to the document's named tables."""

    def __init__(self, client: SheetsClient, cache: TTLCache):
        self.client = client
        self.cache = cache

    async def get_table(self, name: str) -> Rows:
        """
        Return all rows of the named table.

        Served from the cache when a valid entry exists; otherwise read once
        from the API and cached with the default ttl. Read failures raise
        ExternalServiceError and are not retried.
        """
        key = table_cache_key(name)
        cached = self.cache.get(key)
        if cached is not MISS:
            return cached

        rows = await self.client.get_values(name)
        self.cache.set(key, rows)
        return rows

    def invalidate(self, name: str) -> None:
        """Drop one cached table."""
        self.cache.delete(table_cache_key(name))

    def invalidate_all(self) -> int:
        """Sweep expired entries now. Returns the count removed."""
        return self.cache.cleanup()

    async def batch_update(self, data: list[dict[str, Any]]) -> dict[str, Any]:
        """Forward a batched write to the document."""
        return await self.client.batch_update(data)
