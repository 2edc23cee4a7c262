"""Async client for the hosted PostgREST backend."""
import logging
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx

from sveord import monitoring
from sveord.config import settings

logger = logging.getLogger(__name__)

Params = Sequence[Tuple[str, str]]


class BackendError(Exception):
    """A backend request failed. Rows fetched before the failure are kept in `partial`."""

    def __init__(self, message: str, table: Optional[str] = None, partial: Optional[List[Dict[str, Any]]] = None):
        super().__init__(message)
        self.table = table
        self.partial = partial or []


class AuthenticationError(Exception):
    """No authenticated user is available for a user-scoped operation."""


class BackendClient:
    """Reads and writes the `words` and `user_progress` tables over REST.

    Paginated reads are issued one page at a time, in order.
    """

    def __init__(
        self,
        url: Optional[str] = None,
        anon_key: Optional[str] = None,
        access_token: Optional[str] = None,
        page_size: Optional[int] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = (url or settings.backend.url).rstrip("/")
        self.anon_key = anon_key if anon_key is not None else settings.backend.anon_key
        self.access_token = access_token if access_token is not None else settings.backend.access_token
        self.page_size = page_size or settings.backend.page_size
        self.timeout = timeout or settings.backend.timeout
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

        if not self.url or not self.anon_key:
            raise ValueError("SUPABASE_URL and SUPABASE_ANON_KEY are required")

    @property
    def headers(self) -> Dict[str, str]:
        return {
            "apikey": self.anon_key,
            "Authorization": f"Bearer {self.access_token or self.anon_key}",
        }

    async def __aenter__(self) -> "BackendClient":
        self._client = httpx.AsyncClient(
            base_url=self.url,
            headers=self.headers,
            timeout=self.timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def close(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError("BackendClient must be used as an async context manager")
        return self._client

    async def _request(self, method: str, path: str, table: Optional[str] = None, **kwargs) -> httpx.Response:
        try:
            response = await self.client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPError as e:
            monitoring.backend_errors.labels(table=table or "auth").inc()
            raise BackendError(f"{method} {path} failed: {e}", table=table) from e
        return response

    async def fetch_all(self, table: str, params: Params = ()) -> List[Dict[str, Any]]:
        """Fetch every row of a table, one page at a time."""
        rows: List[Dict[str, Any]] = []
        offset = 0
        while True:
            page_params = [("select", "*"), *params, ("offset", str(offset)), ("limit", str(self.page_size))]
            try:
                response = await self._request("GET", f"/rest/v1/{table}", table=table, params=page_params)
            except BackendError as e:
                logger.error(f"Stopped fetching {table} after {len(rows)} rows: {e}")
                e.partial = rows
                raise

            chunk = response.json()
            if not chunk:
                break
            rows.extend(chunk)
            offset += self.page_size
            logger.debug(f"Fetched {len(rows)} {table} rows...")

        if not rows:
            logger.warning(f"Fetched 0 rows from {table}; check permissions or SUPABASE_ACCESS_TOKEN")
        logger.info(f"Fetched {len(rows)} rows from {table}")
        return rows

    async def fetch_words(self) -> List[Dict[str, Any]]:
        """Fetch the whole vocabulary."""
        return await self.fetch_all("words")

    async def fetch_user_progress(self, user_id: str) -> List[Dict[str, Any]]:
        """Fetch all progress rows of one user."""
        return await self.fetch_all("user_progress", [("user_id", f"eq.{user_id}")])

    async def get_current_user(self) -> Dict[str, Any]:
        """Resolve the user behind the access token."""
        if not self.access_token:
            raise AuthenticationError("Not authenticated: SUPABASE_ACCESS_TOKEN is not set")
        try:
            response = await self._request("GET", "/auth/v1/user")
        except BackendError as e:
            cause = e.__cause__
            if isinstance(cause, httpx.HTTPStatusError) and cause.response.status_code in (401, 403):
                raise AuthenticationError("Not authenticated: access token was rejected") from e
            raise
        user = response.json()
        if not user or not user.get("id"):
            raise AuthenticationError("Not authenticated: no user returned")
        return user

    async def update_word_enrichment(self, word_id: int, enrichment: Dict[str, Any]) -> None:
        """Write enrichment data back to a word."""
        await self._request(
            "PATCH",
            "/rest/v1/words",
            table="words",
            params=[("id", f"eq.{word_id}")],
            json={"word_data": enrichment},
        )
