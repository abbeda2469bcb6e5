"""Supabase client factory - one configured handle to the hosted auth and REST APIs."""

import logging

import httpx

from config import Settings, get_settings
from services.auth_service import GoTrueClient

logger = logging.getLogger(__name__)


class MissingCredentialsError(RuntimeError):
    """Raised when the Supabase URL or anon key is not configured."""


class PostgrestError(Exception):
    """Non-success response from the PostgREST API."""

    def __init__(self, message: str, status: int):
        super().__init__(message)
        self.message = message
        self.status = status


class PostgrestClient:
    """Minimal PostgREST access used for diagnostics."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._transport = transport

    async def count(self, table: str) -> int:
        """Return the exact row count of ``table`` visible to the anon key."""
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            resp = await client.head(
                f"{self.base_url}/{table}",
                params={"select": "*"},
                headers={
                    "apikey": self.api_key,
                    "Authorization": f"Bearer {self.api_key}",
                    "Prefer": "count=exact",
                    "Range": "0-0",
                },
            )
        if not resp.is_success:
            raise PostgrestError(
                f"{resp.status_code} {resp.reason_phrase}".strip(),
                resp.status_code,
            )

        # Content-Range: 0-0/42 (or */0 for an empty table)
        content_range = resp.headers.get("content-range", "")
        total = content_range.rpartition("/")[2]
        return int(total) if total.isdigit() else 0


class SupabaseClient:
    """Handle to a Supabase project: ``auth`` (GoTrue) and ``rest`` (PostgREST)."""

    def __init__(
        self,
        url: str,
        key: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.url = url.rstrip("/")
        self.key = key
        self.auth = GoTrueClient(f"{self.url}/auth/v1", key, timeout=timeout, transport=transport)
        self.rest = PostgrestClient(f"{self.url}/rest/v1", key, timeout=timeout, transport=transport)

    def __repr__(self) -> str:
        return f"<SupabaseClient {self.url}>"


def create_client(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> SupabaseClient:
    """Build a client from the configured URL and anon key.

    Raises MissingCredentialsError when either value is empty; no partial
    client is ever returned.
    """
    settings = settings or get_settings()
    url = settings.supabase_url
    key = settings.supabase_anon_key

    if not url or not key:
        logger.error(f"Supabase credentials missing (url set: {bool(url)}, key set: {bool(key)})")
        raise MissingCredentialsError("Missing Supabase credentials")

    return SupabaseClient(url, key, timeout=settings.supabase_timeout, transport=transport)


def get_supabase() -> SupabaseClient:
    """FastAPI dependency returning a client for the current request."""
    return create_client()


def get_optional_supabase() -> SupabaseClient | None:
    """Like ``get_supabase`` but None when credentials are not configured."""
    try:
        return create_client()
    except MissingCredentialsError:
        return None
