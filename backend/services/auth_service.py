"""Authentication service - GoTrue client, session lookup and JWT decoding."""

import logging
from typing import Any, Optional

import httpx
from jose import JWTError, jwt
from pydantic import BaseModel

from config import get_settings

logger = logging.getLogger(__name__)
settings = get_settings()


class AuthApiError(Exception):
    """Non-success response from the GoTrue API."""

    def __init__(self, message: str, status: int):
        super().__init__(message)
        self.message = message
        self.status = status

    @classmethod
    def from_response(cls, resp: httpx.Response) -> "AuthApiError":
        try:
            body = resp.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = (
            body.get("msg")
            or body.get("error_description")
            or body.get("message")
            or body.get("error")
            or resp.reason_phrase
            or f"GoTrue request failed with status {resp.status_code}"
        )
        return cls(str(message), resp.status_code)


class AuthUser(BaseModel):
    """User as returned by the auth provider."""
    id: str
    email: Optional[str] = None
    role: Optional[str] = None
    user_metadata: Optional[dict[str, Any]] = None


class AuthSession(BaseModel):
    """Token pair issued by GoTrue."""
    access_token: str
    refresh_token: str
    expires_in: int = 3600
    token_type: str = "bearer"
    user: Optional[AuthUser] = None


class SessionLookup(BaseModel):
    """Outcome of resolving the current user from session cookies.

    ``session`` is set when the tokens were refreshed during the lookup and
    must be written back to the client. ``expired`` is set when the stored
    refresh token was rejected and the cookies should be cleared.
    """
    user: Optional[AuthUser] = None
    session: Optional[AuthSession] = None
    expired: bool = False


class TokenData(BaseModel):
    """Data extracted from a GoTrue access token."""
    user_id: str
    email: Optional[str] = None
    role: Optional[str] = None


class GoTrueClient:
    """HTTP client for GoTrue auth operations."""

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

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            headers={"apikey": self.api_key},
            transport=self._transport,
        )

    async def get_user(self, access_token: str) -> AuthUser:
        """Return the user owning ``access_token``. Raises AuthApiError on rejection."""
        async with self._client() as client:
            resp = await client.get(
                f"{self.base_url}/user",
                headers={"Authorization": f"Bearer {access_token}"},
            )
        if not resp.is_success:
            raise AuthApiError.from_response(resp)
        return AuthUser.model_validate(resp.json())

    async def refresh_session(self, refresh_token: str) -> AuthSession:
        """Exchange a refresh token for a new session."""
        async with self._client() as client:
            resp = await client.post(
                f"{self.base_url}/token",
                params={"grant_type": "refresh_token"},
                json={"refresh_token": refresh_token},
            )
        if not resp.is_success:
            raise AuthApiError.from_response(resp)
        return AuthSession.model_validate(resp.json())

    async def sign_in_with_password(self, email: str, password: str) -> AuthSession:
        """Authenticate with email and password."""
        async with self._client() as client:
            resp = await client.post(
                f"{self.base_url}/token",
                params={"grant_type": "password"},
                json={"email": email, "password": password},
            )
        if not resp.is_success:
            raise AuthApiError.from_response(resp)
        return AuthSession.model_validate(resp.json())

    async def sign_up(self, email: str, password: str, user_metadata: dict | None = None) -> AuthUser:
        """Create a user in GoTrue."""
        body: dict = {"email": email, "password": password}
        if user_metadata:
            body["data"] = user_metadata
        async with self._client() as client:
            resp = await client.post(f"{self.base_url}/signup", json=body)
        if not resp.is_success:
            raise AuthApiError.from_response(resp)
        data = resp.json()
        # With email confirmation enabled GoTrue returns the bare user,
        # otherwise a session wrapping it.
        return AuthUser.model_validate(data.get("user") or data)

    async def sign_out(self, access_token: str) -> None:
        async with self._client() as client:
            resp = await client.post(
                f"{self.base_url}/logout",
                headers={"Authorization": f"Bearer {access_token}"},
            )
        if not resp.is_success and resp.status_code != 401:
            raise AuthApiError.from_response(resp)

    async def recover(self, email: str, redirect_to: str | None = None) -> None:
        """Send a password recovery email linking back to ``redirect_to``."""
        params = {"redirect_to": redirect_to} if redirect_to else None
        async with self._client() as client:
            resp = await client.post(f"{self.base_url}/recover", params=params, json={"email": email})
        if not resp.is_success:
            raise AuthApiError.from_response(resp)

    async def update_user(self, access_token: str, data: dict) -> AuthUser:
        """Update the user owning ``access_token`` (e.g. ``{"password": ...}``)."""
        async with self._client() as client:
            resp = await client.put(
                f"{self.base_url}/user",
                headers={"Authorization": f"Bearer {access_token}"},
                json=data,
            )
        if not resp.is_success:
            raise AuthApiError.from_response(resp)
        return AuthUser.model_validate(resp.json())

    async def get_session_user(
        self,
        access_token: str | None,
        refresh_token: str | None,
    ) -> SessionLookup:
        """Resolve the current user, refreshing the session when the access token is stale."""
        if access_token:
            try:
                return SessionLookup(user=await self.get_user(access_token))
            except AuthApiError as e:
                if e.status not in (401, 403):
                    raise
                logger.debug(f"Access token rejected ({e.status}), trying refresh")

        if not refresh_token:
            return SessionLookup()

        try:
            session = await self.refresh_session(refresh_token)
        except AuthApiError as e:
            if e.status in (400, 401):
                logger.info(f"Refresh token rejected: {e.message}")
                return SessionLookup(expired=True)
            raise

        user = session.user or await self.get_user(session.access_token)
        return SessionLookup(user=user, session=session)


class AuthService:
    """Local verification of GoTrue access tokens."""

    @staticmethod
    def decode_token(token: str) -> Optional[TokenData]:
        """Decode and validate a GoTrue JWT signed with the project's secret.

        Returns None when no secret is configured or the token is invalid.
        """
        if not settings.supabase_jwt_secret:
            return None
        try:
            payload = jwt.decode(
                token,
                settings.supabase_jwt_secret,
                algorithms=["HS256"],
                audience="authenticated",
            )
        except JWTError:
            return None

        user_id = payload.get("sub")
        if user_id is None:
            return None
        user_metadata = payload.get("user_metadata") or {}
        return TokenData(
            user_id=user_id,
            email=payload.get("email"),
            role=user_metadata.get("role"),
        )
