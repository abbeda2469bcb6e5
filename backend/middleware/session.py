"""Session middleware - refresh the Supabase session and apply the routing policy.

Every request (static assets excluded) asks the auth provider for the current
user. Tokens refreshed during that lookup are written back as cookies on
whatever response ends up being returned, redirect or pass-through, via
``SessionResponseBuilder``. A failing lookup never blocks the request.
API clients may instead send a GoTrue access token as a bearer header; one
that verifies against the JWT secret counts as signed in for routing.
"""

import logging
import re
from collections.abc import Callable
from uuid import uuid4

from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import RedirectResponse, Response
from starlette.types import ASGIApp

from config import Settings, get_settings
from logging_config import bind_request_context, clear_request_context
from services.auth_service import AuthService, SessionLookup
from services.supabase_client import SupabaseClient, create_client

logger = logging.getLogger(__name__)

AUTH_PREFIX = "/auth"
DASHBOARD_PREFIX = "/dashboard"

# Refresh tokens outlive access tokens; keep the cookie for 400 days
REFRESH_COOKIE_MAX_AGE = 60 * 60 * 24 * 400

EXCLUDED_PATHS = re.compile(
    r"^/(?:static/|_next/static/|_next/image|favicon\.ico$)"
    r"|\.(?:svg|png|jpg|jpeg|gif|webp)$",
    re.IGNORECASE,
)


def is_excluded_path(path: str) -> bool:
    """Static assets, images and the favicon bypass the session check."""
    return EXCLUDED_PATHS.search(path) is not None


def _is_under(path: str, prefix: str) -> bool:
    return path == prefix or path.startswith(prefix + "/")


def redirect_target(path: str, authenticated: bool, settings: Settings) -> str | None:
    """Return the path to redirect to, or None to let the request through."""
    if authenticated and _is_under(path, AUTH_PREFIX):
        return settings.dashboard_path
    if not authenticated and _is_under(path, DASHBOARD_PREFIX):
        return settings.login_path
    if path == "/":
        return settings.dashboard_path if authenticated else settings.login_path
    return None


def has_valid_bearer(request: Request) -> bool:
    """True when the Authorization header carries a token that verifies locally."""
    scheme, _, token = request.headers.get("authorization", "").partition(" ")
    token = token.strip()
    if scheme.lower() != "bearer" or not token:
        return False
    return AuthService.decode_token(token) is not None


class SessionResponseBuilder:
    """Collects session cookie changes and applies them to the final response."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._set: list[tuple[str, str, int]] = []
        self._deleted: list[str] = []

    @property
    def has_changes(self) -> bool:
        return bool(self._set or self._deleted)

    def set_session(self, access_token: str, refresh_token: str, expires_in: int) -> None:
        self._set.append((self.settings.access_token_cookie, access_token, expires_in))
        self._set.append((self.settings.refresh_token_cookie, refresh_token, REFRESH_COOKIE_MAX_AGE))

    def clear_session(self) -> None:
        self._deleted.extend([self.settings.access_token_cookie, self.settings.refresh_token_cookie])

    def apply_lookup(self, lookup: SessionLookup) -> None:
        if lookup.session is not None:
            self.set_session(
                lookup.session.access_token,
                lookup.session.refresh_token,
                lookup.session.expires_in,
            )
        elif lookup.expired:
            self.clear_session()

    def finalize(self, response: Response) -> Response:
        for name in self._deleted:
            response.delete_cookie(name, path="/")
        for name, value, max_age in self._set:
            response.set_cookie(
                name,
                value,
                max_age=max_age,
                path="/",
                httponly=True,
                secure=self.settings.cookie_secure,
                samesite="lax",
            )
        return response

    def redirect(self, url: str) -> Response:
        return self.finalize(RedirectResponse(url, status_code=307))


class SessionMiddleware(BaseHTTPMiddleware):
    """Resolve the current user and redirect between auth and dashboard paths."""

    def __init__(
        self,
        app: ASGIApp,
        client_factory: Callable[[], SupabaseClient] | None = None,
        settings: Settings | None = None,
    ):
        super().__init__(app)
        self.client_factory = client_factory
        self.settings = settings or get_settings()

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        path = request.url.path
        if is_excluded_path(path):
            return await call_next(request)

        request_id = request.headers.get("x-request-id") or uuid4().hex
        bind_request_context(request_id, path)
        request.state.auth_user = None
        request.state.access_token = None
        try:
            builder = SessionResponseBuilder(self.settings)
            try:
                lookup = await self._lookup(request)
            except Exception:
                logger.exception("Session lookup failed, continuing without redirect")
                return await call_next(request)

            builder.apply_lookup(lookup)
            request.state.auth_user = lookup.user
            if lookup.session is not None:
                request.state.access_token = lookup.session.access_token
            elif lookup.user is not None:
                request.state.access_token = request.cookies.get(self.settings.access_token_cookie)

            authenticated = lookup.user is not None or has_valid_bearer(request)
            target = redirect_target(path, authenticated, self.settings)
            if target is not None:
                logger.info(f"Redirecting to {target} (authenticated={authenticated})")
                return builder.redirect(str(request.url.replace(path=target)))

            return builder.finalize(await call_next(request))
        finally:
            clear_request_context()

    async def _lookup(self, request: Request) -> SessionLookup:
        client = (self.client_factory or create_client)()
        return await client.auth.get_session_user(
            request.cookies.get(self.settings.access_token_cookie),
            request.cookies.get(self.settings.refresh_token_cookie),
        )
