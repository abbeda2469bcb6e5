"""Tests for the Supabase client factory and the GoTrue session lookup."""

import json

import httpx
import pytest

from config import Settings, get_settings
from services.auth_service import AuthApiError, GoTrueClient
from services.supabase_client import (
    MissingCredentialsError,
    PostgrestError,
    SupabaseClient,
    create_client,
    get_optional_supabase,
)

URL = "https://project.supabase.co"
USER_JSON = {"id": "7d3f1c2e-0000-4000-8000-000000000001", "email": "ana@clinic.test", "role": "authenticated"}


def gotrue(handler) -> GoTrueClient:
    return GoTrueClient(f"{URL}/auth/v1", "anon", transport=httpx.MockTransport(handler))


@pytest.mark.parametrize(
    ("url", "key"),
    [("", "anon"), (URL, ""), ("", "")],
)
def test_create_client_requires_url_and_key(make_settings, url, key):
    settings = make_settings(supabase_url=url, supabase_anon_key=key)

    with pytest.raises(MissingCredentialsError, match="Missing Supabase credentials"):
        create_client(settings)


def test_create_client_points_at_project_apis(make_settings):
    client = create_client(make_settings(supabase_url=f"{URL}/", supabase_anon_key="anon"))

    assert isinstance(client, SupabaseClient)
    assert client.auth.base_url == f"{URL}/auth/v1"
    assert client.rest.base_url == f"{URL}/rest/v1"


def test_create_client_reads_frontend_variable_names(monkeypatch):
    monkeypatch.setenv("NEXT_PUBLIC_SUPABASE_URL", "https://other.supabase.co")
    monkeypatch.setenv("NEXT_PUBLIC_SUPABASE_ANON_KEY", "other-key")

    client = create_client(Settings())

    assert client.url == "https://other.supabase.co"
    assert client.key == "other-key"


def test_optional_client_is_none_without_credentials(monkeypatch):
    monkeypatch.setattr(get_settings(), "supabase_anon_key", "")

    assert get_optional_supabase() is None


def test_optional_client_when_configured():
    assert isinstance(get_optional_supabase(), SupabaseClient)


async def test_valid_access_token_returns_user_without_refresh():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path))
        assert request.headers["authorization"] == "Bearer good"
        assert request.headers["apikey"] == "anon"
        return httpx.Response(200, json=USER_JSON)

    lookup = await gotrue(handler).get_session_user("good", "refresh")

    assert lookup.user.id == USER_JSON["id"]
    assert lookup.session is None
    assert not lookup.expired
    assert seen == [("GET", "/auth/v1/user")]


async def test_expired_access_token_is_refreshed():
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path == "/auth/v1/user":
            return httpx.Response(401, json={"msg": "JWT expired"})
        assert request.url.params["grant_type"] == "refresh_token"
        assert json.loads(request.content) == {"refresh_token": "refresh"}
        return httpx.Response(
            200,
            json={
                "access_token": "new-access",
                "refresh_token": "new-refresh",
                "expires_in": 3600,
                "token_type": "bearer",
                "user": USER_JSON,
            },
        )

    lookup = await gotrue(handler).get_session_user("stale", "refresh")

    assert lookup.user.email == "ana@clinic.test"
    assert lookup.session.access_token == "new-access"
    assert lookup.session.refresh_token == "new-refresh"


async def test_rejected_refresh_token_marks_session_expired():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"error": "invalid_grant", "error_description": "Invalid Refresh Token"})

    lookup = await gotrue(handler).get_session_user(None, "revoked")

    assert lookup.user is None
    assert lookup.expired


async def test_no_tokens_means_anonymous_without_network():
    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("no request expected")

    lookup = await gotrue(handler).get_session_user(None, None)

    assert lookup.user is None
    assert not lookup.expired


async def test_provider_errors_propagate():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(500, text="upstream failure")

    with pytest.raises(AuthApiError) as exc_info:
        await gotrue(handler).get_session_user("token", None)

    assert exc_info.value.status == 500


def test_auth_api_error_message_from_body():
    response = httpx.Response(400, json={"error": "invalid_grant", "error_description": "Invalid login credentials"})

    error = AuthApiError.from_response(response)

    assert error.message == "Invalid login credentials"
    assert error.status == 400


def test_auth_api_error_from_non_json_body():
    error = AuthApiError.from_response(httpx.Response(502, text="<html>Bad Gateway</html>"))

    assert error.status == 502
    assert error.message == "Bad Gateway"


async def test_sign_up_accepts_bare_user_response():
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert body["data"] == {"full_name": "Ana Souza"}
        return httpx.Response(200, json=USER_JSON)

    user = await gotrue(handler).sign_up("ana@clinic.test", "secret123", {"full_name": "Ana Souza"})

    assert user.id == USER_JSON["id"]


async def test_recover_sends_email_with_redirect():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert request.url.path == "/auth/v1/recover"
        assert request.url.params["redirect_to"] == "https://app.clinic.test/auth/reset-password"
        assert json.loads(request.content) == {"email": "ana@clinic.test"}
        return httpx.Response(200, json={})

    await gotrue(handler).recover("ana@clinic.test", "https://app.clinic.test/auth/reset-password")


async def test_recover_rate_limited_by_provider():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(429, json={"msg": "For security purposes, you can only request this once every 60 seconds"})

    with pytest.raises(AuthApiError) as exc_info:
        await gotrue(handler).recover("ana@clinic.test")

    assert exc_info.value.status == 429
    assert "once every 60 seconds" in exc_info.value.message


async def test_update_user_sets_password_with_bearer():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "PUT"
        assert request.url.path == "/auth/v1/user"
        assert request.headers["authorization"] == "Bearer recovery-token"
        assert json.loads(request.content) == {"password": "nova-senha"}
        return httpx.Response(200, json=USER_JSON)

    user = await gotrue(handler).update_user("recovery-token", {"password": "nova-senha"})

    assert user.email == "ana@clinic.test"


async def test_rest_count_reads_content_range():
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "HEAD"
        assert request.url.path == "/rest/v1/users"
        assert request.headers["prefer"] == "count=exact"
        return httpx.Response(206, headers={"content-range": "0-0/42"})

    client = SupabaseClient(URL, "anon", transport=httpx.MockTransport(handler))

    assert await client.rest.count("users") == 42


async def test_rest_count_raises_on_error_status():
    client = SupabaseClient(
        URL,
        "anon",
        transport=httpx.MockTransport(lambda request: httpx.Response(401)),
    )

    with pytest.raises(PostgrestError) as exc_info:
        await client.rest.count("users")

    assert exc_info.value.status == 401
