"""Tests for the debug diagnostics."""

import httpx
import pytest

from routers.debug import check_connection, describe_environment

PROJECT_URL = "https://project.supabase.co"


def test_environment_truncates_anon_key(make_settings):
    settings = make_settings(
        supabase_url=PROJECT_URL,
        supabase_anon_key="a" * 40,
        environment="production",
        site_url="https://app.clinic.test",
    )

    env = describe_environment(settings)

    assert env.url == PROJECT_URL
    assert env.key == "a" * 30 + "..."
    assert env.environment == "production"
    assert env.site_url == "https://app.clinic.test"


def test_environment_with_nothing_configured(make_settings):
    env = describe_environment(make_settings())

    assert env.url is None
    assert env.key is None
    assert env.environment is None


async def test_connection_reports_user_count(make_settings):
    transport = httpx.MockTransport(lambda request: httpx.Response(200, headers={"content-range": "0-0/3"}))
    settings = make_settings(supabase_url=PROJECT_URL, supabase_anon_key="anon")

    result = await check_connection(settings, transport=transport)

    assert result.ok
    assert result.users_count == 3
    assert result.message == "Connection working"


async def test_connection_reports_missing_credentials(make_settings):
    result = await check_connection(make_settings())

    assert not result.ok
    assert result.message == "Error: Missing Supabase credentials"


async def test_connection_reports_transport_errors(make_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused")

    settings = make_settings(supabase_url=PROJECT_URL, supabase_anon_key="anon")
    result = await check_connection(settings, transport=httpx.MockTransport(handler))

    assert not result.ok
    assert "connection refused" in result.message


async def test_connection_does_not_hide_unrelated_errors(make_settings):
    def handler(request: httpx.Request) -> httpx.Response:
        raise RuntimeError("event loop is closed")

    settings = make_settings(supabase_url=PROJECT_URL, supabase_anon_key="anon")

    with pytest.raises(RuntimeError, match="event loop is closed"):
        await check_connection(settings, transport=httpx.MockTransport(handler))
