"""Debug router - configuration and connectivity diagnostics.

Only mounted when DEBUG is enabled.
"""

import logging
from typing import Annotated, Optional

import httpx
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from config import Settings, get_settings
from services.supabase_client import MissingCredentialsError, PostgrestError, create_client

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/debug", tags=["debug"])

KEY_PREVIEW_LENGTH = 30


class EnvironmentInfo(BaseModel):
    url: Optional[str] = None
    key: Optional[str] = None
    environment: Optional[str] = None
    site_url: Optional[str] = None


class ConnectionTest(BaseModel):
    ok: bool
    message: str
    users_count: Optional[int] = None


class DebugResponse(BaseModel):
    env: EnvironmentInfo
    connection: ConnectionTest


def describe_environment(settings: Settings) -> EnvironmentInfo:
    """Configured values, with the anon key truncated."""
    key = settings.supabase_anon_key
    return EnvironmentInfo(
        url=settings.supabase_url or None,
        key=f"{key[:KEY_PREVIEW_LENGTH]}..." if key else None,
        environment=settings.environment,
        site_url=settings.site_url,
    )


async def check_connection(
    settings: Settings,
    transport: httpx.AsyncBaseTransport | None = None,
) -> ConnectionTest:
    """Count rows of ``users`` through the REST API."""
    try:
        client = create_client(settings, transport=transport)
        count = await client.rest.count("users")
    except (MissingCredentialsError, PostgrestError, httpx.HTTPError) as e:
        logger.warning(f"Debug connection test failed: {e}")
        return ConnectionTest(ok=False, message=f"Error: {e}")
    return ConnectionTest(ok=True, message="Connection working", users_count=count)


@router.get("", response_model=DebugResponse)
async def debug_info(settings: Annotated[Settings, Depends(get_settings)]):
    """Show Supabase configuration and run a test query."""
    return DebugResponse(
        env=describe_environment(settings),
        connection=await check_connection(settings),
    )
