"""Dashboard router - overview, clinic context and sign-out."""

import logging
from typing import Annotated, Optional

import httpx
from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings
from database import get_db
from middleware.auth import get_current_active_user, get_current_clinic_id
from middleware.session import SessionResponseBuilder
from models.clinic import Clinic
from models.commission import Commission, CommissionStatus
from models.lead import Lead, LeadStatus
from models.user import User, UserRole
from services.auth_service import AuthApiError
from services.clinic_resolution import ClinicResolution, resolve_user_clinic
from services.supabase_client import SupabaseClient, get_optional_supabase

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dashboard", tags=["dashboard"])
settings = get_settings()


class ClinicContextResponse(ClinicResolution):
    clinic_name: Optional[str] = None


class DashboardSummary(BaseModel):
    clinic_id: str
    total_leads: int = 0
    leads_by_status: dict[str, int] = {}
    conversion_rate: float = 0
    pending_commissions: float = 0
    paid_commissions: float = 0


@router.get("", response_model=DashboardSummary)
async def dashboard_summary(
    current_user: Annotated[User, Depends(get_current_active_user)],
    clinic_id: Annotated[str, Depends(get_current_clinic_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Lead and commission totals for the current clinic.

    Consultants only see numbers for their own indications.
    """
    lead_query = (
        select(Lead.status, func.count(Lead.id))
        .where(Lead.clinic_id == clinic_id)
        .group_by(Lead.status)
    )
    commission_query = (
        select(Commission.status, func.coalesce(func.sum(Commission.amount), 0))
        .where(Commission.clinic_id == clinic_id)
        .group_by(Commission.status)
    )
    if current_user.role == UserRole.CONSULTANT:
        lead_query = lead_query.where(Lead.indicated_by == current_user.id)
        commission_query = commission_query.where(Commission.user_id == current_user.id)

    lead_counts = {s.value: n for s, n in (await db.execute(lead_query)).fetchall()}
    commission_totals = {s: float(v) for s, v in (await db.execute(commission_query)).fetchall()}

    total = sum(lead_counts.values())
    converted = lead_counts.get(LeadStatus.CONVERTED.value, 0)

    return DashboardSummary(
        clinic_id=clinic_id,
        total_leads=total,
        leads_by_status=lead_counts,
        conversion_rate=round(converted / total * 100, 2) if total else 0,
        pending_commissions=commission_totals.get(CommissionStatus.PENDING, 0),
        paid_commissions=commission_totals.get(CommissionStatus.PAID, 0),
    )


@router.get("/clinic", response_model=ClinicContextResponse)
async def current_clinic(
    current_user: Annotated[User, Depends(get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Resolve (and provision, for clinic admins) the user's clinic."""
    resolution = await resolve_user_clinic(db, current_user.id, current_user.role)
    response = ClinicContextResponse(**resolution.model_dump())
    if resolution.clinic_id is not None:
        result = await db.execute(select(Clinic.name).where(Clinic.id == resolution.clinic_id))
        response.clinic_name = result.scalar_one_or_none()
    return response


@router.post("/logout")
async def logout(
    request: Request,
    supabase: Annotated[Optional[SupabaseClient], Depends(get_optional_supabase)],
):
    """Revoke the session with the auth provider and clear the cookies.

    The cookies are cleared even when the provider cannot be reached.
    """
    access_token = getattr(request.state, "access_token", None)
    if access_token and supabase is None:
        logger.warning("Supabase credentials missing, clearing the session cookies only")
    elif access_token:
        try:
            await supabase.auth.sign_out(access_token)
        except AuthApiError as e:
            logger.warning(f"Sign-out failed at the auth provider: {e.message}")
        except httpx.HTTPError as e:
            logger.warning(f"Auth provider unreachable during sign-out: {e}")

    builder = SessionResponseBuilder(settings)
    builder.clear_session()
    return builder.finalize(JSONResponse(content={"message": "Signed out"}))
