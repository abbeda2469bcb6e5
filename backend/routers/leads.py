"""Leads router - indications registered by consultants, scoped to the current clinic."""

from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from database import get_db
from middleware.auth import get_current_active_user, get_current_clinic_id, require_roles
from models.establishment import EstablishmentCode
from models.lead import Gender, Lead, LeadStatus
from models.user import User, UserRole
from services.commission_calculator import (
    CommissionCalculator,
    ConversionResult,
    LeadNotFoundError,
)

router = APIRouter(prefix="/dashboard/leads", tags=["leads"])


# ============================================================================
# Pydantic Schemas
# ============================================================================

class LeadConsultantSchema(BaseModel):
    id: str
    full_name: str
    email: str

    class Config:
        from_attributes = True


class LeadEstablishmentSchema(BaseModel):
    code: str
    name: str

    class Config:
        from_attributes = True


class LeadSchema(BaseModel):
    id: str
    full_name: str
    email: Optional[str] = None
    phone: str
    cpf: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    age: Optional[int] = None
    gender: Optional[Gender] = None
    notes: Optional[str] = None
    status: LeadStatus
    indicated_by: str
    clinic_id: str
    establishment_code: Optional[str] = None
    arcadas_vendidas: Optional[int] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class LeadWithRelations(LeadSchema):
    consultant: Optional[LeadConsultantSchema] = None
    establishment: Optional[LeadEstablishmentSchema] = None


class LeadCreateRequest(BaseModel):
    full_name: str
    phone: str
    email: Optional[str] = None
    cpf: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = Field(default=None, max_length=2)
    zip_code: Optional[str] = None
    age: Optional[int] = Field(default=None, ge=0, le=130)
    gender: Optional[Gender] = None
    notes: Optional[str] = None
    establishment_code: Optional[str] = None


class LeadConversionRequest(BaseModel):
    arcadas_vendidas: int = Field(ge=1)
    establishment_code: str


class LeadUpdateRequest(BaseModel):
    full_name: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    cpf: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = Field(default=None, max_length=2)
    zip_code: Optional[str] = None
    age: Optional[int] = Field(default=None, ge=0, le=130)
    gender: Optional[Gender] = None
    status: Optional[LeadStatus] = None
    notes: Optional[str] = None


# ============================================================================
# Endpoints
# ============================================================================

async def require_active_establishment(db: AsyncSession, code: str) -> EstablishmentCode:
    """Return the active establishment with ``code`` or raise 404."""
    result = await db.execute(
        select(EstablishmentCode).where(
            EstablishmentCode.code == code,
            EstablishmentCode.is_active.is_(True),
        )
    )
    establishment = result.scalar_one_or_none()
    if establishment is None:
        raise HTTPException(status_code=404, detail="Establishment not found")
    return establishment


async def get_visible_lead(lead_id: str, current_user: User, clinic_id: str, db: AsyncSession) -> Lead:
    """Load a lead of the current clinic; consultants only reach their own."""
    result = await db.execute(
        select(Lead)
        .where(Lead.id == lead_id, Lead.clinic_id == clinic_id)
        .options(selectinload(Lead.consultant), selectinload(Lead.establishment))
    )
    lead = result.scalar_one_or_none()
    if lead is None:
        raise HTTPException(status_code=404, detail="Lead not found")
    if current_user.role == UserRole.CONSULTANT and lead.indicated_by != current_user.id:
        raise HTTPException(status_code=403, detail="You can only access your own leads")
    return lead


@router.get("", response_model=list[LeadWithRelations])
async def list_leads(
    current_user: Annotated[User, Depends(get_current_active_user)],
    clinic_id: Annotated[str, Depends(get_current_clinic_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
    lead_status: Annotated[Optional[LeadStatus], Query(alias="status")] = None,
    limit: Annotated[int, Query(ge=1, le=200)] = 50,
    offset: Annotated[int, Query(ge=0)] = 0,
):
    """List leads of the current clinic; consultants only see their own."""
    query = (
        select(Lead)
        .where(Lead.clinic_id == clinic_id)
        .options(selectinload(Lead.consultant), selectinload(Lead.establishment))
        .order_by(Lead.created_at.desc())
        .limit(limit)
        .offset(offset)
    )
    if current_user.role == UserRole.CONSULTANT:
        query = query.where(Lead.indicated_by == current_user.id)
    if lead_status is not None:
        query = query.where(Lead.status == lead_status)

    result = await db.execute(query)
    return result.scalars().all()


@router.post("", response_model=LeadSchema, status_code=status.HTTP_201_CREATED)
async def create_lead(
    data: LeadCreateRequest,
    current_user: Annotated[User, Depends(get_current_active_user)],
    clinic_id: Annotated[str, Depends(get_current_clinic_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Register a new lead indicated by the current user."""
    if data.establishment_code is not None:
        await require_active_establishment(db, data.establishment_code)

    lead = Lead(
        **data.model_dump(),
        status=LeadStatus.NEW,
        indicated_by=current_user.id,
        clinic_id=clinic_id,
    )
    db.add(lead)
    await db.commit()
    await db.refresh(lead)

    return lead


@router.get("/{lead_id}", response_model=LeadWithRelations)
async def get_lead(
    lead_id: str,
    current_user: Annotated[User, Depends(get_current_active_user)],
    clinic_id: Annotated[str, Depends(get_current_clinic_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Load one lead for the edit form."""
    return await get_visible_lead(lead_id, current_user, clinic_id, db)


@router.patch("/{lead_id}", response_model=LeadWithRelations)
async def update_lead(
    lead_id: str,
    data: LeadUpdateRequest,
    current_user: Annotated[User, Depends(get_current_active_user)],
    clinic_id: Annotated[str, Depends(get_current_clinic_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Edit contact data, status and notes of a lead.

    Staff may edit any lead of the clinic, consultants only their own.
    """
    if current_user.role == UserRole.CLINIC_VIEWER:
        raise HTTPException(status_code=403, detail="Clinic viewers cannot edit leads")
    lead = await get_visible_lead(lead_id, current_user, clinic_id, db)

    changes = data.model_dump(exclude_unset=True)
    if changes.get("status") == LeadStatus.CONVERTED and lead.status != LeadStatus.CONVERTED:
        raise HTTPException(
            status_code=400,
            detail="Use the conversion endpoint to convert a lead",
        )
    for field in ("full_name", "phone"):
        if field in changes and not (changes[field] or "").strip():
            raise HTTPException(status_code=400, detail=f"{field} cannot be empty")

    for field, value in changes.items():
        setattr(lead, field, value)
    await db.commit()

    result = await db.execute(
        select(Lead)
        .where(Lead.id == lead.id)
        .options(selectinload(Lead.consultant), selectinload(Lead.establishment))
        .execution_options(populate_existing=True)
    )
    return result.scalar_one()


@router.post("/{lead_id}/convert", response_model=ConversionResult)
async def convert_lead(
    lead_id: str,
    data: LeadConversionRequest,
    current_user: Annotated[User, Depends(require_roles(UserRole.MANAGER))],
    clinic_id: Annotated[str, Depends(get_current_clinic_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Convert a lead and generate consultant and manager commissions."""
    await require_active_establishment(db, data.establishment_code)

    calculator = CommissionCalculator(db)
    try:
        return await calculator.process_lead_conversion(
            lead_id,
            data.arcadas_vendidas,
            data.establishment_code,
            clinic_id=clinic_id,
        )
    except LeadNotFoundError:
        raise HTTPException(status_code=404, detail="Lead not found")
