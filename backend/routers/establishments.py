"""Establishments router - partner establishment codes and their commission rules."""

import logging
from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy import delete, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from middleware.auth import get_current_clinic_id, require_roles
from models.commission import Commission
from models.establishment import (
    EstablishmentCode,
    EstablishmentCommissionSettings,
    UserEstablishment,
)
from models.lead import Lead, LeadStatus
from models.user import User, UserRole
from services.commission_calculator import CommissionSettings

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dashboard/establishments", tags=["establishments"])


def normalize_code(code: str) -> str:
    """Establishment codes are stored trimmed and upper-cased."""
    return code.strip().upper()


# Request/Response schemas
class EstablishmentSchema(BaseModel):
    id: str
    code: str
    name: str
    description: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    is_active: bool
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class EstablishmentStats(BaseModel):
    active_users: int = 0
    total_leads: int = 0
    converted_leads: int = 0
    arcadas_vendidas: int = 0
    total_commissions: float = 0


class EstablishmentWithStats(EstablishmentSchema):
    stats: EstablishmentStats = EstablishmentStats()


class CommissionSettingsRequest(CommissionSettings):
    consultant_value_per_arcada: float = Field(default=750, ge=0)
    consultant_bonus_every_arcadas: int = Field(default=7, ge=1)
    consultant_bonus_value: float = Field(default=750, ge=0)
    manager_bonus_35_arcadas: float = Field(default=5000, ge=0)
    manager_bonus_50_arcadas: float = Field(default=10000, ge=0)
    manager_bonus_75_arcadas: float = Field(default=15000, ge=0)


class CommissionSettingsResponse(CommissionSettings):
    establishment_code: str
    configured: bool = False


class EstablishmentCreateRequest(BaseModel):
    code: str = Field(min_length=1, max_length=50)
    name: str = Field(min_length=1)
    description: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = Field(default=None, max_length=2)
    phone: Optional[str] = None
    email: Optional[str] = None
    commission: CommissionSettingsRequest = CommissionSettingsRequest()


class EstablishmentUpdateRequest(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = Field(default=None, max_length=2)
    phone: Optional[str] = None
    email: Optional[str] = None
    is_active: Optional[bool] = None


class MessageResponse(BaseModel):
    message: str


async def _get_establishment(db: AsyncSession, code: str) -> EstablishmentCode:
    result = await db.execute(
        select(EstablishmentCode).where(EstablishmentCode.code == normalize_code(code))
    )
    establishment = result.scalar_one_or_none()
    if establishment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Establishment not found",
        )
    return establishment


# Endpoints
@router.get("", response_model=list[EstablishmentWithStats])
async def list_establishments(
    current_user: Annotated[User, Depends(require_roles(UserRole.CLINIC_VIEWER, UserRole.MANAGER))],
    clinic_id: Annotated[str, Depends(get_current_clinic_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """List establishments with linked users, lead and commission totals of the clinic."""
    establishments = (
        await db.execute(select(EstablishmentCode).order_by(EstablishmentCode.name))
    ).scalars().all()

    user_rows = await db.execute(
        select(UserEstablishment.establishment_code, func.count(UserEstablishment.id))
        .where(UserEstablishment.status == "active")
        .group_by(UserEstablishment.establishment_code)
    )
    active_users = dict(user_rows.fetchall())

    lead_rows = await db.execute(
        select(
            Lead.establishment_code,
            func.count(Lead.id),
            func.count(Lead.id).filter(Lead.status == LeadStatus.CONVERTED),
            func.coalesce(
                func.sum(func.coalesce(Lead.arcadas_vendidas, 1)).filter(Lead.status == LeadStatus.CONVERTED),
                0,
            ),
        )
        .where(Lead.clinic_id == clinic_id, Lead.establishment_code.is_not(None))
        .group_by(Lead.establishment_code)
    )
    leads = {code: (total, converted, arcadas) for code, total, converted, arcadas in lead_rows.fetchall()}

    commission_rows = await db.execute(
        select(Commission.establishment_code, func.coalesce(func.sum(Commission.amount), 0))
        .where(Commission.clinic_id == clinic_id, Commission.establishment_code.is_not(None))
        .group_by(Commission.establishment_code)
    )
    commissions = {code: float(total) for code, total in commission_rows.fetchall()}

    response = []
    for establishment in establishments:
        total, converted, arcadas = leads.get(establishment.code, (0, 0, 0))
        item = EstablishmentWithStats.model_validate(establishment)
        item.stats = EstablishmentStats(
            active_users=active_users.get(establishment.code, 0),
            total_leads=total,
            converted_leads=converted,
            arcadas_vendidas=arcadas,
            total_commissions=commissions.get(establishment.code, 0),
        )
        response.append(item)
    return response


@router.post("", response_model=EstablishmentSchema, status_code=status.HTTP_201_CREATED)
async def create_establishment(
    data: EstablishmentCreateRequest,
    current_user: Annotated[User, Depends(require_roles())],
    clinic_id: Annotated[str, Depends(get_current_clinic_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Create an establishment code together with its commission settings."""
    code = normalize_code(data.code)
    if not code:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Establishment code cannot be empty",
        )

    existing = await db.execute(select(EstablishmentCode.id).where(EstablishmentCode.code == code))
    if existing.first() is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Establishment code already exists",
        )

    establishment = EstablishmentCode(
        code=code,
        **data.model_dump(exclude={"code", "commission"}),
    )
    db.add(establishment)
    db.add(
        EstablishmentCommissionSettings(
            establishment_code=code,
            clinic_id=clinic_id,
            **data.commission.model_dump(),
        )
    )
    await db.commit()
    await db.refresh(establishment)

    logger.info(f"Establishment {code} created by {current_user.id}")
    return establishment


@router.patch("/{code}", response_model=EstablishmentSchema)
async def update_establishment(
    code: str,
    data: EstablishmentUpdateRequest,
    current_user: Annotated[User, Depends(require_roles())],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Edit an establishment's details or toggle whether it accepts leads."""
    establishment = await _get_establishment(db, code)

    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(establishment, field, value)
    await db.commit()
    await db.refresh(establishment)

    return establishment


@router.delete("/{code}", response_model=MessageResponse)
async def delete_establishment(
    code: str,
    current_user: Annotated[User, Depends(require_roles())],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Delete an establishment nobody is linked to and no lead references."""
    establishment = await _get_establishment(db, code)

    linked = await db.execute(
        select(func.count(UserEstablishment.id)).where(
            UserEstablishment.establishment_code == establishment.code
        )
    )
    if linked.scalar_one() > 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Establishment has linked users; deactivate it instead",
        )

    referenced = await db.execute(
        select(func.count(Lead.id)).where(Lead.establishment_code == establishment.code)
    )
    if referenced.scalar_one() > 0:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Establishment has leads; deactivate it instead",
        )

    await db.execute(
        delete(EstablishmentCommissionSettings).where(
            EstablishmentCommissionSettings.establishment_code == establishment.code
        )
    )
    await db.delete(establishment)
    await db.commit()

    logger.info(f"Establishment {establishment.code} deleted by {current_user.id}")
    return MessageResponse(message="Establishment deleted")


@router.get("/{code}/commission-settings", response_model=CommissionSettingsResponse)
async def get_commission_settings(
    code: str,
    current_user: Annotated[User, Depends(require_roles(UserRole.CLINIC_VIEWER, UserRole.MANAGER))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Commission rules of the establishment; defaults when none are configured."""
    establishment = await _get_establishment(db, code)

    result = await db.execute(
        select(EstablishmentCommissionSettings).where(
            EstablishmentCommissionSettings.establishment_code == establishment.code
        )
    )
    row = result.scalar_one_or_none()
    if row is None:
        return CommissionSettingsResponse(establishment_code=establishment.code)
    return CommissionSettingsResponse(
        **CommissionSettings.model_validate(row).model_dump(),
        establishment_code=establishment.code,
        configured=True,
    )


@router.put("/{code}/commission-settings", response_model=CommissionSettingsResponse)
async def update_commission_settings(
    code: str,
    data: CommissionSettingsRequest,
    current_user: Annotated[User, Depends(require_roles())],
    clinic_id: Annotated[str, Depends(get_current_clinic_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Create or replace the commission rules of the establishment."""
    establishment = await _get_establishment(db, code)

    result = await db.execute(
        select(EstablishmentCommissionSettings).where(
            EstablishmentCommissionSettings.establishment_code == establishment.code
        )
    )
    row = result.scalar_one_or_none()
    if row is None:
        row = EstablishmentCommissionSettings(establishment_code=establishment.code, clinic_id=clinic_id)
        db.add(row)
    for field, value in data.model_dump().items():
        setattr(row, field, value)
    await db.commit()

    logger.info(f"Commission settings of {establishment.code} updated by {current_user.id}")
    return CommissionSettingsResponse(
        **data.model_dump(),
        establishment_code=establishment.code,
        configured=True,
    )
