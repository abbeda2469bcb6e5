"""Profile router - the signed-in user's own data and establishment links."""

import logging
from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from middleware.auth import get_current_active_user, require_roles
from models.establishment import EstablishmentCode, UserEstablishment
from models.lead import Lead, LeadStatus
from models.user import User, UserRole, UserStatus
from routers.establishments import normalize_code

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/dashboard/profile", tags=["profile"])

LINK_ACTIVE = "active"


# Request/Response schemas
class ProfileResponse(BaseModel):
    id: str
    email: str
    full_name: str
    phone: Optional[str] = None
    role: UserRole
    status: UserStatus

    class Config:
        from_attributes = True


class ProfileUpdateRequest(BaseModel):
    full_name: Optional[str] = Field(default=None, min_length=1)
    phone: Optional[str] = None


class LinkEstablishmentRequest(BaseModel):
    code: str


class UserEstablishmentResponse(BaseModel):
    establishment_code: str
    name: str
    city: Optional[str] = None
    state: Optional[str] = None
    status: str
    joined_at: Optional[datetime] = None
    total_leads: int = 0
    arcadas_vendidas: int = 0


class MessageResponse(BaseModel):
    message: str


# Endpoints
@router.get("", response_model=ProfileResponse)
async def get_profile(
    current_user: Annotated[User, Depends(get_current_active_user)],
):
    return current_user


@router.patch("", response_model=ProfileResponse)
async def update_profile(
    data: ProfileUpdateRequest,
    current_user: Annotated[User, Depends(get_current_active_user)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Update the user's name and phone. Role and status are managed by clinic admins."""
    for field, value in data.model_dump(exclude_unset=True).items():
        setattr(current_user, field, value)
    await db.commit()
    await db.refresh(current_user)
    return current_user


@router.get("/establishments", response_model=list[UserEstablishmentResponse])
async def list_my_establishments(
    current_user: Annotated[User, Depends(require_roles(UserRole.CONSULTANT, UserRole.MANAGER))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Establishments the user works with, with the user's own lead totals there."""
    result = await db.execute(
        select(UserEstablishment, EstablishmentCode)
        .join(EstablishmentCode, EstablishmentCode.code == UserEstablishment.establishment_code)
        .where(UserEstablishment.user_id == current_user.id)
        .order_by(UserEstablishment.joined_at.desc())
    )
    links = result.all()

    lead_rows = await db.execute(
        select(
            Lead.establishment_code,
            func.count(Lead.id),
            func.coalesce(
                func.sum(func.coalesce(Lead.arcadas_vendidas, 1)).filter(Lead.status == LeadStatus.CONVERTED),
                0,
            ),
        )
        .where(Lead.indicated_by == current_user.id, Lead.establishment_code.is_not(None))
        .group_by(Lead.establishment_code)
    )
    leads = {code: (total, arcadas) for code, total, arcadas in lead_rows.fetchall()}

    response = []
    for link, establishment in links:
        total, arcadas = leads.get(establishment.code, (0, 0))
        response.append(
            UserEstablishmentResponse(
                establishment_code=establishment.code,
                name=establishment.name,
                city=establishment.city,
                state=establishment.state,
                status=link.status,
                joined_at=link.joined_at,
                total_leads=total,
                arcadas_vendidas=arcadas,
            )
        )
    return response


@router.post("/establishments", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
async def link_establishment(
    data: LinkEstablishmentRequest,
    current_user: Annotated[User, Depends(require_roles(UserRole.CONSULTANT, UserRole.MANAGER))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Link the user to an establishment by its code."""
    code = normalize_code(data.code)

    result = await db.execute(
        select(EstablishmentCode.code).where(
            EstablishmentCode.code == code,
            EstablishmentCode.is_active.is_(True),
        )
    )
    if result.scalar_one_or_none() is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Invalid or inactive establishment code",
        )

    existing = await db.execute(
        select(UserEstablishment.id).where(
            UserEstablishment.user_id == current_user.id,
            UserEstablishment.establishment_code == code,
        )
    )
    if existing.first() is not None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="You are already linked to this establishment",
        )

    db.add(
        UserEstablishment(
            user_id=current_user.id,
            establishment_code=code,
            status=LINK_ACTIVE,
            added_by=current_user.id,
        )
    )
    await db.commit()

    logger.info(f"User {current_user.id} linked to establishment {code}")
    return MessageResponse(message="Establishment linked")


@router.delete("/establishments/{code}", response_model=MessageResponse)
async def unlink_establishment(
    code: str,
    current_user: Annotated[User, Depends(require_roles(UserRole.CONSULTANT, UserRole.MANAGER))],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    result = await db.execute(
        select(UserEstablishment).where(
            UserEstablishment.user_id == current_user.id,
            UserEstablishment.establishment_code == normalize_code(code),
        )
    )
    link = result.scalar_one_or_none()
    if link is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Establishment link not found",
        )

    await db.delete(link)
    await db.commit()
    return MessageResponse(message="Establishment unlinked")
