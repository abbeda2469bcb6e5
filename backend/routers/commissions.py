"""Commissions router - listing and simulation for the current clinic."""

from datetime import datetime
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from database import get_db
from middleware.auth import get_current_active_user, get_current_clinic_id
from models.commission import Commission, CommissionStatus, CommissionType
from models.user import User, UserRole
from models.user_clinic import UserClinic
from routers.leads import LeadSchema
from services.commission_calculator import CommissionCalculator, CommissionSimulation

router = APIRouter(prefix="/dashboard/commissions", tags=["commissions"])


class CommissionUserSchema(BaseModel):
    id: str
    full_name: str
    email: str
    role: UserRole

    class Config:
        from_attributes = True


class CommissionSchema(BaseModel):
    id: str
    lead_id: Optional[str] = None
    user_id: str
    clinic_id: str
    establishment_code: Optional[str] = None
    amount: float
    percentage: float
    type: CommissionType
    status: CommissionStatus
    paid_at: Optional[datetime] = None
    arcadas_vendidas: Optional[int] = None
    valor_por_arcada: Optional[float] = None
    bonus_conquistados: Optional[int] = None
    valor_bonus: Optional[float] = None
    created_at: Optional[datetime] = None

    class Config:
        from_attributes = True


class CommissionWithRelations(CommissionSchema):
    lead: Optional[LeadSchema] = None
    user: Optional[CommissionUserSchema] = None


class SimulationRequest(BaseModel):
    establishment_code: str
    arcadas_vendidas: int = Field(ge=1)
    consultant_id: Optional[str] = None  # defaults to the current user


@router.get("", response_model=list[CommissionWithRelations])
async def list_commissions(
    current_user: Annotated[User, Depends(get_current_active_user)],
    clinic_id: Annotated[str, Depends(get_current_clinic_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
    commission_status: Annotated[Optional[CommissionStatus], Query(alias="status")] = None,
    commission_type: Annotated[Optional[CommissionType], Query(alias="type")] = None,
):
    """List commissions; consultants and managers only see their own."""
    query = (
        select(Commission)
        .where(Commission.clinic_id == clinic_id)
        .options(selectinload(Commission.lead), selectinload(Commission.user))
        .order_by(Commission.created_at.desc())
    )
    if current_user.role in (UserRole.CONSULTANT, UserRole.MANAGER):
        query = query.where(Commission.user_id == current_user.id)
    if commission_status is not None:
        query = query.where(Commission.status == commission_status)
    if commission_type is not None:
        query = query.where(Commission.type == commission_type)

    result = await db.execute(query)
    return result.scalars().all()


@router.post("/simulate", response_model=CommissionSimulation)
async def simulate_commissions(
    data: SimulationRequest,
    current_user: Annotated[User, Depends(get_current_active_user)],
    clinic_id: Annotated[str, Depends(get_current_clinic_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Preview the commissions a sale would generate, without saving."""
    consultant_id = data.consultant_id or current_user.id
    if consultant_id != current_user.id and current_user.role == UserRole.CONSULTANT:
        raise HTTPException(status_code=403, detail="Consultants can only simulate their own sales")

    if consultant_id != current_user.id:
        result = await db.execute(
            select(UserClinic.id).where(
                UserClinic.user_id == consultant_id,
                UserClinic.clinic_id == clinic_id,
            )
        )
        if result.first() is None:
            raise HTTPException(status_code=404, detail="Consultant not found in this clinic")

    calculator = CommissionCalculator(db)
    return await calculator.simulate_commissions(
        consultant_id,
        data.establishment_code,
        data.arcadas_vendidas,
    )
