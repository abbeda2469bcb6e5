"""Users router - clinic team management (managers and consultants)."""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from middleware.auth import get_current_clinic_id, require_roles
from models.commission import Commission
from models.hierarchy import Hierarchy
from models.lead import Lead, LeadStatus
from models.user import User, UserRole, UserStatus
from models.user_clinic import UserClinic

router = APIRouter(prefix="/dashboard/users", tags=["users"])


# Request/Response schemas
class UserResponse(BaseModel):
    id: str
    email: str
    full_name: str
    phone: Optional[str] = None
    role: UserRole
    status: UserStatus

    class Config:
        from_attributes = True


class TeamCounts(BaseModel):
    leads: int = 0
    converted_leads: int = 0
    arcadas_vendidas: int = 0
    consultants: int = 0
    commissions: int = 0


class TeamMemberResponse(UserResponse):
    """User with per-member totals (the Manager/Consultant list views)."""
    manager_id: Optional[str] = None
    counts: TeamCounts = TeamCounts()
    total_commissions: float = 0
    conversion_rate: float = 0


class UserUpdateRequest(BaseModel):
    role: UserRole | None = None
    status: UserStatus | None = None


class AssignManagerRequest(BaseModel):
    manager_id: str


class MessageResponse(BaseModel):
    message: str


async def _clinic_member(db: AsyncSession, user_id: str, clinic_id: str) -> User:
    result = await db.execute(
        select(User)
        .join(UserClinic, UserClinic.user_id == User.id)
        .where(User.id == user_id, UserClinic.clinic_id == clinic_id)
    )
    user = result.scalar_one_or_none()
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="User not found",
        )
    return user


# Endpoints
@router.get("", response_model=list[TeamMemberResponse])
async def list_team(
    current_user: Annotated[User, Depends(require_roles(UserRole.CLINIC_VIEWER, UserRole.MANAGER))],
    clinic_id: Annotated[str, Depends(get_current_clinic_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
    role: Annotated[Optional[UserRole], Query()] = None,
):
    """List clinic members with lead and commission totals.

    Managers only see themselves and the consultants reporting to them.
    """
    query = (
        select(User)
        .join(UserClinic, UserClinic.user_id == User.id)
        .where(UserClinic.clinic_id == clinic_id)
        .order_by(User.full_name)
    )
    if role is not None:
        query = query.where(User.role == role)
    if current_user.role == UserRole.MANAGER:
        team = select(Hierarchy.consultant_id).where(
            Hierarchy.manager_id == current_user.id,
            Hierarchy.clinic_id == clinic_id,
        )
        query = query.where((User.id == current_user.id) | User.id.in_(team))

    users = (await db.execute(query)).scalars().all()
    user_ids = [u.id for u in users]

    # Aggregates per user in single queries
    lead_rows = await db.execute(
        select(
            Lead.indicated_by,
            func.count(Lead.id),
            func.count(Lead.id).filter(Lead.status == LeadStatus.CONVERTED),
            func.coalesce(func.sum(Lead.arcadas_vendidas), 0),
        )
        .where(Lead.clinic_id == clinic_id, Lead.indicated_by.in_(user_ids))
        .group_by(Lead.indicated_by)
    )
    leads = {uid: (total, converted, arcadas) for uid, total, converted, arcadas in lead_rows.fetchall()}

    commission_rows = await db.execute(
        select(Commission.user_id, func.count(Commission.id), func.coalesce(func.sum(Commission.amount), 0))
        .where(Commission.clinic_id == clinic_id, Commission.user_id.in_(user_ids))
        .group_by(Commission.user_id)
    )
    commissions = {uid: (n, float(total)) for uid, n, total in commission_rows.fetchall()}

    hierarchy_rows = await db.execute(
        select(Hierarchy.manager_id, Hierarchy.consultant_id).where(Hierarchy.clinic_id == clinic_id)
    )
    managers: dict[str, str] = {}
    team_sizes: dict[str, int] = {}
    for manager_id, consultant_id in hierarchy_rows.fetchall():
        managers[consultant_id] = manager_id
        team_sizes[manager_id] = team_sizes.get(manager_id, 0) + 1

    members = []
    for u in users:
        total, converted, arcadas = leads.get(u.id, (0, 0, 0))
        n_commissions, commission_total = commissions.get(u.id, (0, 0.0))
        members.append(
            TeamMemberResponse(
                id=u.id,
                email=u.email,
                full_name=u.full_name,
                phone=u.phone,
                role=u.role,
                status=u.status,
                manager_id=managers.get(u.id),
                counts=TeamCounts(
                    leads=total,
                    converted_leads=converted,
                    arcadas_vendidas=arcadas,
                    consultants=team_sizes.get(u.id, 0),
                    commissions=n_commissions,
                ),
                total_commissions=commission_total,
                conversion_rate=round(converted / total * 100, 2) if total else 0,
            )
        )
    return members


@router.patch("/{user_id}", response_model=UserResponse)
async def update_user(
    user_id: str,
    request: UserUpdateRequest,
    current_user: Annotated[User, Depends(require_roles())],
    clinic_id: Annotated[str, Depends(get_current_clinic_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Change a member's role or status (clinic admin only)."""
    user = await _clinic_member(db, user_id, clinic_id)

    # Prevent changing your own account
    if user.id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot modify your own account",
        )

    if request.role is not None:
        user.role = request.role
    if request.status is not None:
        user.status = request.status

    await db.commit()
    await db.refresh(user)

    return user


@router.put("/{user_id}/manager", response_model=MessageResponse)
async def assign_manager(
    user_id: str,
    data: AssignManagerRequest,
    current_user: Annotated[User, Depends(require_roles())],
    clinic_id: Annotated[str, Depends(get_current_clinic_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Make a consultant report to a manager (clinic admin only)."""
    consultant = await _clinic_member(db, user_id, clinic_id)
    manager = await _clinic_member(db, data.manager_id, clinic_id)

    if consultant.role != UserRole.CONSULTANT:
        raise HTTPException(status_code=400, detail="User is not a consultant")
    if manager.role != UserRole.MANAGER:
        raise HTTPException(status_code=400, detail="Target user is not a manager")

    result = await db.execute(
        select(Hierarchy).where(
            Hierarchy.consultant_id == consultant.id,
            Hierarchy.clinic_id == clinic_id,
        )
    )
    hierarchy = result.scalar_one_or_none()
    if hierarchy is None:
        db.add(Hierarchy(manager_id=manager.id, consultant_id=consultant.id, clinic_id=clinic_id))
    else:
        hierarchy.manager_id = manager.id
    await db.commit()

    return MessageResponse(message="Manager assigned")


@router.delete("/{user_id}/clinic", response_model=MessageResponse)
async def remove_from_clinic(
    user_id: str,
    current_user: Annotated[User, Depends(require_roles())],
    clinic_id: Annotated[str, Depends(get_current_clinic_id)],
    db: Annotated[AsyncSession, Depends(get_db)],
):
    """Remove a member's association with the current clinic (clinic admin only)."""
    if user_id == current_user.id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Cannot remove your own account",
        )

    result = await db.execute(
        select(UserClinic).where(
            UserClinic.user_id == user_id,
            UserClinic.clinic_id == clinic_id,
        )
    )
    association = result.scalar_one_or_none()
    if not association:
        raise HTTPException(status_code=404, detail="Clinic association not found")

    await db.delete(association)
    await db.commit()

    return MessageResponse(message="User removed from clinic")
