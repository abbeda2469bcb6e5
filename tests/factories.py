"""Helpers to insert test rows."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from models import (
    Clinic,
    ClinicStatus,
    EstablishmentCode,
    EstablishmentCommissionSettings,
    Hierarchy,
    Lead,
    LeadStatus,
    User,
    UserClinic,
    UserEstablishment,
    UserRole,
    UserStatus,
)


def new_id() -> str:
    return str(uuid4())


async def make_user(
    db: AsyncSession,
    role: UserRole = UserRole.CONSULTANT,
    status: UserStatus = UserStatus.ACTIVE,
    **fields,
) -> User:
    user_id = fields.pop("id", None) or new_id()
    user = User(
        id=user_id,
        email=fields.pop("email", f"{user_id[:8]}@clinic.test"),
        full_name=fields.pop("full_name", f"User {user_id[:8]}"),
        role=role,
        status=status,
        **fields,
    )
    db.add(user)
    await db.commit()
    return user


async def make_clinic(
    db: AsyncSession,
    name: str = "Clínica Centro",
    status: ClinicStatus = ClinicStatus.ACTIVE,
) -> Clinic:
    clinic = Clinic(id=new_id(), name=name, status=status)
    db.add(clinic)
    await db.commit()
    return clinic


async def link(db: AsyncSession, user: User, clinic: Clinic, minutes_ago: int = 0) -> UserClinic:
    association = UserClinic(
        id=new_id(),
        user_id=user.id,
        clinic_id=clinic.id,
        created_at=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
    )
    db.add(association)
    await db.commit()
    return association


async def make_establishment(db: AsyncSession, code: str = "EST01", **settings) -> EstablishmentCode:
    establishment = EstablishmentCode(id=new_id(), code=code, name=f"Establishment {code}")
    db.add(establishment)
    if settings:
        db.add(EstablishmentCommissionSettings(id=new_id(), establishment_code=code, **settings))
    await db.commit()
    return establishment


async def join_establishment(db: AsyncSession, user: User, code: str) -> UserEstablishment:
    membership = UserEstablishment(id=new_id(), user_id=user.id, establishment_code=code, added_by=user.id)
    db.add(membership)
    await db.commit()
    return membership


async def make_lead(
    db: AsyncSession,
    consultant: User,
    clinic: Clinic,
    status: LeadStatus = LeadStatus.NEW,
    **fields,
) -> Lead:
    lead = Lead(
        id=new_id(),
        full_name=fields.pop("full_name", "Maria Silva"),
        phone=fields.pop("phone", "+55 11 99999-0000"),
        status=status,
        indicated_by=consultant.id,
        clinic_id=clinic.id,
        **fields,
    )
    db.add(lead)
    await db.commit()
    return lead


async def assign_manager(db: AsyncSession, manager: User, consultant: User, clinic: Clinic) -> Hierarchy:
    hierarchy = Hierarchy(id=new_id(), manager_id=manager.id, consultant_id=consultant.id, clinic_id=clinic.id)
    db.add(hierarchy)
    await db.commit()
    return hierarchy


async def count_rows(db: AsyncSession, model) -> int:
    result = await db.execute(select(func.count()).select_from(model))
    return result.scalar_one()


def as_user(user: User) -> dict[str, str]:
    """Session cookie understood by the fake auth provider."""
    return {"cookie": f"sb-access-token={user.id}"}
