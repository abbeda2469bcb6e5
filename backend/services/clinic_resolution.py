"""Clinic resolution - determine the single active clinic a user operates in.

Each role maps to a strategy:

- ``LookupOnlyStrategy``: the user must already be linked to an active clinic.
- ``ProvisioningStrategy`` (clinic admins): existing link, else link to any
  active clinic, else create a default clinic and link to it.

Resolution never raises; every failure is reported through
``ClinicResolution.error`` with ``success=False``. Provisioning writes rows
as a side effect, relying on the (user_id, clinic_id) unique constraint to
stay consistent when two first-time requests race.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

from pydantic import BaseModel
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import get_settings
from models.clinic import Clinic, ClinicStatus
from models.user import UserRole
from models.user_clinic import UserClinic

logger = logging.getLogger(__name__)

NOT_ASSOCIATED_ERROR = "User is not associated with any active clinic"
UNKNOWN_ERROR = "Unknown error during clinic validation"


class ClinicResolution(BaseModel):
    """Result of resolving a user's clinic.

    ``linked`` is False when a clinic was chosen but the association row
    could not be confirmed; ``success`` is still True in that case.
    """
    clinic_id: Optional[str] = None
    error: Optional[str] = None
    success: bool = False
    linked: bool = False

    @classmethod
    def found(cls, clinic_id: str, linked: bool = True) -> "ClinicResolution":
        return cls(clinic_id=clinic_id, success=True, linked=linked)

    @classmethod
    def failed(cls, error: str) -> "ClinicResolution":
        return cls(error=error)


async def find_active_clinic_id(db: AsyncSession, user_id: str) -> Optional[str]:
    """Return the clinic id of the user's earliest link to an active clinic."""
    result = await db.execute(
        select(UserClinic.clinic_id)
        .join(Clinic, Clinic.id == UserClinic.clinic_id)
        .where(
            UserClinic.user_id == user_id,
            Clinic.status == ClinicStatus.ACTIVE,
        )
        .order_by(UserClinic.created_at)
        .limit(1)
    )
    return result.scalar_one_or_none()


async def association_exists(db: AsyncSession, user_id: str, clinic_id: str) -> bool:
    result = await db.execute(
        select(UserClinic.id).where(
            UserClinic.user_id == user_id,
            UserClinic.clinic_id == clinic_id,
        )
    )
    return result.first() is not None


async def link_user_to_clinic(db: AsyncSession, user_id: str, clinic_id: str) -> bool:
    """Insert the association, treating an existing row as success.

    Returns True when the association is known to exist afterwards.
    """
    db.add(UserClinic(user_id=user_id, clinic_id=clinic_id))
    try:
        await db.commit()
        return True
    except IntegrityError:
        await db.rollback()
        # Either a concurrent request linked first (fine) or a foreign key
        # failed; only the former leaves a row behind.
        if await association_exists(db, user_id, clinic_id):
            logger.info(f"User {user_id} already linked to clinic {clinic_id}")
            return True
        logger.warning(f"Could not link user {user_id} to clinic {clinic_id}: integrity error")
        return False
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning(f"Could not link user {user_id} to clinic {clinic_id}: {e}")
        return False


class ClinicResolutionStrategy(ABC):
    """How a role finds (or provisions) its clinic."""

    name: str = "base"

    @abstractmethod
    async def resolve(self, db: AsyncSession, user_id: str) -> ClinicResolution:
        raise NotImplementedError


class LookupOnlyStrategy(ClinicResolutionStrategy):
    """The user must already be linked to an active clinic."""

    name = "lookup-only"

    async def resolve(self, db: AsyncSession, user_id: str) -> ClinicResolution:
        try:
            clinic_id = await find_active_clinic_id(db, user_id)
        except SQLAlchemyError as e:
            await db.rollback()
            return ClinicResolution.failed(f"Error fetching clinic association: {e}")

        if clinic_id is None:
            return ClinicResolution.failed(NOT_ASSOCIATED_ERROR)

        return ClinicResolution.found(clinic_id)


class ProvisioningStrategy(ClinicResolutionStrategy):
    """Existing link, else any active clinic, else a newly created one."""

    name = "lookup-then-fallback-then-provision"

    def __init__(self, default_clinic_name: str | None = None):
        self.default_clinic_name = default_clinic_name

    async def resolve(self, db: AsyncSession, user_id: str) -> ClinicResolution:
        # 1. Existing association. A failed lookup is not fatal here, the
        # fallbacks below can still place the user.
        try:
            clinic_id = await find_active_clinic_id(db, user_id)
        except SQLAlchemyError as e:
            await db.rollback()
            logger.warning(f"Association lookup failed for user {user_id}: {e}")
            clinic_id = None

        if clinic_id is not None:
            logger.info(f"Clinic {clinic_id} found via user_clinics")
            return ClinicResolution.found(clinic_id)

        # 2. Any active clinic in the system
        logger.info(f"No clinic linked to user {user_id}, looking for an active clinic")
        try:
            result = await db.execute(
                select(Clinic.id).where(Clinic.status == ClinicStatus.ACTIVE).limit(1)
            )
            available_id = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            await db.rollback()
            return ClinicResolution.failed(f"Error fetching clinics: {e}")

        if available_id is not None:
            linked = await link_user_to_clinic(db, user_id, available_id)
            if linked:
                logger.info(f"User {user_id} linked to clinic {available_id}")
            else:
                logger.warning(f"Returning clinic {available_id} for user {user_id} without a link")
            return ClinicResolution.found(available_id, linked=linked)

        # 3. No active clinic anywhere: provision one
        name = self.default_clinic_name or get_settings().default_clinic_name
        logger.warning(f"No active clinic found, creating default clinic {name!r}")
        clinic = Clinic(name=name, status=ClinicStatus.ACTIVE)
        db.add(clinic)
        try:
            await db.flush()
            clinic_id = clinic.id
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            return ClinicResolution.failed(f"Error creating default clinic: {e}")

        linked = await link_user_to_clinic(db, user_id, clinic_id)
        if not linked:
            logger.warning(f"Default clinic {clinic_id} created but user {user_id} was not linked")
        else:
            logger.info(f"Default clinic {clinic_id} created and user {user_id} linked")
        return ClinicResolution.found(clinic_id, linked=linked)


DEFAULT_STRATEGY: ClinicResolutionStrategy = LookupOnlyStrategy()

_strategies: dict[UserRole, ClinicResolutionStrategy] = {
    UserRole.CLINIC_ADMIN: ProvisioningStrategy(),
}


def register_strategy(role: UserRole, strategy: ClinicResolutionStrategy) -> None:
    """Select ``strategy`` for ``role``, replacing any previous choice."""
    _strategies[role] = strategy


def get_strategy(role: UserRole | str) -> ClinicResolutionStrategy:
    """Return the strategy for ``role``; unknown roles get lookup-only."""
    try:
        role = UserRole(role)
    except ValueError:
        logger.warning(f"Unknown role {role!r}, using {DEFAULT_STRATEGY.name}")
        return DEFAULT_STRATEGY
    return _strategies.get(role, DEFAULT_STRATEGY)


async def resolve_user_clinic(
    db: AsyncSession,
    user_id: str,
    user_role: UserRole | str,
) -> ClinicResolution:
    """Resolve the clinic ``user_id`` should be scoped to. Never raises."""
    try:
        strategy = get_strategy(user_role)
        role = user_role.value if isinstance(user_role, UserRole) else user_role
        logger.info(f"Resolving clinic for user {user_id} (role: {role}, strategy: {strategy.name})")
        return await strategy.resolve(db, user_id)
    except Exception as e:
        logger.exception(f"Clinic resolution failed for user {user_id}")
        return ClinicResolution.failed(str(e) or UNKNOWN_ERROR)
