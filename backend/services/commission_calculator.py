"""Commission calculation for converted leads.

Commissions are computed per arcada (dental arch) sold at an establishment:

- Consultants earn a fixed value per arcada plus a bonus every N arcadas
  accumulated at the same establishment.
- Managers earn milestone bonuses when their team's accumulated arcadas
  cross multiples of 35, 50 and 75.

Previously converted leads without an arcada count are counted as one.
"""

import logging
import math
from datetime import datetime, timezone
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from models.commission import Commission, CommissionStatus, CommissionType
from models.establishment import EstablishmentCommissionSettings
from models.hierarchy import Hierarchy
from models.lead import Lead, LeadStatus

logger = logging.getLogger(__name__)

MANAGER_MILESTONES = (35, 50, 75)


class LeadNotFoundError(LookupError):
    """The lead does not exist (or is outside the caller's clinic)."""


class CommissionSettings(BaseModel):
    """Commission rules for one establishment."""
    model_config = ConfigDict(from_attributes=True)

    consultant_value_per_arcada: float = 750
    consultant_bonus_every_arcadas: int = 7
    consultant_bonus_value: float = 750
    manager_bonus_35_arcadas: float = 5000
    manager_bonus_50_arcadas: float = 10000
    manager_bonus_75_arcadas: float = 15000


class ConsultantCommission(BaseModel):
    base_value: float
    bonuses_earned: int
    bonus_value: float
    total_value: float
    next_bonus_in: int  # arcadas left until the next bonus, 0 when exactly on one
    current_arcadas: int
    total_arcadas: int


class Milestone(BaseModel):
    kind: Literal["35", "50", "75"]
    remaining: int


class ManagerCommission(BaseModel):
    bonus_35_earned: int
    bonus_50_earned: int
    bonus_75_earned: int
    total_value: float
    team_arcadas: int
    next_milestone: Milestone


class ConversionResult(BaseModel):
    consultant_commission: ConsultantCommission
    manager_commission: Optional[ManagerCommission] = None
    commissions_created: list[str] = []


class CommissionSimulation(BaseModel):
    consultant: ConsultantCommission
    manager: Optional[ManagerCommission] = None


def consultant_commission(
    settings: CommissionSettings,
    current_arcadas: int,
    arcadas_sold: int,
) -> ConsultantCommission:
    """Commission for selling ``arcadas_sold`` on top of ``current_arcadas``."""
    total_arcadas = current_arcadas + arcadas_sold
    base_value = arcadas_sold * settings.consultant_value_per_arcada

    every = settings.consultant_bonus_every_arcadas
    if every > 0:
        bonuses_earned = total_arcadas // every - current_arcadas // every
        next_bonus_in = (every - total_arcadas % every) % every
    else:
        bonuses_earned = 0
        next_bonus_in = 0
    bonus_value = bonuses_earned * settings.consultant_bonus_value

    return ConsultantCommission(
        base_value=base_value,
        bonuses_earned=bonuses_earned,
        bonus_value=bonus_value,
        total_value=base_value + bonus_value,
        next_bonus_in=next_bonus_in,
        current_arcadas=current_arcadas,
        total_arcadas=total_arcadas,
    )


def next_manager_milestone(total_arcadas: int) -> Milestone:
    """First milestone not yet reached; past 75 the 35-arcada cycle repeats."""
    for milestone in MANAGER_MILESTONES:
        if total_arcadas < milestone:
            return Milestone(kind=str(milestone), remaining=milestone - total_arcadas)
    next_cycle = math.ceil(total_arcadas / 35) * 35
    return Milestone(kind="35", remaining=next_cycle - total_arcadas)


def manager_commission(
    settings: CommissionSettings,
    team_arcadas: int,
    arcadas_added: int,
) -> ManagerCommission:
    """Milestone bonuses earned by the team adding ``arcadas_added``."""
    total_arcadas = team_arcadas + arcadas_added
    earned = {
        milestone: total_arcadas // milestone - team_arcadas // milestone
        for milestone in MANAGER_MILESTONES
    }
    bonuses = {
        35: settings.manager_bonus_35_arcadas,
        50: settings.manager_bonus_50_arcadas,
        75: settings.manager_bonus_75_arcadas,
    }
    total_value = sum(
        earned[m] * (settings.consultant_value_per_arcada + bonuses[m])
        for m in MANAGER_MILESTONES
    )

    return ManagerCommission(
        bonus_35_earned=earned[35],
        bonus_50_earned=earned[50],
        bonus_75_earned=earned[75],
        total_value=total_value,
        team_arcadas=total_arcadas,
        next_milestone=next_manager_milestone(total_arcadas),
    )


class CommissionCalculator:
    """Database-backed commission calculation and lead conversion."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_establishment_settings(self, establishment_code: str) -> CommissionSettings:
        """Settings configured for the establishment, or the defaults."""
        try:
            result = await self.db.execute(
                select(EstablishmentCommissionSettings).where(
                    EstablishmentCommissionSettings.establishment_code == establishment_code
                )
            )
            row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Failed to load commission settings for {establishment_code}: {e}")
            return CommissionSettings()

        if row is None:
            return CommissionSettings()
        return CommissionSettings.model_validate(row)

    async def converted_arcadas(
        self,
        user_ids: list[str],
        establishment_code: str,
        exclude_lead_id: str | None = None,
    ) -> int:
        """Arcadas already sold by ``user_ids`` at the establishment."""
        query = select(Lead.arcadas_vendidas).where(
            Lead.indicated_by.in_(user_ids),
            Lead.establishment_code == establishment_code,
            Lead.status == LeadStatus.CONVERTED,
        )
        if exclude_lead_id is not None:
            query = query.where(Lead.id != exclude_lead_id)
        result = await self.db.execute(query)
        return sum(arcadas or 1 for arcadas in result.scalars().all())

    async def manager_of(self, consultant_id: str) -> Optional[str]:
        result = await self.db.execute(
            select(Hierarchy.manager_id)
            .where(Hierarchy.consultant_id == consultant_id)
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def team_of(self, manager_id: str) -> list[str]:
        """Consultants reporting to the manager, plus the manager."""
        result = await self.db.execute(
            select(Hierarchy.consultant_id).where(Hierarchy.manager_id == manager_id)
        )
        return [*result.scalars().all(), manager_id]

    async def calculate_consultant_commission(
        self,
        consultant_id: str,
        establishment_code: str,
        arcadas_sold: int,
        exclude_lead_id: str | None = None,
    ) -> ConsultantCommission:
        settings = await self.get_establishment_settings(establishment_code)
        current = await self.converted_arcadas([consultant_id], establishment_code, exclude_lead_id)
        return consultant_commission(settings, current, arcadas_sold)

    async def calculate_manager_commission(
        self,
        manager_id: str,
        establishment_code: str,
        arcadas_added: int,
        exclude_lead_id: str | None = None,
    ) -> ManagerCommission:
        settings = await self.get_establishment_settings(establishment_code)
        team = await self.team_of(manager_id)
        current = await self.converted_arcadas(team, establishment_code, exclude_lead_id)
        return manager_commission(settings, current, arcadas_added)

    async def process_lead_conversion(
        self,
        lead_id: str,
        arcadas_sold: int,
        establishment_code: str,
        clinic_id: str | None = None,
    ) -> ConversionResult:
        """Mark the lead converted and create the resulting commissions.

        The lead's own arcadas are excluded from the accumulated totals so a
        conversion never counts itself twice. Everything is committed at once.
        """
        if arcadas_sold < 1:
            raise ValueError("arcadas_sold must be at least 1")

        query = select(Lead).where(Lead.id == lead_id)
        if clinic_id is not None:
            query = query.where(Lead.clinic_id == clinic_id)
        result = await self.db.execute(query)
        lead = result.scalar_one_or_none()
        if lead is None:
            raise LeadNotFoundError(f"Lead {lead_id} not found")

        consultant_id = lead.indicated_by
        lead_clinic_id = lead.clinic_id

        consultant = await self.calculate_consultant_commission(
            consultant_id, establishment_code, arcadas_sold, exclude_lead_id=lead_id
        )
        manager_id = await self.manager_of(consultant_id)
        manager = None
        if manager_id is not None:
            manager = await self.calculate_manager_commission(
                manager_id, establishment_code, arcadas_sold, exclude_lead_id=lead_id
            )

        lead.status = LeadStatus.CONVERTED
        lead.arcadas_vendidas = arcadas_sold
        lead.establishment_code = establishment_code
        lead.converted_at = datetime.now(timezone.utc)

        created: list[Commission] = [
            Commission(
                lead_id=lead_id,
                user_id=consultant_id,
                clinic_id=lead_clinic_id,
                establishment_code=establishment_code,
                amount=consultant.total_value,
                percentage=0,
                type=CommissionType.CONSULTANT,
                status=CommissionStatus.PENDING,
                arcadas_vendidas=arcadas_sold,
                valor_por_arcada=consultant.base_value / arcadas_sold,
                bonus_conquistados=consultant.bonuses_earned,
                valor_bonus=consultant.bonus_value,
            )
        ]
        # Managers only get a row when a milestone was crossed
        if manager is not None and manager.total_value > 0:
            created.append(
                Commission(
                    lead_id=lead_id,
                    user_id=manager_id,
                    clinic_id=lead_clinic_id,
                    establishment_code=establishment_code,
                    amount=manager.total_value,
                    percentage=0,
                    type=CommissionType.MANAGER,
                    status=CommissionStatus.PENDING,
                    arcadas_vendidas=arcadas_sold,
                )
            )

        self.db.add_all(created)
        try:
            await self.db.flush()
            commission_ids = [c.id for c in created]
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Conversion of lead {lead_id} failed, changes rolled back")
            raise

        logger.info(
            f"Lead {lead_id} converted with {arcadas_sold} arcadas, "
            f"{len(commission_ids)} commission(s) created"
        )
        return ConversionResult(
            consultant_commission=consultant,
            manager_commission=manager,
            commissions_created=commission_ids,
        )

    async def simulate_commissions(
        self,
        consultant_id: str,
        establishment_code: str,
        arcadas_sold: int,
    ) -> CommissionSimulation:
        """Compute commissions for a hypothetical sale without writing anything."""
        consultant = await self.calculate_consultant_commission(
            consultant_id, establishment_code, arcadas_sold
        )
        manager_id = await self.manager_of(consultant_id)
        manager = None
        if manager_id is not None:
            manager = await self.calculate_manager_commission(
                manager_id, establishment_code, arcadas_sold
            )
        return CommissionSimulation(consultant=consultant, manager=manager)
