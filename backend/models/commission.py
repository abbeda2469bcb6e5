"""Commission model - amounts owed to consultants and managers per conversion."""

import enum
from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, Enum, Float, ForeignKey, Integer, Numeric, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class CommissionType(str, enum.Enum):
    CONSULTANT = "consultant"
    MANAGER = "manager"


class CommissionStatus(str, enum.Enum):
    PENDING = "pending"
    PAID = "paid"
    CANCELLED = "cancelled"


class Commission(Base):
    """Commission generated when a lead is converted."""

    __tablename__ = "commissions"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4())
    )
    lead_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("leads.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    user_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id"),
        nullable=False,
        index=True
    )
    clinic_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("clinics.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    establishment_code: Mapped[str | None] = mapped_column(String(50), nullable=True)
    amount: Mapped[float] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=False)
    percentage: Mapped[float] = mapped_column(Float, default=0, nullable=False)
    type: Mapped[CommissionType] = mapped_column(
        Enum(CommissionType, name="commission_type", values_callable=lambda enum: [e.value for e in enum]),
        nullable=False
    )
    status: Mapped[CommissionStatus] = mapped_column(
        Enum(CommissionStatus, name="commission_status", values_callable=lambda enum: [e.value for e in enum]),
        default=CommissionStatus.PENDING,
        nullable=False
    )
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Arcada breakdown
    arcadas_vendidas: Mapped[int | None] = mapped_column(Integer, nullable=True)
    valor_por_arcada: Mapped[float | None] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)
    bonus_conquistados: Mapped[int | None] = mapped_column(Integer, nullable=True)
    valor_bonus: Mapped[float | None] = mapped_column(Numeric(12, 2, asdecimal=False), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )

    # Relationships
    lead: Mapped["Lead | None"] = relationship("Lead")
    user: Mapped["User"] = relationship("User")

    def __repr__(self) -> str:
        return f"<Commission {self.type.value} {self.amount} ({self.status.value})>"


# Import at bottom to avoid circular imports
from models.lead import Lead
from models.user import User
