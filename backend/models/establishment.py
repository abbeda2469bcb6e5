"""Establishment models - partner establishments and their commission rules."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import Boolean, DateTime, ForeignKey, Integer, Numeric, String, Text, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class EstablishmentCode(Base):
    """Establishment identified by a short code that leads are attributed to."""

    __tablename__ = "establishment_codes"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4())
    )
    code: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    address: Mapped[str | None] = mapped_column(String(500), nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)
    state: Mapped[str | None] = mapped_column(String(2), nullable=True)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    email: Mapped[str | None] = mapped_column(String(255), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )

    commission_settings: Mapped["EstablishmentCommissionSettings | None"] = relationship(
        "EstablishmentCommissionSettings",
        back_populates="establishment",
        uselist=False
    )

    def __repr__(self) -> str:
        return f"<EstablishmentCode {self.code}: {self.name}>"


class EstablishmentCommissionSettings(Base):
    """Per-establishment commission rules (table ``establishment_commissions``)."""

    __tablename__ = "establishment_commissions"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4())
    )
    establishment_code: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("establishment_codes.code", ondelete="CASCADE"),
        unique=True,
        nullable=False
    )
    clinic_id: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("clinics.id", ondelete="CASCADE"),
        nullable=True
    )

    # Consultant
    consultant_value_per_arcada: Mapped[float] = mapped_column(
        Numeric(12, 2, asdecimal=False), default=750, nullable=False
    )
    consultant_bonus_every_arcadas: Mapped[int] = mapped_column(Integer, default=7, nullable=False)
    consultant_bonus_value: Mapped[float] = mapped_column(
        Numeric(12, 2, asdecimal=False), default=750, nullable=False
    )

    # Manager
    manager_value_per_arcada: Mapped[float] = mapped_column(
        Numeric(12, 2, asdecimal=False), default=0, nullable=False
    )
    manager_bonus_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    manager_bonus_35_arcadas: Mapped[float] = mapped_column(
        Numeric(12, 2, asdecimal=False), default=5000, nullable=False
    )
    manager_bonus_50_arcadas: Mapped[float] = mapped_column(
        Numeric(12, 2, asdecimal=False), default=10000, nullable=False
    )
    manager_bonus_75_arcadas: Mapped[float] = mapped_column(
        Numeric(12, 2, asdecimal=False), default=15000, nullable=False
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )

    establishment: Mapped["EstablishmentCode"] = relationship(
        "EstablishmentCode",
        back_populates="commission_settings"
    )


class UserEstablishment(Base):
    """Links a consultant or manager to an establishment code."""

    __tablename__ = "user_establishments"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4())
    )
    user_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    establishment_code: Mapped[str] = mapped_column(
        String(50),
        ForeignKey("establishment_codes.code", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    status: Mapped[str] = mapped_column(String(20), default="active", nullable=False)
    added_by: Mapped[str | None] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("users.id"),
        nullable=True
    )
    joined_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
