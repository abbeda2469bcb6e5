"""Clinic model - the tenant organization."""

import enum
from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, Enum, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class ClinicStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"


class Clinic(Base):
    """
    Clinic that owns leads, users and commissions.

    Only active clinics can be associated with users.
    """

    __tablename__ = "clinics"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4())
    )
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    status: Mapped[ClinicStatus] = mapped_column(
        Enum(ClinicStatus, name="clinic_status", values_callable=lambda enum: [e.value for e in enum]),
        default=ClinicStatus.ACTIVE,
        nullable=False,
        index=True
    )

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now()
    )

    # Relationships
    user_associations: Mapped[list["UserClinic"]] = relationship(
        "UserClinic",
        back_populates="clinic",
        cascade="all, delete-orphan"
    )

    def __repr__(self) -> str:
        return f"<Clinic {self.name} ({self.status.value})>"


# Import at bottom to avoid circular imports
from models.user_clinic import UserClinic
