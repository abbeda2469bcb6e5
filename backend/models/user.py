"""User model - mirrors the public.users profile table."""

import enum
from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, Enum, String, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class UserRole(str, enum.Enum):
    """Roles a user can hold inside a clinic."""
    CLINIC_ADMIN = "clinic_admin"    # Owns the clinic, full access
    CLINIC_VIEWER = "clinic_viewer"  # Read-only clinic staff
    MANAGER = "manager"              # Leads a team of consultants
    CONSULTANT = "consultant"        # Registers leads (indications)


class UserStatus(str, enum.Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    PENDING = "pending"


class User(Base):
    """User profile; the id matches the auth provider's user id."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        primary_key=True,
        default=lambda: str(uuid4())
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole, name="user_role", values_callable=lambda enum: [e.value for e in enum]),
        default=UserRole.CONSULTANT,
        nullable=False
    )
    status: Mapped[UserStatus] = mapped_column(
        Enum(UserStatus, name="user_status", values_callable=lambda enum: [e.value for e in enum]),
        default=UserStatus.PENDING,
        nullable=False
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

    # Relationships
    clinic_associations: Mapped[list["UserClinic"]] = relationship(
        "UserClinic",
        back_populates="user",
        cascade="all, delete-orphan"
    )

    @property
    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE

    @property
    def is_clinic_admin(self) -> bool:
        return self.role == UserRole.CLINIC_ADMIN

    def __repr__(self) -> str:
        return f"<User {self.email} ({self.role.value})>"


# Import at bottom to avoid circular imports
from models.user_clinic import UserClinic
