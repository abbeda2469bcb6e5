"""UserClinic association model - links users to the clinics they operate in."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import DateTime, ForeignKey, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from database import Base


class UserClinic(Base):
    """
    Association table linking users to clinics.

    The (user_id, clinic_id) unique constraint is what keeps lazy
    association during clinic resolution safe under concurrent requests.
    """

    __tablename__ = "user_clinics"
    __table_args__ = (
        UniqueConstraint("user_id", "clinic_id", name="uq_user_clinics_user_clinic"),
    )

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
    clinic_id: Mapped[str] = mapped_column(
        UUID(as_uuid=False),
        ForeignKey("clinics.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now()
    )

    # Relationships
    clinic: Mapped["Clinic"] = relationship("Clinic", back_populates="user_associations")
    user: Mapped["User"] = relationship("User", back_populates="clinic_associations")

    def __repr__(self) -> str:
        return f"<UserClinic user={self.user_id} clinic={self.clinic_id}>"


# Import at bottom to avoid circular imports
from models.clinic import Clinic
from models.user import User
