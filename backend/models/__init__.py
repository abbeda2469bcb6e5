"""Database models."""

from database import Base

# Identity and tenancy
from models.user import User, UserRole, UserStatus
from models.clinic import Clinic, ClinicStatus
from models.user_clinic import UserClinic
from models.hierarchy import Hierarchy

# Sales
from models.establishment import EstablishmentCode, EstablishmentCommissionSettings, UserEstablishment
from models.lead import Gender, Lead, LeadStatus
from models.commission import Commission, CommissionStatus, CommissionType

__all__ = [
    # Base
    "Base",
    # Identity and tenancy
    "User",
    "UserRole",
    "UserStatus",
    "Clinic",
    "ClinicStatus",
    "UserClinic",
    "Hierarchy",
    # Sales
    "EstablishmentCode",
    "EstablishmentCommissionSettings",
    "UserEstablishment",
    "Gender",
    "Lead",
    "LeadStatus",
    "Commission",
    "CommissionStatus",
    "CommissionType",
]
