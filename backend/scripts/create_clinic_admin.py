#!/usr/bin/env python3
"""Create a clinic and its admin profile for an existing auth user."""

import asyncio
import sys
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from sqlalchemy import select
from database import async_session
from models.clinic import Clinic, ClinicStatus
from models.user import User, UserRole, UserStatus
from services.clinic_resolution import link_user_to_clinic


async def create_clinic_admin(user_id: str, email: str, full_name: str, clinic_name: str):
    """Create (or promote) a clinic admin and link them to a new clinic."""
    async with async_session() as db:
        result = await db.execute(select(User).where(User.id == user_id))
        user = result.scalar_one_or_none()

        if user is None:
            user = User(
                id=user_id,
                email=email,
                full_name=full_name,
                role=UserRole.CLINIC_ADMIN,
                status=UserStatus.ACTIVE,
            )
            db.add(user)
        else:
            print(f"User {user.email} already exists, promoting to clinic admin.")
            user.role = UserRole.CLINIC_ADMIN
            user.status = UserStatus.ACTIVE

        clinic = Clinic(name=clinic_name, status=ClinicStatus.ACTIVE)
        db.add(clinic)
        await db.flush()
        clinic_id = clinic.id
        await db.commit()

        if not await link_user_to_clinic(db, user_id, clinic_id):
            print("Failed to link user to clinic.")
            sys.exit(1)

        print(f"Clinic admin ready!")
        print(f"  Email: {email}")
        print(f"  User ID: {user_id}")
        print(f"  Clinic: {clinic_name} ({clinic_id})")


if __name__ == "__main__":
    if len(sys.argv) != 5:
        print("Usage: python3 create_clinic_admin.py <auth-user-id> <email> <full-name> <clinic-name>")
        print('Example: python3 create_clinic_admin.py 6f1c...e2 admin@clinic.com "Ana Souza" "Clínica Centro"')
        sys.exit(1)

    asyncio.run(create_clinic_admin(*sys.argv[1:]))
