"""Tests for clinic resolution strategies."""

import pytest
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from factories import count_rows, link, make_clinic, make_user, new_id
from models import Clinic, ClinicStatus, UserClinic, UserRole
from services import clinic_resolution
from services.clinic_resolution import (
    NOT_ASSOCIATED_ERROR,
    ClinicResolution,
    ClinicResolutionStrategy,
    LookupOnlyStrategy,
    ProvisioningStrategy,
    get_strategy,
    link_user_to_clinic,
    resolve_user_clinic,
)


async def no_association(db, user_id):
    return None


async def test_admin_with_association_returns_it_without_writes(db_session):
    admin = await make_user(db_session, role=UserRole.CLINIC_ADMIN)
    clinic = await make_clinic(db_session)
    await link(db_session, admin, clinic)

    result = await resolve_user_clinic(db_session, admin.id, UserRole.CLINIC_ADMIN)

    assert result == ClinicResolution(clinic_id=clinic.id, success=True, linked=True)
    assert await count_rows(db_session, Clinic) == 1
    assert await count_rows(db_session, UserClinic) == 1


async def test_admin_without_association_is_linked_to_active_clinic(db_session):
    admin = await make_user(db_session, role=UserRole.CLINIC_ADMIN)
    await make_clinic(db_session, name="Closed", status=ClinicStatus.INACTIVE)
    clinic = await make_clinic(db_session)

    result = await resolve_user_clinic(db_session, admin.id, UserRole.CLINIC_ADMIN)

    assert result.success
    assert result.clinic_id == clinic.id
    assert result.linked
    rows = (await db_session.execute(select(UserClinic))).scalars().all()
    assert [(r.user_id, r.clinic_id) for r in rows] == [(admin.id, clinic.id)]


async def test_admin_with_no_active_clinic_gets_default_clinic(db_session):
    admin = await make_user(db_session, role=UserRole.CLINIC_ADMIN)
    await make_clinic(db_session, name="Closed", status=ClinicStatus.INACTIVE)

    result = await resolve_user_clinic(db_session, admin.id, UserRole.CLINIC_ADMIN)

    assert result.success
    assert result.error is None
    active = (
        await db_session.execute(select(Clinic).where(Clinic.status == ClinicStatus.ACTIVE))
    ).scalars().all()
    assert len(active) == 1
    assert active[0].id == result.clinic_id
    assert active[0].name == "Clínica Principal"
    assert await count_rows(db_session, UserClinic) == 1


async def test_provisioning_uses_configured_default_name(db_session):
    admin = await make_user(db_session, role=UserRole.CLINIC_ADMIN)

    result = await ProvisioningStrategy(default_clinic_name="Clínica Nova").resolve(db_session, admin.id)

    clinic = await db_session.get(Clinic, result.clinic_id)
    assert clinic.name == "Clínica Nova"


async def test_admin_resolution_is_idempotent(db_session):
    admin = await make_user(db_session, role=UserRole.CLINIC_ADMIN)

    first = await resolve_user_clinic(db_session, admin.id, UserRole.CLINIC_ADMIN)
    second = await resolve_user_clinic(db_session, admin.id, UserRole.CLINIC_ADMIN)

    assert first.clinic_id == second.clinic_id
    assert await count_rows(db_session, Clinic) == 1
    assert await count_rows(db_session, UserClinic) == 1


@pytest.mark.parametrize(
    "role",
    [UserRole.CONSULTANT, UserRole.MANAGER, UserRole.CLINIC_VIEWER],
)
async def test_non_admin_without_association_fails_without_writes(db_session, role):
    user = await make_user(db_session, role=role)
    await make_clinic(db_session)

    result = await resolve_user_clinic(db_session, user.id, role)

    assert result == ClinicResolution(clinic_id=None, error=NOT_ASSOCIATED_ERROR, success=False)
    assert await count_rows(db_session, Clinic) == 1
    assert await count_rows(db_session, UserClinic) == 0


async def test_non_admin_with_association_returns_it(db_session):
    consultant = await make_user(db_session)
    clinic = await make_clinic(db_session)
    await link(db_session, consultant, clinic)

    result = await resolve_user_clinic(db_session, consultant.id, UserRole.CONSULTANT)

    assert result.success
    assert result.clinic_id == clinic.id


async def test_association_with_inactive_clinic_is_ignored(db_session):
    consultant = await make_user(db_session)
    closed = await make_clinic(db_session, status=ClinicStatus.INACTIVE)
    await link(db_session, consultant, closed)

    result = await resolve_user_clinic(db_session, consultant.id, UserRole.CONSULTANT)

    assert not result.success
    assert result.error == NOT_ASSOCIATED_ERROR


async def test_earliest_active_association_wins(db_session):
    consultant = await make_user(db_session)
    newer = await make_clinic(db_session, name="Newer")
    older = await make_clinic(db_session, name="Older")
    await link(db_session, consultant, newer, minutes_ago=5)
    await link(db_session, consultant, older, minutes_ago=60)

    result = await resolve_user_clinic(db_session, consultant.id, UserRole.CONSULTANT)

    assert result.clinic_id == older.id


async def test_unknown_role_falls_back_to_lookup_only(db_session):
    user = await make_user(db_session)

    assert isinstance(get_strategy("auditor"), LookupOnlyStrategy)
    result = await resolve_user_clinic(db_session, user.id, "auditor")

    assert not result.success
    assert result.error == NOT_ASSOCIATED_ERROR
    assert await count_rows(db_session, Clinic) == 0


async def test_clinics_lookup_error_fails_resolution(db_session, monkeypatch):
    admin = await make_user(db_session, role=UserRole.CLINIC_ADMIN)
    await make_clinic(db_session)

    async def broken_execute(*args, **kwargs):
        raise SQLAlchemyError("connection lost")

    monkeypatch.setattr(clinic_resolution, "find_active_clinic_id", no_association)
    monkeypatch.setattr(db_session, "execute", broken_execute)

    result = await ProvisioningStrategy().resolve(db_session, admin.id)

    assert not result.success
    assert result.clinic_id is None
    assert result.error.startswith("Error fetching clinics: ")
    assert "connection lost" in result.error


async def test_failed_link_still_returns_available_clinic(db_session, monkeypatch):
    admin = await make_user(db_session, role=UserRole.CLINIC_ADMIN)
    clinic = await make_clinic(db_session)

    async def failing_link(db, user_id, clinic_id):
        return False

    monkeypatch.setattr(clinic_resolution, "link_user_to_clinic", failing_link)

    result = await resolve_user_clinic(db_session, admin.id, UserRole.CLINIC_ADMIN)

    assert result == ClinicResolution(clinic_id=clinic.id, success=True, linked=False)
    assert await count_rows(db_session, UserClinic) == 0


async def test_default_clinic_creation_error_fails_resolution(db_session, monkeypatch):
    admin = await make_user(db_session, role=UserRole.CLINIC_ADMIN)

    async def broken_flush(*args, **kwargs):
        raise SQLAlchemyError("permission denied for table clinics")

    monkeypatch.setattr(db_session, "flush", broken_flush)

    result = await resolve_user_clinic(db_session, admin.id, UserRole.CLINIC_ADMIN)

    assert not result.success
    assert result.error.startswith("Error creating default clinic: ")
    assert "permission denied" in result.error
    assert await count_rows(db_session, Clinic) == 0
    assert await count_rows(db_session, UserClinic) == 0


async def test_association_fetch_error_fails_lookup_only(db_session, monkeypatch):
    consultant = await make_user(db_session)

    async def broken_lookup(db, user_id):
        raise SQLAlchemyError("statement timeout")

    monkeypatch.setattr(clinic_resolution, "find_active_clinic_id", broken_lookup)

    result = await resolve_user_clinic(db_session, consultant.id, UserRole.CONSULTANT)

    assert not result.success
    assert result.error.startswith("Error fetching clinic association: ")
    assert "statement timeout" in result.error


async def test_role_given_as_string_selects_strategy():
    assert isinstance(get_strategy("clinic_admin"), ProvisioningStrategy)
    assert isinstance(get_strategy(UserRole.CONSULTANT), LookupOnlyStrategy)


async def test_strategy_errors_are_reported_not_raised(db_session, monkeypatch):
    class Broken(ClinicResolutionStrategy):
        name = "broken"

        async def resolve(self, db, user_id):
            raise RuntimeError("connection reset")

    class Silent(ClinicResolutionStrategy):
        name = "silent"

        async def resolve(self, db, user_id):
            raise RuntimeError()

    monkeypatch.setitem(clinic_resolution._strategies, UserRole.MANAGER, Broken())
    monkeypatch.setitem(clinic_resolution._strategies, UserRole.CLINIC_VIEWER, Silent())

    broken = await resolve_user_clinic(db_session, new_id(), UserRole.MANAGER)
    silent = await resolve_user_clinic(db_session, new_id(), UserRole.CLINIC_VIEWER)

    assert broken == ClinicResolution(error="connection reset")
    assert silent.error == clinic_resolution.UNKNOWN_ERROR
    assert not silent.success


async def test_register_strategy_replaces_role_strategy(monkeypatch):
    monkeypatch.setattr(clinic_resolution, "_strategies", dict(clinic_resolution._strategies))
    strategy = ProvisioningStrategy()

    clinic_resolution.register_strategy(UserRole.MANAGER, strategy)

    assert get_strategy(UserRole.MANAGER) is strategy


async def test_link_user_to_clinic_tolerates_existing_association(db_session):
    user = await make_user(db_session)
    clinic = await make_clinic(db_session)

    assert await link_user_to_clinic(db_session, user.id, clinic.id)
    assert await link_user_to_clinic(db_session, user.id, clinic.id)
    assert await count_rows(db_session, UserClinic) == 1


async def test_link_from_a_second_session_reuses_association(session_factory):
    async with session_factory() as db:
        admin = await make_user(db, role=UserRole.CLINIC_ADMIN)
        clinic = await make_clinic(db)

    async with session_factory() as first, session_factory() as second:
        assert await link_user_to_clinic(first, admin.id, clinic.id)
        assert await link_user_to_clinic(second, admin.id, clinic.id)

    async with session_factory() as db:
        assert await count_rows(db, UserClinic) == 1
        result = await resolve_user_clinic(db, admin.id, UserRole.CLINIC_ADMIN)
        assert result.clinic_id == clinic.id
