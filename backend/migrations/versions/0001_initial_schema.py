"""initial schema: users, clinics, leads and commissions

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
    ]


def upgrade() -> None:
    # Identity and tenancy
    op.create_table(
        'users',
        sa.Column('id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('email', sa.String(255), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column(
            'role',
            sa.Enum('clinic_admin', 'clinic_viewer', 'manager', 'consultant', name='user_role'),
            nullable=False,
        ),
        sa.Column('status', sa.Enum('active', 'inactive', 'pending', name='user_status'), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_users_email', 'users', ['email'], unique=True)

    op.create_table(
        'clinics',
        sa.Column('id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('status', sa.Enum('active', 'inactive', name='clinic_status'), nullable=False),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_clinics_status', 'clinics', ['status'])

    op.create_table(
        'user_clinics',
        sa.Column('id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('user_id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('clinic_id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'clinic_id', name='uq_user_clinics_user_clinic'),
    )
    op.create_index('ix_user_clinics_user_id', 'user_clinics', ['user_id'])
    op.create_index('ix_user_clinics_clinic_id', 'user_clinics', ['clinic_id'])

    op.create_table(
        'hierarchies',
        sa.Column('id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('manager_id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('consultant_id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('clinic_id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.ForeignKeyConstraint(['manager_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['consultant_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_hierarchies_manager_id', 'hierarchies', ['manager_id'])
    op.create_index('ix_hierarchies_consultant_id', 'hierarchies', ['consultant_id'])
    op.create_index('ix_hierarchies_clinic_id', 'hierarchies', ['clinic_id'])

    # Establishments
    op.create_table(
        'establishment_codes',
        sa.Column('id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('code', sa.String(50), nullable=False),
        sa.Column('name', sa.String(255), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('address', sa.String(500), nullable=True),
        sa.Column('city', sa.String(100), nullable=True),
        sa.Column('state', sa.String(2), nullable=True),
        sa.Column('phone', sa.String(50), nullable=True),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        *_timestamps(),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_establishment_codes_code', 'establishment_codes', ['code'], unique=True)

    op.create_table(
        'establishment_commissions',
        sa.Column('id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('establishment_code', sa.String(50), nullable=False),
        sa.Column('clinic_id', sa.UUID(as_uuid=False), nullable=True),
        sa.Column('consultant_value_per_arcada', sa.Numeric(12, 2), nullable=False, server_default='750'),
        sa.Column('consultant_bonus_every_arcadas', sa.Integer(), nullable=False, server_default='7'),
        sa.Column('consultant_bonus_value', sa.Numeric(12, 2), nullable=False, server_default='750'),
        sa.Column('manager_value_per_arcada', sa.Numeric(12, 2), nullable=False, server_default='0'),
        sa.Column('manager_bonus_active', sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column('manager_bonus_35_arcadas', sa.Numeric(12, 2), nullable=False, server_default='5000'),
        sa.Column('manager_bonus_50_arcadas', sa.Numeric(12, 2), nullable=False, server_default='10000'),
        sa.Column('manager_bonus_75_arcadas', sa.Numeric(12, 2), nullable=False, server_default='15000'),
        *_timestamps(),
        sa.ForeignKeyConstraint(['establishment_code'], ['establishment_codes.code'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('establishment_code'),
    )

    op.create_table(
        'user_establishments',
        sa.Column('id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('user_id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('establishment_code', sa.String(50), nullable=False),
        sa.Column('status', sa.String(20), nullable=False, server_default='active'),
        sa.Column('added_by', sa.UUID(as_uuid=False), nullable=True),
        sa.Column('joined_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['establishment_code'], ['establishment_codes.code'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['added_by'], ['users.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_user_establishments_user_id', 'user_establishments', ['user_id'])
    op.create_index('ix_user_establishments_establishment_code', 'user_establishments', ['establishment_code'])

    # Sales
    op.create_table(
        'leads',
        sa.Column('id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('full_name', sa.String(255), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('phone', sa.String(50), nullable=False),
        sa.Column('cpf', sa.String(14), nullable=True),
        sa.Column('address', sa.String(500), nullable=True),
        sa.Column('city', sa.String(100), nullable=True),
        sa.Column('state', sa.String(2), nullable=True),
        sa.Column('zip_code', sa.String(10), nullable=True),
        sa.Column('age', sa.Integer(), nullable=True),
        sa.Column('gender', sa.Enum('male', 'female', 'other', name='gender'), nullable=True),
        sa.Column('notes', sa.Text(), nullable=True),
        sa.Column(
            'status',
            sa.Enum('new', 'contacted', 'scheduled', 'converted', 'lost', name='lead_status'),
            nullable=False,
        ),
        sa.Column('indicated_by', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('clinic_id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('establishment_code', sa.String(50), nullable=True),
        sa.Column('arcadas_vendidas', sa.Integer(), nullable=True),
        sa.Column('converted_at', sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.ForeignKeyConstraint(['indicated_by'], ['users.id']),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['establishment_code'], ['establishment_codes.code']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_leads_status', 'leads', ['status'])
    op.create_index('ix_leads_indicated_by', 'leads', ['indicated_by'])
    op.create_index('ix_leads_clinic_id', 'leads', ['clinic_id'])
    op.create_index('ix_leads_establishment_code', 'leads', ['establishment_code'])

    op.create_table(
        'commissions',
        sa.Column('id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('lead_id', sa.UUID(as_uuid=False), nullable=True),
        sa.Column('user_id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('clinic_id', sa.UUID(as_uuid=False), nullable=False),
        sa.Column('establishment_code', sa.String(50), nullable=True),
        sa.Column('amount', sa.Numeric(12, 2), nullable=False),
        sa.Column('percentage', sa.Float(), nullable=False, server_default='0'),
        sa.Column('type', sa.Enum('consultant', 'manager', name='commission_type'), nullable=False),
        sa.Column('status', sa.Enum('pending', 'paid', 'cancelled', name='commission_status'), nullable=False),
        sa.Column('paid_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('arcadas_vendidas', sa.Integer(), nullable=True),
        sa.Column('valor_por_arcada', sa.Numeric(12, 2), nullable=True),
        sa.Column('bonus_conquistados', sa.Integer(), nullable=True),
        sa.Column('valor_bonus', sa.Numeric(12, 2), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True),
        sa.ForeignKeyConstraint(['lead_id'], ['leads.id'], ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id']),
        sa.ForeignKeyConstraint(['clinic_id'], ['clinics.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_commissions_lead_id', 'commissions', ['lead_id'])
    op.create_index('ix_commissions_user_id', 'commissions', ['user_id'])
    op.create_index('ix_commissions_clinic_id', 'commissions', ['clinic_id'])


def downgrade() -> None:
    op.drop_table('commissions')
    op.drop_table('leads')
    op.drop_table('user_establishments')
    op.drop_table('establishment_commissions')
    op.drop_table('establishment_codes')
    op.drop_table('hierarchies')
    op.drop_table('user_clinics')
    op.drop_table('clinics')
    op.drop_table('users')
    for enum_name in (
        'commission_status', 'commission_type', 'lead_status', 'gender',
        'clinic_status', 'user_status', 'user_role',
    ):
        op.execute(f"DROP TYPE IF EXISTS {enum_name}")
