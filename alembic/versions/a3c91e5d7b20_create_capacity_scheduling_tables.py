"""create capacity scheduling tables

Revision ID: a3c91e5d7b20
Revises:
Create Date: 2025-11-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = 'a3c91e5d7b20'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    # Required for the per-partner no-overlap exclusion constraint
    op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")

    # Partners (managed by the marketplace; read-only to the scheduler)
    op.create_table('partners',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('name', sa.String(length=200), nullable=False),
    sa.Column('service_type', sa.String(length=20), nullable=False),
    sa.Column('active', sa.Boolean(), nullable=False, server_default='true'),
    sa.Column('max_orders_per_slot', sa.Integer(), nullable=True),
    sa.Column('max_minutes_per_slot', sa.Integer(), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.CheckConstraint("service_type IN ('LAUNDRY', 'CLEANING')"),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_partners_service_active', 'partners', ['service_type', 'active'], unique=False)

    # Weekly templates
    op.create_table('capacity_templates',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('partner_id', sa.UUID(), nullable=False),
    sa.Column('service_type', sa.String(length=20), nullable=False),
    sa.Column('day_of_week', sa.Integer(), nullable=False),
    sa.Column('slot_start', sa.Time(), nullable=False),
    sa.Column('slot_end', sa.Time(), nullable=False),
    sa.Column('max_units', sa.Integer(), nullable=False),
    sa.Column('active', sa.Boolean(), nullable=False, server_default='true'),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.CheckConstraint('day_of_week BETWEEN 0 AND 6', name='ck_template_day_of_week'),
    sa.CheckConstraint('max_units > 0', name='ck_template_max_positive'),
    sa.CheckConstraint('slot_end > slot_start', name='ck_template_time_range'),
    sa.ForeignKeyConstraint(['partner_id'], ['partners.id'], ondelete='CASCADE'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_capacity_templates_partner', 'capacity_templates', ['partner_id'], unique=False)
    op.create_index('idx_capacity_templates_active', 'capacity_templates', ['active'], unique=False)

    # Capacity calendar
    op.create_table('capacity_calendar',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('partner_id', sa.UUID(), nullable=False),
    sa.Column('service_type', sa.String(length=20), nullable=False),
    sa.Column('slot_start', sa.DateTime(timezone=True), nullable=False),
    sa.Column('slot_end', sa.DateTime(timezone=True), nullable=False),
    sa.Column('max_units', sa.Integer(), nullable=False),
    sa.Column('reserved_units', sa.Integer(), nullable=False, server_default='0'),
    sa.Column('notes', sa.Text(), nullable=True),
    sa.Column('created_by', sa.String(length=100), nullable=True),
    sa.Column('template_id', sa.UUID(), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.CheckConstraint('max_units > 0', name='ck_capacity_max_positive'),
    sa.CheckConstraint('reserved_units >= 0 AND reserved_units <= max_units', name='ck_capacity_reserved_bounds'),
    sa.CheckConstraint('slot_end > slot_start', name='valid_time_range'),
    sa.ForeignKeyConstraint(['partner_id'], ['partners.id'], ondelete='CASCADE'),
    sa.ForeignKeyConstraint(['template_id'], ['capacity_templates.id'], ondelete='SET NULL'),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_capacity_calendar_partner_time', 'capacity_calendar', ['partner_id', 'slot_start'], unique=False)
    op.create_index('idx_capacity_calendar_start', 'capacity_calendar', ['slot_start'], unique=False)
    op.create_index('idx_capacity_calendar_service', 'capacity_calendar', ['service_type'], unique=False)
    op.create_index('idx_capacity_calendar_template', 'capacity_calendar', ['template_id'], unique=False)

    # No two slots of one partner may overlap on [slot_start, slot_end)
    op.execute("""
        ALTER TABLE capacity_calendar
        ADD CONSTRAINT no_overlapping_partner_slots
        EXCLUDE USING gist (
            partner_id WITH =,
            tstzrange(slot_start, slot_end, '[)') WITH &&
        )
    """)

    # Operational alerts
    op.create_table('operational_alerts',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('alert_type', sa.String(length=50), nullable=False),
    sa.Column('severity', sa.String(length=20), nullable=False),
    sa.Column('alert_date', sa.Date(), nullable=False),
    sa.Column('service_type', sa.String(length=20), nullable=True),
    sa.Column('count', sa.Integer(), nullable=True),
    sa.Column('message', sa.Text(), nullable=False),
    sa.Column('resolved', sa.Boolean(), nullable=False, server_default='false'),
    sa.Column('resolved_at', sa.DateTime(timezone=True), nullable=True),
    sa.Column('resolved_by', sa.String(length=100), nullable=True),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index(
        'idx_operational_alerts_dedup',
        'operational_alerts',
        ['alert_type', 'severity', 'resolved', 'created_at'],
        unique=False
    )

    # Audit log
    op.create_table('audit_logs',
    sa.Column('id', sa.UUID(), nullable=False),
    sa.Column('actor_id', sa.String(length=100), nullable=False),
    sa.Column('actor_role', sa.String(length=50), nullable=False),
    sa.Column('action', sa.String(length=100), nullable=False),
    sa.Column('entity_type', sa.String(length=100), nullable=False),
    sa.Column('entity_id', sa.String(length=100), nullable=False),
    sa.Column('changes', sa.JSON(), nullable=False),
    sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False),
    sa.PrimaryKeyConstraint('id')
    )
    op.create_index('idx_audit_logs_entity', 'audit_logs', ['entity_type', 'entity_id'], unique=False)


def downgrade() -> None:
    op.drop_index('idx_audit_logs_entity', table_name='audit_logs')
    op.drop_table('audit_logs')

    op.drop_index('idx_operational_alerts_dedup', table_name='operational_alerts')
    op.drop_table('operational_alerts')

    op.execute("ALTER TABLE capacity_calendar DROP CONSTRAINT IF EXISTS no_overlapping_partner_slots")
    op.drop_index('idx_capacity_calendar_template', table_name='capacity_calendar')
    op.drop_index('idx_capacity_calendar_service', table_name='capacity_calendar')
    op.drop_index('idx_capacity_calendar_start', table_name='capacity_calendar')
    op.drop_index('idx_capacity_calendar_partner_time', table_name='capacity_calendar')
    op.drop_table('capacity_calendar')

    op.drop_index('idx_capacity_templates_active', table_name='capacity_templates')
    op.drop_index('idx_capacity_templates_partner', table_name='capacity_templates')
    op.drop_table('capacity_templates')

    op.drop_index('idx_partners_service_active', table_name='partners')
    op.drop_table('partners')
