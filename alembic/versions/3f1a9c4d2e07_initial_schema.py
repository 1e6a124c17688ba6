"""Initial schema: users, leads, audit_logs

Revision ID: 3f1a9c4d2e07
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '3f1a9c4d2e07'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

SUB_DOCUMENT_COLUMNS = (
    'progress_updates', 'change_history', 'cost_records',
    'profit_records', 'contracts', 'links',
)

# Keeps updated_at current for writes that bypass the ORM
TOUCH_UPDATED_AT_FUNCTION = """
CREATE OR REPLACE FUNCTION touch_updated_at() RETURNS trigger AS $$
BEGIN
    NEW.updated_at = NOW();
    RETURN NEW;
END;
$$ LANGUAGE plpgsql
"""

TOUCH_UPDATED_AT_TRIGGER = """
CREATE TRIGGER leads_touch_updated_at
    BEFORE UPDATE ON leads
    FOR EACH ROW EXECUTE FUNCTION touch_updated_at()
"""


def upgrade() -> None:
    """Upgrade schema."""
    op.create_table('users',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('email', sa.Text(), nullable=False),
        sa.Column('display_name', sa.Text(), nullable=False),
        sa.Column('role', sa.Text(), nullable=True),
        sa.Column('avatar', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=True),
        sa.Column('is_online', sa.Boolean(), nullable=True),
        sa.Column('last_seen', sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )

    op.create_table('leads',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('case_code', sa.Text(), nullable=True),
        sa.Column('platform', sa.Text(), nullable=True),
        sa.Column('platform_id', sa.Text(), nullable=True),
        sa.Column('need', sa.Text(), nullable=False),
        sa.Column('budget_text', sa.Text(), nullable=True),
        sa.Column('posted_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('phone', sa.Text(), nullable=True),
        sa.Column('email', sa.Text(), nullable=True),
        sa.Column('location', sa.Text(), nullable=True),
        sa.Column('estimated_duration', sa.Text(), nullable=True),
        sa.Column('contact_method', sa.Text(), nullable=True),
        sa.Column('note', sa.Text(), nullable=True),
        sa.Column('internal_remarks', sa.Text(), nullable=True),
        sa.Column('remarks_author', sa.Text(), nullable=True),
        sa.Column('status', sa.Text(), nullable=True),
        sa.Column('decision', sa.Text(), nullable=True),
        sa.Column('decision_by', sa.Text(), nullable=True),
        sa.Column('reject_reason', sa.Text(), nullable=True),
        sa.Column('review_note', sa.Text(), nullable=True),
        sa.Column('assigned_to', sa.Text(), nullable=True),
        sa.Column('assigned_to_name', sa.Text(), nullable=True),
        sa.Column('priority', sa.Integer(), nullable=True),
        sa.Column('contact_status', sa.Text(), nullable=True),
        sa.Column('created_by', sa.Text(), nullable=True),
        sa.Column('created_by_name', sa.Text(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.Column('last_action_by', sa.Text(), nullable=True),
        *[sa.Column(name, sa.Text(), nullable=True) for name in SUB_DOCUMENT_COLUMNS],
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('case_code'),
    )
    op.create_index('ix_leads_created_at', 'leads', ['created_at'])
    op.create_index('ix_leads_status', 'leads', ['status'])

    op.create_table('audit_logs',
        sa.Column('id', sa.Text(), nullable=False),
        sa.Column('lead_id', sa.Text(), nullable=True),
        sa.Column('actor_uid', sa.Text(), nullable=True),
        sa.Column('actor_name', sa.Text(), nullable=True),
        sa.Column('action', sa.Text(), nullable=True),
        sa.Column('before', sa.Text(), nullable=True),
        sa.Column('after', sa.Text(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('(CURRENT_TIMESTAMP)'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index('ix_audit_logs_lead_id', 'audit_logs', ['lead_id'])

    if op.get_bind().dialect.name == 'postgresql':
        op.execute(TOUCH_UPDATED_AT_FUNCTION)
        op.execute(TOUCH_UPDATED_AT_TRIGGER)


def downgrade() -> None:
    """Downgrade schema."""
    if op.get_bind().dialect.name == 'postgresql':
        op.execute('DROP TRIGGER IF EXISTS leads_touch_updated_at ON leads')
        op.execute('DROP FUNCTION IF EXISTS touch_updated_at()')
    op.drop_index('ix_audit_logs_lead_id', 'audit_logs')
    op.drop_table('audit_logs')
    op.drop_index('ix_leads_status', 'leads')
    op.drop_index('ix_leads_created_at', 'leads')
    op.drop_table('leads')
    op.drop_table('users')
