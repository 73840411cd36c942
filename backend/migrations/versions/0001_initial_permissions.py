"""permission matrix, users and audit tables

Revision ID: 0001_initial_permissions
Revises: 
Create Date: 2026-10-19
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa

revision = '0001_initial_permissions'
down_revision = None
branch_labels = None
depends_on = None

def upgrade():
    op.create_table('role_module_permissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('role', sa.String(length=32), nullable=False),
        sa.Column('module', sa.String(length=32), nullable=False),
        sa.Column('can_view', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('can_create', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('can_edit', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('can_delete', sa.Boolean(), nullable=False, server_default=sa.text('0')),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True)
    )
    op.create_index('ix_role_module_permissions_role', 'role_module_permissions', ['role'])
    # unique constraint handled via batch for sqlite
    with op.batch_alter_table('role_module_permissions') as batch_op:
        batch_op.create_unique_constraint('uq_role_module', ['role', 'module'])

    op.create_table('users',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('email', sa.String(length=128), nullable=False, unique=True),
        sa.Column('role', sa.String(length=32), nullable=True),
        sa.Column('status', sa.String(length=16), nullable=False, server_default='Active'),
        sa.Column('avatar_url', sa.String(length=512), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True)
    )
    op.create_index('ix_users_email', 'users', ['email'])

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('actor', sa.String(length=128), nullable=True),
        sa.Column('actor_role', sa.String(length=32), nullable=True),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity', sa.String(length=64), nullable=True),
        sa.Column('entity_id', sa.String(length=64), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True)
    )
    op.create_index('ix_audit_logs_actor', 'audit_logs', ['actor'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])


def downgrade():
    op.drop_index('ix_audit_logs_action', table_name='audit_logs')
    op.drop_index('ix_audit_logs_actor', table_name='audit_logs')
    op.drop_table('audit_logs')
    op.drop_index('ix_users_email', table_name='users')
    op.drop_table('users')
    op.drop_index('ix_role_module_permissions_role', table_name='role_module_permissions')
    op.drop_table('role_module_permissions')
