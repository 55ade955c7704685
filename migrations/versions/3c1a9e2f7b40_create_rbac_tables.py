"""create rbac tables

Revision ID: 3c1a9e2f7b40
Revises:
Create Date: 2026-10-19 10:12:31.418205
"""
from typing import Sequence, Union
from alembic import op
import sqlalchemy as sa

revision: str = '3c1a9e2f7b40'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

entity_status = sa.Enum('ACTIVE', 'INACTIVE', name='entitystatus')
menu_target = sa.Enum('SELF', 'BLANK', 'PARENT', 'TOP', name='menutarget')
menu_type = sa.Enum('LINK', 'DROPDOWN', 'SEPARATOR', 'HEADER', name='menutype')


def _audit_columns():
    return [
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('is_deleted', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_by', sa.Integer(), nullable=True),
        sa.Column('updated_by', sa.Integer(), nullable=True),
    ]


def upgrade() -> None:
    op.create_table(
        'permissions',
        *_audit_columns(),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('display_name', sa.String(length=150), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('module', sa.String(length=100), nullable=False),
        sa.Column('action', sa.String(length=50), nullable=False),
        sa.Column('resource', sa.String(length=100), nullable=True),
        sa.Column('group', sa.String(length=100), nullable=True),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        sa.Column('is_system', sa.Boolean(), nullable=False),
        sa.Column('status', entity_status, nullable=False),
        sa.Column('conditions', sa.JSON(), nullable=True),
        sa.Column('parent_id', sa.Integer(), nullable=True),
        sa.ForeignKeyConstraint(['parent_id'], ['permissions.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_permissions_id'), 'permissions', ['id'])
    op.create_index(op.f('ix_permissions_name'), 'permissions', ['name'])
    op.create_index(op.f('ix_permissions_module'), 'permissions', ['module'])
    op.create_index(op.f('ix_permissions_parent_id'), 'permissions', ['parent_id'])
    print("✓ [3c1a9e2f7b40] Created permissions")

    op.create_table(
        'roles',
        *_audit_columns(),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('display_name', sa.String(length=150), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column('is_system', sa.Boolean(), nullable=False),
        sa.Column('is_default', sa.Boolean(), nullable=False),
        sa.Column('status', entity_status, nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_roles_id'), 'roles', ['id'])
    op.create_index(op.f('ix_roles_name'), 'roles', ['name'])
    print("✓ [3c1a9e2f7b40] Created roles")

    op.create_table(
        'role_permissions',
        *_audit_columns(),
        sa.Column('role_id', sa.Integer(), nullable=False),
        sa.Column('permission_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id']),
        sa.ForeignKeyConstraint(['permission_id'], ['permissions.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('role_id', 'permission_id', name='uq_role_permission'),
    )
    op.create_index(op.f('ix_role_permissions_id'), 'role_permissions', ['id'])
    op.create_index(op.f('ix_role_permissions_role_id'), 'role_permissions', ['role_id'])
    op.create_index(op.f('ix_role_permissions_permission_id'), 'role_permissions', ['permission_id'])

    op.create_table(
        'user_roles',
        *_audit_columns(),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('role_id', sa.Integer(), nullable=False),
        sa.Column('assigned_by', sa.Integer(), nullable=True),
        sa.Column('assigned_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP'), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id', 'role_id', name='uq_user_role'),
    )
    op.create_index(op.f('ix_user_roles_id'), 'user_roles', ['id'])
    op.create_index(op.f('ix_user_roles_user_id'), 'user_roles', ['user_id'])
    op.create_index(op.f('ix_user_roles_role_id'), 'user_roles', ['role_id'])
    print("✓ [3c1a9e2f7b40] Created role_permissions, user_roles")

    op.create_table(
        'menus',
        *_audit_columns(),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('title', sa.String(length=150), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('parent_id', sa.Integer(), nullable=True),
        sa.Column('level', sa.Integer(), nullable=False),
        sa.Column('sort_order', sa.Integer(), nullable=False),
        sa.Column('url', sa.String(length=500), nullable=True),
        sa.Column('route_name', sa.String(length=150), nullable=True),
        sa.Column('icon', sa.String(length=100), nullable=True),
        sa.Column('target', menu_target, nullable=False),
        sa.Column('type', menu_type, nullable=False),
        sa.Column('is_external', sa.Boolean(), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('is_system_menu', sa.Boolean(), nullable=False),
        sa.Column('required_permission_id', sa.Integer(), nullable=True),
        sa.Column('css_class', sa.String(length=150), nullable=True),
        sa.ForeignKeyConstraint(['parent_id'], ['menus.id']),
        sa.ForeignKeyConstraint(['required_permission_id'], ['permissions.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_menus_id'), 'menus', ['id'])
    op.create_index(op.f('ix_menus_name'), 'menus', ['name'])
    op.create_index(op.f('ix_menus_parent_id'), 'menus', ['parent_id'])

    op.create_table(
        'menu_roles',
        *_audit_columns(),
        sa.Column('menu_id', sa.Integer(), nullable=False),
        sa.Column('role_id', sa.Integer(), nullable=False),
        sa.ForeignKeyConstraint(['menu_id'], ['menus.id']),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('menu_id', 'role_id', name='uq_menu_role'),
    )
    op.create_index(op.f('ix_menu_roles_id'), 'menu_roles', ['id'])
    op.create_index(op.f('ix_menu_roles_menu_id'), 'menu_roles', ['menu_id'])
    op.create_index(op.f('ix_menu_roles_role_id'), 'menu_roles', ['role_id'])
    print("✓ [3c1a9e2f7b40] Created menus, menu_roles")


def downgrade() -> None:
    op.drop_table('menu_roles')
    op.drop_table('menus')
    op.drop_table('user_roles')
    op.drop_table('role_permissions')
    op.drop_table('roles')
    op.drop_table('permissions')
    entity_status.drop(op.get_bind(), checkfirst=True)
    menu_target.drop(op.get_bind(), checkfirst=True)
    menu_type.drop(op.get_bind(), checkfirst=True)
