"""Create authorization tables

Revision ID: 0001
Revises:
Create Date: 2026-10-18 09:00:00.000000

Creates users and communities (the subset this service reads), the
permission catalog, roles with their permission links, role assignments,
community memberships with custom grants and direct user grants.

Unique constraints that include a nullable community column use
NULLS NOT DISTINCT (PostgreSQL 15+) so site-wide rows cannot be duplicated.
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

revision: str | None = '0001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def _timestamp(name: str) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=False)


def upgrade() -> None:
    """Apply schema changes."""
    op.create_table(
        'users',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('username', sa.String(length=20), nullable=False),
        sa.Column('role', sa.String(length=50), server_default='user', nullable=False),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_users')),
        sa.UniqueConstraint('username', name=op.f('uq_users_username')),
    )
    op.create_index('ix_users_username', 'users', ['username'], unique=False)

    op.create_table(
        'communities',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('is_private', sa.Boolean(), server_default='false', nullable=False),
        _timestamp('created_at'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_communities')),
        sa.UniqueConstraint('name', name=op.f('uq_communities_name')),
    )
    op.create_index('ix_communities_name', 'communities', ['name'], unique=False)

    op.create_table(
        'permissions',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=100), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('type', sa.String(length=20), nullable=False),
        sa.Column('scope', sa.String(length=20), nullable=False),
        sa.Column('resource', sa.String(length=100), nullable=True),
        sa.Column('action', sa.String(length=100), nullable=False),
        sa.Column('default_roles', postgresql.ARRAY(sa.String(length=50)), server_default='{}', nullable=False),
        sa.Column('community_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('is_active', sa.Boolean(), server_default='true', nullable=False),
        sa.Column('created_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('updated_by', postgresql.UUID(as_uuid=True), nullable=True),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.ForeignKeyConstraint(['community_id'], ['communities.id'], name=op.f('fk_permissions_community_id_communities'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['created_by'], ['users.id'], name=op.f('fk_permissions_created_by_users'), ondelete='SET NULL'),
        sa.ForeignKeyConstraint(['updated_by'], ['users.id'], name=op.f('fk_permissions_updated_by_users'), ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_permissions')),
        sa.UniqueConstraint(
            'name', 'scope', 'community_id',
            name='uq_permissions_name_scope_community',
            postgresql_nulls_not_distinct=True,
        ),
        sa.CheckConstraint(
            "(scope = 'site' AND community_id IS NULL) "
            "OR (scope = 'subreddit' AND community_id IS NOT NULL)",
            name=op.f('ck_permissions_scope_community'),
        ),
        sa.CheckConstraint("scope IN ('site', 'subreddit')", name=op.f('ck_permissions_valid_scope')),
        sa.CheckConstraint("type IN ('core', 'custom')", name=op.f('ck_permissions_valid_type')),
    )
    op.create_index('ix_permissions_name', 'permissions', ['name'], unique=False)
    op.create_index('ix_permissions_scope', 'permissions', ['scope'], unique=False)
    op.create_index('ix_permissions_resource', 'permissions', ['resource'], unique=False)
    op.create_index('ix_permissions_community_id', 'permissions', ['community_id'], unique=False)

    op.create_table(
        'roles',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('name', sa.String(length=50), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        sa.Column('is_system', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('version', sa.Integer(), server_default='1', nullable=False),
        _timestamp('created_at'),
        _timestamp('updated_at'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_roles')),
        sa.UniqueConstraint('name', name=op.f('uq_roles_name')),
    )
    op.create_index('ix_roles_name', 'roles', ['name'], unique=False)

    op.create_table(
        'role_permissions',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('role_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('permission_id', postgresql.UUID(as_uuid=True), nullable=False),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id'], name=op.f('fk_role_permissions_role_id_roles'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['permission_id'], ['permissions.id'], name=op.f('fk_role_permissions_permission_id_permissions'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_role_permissions')),
        sa.UniqueConstraint('role_id', 'permission_id', name='uq_role_permissions_role_id_permission_id'),
    )
    op.create_index('ix_role_permissions_role_id', 'role_permissions', ['role_id'], unique=False)
    op.create_index('ix_role_permissions_permission_id', 'role_permissions', ['permission_id'], unique=False)

    op.create_table(
        'user_roles',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('role_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('community_id', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('granted_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=True),
        _timestamp('granted_at'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name=op.f('fk_user_roles_user_id_users'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['role_id'], ['roles.id'], name=op.f('fk_user_roles_role_id_roles'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['community_id'], ['communities.id'], name=op.f('fk_user_roles_community_id_communities'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['granted_by'], ['users.id'], name=op.f('fk_user_roles_granted_by_users'), ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_user_roles')),
        sa.UniqueConstraint(
            'user_id', 'role_id', 'community_id',
            name='uq_user_roles_user_id_role_id_community_id',
            postgresql_nulls_not_distinct=True,
        ),
    )
    op.create_index('ix_user_roles_user_id', 'user_roles', ['user_id'], unique=False)
    op.create_index('ix_user_roles_role_id', 'user_roles', ['role_id'], unique=False)
    op.create_index('ix_user_roles_community_id', 'user_roles', ['community_id'], unique=False)
    op.create_index('ix_user_roles_expires_at', 'user_roles', ['expires_at'], unique=False)

    op.create_table(
        'community_memberships',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('community_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('status', sa.String(length=20), server_default='member', nullable=False),
        sa.Column('ban_reason', sa.String(length=500), nullable=True),
        sa.Column('banned_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('banned_by', postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column('ban_expires_at', sa.DateTime(timezone=True), nullable=True),
        _timestamp('joined_at'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name=op.f('fk_community_memberships_user_id_users'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['community_id'], ['communities.id'], name=op.f('fk_community_memberships_community_id_communities'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['banned_by'], ['users.id'], name=op.f('fk_community_memberships_banned_by_users'), ondelete='SET NULL'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_community_memberships')),
        sa.UniqueConstraint('user_id', 'community_id', name='uq_community_memberships_user_id_community_id'),
        sa.CheckConstraint(
            "status IN ('admin', 'moderator', 'member', 'banned', 'pending')",
            name=op.f('ck_community_memberships_valid_status'),
        ),
    )
    op.create_index('ix_community_memberships_user_id', 'community_memberships', ['user_id'], unique=False)
    op.create_index('ix_community_memberships_community_id', 'community_memberships', ['community_id'], unique=False)

    op.create_table(
        'membership_permissions',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('membership_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('permission_id', postgresql.UUID(as_uuid=True), nullable=False),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['membership_id'], ['community_memberships.id'], name=op.f('fk_membership_permissions_membership_id_community_memberships'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['permission_id'], ['permissions.id'], name=op.f('fk_membership_permissions_permission_id_permissions'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_membership_permissions')),
        sa.UniqueConstraint('membership_id', 'permission_id', name='uq_membership_permissions_membership_id_permission_id'),
    )
    op.create_index('ix_membership_permissions_membership_id', 'membership_permissions', ['membership_id'], unique=False)
    op.create_index('ix_membership_permissions_permission_id', 'membership_permissions', ['permission_id'], unique=False)

    op.create_table(
        'user_permissions',
        sa.Column('id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('user_id', postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column('permission_id', postgresql.UUID(as_uuid=True), nullable=False),
        _timestamp('created_at'),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name=op.f('fk_user_permissions_user_id_users'), ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['permission_id'], ['permissions.id'], name=op.f('fk_user_permissions_permission_id_permissions'), ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name=op.f('pk_user_permissions')),
        sa.UniqueConstraint('user_id', 'permission_id', name='uq_user_permissions_user_id_permission_id'),
    )
    op.create_index('ix_user_permissions_user_id', 'user_permissions', ['user_id'], unique=False)
    op.create_index('ix_user_permissions_permission_id', 'user_permissions', ['permission_id'], unique=False)


def downgrade() -> None:
    """Revert schema changes."""
    for table in (
        'user_permissions',
        'membership_permissions',
        'community_memberships',
        'user_roles',
        'role_permissions',
        'roles',
        'permissions',
        'communities',
        'users',
    ):
        op.drop_table(table)
