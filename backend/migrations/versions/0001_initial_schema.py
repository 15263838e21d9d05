"""initial schema: users, sessions, venues, tariffs

Revision ID: 0001_initial
Revises:
Create Date: 2026-05-04 00:00:00.000000

Creates the familyhub core schema:
- users: accounts (ADMIN, VENDOR, USER) with bcrypt password hashes
- auth_sessions: one row per login, backs the refresh token
- venues / venue_news: venue listing and its news posts
- venue_entitlements: current tariff per venue (exactly one row per venue)
- venue_tariff_history: append-only ledger of tier periods
"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '0001_initial'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    # ============================================================================
    # users
    # ============================================================================
    op.create_table(
        'users',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('email', sa.String(length=255), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=True),
        sa.Column('password_hash', sa.String(length=255), nullable=False),
        sa.Column('role', sa.String(length=16), nullable=False),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('last_login_at', sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint('id', name='pk_users'),
        sa.UniqueConstraint('email', name='uq_users_email'),
        sa.CheckConstraint("role IN ('ADMIN', 'VENDOR', 'USER')", name='ck_users_role'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_users_email', 'users', ['email'])

    # ============================================================================
    # auth_sessions: refresh token hash is the only stored credential
    # ============================================================================
    op.create_table(
        'auth_sessions',
        sa.Column('id', sa.String(length=36), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('refresh_token_hash', sa.String(length=64), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('user_agent', sa.String(length=512), nullable=True),
        sa.Column('ip_address', sa.String(length=45), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], name='fk_auth_sessions_user_id_users', ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id', name='pk_auth_sessions'),
        sa.UniqueConstraint('refresh_token_hash', name='uq_auth_sessions_refresh_token_hash'),
    )
    op.create_index('ix_auth_sessions_user_id', 'auth_sessions', ['user_id'])
    op.create_index('ix_auth_sessions_expires_at', 'auth_sessions', ['expires_at'])
    op.create_index('ix_auth_sessions_id_refresh', 'auth_sessions', ['id', 'refresh_token_hash'])

    # ============================================================================
    # venues
    # ============================================================================
    op.create_table(
        'venues',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('name', sa.String(length=255), nullable=False),
        sa.Column('owner_user_id', sa.Integer(), nullable=True),
        sa.Column('is_active', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['owner_user_id'], ['users.id'], name='fk_venues_owner_user_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_venues'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_venues_owner_user_id', 'venues', ['owner_user_id'])

    op.create_table(
        'venue_news',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('venue_id', sa.Integer(), nullable=False),
        sa.Column('author_user_id', sa.Integer(), nullable=True),
        sa.Column('title', sa.String(length=255), nullable=False),
        sa.Column('content', sa.Text(), nullable=False),
        sa.Column('image_url', sa.String(length=1024), nullable=True),
        sa.Column('is_published', sa.Boolean(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.Column('updated_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['venue_id'], ['venues.id'], name='fk_venue_news_venue_id_venues'),
        sa.ForeignKeyConstraint(['author_user_id'], ['users.id'], name='fk_venue_news_author_user_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_venue_news'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_venue_news_venue_id', 'venue_news', ['venue_id'])
    op.create_index('ix_venue_news_venue_created', 'venue_news', ['venue_id', 'created_at'])

    # ============================================================================
    # venue_entitlements: FREE rows carry no period, no grace, no price
    # ============================================================================
    op.create_table(
        'venue_entitlements',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('venue_id', sa.Integer(), nullable=False),
        sa.Column('tier', sa.String(length=16), nullable=False),
        sa.Column('expires_at', sa.DateTime(), nullable=True),
        sa.Column('auto_renew', sa.Boolean(), nullable=False),
        sa.Column('grace_period_ends_at', sa.DateTime(), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=True),
        sa.Column('monthly_feature_count', sa.Integer(), nullable=False),
        sa.Column('feature_counter_reset_at', sa.DateTime(), nullable=True),
        sa.Column('updated_at', sa.DateTime(), nullable=False,
                  server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.ForeignKeyConstraint(['venue_id'], ['venues.id'], name='fk_venue_entitlements_venue_id_venues'),
        sa.PrimaryKeyConstraint('id', name='pk_venue_entitlements'),
        sa.UniqueConstraint('venue_id', name='uq_venue_entitlements_venue'),
        sa.CheckConstraint("tier IN ('FREE', 'SUPER', 'MAXIMUM')", name='ck_venue_entitlements_tier'),
        sa.CheckConstraint(
            "tier <> 'FREE' OR (expires_at IS NULL AND grace_period_ends_at IS NULL AND price_cents IS NULL)",
            name='ck_venue_entitlements_free_has_no_period',
        ),
        sa.CheckConstraint('monthly_feature_count >= 0', name='ck_venue_entitlements_feature_count'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_venue_entitlements_tier_expires', 'venue_entitlements', ['tier', 'expires_at'])
    op.create_index('ix_venue_entitlements_tier_grace', 'venue_entitlements', ['tier', 'grace_period_ends_at'])

    # ============================================================================
    # venue_tariff_history: append-only, one open entry per venue
    # ============================================================================
    op.create_table(
        'venue_tariff_history',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('venue_id', sa.Integer(), nullable=False),
        sa.Column('tier', sa.String(length=16), nullable=False),
        sa.Column('started_at', sa.DateTime(), nullable=False),
        sa.Column('ended_at', sa.DateTime(), nullable=True),
        sa.Column('price_cents', sa.Integer(), nullable=True),
        sa.Column('auto_renewed', sa.Boolean(), nullable=False),
        sa.Column('changed_by_user_id', sa.Integer(), nullable=True),
        sa.Column('reason', sa.String(length=255), nullable=True),
        sa.ForeignKeyConstraint(['venue_id'], ['venues.id'], name='fk_venue_tariff_history_venue_id_venues'),
        sa.ForeignKeyConstraint(['changed_by_user_id'], ['users.id'], name='fk_venue_tariff_history_changed_by_user_id_users'),
        sa.PrimaryKeyConstraint('id', name='pk_venue_tariff_history'),
        sa.CheckConstraint("tier IN ('FREE', 'SUPER', 'MAXIMUM')", name='ck_venue_tariff_history_tier'),
        sqlite_autoincrement=True
    )
    op.create_index('ix_venue_tariff_history_venue_id', 'venue_tariff_history', ['venue_id'])
    op.create_index('ix_venue_tariff_history_venue_started', 'venue_tariff_history', ['venue_id', 'started_at'])
    op.create_index('ix_venue_tariff_history_venue_open', 'venue_tariff_history', ['venue_id', 'ended_at'])


def downgrade():
    op.drop_table('venue_tariff_history')
    op.drop_table('venue_entitlements')
    op.drop_table('venue_news')
    op.drop_table('venues')
    op.drop_table('auth_sessions')
    op.drop_table('users')
