"""create users, games, registrations and slot assignments

Revision ID: 5c2e7a91b0d4
Revises: 
Create Date: 2026-10-18 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c2e7a91b0d4'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
        sa.Column('display_name', sa.String(length=128), nullable=True),
        sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('block_reason', sa.String(length=255), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_user_username'), 'user', ['username'], unique=True)

    op.create_table(
        'game',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('title', sa.String(length=255), nullable=True),
        sa.Column('location_name', sa.String(length=255), nullable=True),
        sa.Column('location_link', sa.String(length=512), nullable=True),
        sa.Column('date_time', sa.DateTime(), nullable=False),
        sa.Column('max_players', sa.Integer(), nullable=False),
        sa.Column('unregister_deadline_hours', sa.Integer(), nullable=False, server_default='5'),
        sa.Column('readonly', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('with_positions', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('with_priority_players', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('payment_amount', sa.Integer(), nullable=True),
        sa.Column('pricing_mode', sa.String(length=32), nullable=False, server_default='per_participant'),
        sa.Column('fully_paid', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('payment_requests_sent', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('registration_open_days', sa.Integer(), nullable=True),
        sa.Column('regular_registration_open_days', sa.Integer(), nullable=True),
        sa.Column('created_by_id', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['created_by_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
    )
    op.create_index(op.f('ix_game_date_time'), 'game', ['date_time'], unique=False)

    op.create_table(
        'registration',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('game_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('guest_name', sa.String(length=128), nullable=True),
        sa.Column('is_waitlist', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('paid', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('bringing_the_ball', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['game_id'], ['game.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('game_id', 'user_id', 'guest_name', name='uix_registration_game_user_guest'),
    )
    op.create_index(op.f('ix_registration_game_id'), 'registration', ['game_id'], unique=False)
    op.create_index(op.f('ix_registration_user_id'), 'registration', ['user_id'], unique=False)
    op.create_index(
        'uix_registration_game_user_self', 'registration', ['game_id', 'user_id'], unique=True,
        postgresql_where=sa.text('guest_name IS NULL'), sqlite_where=sa.text('guest_name IS NULL'),
    )

    op.create_table(
        'game_administrator',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('day_of_week', sa.Integer(), nullable=False),
        sa.Column('with_positions', sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('day_of_week', 'with_positions', name='uix_game_administrator_slot'),
    )

    op.create_table(
        'priority_player',
        sa.Column('id', sa.Integer(), nullable=False),
        sa.Column('game_administrator_id', sa.Integer(), nullable=False),
        sa.Column('user_id', sa.Integer(), nullable=False),
        sa.Column('created_at', sa.DateTime(), nullable=False),
        sa.ForeignKeyConstraint(['game_administrator_id'], ['game_administrator.id'], ondelete='CASCADE'),
        sa.ForeignKeyConstraint(['user_id'], ['user.id']),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('game_administrator_id', 'user_id', name='uix_priority_player_assignment'),
    )


def downgrade():
    op.drop_table('priority_player')
    op.drop_table('game_administrator')
    op.drop_index('uix_registration_game_user_self', table_name='registration')
    op.drop_index(op.f('ix_registration_user_id'), table_name='registration')
    op.drop_index(op.f('ix_registration_game_id'), table_name='registration')
    op.drop_table('registration')
    op.drop_index(op.f('ix_game_date_time'), table_name='game')
    op.drop_table('game')
    op.drop_index(op.f('ix_user_username'), table_name='user')
    op.drop_table('user')
