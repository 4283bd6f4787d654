"""create user, match_record, replay_entry and store_marker tables

Revision ID: 5c2a9e71b0d4
Revises:
Create Date: 2026-10-19 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '5c2a9e71b0d4'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        'user',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('username', sa.String(length=64), nullable=False),
        sa.Column('password_hash', sa.String(length=256), nullable=False),
    )
    op.create_index('ix_user_username', 'user', ['username'], unique=True)

    op.create_table(
        'match_record',
        sa.Column('match_id', sa.String(length=64), primary_key=True),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('expires_at', sa.Float(), nullable=False),
    )
    op.create_index('ix_match_record_expires_at', 'match_record', ['expires_at'])

    op.create_table(
        'replay_entry',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('match_id', sa.String(length=64), nullable=False),
        sa.Column('seq', sa.Integer(), nullable=False),
        sa.Column('body', sa.Text(), nullable=False),
        sa.Column('expires_at', sa.Float(), nullable=False),
        sa.UniqueConstraint('match_id', 'seq', name='uq_replay_entry_match_seq'),
    )
    op.create_index('ix_replay_entry_match_id', 'replay_entry', ['match_id'])

    op.create_table(
        'store_marker',
        sa.Column('key', sa.String(length=255), primary_key=True),
        sa.Column('value', sa.String(length=255), nullable=False),
        sa.Column('expires_at', sa.Float(), nullable=False),
    )


def downgrade():
    op.drop_table('store_marker')
    op.drop_index('ix_replay_entry_match_id', table_name='replay_entry')
    op.drop_table('replay_entry')
    op.drop_index('ix_match_record_expires_at', table_name='match_record')
    op.drop_table('match_record')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
