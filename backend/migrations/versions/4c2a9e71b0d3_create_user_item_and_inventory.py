"""create user, item and user_item tables

Revision ID: 4c2a9e71b0d3
Revises:
Create Date: 2026-10-12 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4c2a9e71b0d3'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'item' not in existing_tables:
        op.create_table(
            'item',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('name', sa.String(length=64), nullable=False),
            sa.Column('price', sa.Integer(), nullable=False),
            sa.Column('image_id', sa.String(length=64), nullable=False),
            sa.Column('color', sa.String(length=16), nullable=False, server_default='#ffffff'),
            sa.Column('type', sa.String(length=16), nullable=False),
        )

    if 'user' not in existing_tables:
        op.create_table(
            'user',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('username', sa.String(length=64), nullable=False),
            sa.Column('email', sa.String(length=120), nullable=True),
            sa.Column('password_hash', sa.String(length=256), nullable=False),
            sa.Column('avatar', sa.String(length=256), nullable=False, server_default='/avatars/skin-1.jpg'),
            sa.Column('coins', sa.Integer(), nullable=False, server_default='1000'),
            sa.Column('wins', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('losses', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('total_earned', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('last_claim_date', sa.Date(), nullable=True),
            sa.Column('login_streak', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('equipped_border_id', sa.Integer(), sa.ForeignKey('item.id'), nullable=True),
            sa.Column('equipped_background_id', sa.Integer(), sa.ForeignKey('item.id'), nullable=True),
            sa.Column('equipped_hands_id', sa.Integer(), sa.ForeignKey('item.id'), nullable=True),
            sa.UniqueConstraint('email'),
        )
        op.create_index('ix_user_username', 'user', ['username'], unique=True)

    if 'user_item' not in existing_tables:
        op.create_table(
            'user_item',
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), primary_key=True),
            sa.Column('item_id', sa.Integer(), sa.ForeignKey('item.id'), primary_key=True),
        )


def downgrade():
    op.drop_table('user_item')
    op.drop_index('ix_user_username', table_name='user')
    op.drop_table('user')
    op.drop_table('item')
