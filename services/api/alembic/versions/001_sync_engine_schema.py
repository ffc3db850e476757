"""sync engine schema

Revision ID: 001_sync_engine
Revises:
Create Date: 2026-09-28 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = '001_sync_engine'
down_revision = None
branch_labels = None
depends_on = None


def _item_columns():
    """Columns every normalized section table shares."""
    return [
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('item_id', sa.String(255), nullable=False),
        sa.Column('position', sa.Integer(), server_default='0', nullable=False),
        sa.Column('extra_data', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
    ]


def _value_column(name):
    # Known item fields keep the client's JSON value as sent
    return sa.Column(name, postgresql.JSONB(astext_type=sa.Text()), nullable=True)


_ITEM_TABLES = [
    ('user_inventory_items', 'inventory', [
        'name', 'barcode', 'quantity', 'unit', 'storage_location', 'purchase_date',
        'expiration_date', 'category', 'usda_category', 'nutrition', 'notes',
        'image_uri', 'fdc_id', 'deleted_at',
    ]),
    ('user_saved_recipes', 'recipes', [
        'title', 'description', 'ingredients', 'instructions', 'prep_time',
        'cook_time', 'servings', 'image_uri', 'cloud_image_uri', 'nutrition',
        'is_favorite',
    ]),
    ('user_meal_plans', 'meal_plans', ['date', 'meals']),
    ('user_shopping_items', 'shopping', [
        'name', 'quantity', 'unit', 'is_checked', 'category', 'recipe_id',
    ]),
    ('user_cookware_items', 'cookware', ['name', 'category', 'alternatives']),
]


def upgrade():
    # --- Users ---
    op.create_table('users',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('email', sa.String(255), nullable=True),
        sa.Column('display_name', sa.String(200), nullable=True),
        sa.Column('subscription_tier', sa.String(20), nullable=True),
        sa.Column('has_completed_onboarding', sa.Boolean(), server_default='false', nullable=False),
        sa.Column('household_size', sa.Integer(), nullable=True),
        sa.Column('daily_meals', sa.Integer(), nullable=True),
        sa.Column('dietary_restrictions', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('favorite_categories', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('storage_areas_enabled', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('cooking_skill_level', sa.String(20), nullable=True),
        sa.Column('expiration_alert_days', sa.Integer(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('email')
    )

    # --- Sync State Record ---
    op.create_table('user_sync_state',
        sa.Column('id', sa.String(36), nullable=False),
        sa.Column('user_id', sa.String(36), nullable=False),
        sa.Column('preferences', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('waste_log', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('consumed_log', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('analytics', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('onboarding', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('custom_locations', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('user_profile', postgresql.JSONB(astext_type=sa.Text()), nullable=True),
        sa.Column('section_updated_at', postgresql.JSONB(astext_type=sa.Text()), server_default='{}', nullable=False),
        sa.Column('last_synced_at', sa.DateTime(timezone=True), nullable=True),
        sa.Column('updated_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('now()'), nullable=True),
        sa.ForeignKeyConstraint(['user_id'], ['users.id'], ondelete='CASCADE'),
        sa.PrimaryKeyConstraint('id'),
        sa.UniqueConstraint('user_id')
    )

    # --- Normalized sections ---
    for table, prefix, fields in _ITEM_TABLES:
        op.create_table(table,
            *_item_columns(),
            *[_value_column(name) for name in fields],
            sa.UniqueConstraint('user_id', 'item_id', name=f'uq_{prefix}_user_item')
        )
        op.create_index(f'ix_{prefix}_user_id', table, ['user_id'])
        op.create_index(f'ix_{prefix}_user_updated', table, ['user_id', 'updated_at', 'item_id'])


def downgrade():
    for table, prefix, _ in reversed(_ITEM_TABLES):
        op.drop_index(f'ix_{prefix}_user_updated', table_name=table)
        op.drop_index(f'ix_{prefix}_user_id', table_name=table)
        op.drop_table(table)
    op.drop_table('user_sync_state')
    op.drop_table('users')
