"""marketplace core tables: listings, profiles, wishlists

Revision ID: 4c1d2e3f5a6b
Revises:
Create Date: 2026-10-19 09:00:00.000000
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = "4c1d2e3f5a6b"
down_revision = None
branch_labels = None
depends_on = None


def _table_exists(bind, table_name: str) -> bool:
    try:
        return sa.inspect(bind).has_table(table_name)
    except Exception:
        return False


def upgrade():
    bind = op.get_bind()

    if not _table_exists(bind, "listings"):
        op.create_table(
            "listings",
            sa.Column("id", sa.String(length=36), nullable=False),
            sa.Column("user_id", sa.String(length=64), nullable=False),
            sa.Column("title", sa.String(length=160), nullable=False),
            sa.Column("description", sa.Text(), nullable=False, server_default=""),
            sa.Column("category", sa.String(length=64), nullable=False),
            sa.Column("subcategory", sa.String(length=64), nullable=True),
            sa.Column("condition", sa.String(length=16), nullable=True),
            sa.Column("location", sa.String(length=120), nullable=True),
            sa.Column("price", sa.Float(), nullable=False, server_default="0"),
            sa.Column("image_url", sa.String(length=1024), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False, server_default=sa.func.now()),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_listings_user_id", "listings", ["user_id"], unique=False)
        op.create_index("ix_listings_category", "listings", ["category"], unique=False)
        op.create_index("ix_listings_subcategory", "listings", ["subcategory"], unique=False)
        op.create_index("ix_listings_location", "listings", ["location"], unique=False)

    if not _table_exists(bind, "profiles"):
        op.create_table(
            "profiles",
            sa.Column("id", sa.String(length=64), nullable=False),
            sa.Column("username", sa.String(length=120), nullable=False, server_default=""),
            sa.Column("avatar_url", sa.String(length=1024), nullable=True),
            sa.Column("location", sa.String(length=120), nullable=True),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.Column("updated_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
        )

    if not _table_exists(bind, "wishlists"):
        op.create_table(
            "wishlists",
            sa.Column("id", sa.Integer(), nullable=False),
            sa.Column("user_id", sa.String(length=64), nullable=False),
            sa.Column("item_id", sa.String(length=36), nullable=False),
            sa.Column("created_at", sa.DateTime(), nullable=False),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", "item_id", name="uq_wishlists_user_item"),
        )
        op.create_index("ix_wishlists_user_id", "wishlists", ["user_id"], unique=False)
        op.create_index("ix_wishlists_item_id", "wishlists", ["item_id"], unique=False)


def downgrade():
    bind = op.get_bind()
    for name in ("wishlists", "profiles", "listings"):
        if _table_exists(bind, name):
            op.drop_table(name)
