"""listings, listing aliases and ingestion runs

Revision ID: 0001
Revises:
Create Date: 2026-10-17 00:00:00
"""

from alembic import op
import sqlalchemy as sa

revision = "0001"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "listings",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("source_url", sa.String(), nullable=False),
        sa.Column("vin", sa.String(length=17)),
        sa.Column("title", sa.String()),
        sa.Column("model_id", sa.String()),
        sa.Column("trim_id", sa.String()),
        sa.Column("generation_id", sa.String()),
        sa.Column("model_year", sa.Integer()),
        sa.Column("exterior_color_id", sa.String()),
        sa.Column("exterior_color_name", sa.String()),
        sa.Column("is_paint_to_sample", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("option_ids", sa.JSON(), server_default=sa.text("'[]'")),
        sa.Column("validation_errors", sa.JSON(), server_default=sa.text("'[]'")),
        sa.Column("needs_review", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("taxonomy_method", sa.String()),
        sa.Column("taxonomy_confidence", sa.Float()),
        sa.Column("price", sa.Float()),
        sa.Column("mileage", sa.Integer()),
        sa.Column("sold_date", sa.Date()),
        sa.Column("status", sa.String(), nullable=False, server_default="active"),
        sa.Column("scraped_at", sa.DateTime()),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.Column("updated_at", sa.DateTime()),
        sa.UniqueConstraint("vin", name="uq_listings_vin"),
        sa.UniqueConstraint("source", "source_url", name="uq_listings_source_url"),
    )
    op.create_index("ix_listings_source", "listings", ["source"])
    op.create_index("ix_listings_model_id", "listings", ["model_id"])
    op.create_index("ix_listings_trim_id", "listings", ["trim_id"])
    op.create_index("ix_listings_sold_date", "listings", ["sold_date"])

    op.create_table(
        "listing_aliases",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("listing_id", sa.Integer(), sa.ForeignKey("listings.id", ondelete="CASCADE"), nullable=False),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("source_url", sa.String(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.UniqueConstraint("source", "source_url", name="uq_listing_aliases_source_url"),
    )
    op.create_index("ix_listing_aliases_listing_id", "listing_aliases", ["listing_id"])

    op.create_table(
        "ingestion_runs",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("run_id", sa.String(length=32), nullable=False, unique=True),
        sa.Column("source", sa.String(), nullable=False),
        sa.Column("started_at", sa.DateTime(), nullable=False),
        sa.Column("finished_at", sa.DateTime()),
        sa.Column("inserted", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("updated", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("failed", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("needs_review", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("ai_calls", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("ai_disabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("failures", sa.JSON(), server_default=sa.text("'[]'")),
    )


def downgrade() -> None:
    op.drop_table("ingestion_runs")
    op.drop_index("ix_listing_aliases_listing_id", table_name="listing_aliases")
    op.drop_table("listing_aliases")
    op.drop_index("ix_listings_sold_date", table_name="listings")
    op.drop_index("ix_listings_trim_id", table_name="listings")
    op.drop_index("ix_listings_model_id", table_name="listings")
    op.drop_index("ix_listings_source", table_name="listings")
    op.drop_table("listings")
