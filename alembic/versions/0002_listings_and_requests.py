from alembic import op
import sqlalchemy as sa

revision = "0002_listings_and_requests"
down_revision = "0001_identities"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "listings",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("owner_id", sa.String(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("owner_name", sa.String(length=200), nullable=False),
        sa.Column("owner_contact", sa.String(length=320), nullable=False),

        sa.Column("name", sa.String(length=120), nullable=False),
        sa.Column("species", sa.String(length=30), nullable=False),
        sa.Column("breed", sa.String(length=120), nullable=False),
        sa.Column("age", sa.Integer(), nullable=False),
        sa.Column("gender", sa.String(length=10), nullable=False),
        sa.Column("size", sa.String(length=10), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("location", sa.String(length=200), nullable=False),
        sa.Column("image_url", sa.Text(), nullable=False),

        sa.Column("is_available", sa.Boolean(), nullable=False, server_default=sa.true()),

        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("created_by", sa.String(), nullable=True),
        sa.Column("updated_by", sa.String(), nullable=True),
    )
    op.create_index("ix_listings_available_created", "listings", ["is_available", "created_at"])
    op.create_index("ix_listings_owner_created", "listings", ["owner_id", "created_at"])
    op.create_index("ix_listings_species", "listings", ["species"])
    op.create_index("ix_listings_size", "listings", ["size"])

    op.create_table(
        "adoption_requests",
        sa.Column("id", sa.String(), primary_key=True),
        sa.Column("listing_id", sa.String(), sa.ForeignKey("listings.id"), nullable=False),
        sa.Column("requester_id", sa.String(), sa.ForeignKey("users.id"), nullable=False),
        sa.Column("owner_id", sa.String(), sa.ForeignKey("users.id"), nullable=False),

        sa.Column("requester_name", sa.String(length=200), nullable=False),
        sa.Column("owner_name", sa.String(length=200), nullable=False),
        sa.Column("listing_name", sa.String(length=120), nullable=False),

        sa.Column("message", sa.Text(), nullable=False, server_default=""),
        sa.Column("status", sa.String(length=20), nullable=False, server_default="pending"),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),

        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("created_by", sa.String(), nullable=True),
        sa.Column("updated_by", sa.String(), nullable=True),

        sa.CheckConstraint("status IN ('pending', 'approved', 'rejected')", name="ck_adoption_requests_status"),
    )
    op.create_index("ix_adoption_requests_listing_id", "adoption_requests", ["listing_id"])
    op.create_index("ix_adoption_requests_owner_status", "adoption_requests", ["owner_id", "status"])
    op.create_index("ix_adoption_requests_requester_status", "adoption_requests", ["requester_id", "status"])


def downgrade():
    op.drop_index("ix_adoption_requests_requester_status", table_name="adoption_requests")
    op.drop_index("ix_adoption_requests_owner_status", table_name="adoption_requests")
    op.drop_index("ix_adoption_requests_listing_id", table_name="adoption_requests")
    op.drop_table("adoption_requests")

    op.drop_index("ix_listings_size", table_name="listings")
    op.drop_index("ix_listings_species", table_name="listings")
    op.drop_index("ix_listings_owner_created", table_name="listings")
    op.drop_index("ix_listings_available_created", table_name="listings")
    op.drop_table("listings")
