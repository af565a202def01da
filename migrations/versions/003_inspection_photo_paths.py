"""
003 — Inspection-level photo references

Storage paths for the inspector's selfie and the vehicle overview photo,
shown on the report cover. Per-response photos stay in inspection_photos.

Revision ID: 003
Create Date: 2026-10-18
"""
from alembic import op
import sqlalchemy as sa

revision = "003"
down_revision = "002"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column("inspections", sa.Column("inspector_photo_path", sa.String(500), nullable=True))
    op.add_column("inspections", sa.Column("vehicle_photo_path", sa.String(500), nullable=True))


def downgrade() -> None:
    op.drop_column("inspections", "vehicle_photo_path")
    op.drop_column("inspections", "inspector_photo_path")
