"""
002 — Seed the nine inspection modules

Module weights total 1.0. Base repair cost (INR) and gamma feed the
repair-cost estimate. Sub-groups and parameters are loaded from the
parameter CSV by app.services.catalog_seed.

Revision ID: 002
Create Date: 2026-10-05
"""
from alembic import op
import sqlalchemy as sa

revision = "002"
down_revision = "001"
branch_labels = None
depends_on = None

modules_table = sa.table(
    "inspection_modules",
    sa.column("name", sa.String),
    sa.column("slug", sa.String),
    sa.column("icon", sa.String),
    sa.column("weight", sa.Float),
    sa.column("base_repair_cost", sa.Float),
    sa.column("gamma", sa.Float),
    sa.column("sort_order", sa.Integer),
)

# name, slug, icon, weight, base_repair_cost, gamma
MODULES = [
    ("Engine System",             "engine_system",           "🔧", 0.22, 150000, 1.3),
    ("Transmission & Drivetrain", "transmission_drivetrain", "⚙️", 0.15, 120000, 1.25),
    ("Structural Integrity",      "structural_integrity",    "🏗️", 0.15, 200000, 1.4),
    ("Paint & Panel Mapping",     "paint_panel",             "🎨", 0.08, 80000,  1.1),
    ("Suspension & Brakes",       "suspension_brakes",       "🛞", 0.12, 100000, 1.2),
    ("Electrical & Electronics",  "electrical_electronics",  "⚡", 0.10, 90000,  1.15),
    ("Interior & Safety",         "interior_safety",         "💺", 0.06, 50000,  1.0),
    ("Documentation Validation",  "documentation",           "📋", 0.05, 10000,  0.8),
    ("Road Test Evaluation",      "road_test",               "🛣️", 0.07, 70000,  1.2),
]


def upgrade() -> None:
    op.bulk_insert(modules_table, [
        {
            "name": name,
            "slug": slug,
            "icon": icon,
            "weight": weight,
            "base_repair_cost": base_cost,
            "gamma": gamma,
            "sort_order": order,
        }
        for order, (name, slug, icon, weight, base_cost, gamma) in enumerate(MODULES, start=1)
    ])


def downgrade() -> None:
    slugs = ", ".join(f"'{m[1]}'" for m in MODULES)
    op.execute(f"DELETE FROM inspection_modules WHERE slug IN ({slugs})")
