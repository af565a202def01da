"""
001 — Initial schema: parameter catalog, inspections, scores, certificates

Revision ID: 001
Create Date: 2026-10-05
"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSON

revision = "001"
down_revision = None
branch_labels = None
depends_on = None


def _timestamps():
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("modified_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    # ── Catalog ──
    op.create_table(
        "inspection_modules",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("slug", sa.String(50), nullable=False, unique=True),
        sa.Column("icon", sa.String(10), nullable=True),
        sa.Column("weight", sa.Float, nullable=False),
        sa.Column("base_repair_cost", sa.Float, nullable=False, server_default="0"),
        sa.Column("gamma", sa.Float, nullable=False, server_default="1.3"),
        sa.Column("sort_order", sa.Integer, nullable=False, server_default="0"),
        *_timestamps(),
    )

    op.create_table(
        "inspection_sub_groups",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("module_id", sa.Integer, sa.ForeignKey("inspection_modules.id"), nullable=False),
        sa.Column("name", sa.String(100), nullable=False),
        sa.Column("check_count", sa.Integer, nullable=False, server_default="0"),
        sa.Column("sort_order", sa.Integer, nullable=False, server_default="0"),
        *_timestamps(),
        sa.UniqueConstraint("module_id", "name", name="uq_sub_group_module_name"),
    )
    op.create_index("ix_inspection_sub_groups_module_id", "inspection_sub_groups", ["module_id"])

    op.create_table(
        "inspection_parameters",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("sub_group_id", sa.Integer, sa.ForeignKey("inspection_sub_groups.id"), nullable=False),
        sa.Column("param_number", sa.Integer, nullable=False, unique=True),
        sa.Column("name", sa.String(150), nullable=False),
        sa.Column("detail", sa.Text, nullable=True),
        sa.Column("input_type", sa.String(50), nullable=True),
        *[sa.Column(f"option_{i}", sa.String(100), nullable=True) for i in range(1, 6)],
        *[sa.Column(f"score_{i}", sa.Float, nullable=True) for i in range(1, 6)],
        sa.Column("fuel_filter", sa.String(100), nullable=True, server_default="All"),
        sa.Column("transmission_filter", sa.String(100), nullable=True, server_default="All"),
        sa.Column("is_red_flag", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("is_active", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.Column("weightage", sa.Float, nullable=False, server_default="1.0"),
        sa.Column("sort_order", sa.Integer, nullable=False, server_default="0"),
        *_timestamps(),
    )
    op.create_index("ix_inspection_parameters_sub_group_id", "inspection_parameters", ["sub_group_id"])

    op.create_table(
        "catalog_audit_log",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("action", sa.String(20), nullable=False),
        sa.Column("table_name", sa.String(50), nullable=False),
        sa.Column("record_id", sa.String(50), nullable=False),
        sa.Column("field_name", sa.String(50), nullable=True),
        sa.Column("old_value", sa.Text, nullable=True),
        sa.Column("new_value", sa.Text, nullable=True),
        sa.Column("changed_by", sa.String(100), nullable=False),
        sa.Column("changed_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )

    # ── Inspections ──
    op.create_table(
        "inspections",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("uuid", sa.String(36), nullable=False, unique=True),
        sa.Column("technician_id", sa.String(100), nullable=True),
        sa.Column("inspector_name", sa.String(100), nullable=True),
        sa.Column("vehicle_reg_number", sa.String(20), nullable=True),
        sa.Column("vehicle_make", sa.String(80), nullable=True),
        sa.Column("vehicle_model", sa.String(80), nullable=True),
        sa.Column("vehicle_year", sa.Integer, nullable=True),
        sa.Column("fuel_type", sa.String(20), nullable=False),
        sa.Column("transmission_type", sa.String(20), nullable=False),
        sa.Column("odometer_km", sa.Integer, nullable=True),
        sa.Column("gps_latitude", sa.Float, nullable=True),
        sa.Column("gps_longitude", sa.Float, nullable=True),
        sa.Column("gps_address", sa.String(255), nullable=True),
        sa.Column("status", sa.String(20), nullable=False, server_default="draft"),
        sa.Column("total_applicable_params", sa.Integer, nullable=False, server_default="0"),
        sa.Column("total_answered_params", sa.Integer, nullable=False, server_default="0"),
        sa.Column("started_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
    )
    op.create_index("ix_inspections_uuid", "inspections", ["uuid"])
    op.create_index("ix_inspections_technician_id", "inspections", ["technician_id"])
    op.create_index("ix_inspections_vehicle_reg_number", "inspections", ["vehicle_reg_number"])
    op.create_index("ix_inspections_status", "inspections", ["status"])

    op.create_table(
        "inspection_responses",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("inspection_id", sa.Integer, sa.ForeignKey("inspections.id"), nullable=False),
        sa.Column("parameter_id", sa.Integer, sa.ForeignKey("inspection_parameters.id"), nullable=False),
        sa.Column("module_id", sa.Integer, sa.ForeignKey("inspection_modules.id"), nullable=False),
        sa.Column("sub_group_id", sa.Integer, sa.ForeignKey("inspection_sub_groups.id"), nullable=False),
        sa.Column("param_number", sa.Integer, nullable=False),
        sa.Column("parameter_name", sa.String(150), nullable=False),
        sa.Column("parameter_detail", sa.Text, nullable=True),
        sa.Column("input_type", sa.String(50), nullable=True),
        sa.Column("option_labels", JSON, nullable=False),
        sa.Column("option_scores", JSON, nullable=False),
        sa.Column("is_red_flag", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("selected_option", sa.Integer, nullable=True),
        sa.Column("severity_score", sa.Float, nullable=True),
        sa.Column("notes", sa.Text, nullable=True),
        *_timestamps(),
        sa.UniqueConstraint("inspection_id", "parameter_id", name="uq_response_inspection_parameter"),
    )
    op.create_index("ix_inspection_responses_inspection_id", "inspection_responses", ["inspection_id"])

    op.create_table(
        "inspection_photos",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("response_id", sa.Integer, sa.ForeignKey("inspection_responses.id"), nullable=False),
        sa.Column("file_path", sa.String(500), nullable=False),
        sa.Column("file_name", sa.String(255), nullable=False),
        sa.Column("file_size", sa.Integer, nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_inspection_photos_response_id", "inspection_photos", ["response_id"])

    # ── Outputs ──
    op.create_table(
        "inspection_scores",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("inspection_id", sa.Integer, sa.ForeignKey("inspections.id"), nullable=False, unique=True),
        sa.Column("engine_risk", sa.Float, nullable=True),
        sa.Column("transmission_risk", sa.Float, nullable=True),
        sa.Column("structural_risk", sa.Float, nullable=True),
        sa.Column("paint_risk", sa.Float, nullable=True),
        sa.Column("suspension_risk", sa.Float, nullable=True),
        sa.Column("electrical_risk", sa.Float, nullable=True),
        sa.Column("interior_risk", sa.Float, nullable=True),
        sa.Column("documents_risk", sa.Float, nullable=True),
        sa.Column("road_test_risk", sa.Float, nullable=True),
        sa.Column("module_risks_json", JSON, nullable=False),
        sa.Column("vri", sa.Float, nullable=False),
        sa.Column("rating", sa.Float, nullable=False),
        sa.Column("certification", sa.String(20), nullable=False),
        sa.Column("has_red_flags", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("red_flag_params", JSON, nullable=True),
        sa.Column("total_repair_cost", sa.Float, nullable=False, server_default="0"),
        sa.Column("repair_cost_breakdown", JSON, nullable=True),
        *_timestamps(),
    )

    op.create_table(
        "inspection_certificates",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("inspection_id", sa.Integer, sa.ForeignKey("inspections.id"), nullable=False, unique=True),
        sa.Column("certificate_number", sa.String(30), nullable=False, unique=True),
        sa.Column("qr_code_data", sa.String(500), nullable=True),
        sa.Column("rating", sa.Float, nullable=True),
        sa.Column("certification", sa.String(20), nullable=True),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_inspection_certificates_issued_at", "inspection_certificates", ["issued_at"])


def downgrade() -> None:
    op.drop_table("inspection_certificates")
    op.drop_table("inspection_scores")
    op.drop_table("inspection_photos")
    op.drop_table("inspection_responses")
    op.drop_table("inspections")
    op.drop_table("catalog_audit_log")
    op.drop_table("inspection_parameters")
    op.drop_table("inspection_sub_groups")
    op.drop_table("inspection_modules")
