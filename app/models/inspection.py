"""
Inspection session tables: inspection, frozen response set, photos, score, certificate.
"""
from datetime import datetime, timezone

from sqlalchemy import (
    JSON, Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from app.models.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Inspection(Base):
    __tablename__ = "inspections"

    id = Column(Integer, primary_key=True, autoincrement=True)
    uuid = Column(String(36), nullable=False, unique=True, index=True)
    technician_id = Column(String(100), nullable=True, index=True)
    inspector_name = Column(String(100), nullable=True)

    # ── Vehicle identity ──
    vehicle_reg_number = Column(String(20), nullable=True, index=True)
    vehicle_make = Column(String(80), nullable=True)
    vehicle_model = Column(String(80), nullable=True)
    vehicle_year = Column(Integer, nullable=True)
    fuel_type = Column(String(20), nullable=False)
    transmission_type = Column(String(20), nullable=False)
    odometer_km = Column(Integer, nullable=True)

    # ── Location ──
    gps_latitude = Column(Float, nullable=True)
    gps_longitude = Column(Float, nullable=True)
    gps_address = Column(String(255), nullable=True)

    # ── Inspection-level photos (storage paths) ──
    inspector_photo_path = Column(String(500), nullable=True)
    vehicle_photo_path = Column(String(500), nullable=True)

    # ── Lifecycle ──
    status = Column(String(20), nullable=False, default="draft", index=True)
    total_applicable_params = Column(Integer, nullable=False, default=0)
    total_answered_params = Column(Integer, nullable=False, default=0)
    started_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    modified_at = Column(DateTime(timezone=True), nullable=True)

    responses = relationship("InspectionResponse", back_populates="inspection")
    score = relationship("InspectionScore", back_populates="inspection", uselist=False)
    certificate = relationship("InspectionCertificate", back_populates="inspection", uselist=False)

    def __repr__(self):
        return f"<Inspection {self.uuid} status={self.status}>"


class InspectionResponse(Base):
    """
    One answer slot per (inspection, parameter), created in bulk at inspection creation.

    The catalog fields below are copied on create so the required answer set and
    the option → severity mapping never change after the fact. severity_score is
    derived from option_scores server-side; no request schema carries it.
    """
    __tablename__ = "inspection_responses"
    __table_args__ = (
        UniqueConstraint("inspection_id", "parameter_id", name="uq_response_inspection_parameter"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    inspection_id = Column(Integer, ForeignKey("inspections.id"), nullable=False, index=True)
    parameter_id = Column(Integer, ForeignKey("inspection_parameters.id"), nullable=False)

    # ── Frozen snapshot ──
    module_id = Column(Integer, ForeignKey("inspection_modules.id"), nullable=False)
    sub_group_id = Column(Integer, ForeignKey("inspection_sub_groups.id"), nullable=False)
    param_number = Column(Integer, nullable=False)
    parameter_name = Column(String(150), nullable=False)
    parameter_detail = Column(Text, nullable=True)
    input_type = Column(String(50), nullable=True)
    option_labels = Column(JSON, nullable=False)
    option_scores = Column(JSON, nullable=False)
    is_red_flag = Column(Boolean, nullable=False, default=False)

    # ── Answer ──
    selected_option = Column(Integer, nullable=True)  # 1-5, NULL = unanswered
    severity_score = Column(Float, nullable=True)
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    modified_at = Column(DateTime(timezone=True), nullable=True)

    inspection = relationship("Inspection", back_populates="responses")
    module = relationship("InspectionModule")
    sub_group = relationship("InspectionSubGroup")
    photos = relationship("InspectionPhoto", back_populates="response", order_by="InspectionPhoto.id")


class InspectionPhoto(Base):
    __tablename__ = "inspection_photos"

    id = Column(Integer, primary_key=True, autoincrement=True)
    response_id = Column(Integer, ForeignKey("inspection_responses.id"), nullable=False, index=True)
    file_path = Column(String(500), nullable=False)
    file_name = Column(String(255), nullable=False)
    file_size = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    response = relationship("InspectionResponse", back_populates="photos")


# Module slug → dedicated risk column on inspection_scores
SLUG_TO_RISK_COLUMN: dict[str, str] = {
    "engine_system": "engine_risk",
    "transmission_drivetrain": "transmission_risk",
    "structural_integrity": "structural_risk",
    "paint_panel": "paint_risk",
    "suspension_brakes": "suspension_risk",
    "electrical_electronics": "electrical_risk",
    "interior_safety": "interior_risk",
    "documentation": "documents_risk",
    "road_test": "road_test_risk",
}


class InspectionScore(Base):
    __tablename__ = "inspection_scores"

    id = Column(Integer, primary_key=True, autoincrement=True)
    inspection_id = Column(Integer, ForeignKey("inspections.id"), nullable=False, unique=True)

    # ── Per-module risk (0-1) ──
    engine_risk = Column(Float, nullable=True)
    transmission_risk = Column(Float, nullable=True)
    structural_risk = Column(Float, nullable=True)
    paint_risk = Column(Float, nullable=True)
    suspension_risk = Column(Float, nullable=True)
    electrical_risk = Column(Float, nullable=True)
    interior_risk = Column(Float, nullable=True)
    documents_risk = Column(Float, nullable=True)
    road_test_risk = Column(Float, nullable=True)
    module_risks_json = Column(JSON, nullable=False)

    # ── Composite outputs ──
    vri = Column(Float, nullable=False)
    rating = Column(Float, nullable=False)
    certification = Column(String(20), nullable=False)
    has_red_flags = Column(Boolean, nullable=False, default=False)
    red_flag_params = Column(JSON, nullable=True)
    total_repair_cost = Column(Float, nullable=False, default=0.0)
    repair_cost_breakdown = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    modified_at = Column(DateTime(timezone=True), nullable=True)

    inspection = relationship("Inspection", back_populates="score")

    def __repr__(self):
        return f"<InspectionScore inspection={self.inspection_id} rating={self.rating} cert={self.certification}>"


class InspectionCertificate(Base):
    __tablename__ = "inspection_certificates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    inspection_id = Column(Integer, ForeignKey("inspections.id"), nullable=False, unique=True)
    certificate_number = Column(String(30), nullable=False, unique=True)
    qr_code_data = Column(String(500), nullable=True)

    # ── Snapshot at issuance ──
    rating = Column(Float, nullable=True)
    certification = Column(String(20), nullable=True)

    issued_at = Column(DateTime(timezone=True), nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)

    inspection = relationship("Inspection", back_populates="certificate")

    def __repr__(self):
        return f"<InspectionCertificate {self.certificate_number}>"
