"""
Parameter catalog: Module → Sub-Group → Parameter.

Seeded / administered out-of-band. Inspections reference these rows but
never own them; each inspection copies what it needs at creation time.
"""
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import (
    Boolean, Column, DateTime, Float, ForeignKey, Integer, String, Text, UniqueConstraint,
)
from sqlalchemy.orm import relationship

from app.models.database import Base

OPTION_SLOTS = 5


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InspectionModule(Base):
    __tablename__ = "inspection_modules"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String(100), nullable=False)
    slug = Column(String(50), nullable=False, unique=True)
    icon = Column(String(10), nullable=True)

    # ── Scoring inputs ──
    weight = Column(Float, nullable=False)
    base_repair_cost = Column(Float, nullable=False, default=0.0)
    gamma = Column(Float, nullable=False, default=1.3)

    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    modified_at = Column(DateTime(timezone=True), nullable=True)

    sub_groups = relationship(
        "InspectionSubGroup",
        back_populates="module",
        order_by="InspectionSubGroup.sort_order",
    )

    def __repr__(self):
        return f"<InspectionModule {self.slug} weight={self.weight}>"


class InspectionSubGroup(Base):
    __tablename__ = "inspection_sub_groups"
    __table_args__ = (UniqueConstraint("module_id", "name", name="uq_sub_group_module_name"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    module_id = Column(Integer, ForeignKey("inspection_modules.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    check_count = Column(Integer, nullable=False, default=0)  # informational only
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    modified_at = Column(DateTime(timezone=True), nullable=True)

    module = relationship("InspectionModule", back_populates="sub_groups")
    parameters = relationship(
        "InspectionParameter",
        back_populates="sub_group",
        order_by="InspectionParameter.sort_order",
    )


class InspectionParameter(Base):
    __tablename__ = "inspection_parameters"

    id = Column(Integer, primary_key=True, autoincrement=True)
    sub_group_id = Column(Integer, ForeignKey("inspection_sub_groups.id"), nullable=False, index=True)
    param_number = Column(Integer, nullable=False, unique=True)
    name = Column(String(150), nullable=False)
    detail = Column(Text, nullable=True)
    input_type = Column(String(50), nullable=True)

    # ── Up to five mutually exclusive options, severity 0 (fine) .. 1 (worst) ──
    option_1 = Column(String(100), nullable=True)
    option_2 = Column(String(100), nullable=True)
    option_3 = Column(String(100), nullable=True)
    option_4 = Column(String(100), nullable=True)
    option_5 = Column(String(100), nullable=True)
    score_1 = Column(Float, nullable=True)
    score_2 = Column(Float, nullable=True)
    score_3 = Column(Float, nullable=True)
    score_4 = Column(Float, nullable=True)
    score_5 = Column(Float, nullable=True)

    # ── Applicability: "All" or comma-separated allow-list ──
    fuel_filter = Column(String(100), nullable=True, default="All")
    transmission_filter = Column(String(100), nullable=True, default="All")

    is_red_flag = Column(Boolean, nullable=False, default=False)
    is_active = Column(Boolean, nullable=False, default=True)
    weightage = Column(Float, nullable=False, default=1.0)  # display only
    sort_order = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
    modified_at = Column(DateTime(timezone=True), nullable=True)

    sub_group = relationship("InspectionSubGroup", back_populates="parameters")

    @property
    def option_labels(self) -> list[Optional[str]]:
        return [getattr(self, f"option_{i}") for i in range(1, OPTION_SLOTS + 1)]

    @property
    def option_scores(self) -> list[Optional[float]]:
        return [getattr(self, f"score_{i}") for i in range(1, OPTION_SLOTS + 1)]

    def __repr__(self):
        return f"<InspectionParameter #{self.param_number} {self.name!r}>"


class CatalogAuditLog(Base):
    """One row per changed field of an admin catalog edit."""
    __tablename__ = "catalog_audit_log"

    id = Column(Integer, primary_key=True, autoincrement=True)
    action = Column(String(20), nullable=False)  # UPDATED | ACTIVATED | DEACTIVATED
    table_name = Column(String(50), nullable=False)
    record_id = Column(String(50), nullable=False)
    field_name = Column(String(50), nullable=True)
    old_value = Column(Text, nullable=True)
    new_value = Column(Text, nullable=True)
    changed_by = Column(String(100), nullable=False)
    changed_at = Column(DateTime(timezone=True), default=_utcnow, nullable=False)
