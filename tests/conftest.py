"""
Shared fixtures: in-memory SQLite database built from the ORM metadata,
seeded with a small two-module catalog.

Catalog (weights 0.6 / 0.4):
  engine_system
    Engine Block
      #1  Engine Oil Level        scores [0, 0.25, 0.55, 0.80, 1.0]
      #2  Engine Knocking         red flag, scores [0, 0.4, 0.75, 1.0]
      #4  Turbo Whine             inactive
    CNG System
      #3  CNG Leak                fuel_filter=CNG
  paint_panel
    Exterior Panels
      #5  Bonnet Paint            scores [0, 0.2, 0.8, 1.0]
      #6  Paddle Shifter Trim     transmission_filter="Automatic, CVT"

Petrol/Manual resolves to #1, #2, #5.
"""
from __future__ import annotations

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.models.catalog import InspectionModule, InspectionParameter, InspectionSubGroup
from app.models.database import Base
import app.models.inspection  # noqa: F401  registers tables on Base.metadata
from app.schemas.inspection_request import VehicleContext


def _options(labels, scores) -> dict:
    row = {}
    for i in range(5):
        row[f"option_{i + 1}"] = labels[i] if i < len(labels) else None
        row[f"score_{i + 1}"] = scores[i] if i < len(scores) else None
    return row


def build_catalog() -> list[InspectionModule]:
    engine_module = InspectionModule(
        name="Engine System", slug="engine_system", icon="🔧",
        weight=0.6, base_repair_cost=150000, gamma=1.3, sort_order=1,
    )
    paint_module = InspectionModule(
        name="Paint & Panel Mapping", slug="paint_panel", icon="🎨",
        weight=0.4, base_repair_cost=80000, gamma=1.1, sort_order=2,
    )

    block = InspectionSubGroup(name="Engine Block", check_count=3, sort_order=1)
    cng = InspectionSubGroup(name="CNG System", check_count=1, sort_order=2)
    panels = InspectionSubGroup(name="Exterior Panels", check_count=2, sort_order=1)
    engine_module.sub_groups = [block, cng]
    paint_module.sub_groups = [panels]

    block.parameters = [
        InspectionParameter(
            param_number=1, name="Engine Oil Level", detail="Check dipstick", input_type="Dropdown",
            sort_order=1, is_active=True, is_red_flag=False, fuel_filter="All", transmission_filter="All",
            **_options(["Full", "Slightly Low", "Low", "Very Low", "Empty"], [0, 0.25, 0.55, 0.80, 1.0]),
        ),
        InspectionParameter(
            param_number=2, name="Engine Knocking", input_type="Dropdown",
            sort_order=2, is_active=True, is_red_flag=True, fuel_filter="All", transmission_filter="All",
            **_options(["None", "Mild", "Moderate", "Severe"], [0, 0.4, 0.75, 1.0]),
        ),
        InspectionParameter(
            param_number=4, name="Turbo Whine", input_type="Dropdown",
            sort_order=3, is_active=False, is_red_flag=False, fuel_filter="All", transmission_filter="All",
            **_options(["None", "Audible"], [0, 0.6]),
        ),
    ]
    cng.parameters = [
        InspectionParameter(
            param_number=3, name="CNG Leak", input_type="Dropdown",
            sort_order=1, is_active=True, is_red_flag=True, fuel_filter="CNG", transmission_filter="All",
            **_options(["No Leak", "Seepage", "Active Leak"], [0, 0.5, 1.0]),
        ),
    ]
    panels.parameters = [
        InspectionParameter(
            param_number=5, name="Bonnet Paint", input_type="Dropdown",
            sort_order=1, is_active=True, is_red_flag=False, fuel_filter="All", transmission_filter="All",
            **_options(["Original", "Scratched", "Repainted", "Replaced"], [0, 0.2, 0.8, 1.0]),
        ),
        InspectionParameter(
            param_number=6, name="Paddle Shifter Trim", input_type="Dropdown",
            sort_order=2, is_active=True, is_red_flag=False, fuel_filter="All",
            transmission_filter="Automatic, CVT",
            **_options(["Intact", "Worn"], [0, 0.8]),
        ),
    ]
    return [engine_module, paint_module]


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
async def catalog(session_factory) -> dict[int, int]:
    """Seed the catalog; returns param_number → parameter id."""
    async with session_factory() as session:
        modules = build_catalog()
        session.add_all(modules)
        await session.commit()
        return {
            p.param_number: p.id
            for m in modules
            for sg in m.sub_groups
            for p in sg.parameters
        }


@pytest.fixture
def petrol_manual() -> VehicleContext:
    return VehicleContext(
        vehicle_reg_number="KA01AB1234",
        vehicle_make="Maruti",
        vehicle_model="Swift",
        vehicle_year=2019,
        fuel_type="Petrol",
        transmission_type="Manual",
        odometer_km=42000,
        inspector_name="R. Kumar",
    )


@pytest.fixture
def cng_automatic() -> VehicleContext:
    return VehicleContext(
        vehicle_reg_number="MH02CD5678",
        vehicle_make="Hyundai",
        vehicle_model="Aura",
        vehicle_year=2021,
        fuel_type="CNG",
        transmission_type="Automatic",
        odometer_km=18000,
    )
