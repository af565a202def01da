"""
catalog_seed.py
───────────────
Batch job that loads the inspection-parameter CSV into the catalog tables
(inspection_modules → inspection_sub_groups → inspection_parameters).

CSV layout:
  ENGINE SYSTEM  (Weight: 22% | 78 parameters)          ← module header
      CNG System (8 checks)                            ← indented sub-group header
  #,Parameter Name,Detail,Input Type,Opt 1..5,Score 1..5,Fuel,Transmission,Red Flag
  1,Oil Level,...                                      ← parameter row

Idempotent: modules upsert on slug, sub-groups on (module_id, name),
parameters on param_number. is_active is never touched on re-seed so admin
toggles survive.

Usage:
  python -m app.services.catalog_seed [path/to/inspection_parameters.csv]
  OR via the admin endpoint: POST /v1/admin/seed-catalog

Environment variables required:
  DATABASE_URL  - Inspection DB (asyncpg URLs are converted for psycopg2)
"""
from __future__ import annotations

import csv
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Iterable, Optional

import psycopg2
import psycopg2.extras
import structlog

from app.core.config import get_settings
from app.core.logging import configure_logging

logger = structlog.get_logger(__name__)

# ─── Format ───────────────────────────────────────────────────────
MODULE_HEADER = re.compile(r"^([A-Z][A-Z &]+?)\s+\(Weight:\s*(\d+)%")
SUB_GROUP_HEADER = re.compile(r"^\s{2,}(\S.+?)\s*\((\d+)\s*checks?\)")
SKIP_PREFIXES = ("MOTOPSY INSPECTION", "Organized by", "#,Parameter Name")

OPTION_COLUMNS = range(4, 9)
SCORE_COLUMNS = range(9, 14)
FUEL_COLUMN = 14
TRANSMISSION_COLUMN = 15
RED_FLAG_COLUMN = 16
RED_FLAG_VALUES = {"yes", "1", "true"}

# Raw header → slug, display name, icon, base repair cost (INR), gamma
MODULE_META = {
    "ENGINE SYSTEM":             ("engine_system",           "Engine System",             "🔧", 150000, 1.3),
    "TRANSMISSION & DRIVETRAIN": ("transmission_drivetrain", "Transmission & Drivetrain", "⚙️", 120000, 1.25),
    "STRUCTURAL INTEGRITY":      ("structural_integrity",    "Structural Integrity",      "🏗️", 200000, 1.4),
    "PAINT & PANEL MAPPING":     ("paint_panel",             "Paint & Panel Mapping",     "🎨", 80000,  1.1),
    "SUSPENSION & BRAKES":       ("suspension_brakes",       "Suspension & Brakes",       "🛞", 100000, 1.2),
    "ELECTRICAL & ELECTRONICS":  ("electrical_electronics",  "Electrical & Electronics",  "⚡", 90000,  1.15),
    "INTERIOR & SAFETY":         ("interior_safety",         "Interior & Safety",         "💺", 50000,  1.0),
    "DOCUMENTATION VALIDATION":  ("documentation",           "Documentation Validation",  "📋", 10000,  0.8),
    "ROAD TEST EVALUATION":      ("road_test",               "Road Test Evaluation",      "🛣️", 70000,  1.2),
}
DEFAULT_ICON = "📦"
DEFAULT_BASE_REPAIR_COST = 50000
DEFAULT_GAMMA = 1.0


@dataclass
class SeedParameter:
    param_number: int
    name: str
    detail: str
    input_type: str
    options: list[Optional[str]]
    scores: list[Optional[float]]
    fuel_filter: str = "All"
    transmission_filter: str = "All"
    is_red_flag: bool = False
    sort_order: int = 0


@dataclass
class SeedSubGroup:
    name: str
    check_count: int
    sort_order: int
    parameters: list[SeedParameter] = field(default_factory=list)


@dataclass
class SeedModule:
    raw_name: str
    name: str
    slug: str
    icon: str
    weight: float
    base_repair_cost: float
    gamma: float
    sort_order: int
    sub_groups: list[SeedSubGroup] = field(default_factory=list)

    @property
    def parameter_count(self) -> int:
        return sum(len(sg.parameters) for sg in self.sub_groups)


def _module_from_header(raw_name: str, weight_pct: int, sort_order: int) -> SeedModule:
    meta = MODULE_META.get(raw_name)
    if meta:
        slug, name, icon, base_cost, gamma = meta
    else:
        slug = re.sub(r"[^a-z]+", "_", raw_name.lower()).strip("_")
        name = raw_name.title()
        icon, base_cost, gamma = DEFAULT_ICON, DEFAULT_BASE_REPAIR_COST, DEFAULT_GAMMA
    return SeedModule(
        raw_name=raw_name,
        name=name,
        slug=slug,
        icon=icon,
        weight=weight_pct / 100,
        base_repair_cost=base_cost,
        gamma=gamma,
        sort_order=sort_order,
    )


def _cell(cells: list[str], index: int) -> str:
    return cells[index].strip() if index < len(cells) else ""


def _parameter_from_row(cells: list[str], sort_order: int) -> SeedParameter:
    scores = []
    for i in SCORE_COLUMNS:
        raw = _cell(cells, i)
        scores.append(float(raw) if raw else None)

    return SeedParameter(
        param_number=int(_cell(cells, 0)),
        name=_cell(cells, 1),
        detail=_cell(cells, 2),
        input_type=_cell(cells, 3),
        options=[_cell(cells, i) or None for i in OPTION_COLUMNS],
        scores=scores,
        fuel_filter=_cell(cells, FUEL_COLUMN) or "All",
        transmission_filter=_cell(cells, TRANSMISSION_COLUMN) or "All",
        is_red_flag=_cell(cells, RED_FLAG_COLUMN).lower() in RED_FLAG_VALUES,
        sort_order=sort_order,
    )


def parse_catalog_csv(lines: Iterable[str]) -> list[SeedModule]:
    """
    Parse the catalog CSV into a module tree. Pure: takes lines, touches no I/O.
    Rows before the first module/sub-group header are ignored.
    """
    modules: list[SeedModule] = []
    current_module: Optional[SeedModule] = None
    current_sub_group: Optional[SeedSubGroup] = None

    for line in lines:
        line = line.rstrip("\r\n")
        stripped = line.strip()
        if not stripped or stripped.startswith(SKIP_PREFIXES):
            continue

        module_match = MODULE_HEADER.match(stripped)
        if module_match:
            current_module = _module_from_header(
                module_match.group(1).strip(), int(module_match.group(2)), len(modules) + 1,
            )
            current_sub_group = None
            modules.append(current_module)
            continue

        sub_group_match = SUB_GROUP_HEADER.match(line)
        if sub_group_match:
            if current_module is None:
                continue
            current_sub_group = SeedSubGroup(
                name=sub_group_match.group(1).strip(),
                check_count=int(sub_group_match.group(2)),
                sort_order=len(current_module.sub_groups) + 1,
            )
            current_module.sub_groups.append(current_sub_group)
            continue

        cells = next(csv.reader([line]))
        if len(cells) >= 5 and cells[0].strip().isdigit() and current_sub_group is not None:
            current_sub_group.parameters.append(
                _parameter_from_row(cells, len(current_sub_group.parameters) + 1)
            )

    return modules


def validate_module_weights(modules: list[SeedModule], tolerance: float) -> float:
    total = sum(m.weight for m in modules)
    if abs(total - 1.0) > tolerance:
        raise ValueError(f"Module weights must sum to 100% (got {total * 100:.1f}%)")
    return total


def to_sync_url(database_url: str) -> str:
    # FastAPI uses postgresql+asyncpg://; psycopg2 needs plain postgresql://
    return (
        database_url
        .replace("postgresql+asyncpg://", "postgresql://")
        .replace("postgresql+psycopg2://", "postgresql://")
    )


# ─── Write ────────────────────────────────────────────────────────

UPSERT_MODULE = """
INSERT INTO inspection_modules (name, slug, icon, weight, base_repair_cost, gamma, sort_order, created_at)
VALUES (%(name)s, %(slug)s, %(icon)s, %(weight)s, %(base_repair_cost)s, %(gamma)s, %(sort_order)s, %(now)s)
ON CONFLICT (slug)
DO UPDATE SET
    name             = EXCLUDED.name,
    icon             = EXCLUDED.icon,
    weight           = EXCLUDED.weight,
    base_repair_cost = EXCLUDED.base_repair_cost,
    gamma            = EXCLUDED.gamma,
    sort_order       = EXCLUDED.sort_order,
    modified_at      = %(now)s
RETURNING id;
"""

UPSERT_SUB_GROUP = """
INSERT INTO inspection_sub_groups (module_id, name, check_count, sort_order, created_at)
VALUES (%(module_id)s, %(name)s, %(check_count)s, %(sort_order)s, %(now)s)
ON CONFLICT (module_id, name)
DO UPDATE SET
    check_count = EXCLUDED.check_count,
    sort_order  = EXCLUDED.sort_order,
    modified_at = %(now)s
RETURNING id;
"""

UPSERT_PARAMETER = """
INSERT INTO inspection_parameters (
    sub_group_id, param_number, name, detail, input_type,
    option_1, option_2, option_3, option_4, option_5,
    score_1, score_2, score_3, score_4, score_5,
    fuel_filter, transmission_filter, is_red_flag,
    is_active, weightage, sort_order, created_at
) VALUES (
    %(sub_group_id)s, %(param_number)s, %(name)s, %(detail)s, %(input_type)s,
    %(option_1)s, %(option_2)s, %(option_3)s, %(option_4)s, %(option_5)s,
    %(score_1)s, %(score_2)s, %(score_3)s, %(score_4)s, %(score_5)s,
    %(fuel_filter)s, %(transmission_filter)s, %(is_red_flag)s,
    TRUE, 1.0, %(sort_order)s, %(now)s
)
ON CONFLICT (param_number)
DO UPDATE SET
    sub_group_id        = EXCLUDED.sub_group_id,
    name                = EXCLUDED.name,
    detail              = EXCLUDED.detail,
    input_type          = EXCLUDED.input_type,
    option_1            = EXCLUDED.option_1,
    option_2            = EXCLUDED.option_2,
    option_3            = EXCLUDED.option_3,
    option_4            = EXCLUDED.option_4,
    option_5            = EXCLUDED.option_5,
    score_1             = EXCLUDED.score_1,
    score_2             = EXCLUDED.score_2,
    score_3             = EXCLUDED.score_3,
    score_4             = EXCLUDED.score_4,
    score_5             = EXCLUDED.score_5,
    fuel_filter         = EXCLUDED.fuel_filter,
    transmission_filter = EXCLUDED.transmission_filter,
    is_red_flag         = EXCLUDED.is_red_flag,
    sort_order          = EXCLUDED.sort_order,
    modified_at         = %(now)s;
"""


def _parameter_row(p: SeedParameter, sub_group_id: int, now: datetime) -> dict:
    row = {
        "sub_group_id": sub_group_id,
        "param_number": p.param_number,
        "name": p.name,
        "detail": p.detail or None,
        "input_type": p.input_type or None,
        "fuel_filter": p.fuel_filter,
        "transmission_filter": p.transmission_filter,
        "is_red_flag": p.is_red_flag,
        "sort_order": p.sort_order,
        "now": now,
    }
    for i, (option, score) in enumerate(zip(p.options, p.scores), start=1):
        row[f"option_{i}"] = option
        row[f"score_{i}"] = score
    return row


def write_catalog(conn, modules: list[SeedModule]) -> dict:
    """Upsert the whole tree in one transaction. Returns row counts."""
    now = datetime.now(timezone.utc)
    sub_group_count = 0
    parameter_count = 0

    try:
        with conn.cursor() as cur:
            for mod in modules:
                cur.execute(UPSERT_MODULE, {
                    "name": mod.name,
                    "slug": mod.slug,
                    "icon": mod.icon,
                    "weight": mod.weight,
                    "base_repair_cost": mod.base_repair_cost,
                    "gamma": mod.gamma,
                    "sort_order": mod.sort_order,
                    "now": now,
                })
                module_id = cur.fetchone()[0]

                for sg in mod.sub_groups:
                    cur.execute(UPSERT_SUB_GROUP, {
                        "module_id": module_id,
                        "name": sg.name,
                        "check_count": sg.check_count,
                        "sort_order": sg.sort_order,
                        "now": now,
                    })
                    sub_group_id = cur.fetchone()[0]
                    sub_group_count += 1

                    rows = [_parameter_row(p, sub_group_id, now) for p in sg.parameters]
                    psycopg2.extras.execute_batch(cur, UPSERT_PARAMETER, rows, page_size=100)
                    parameter_count += len(rows)

                logger.info("catalog_module_seeded", slug=mod.slug, sub_groups=len(mod.sub_groups),
                            parameters=mod.parameter_count)
        conn.commit()
    except Exception:
        conn.rollback()
        raise

    return {
        "modules": len(modules),
        "sub_groups": sub_group_count,
        "parameters": parameter_count,
    }


# ─── Main entry point ─────────────────────────────────────────────

def run_seed(
    csv_path: Optional[str] = None,
    database_url: Optional[str] = None,
) -> dict:
    """
    Full seed cycle:
      1. Parse the CSV
      2. Validate module weights total 100%
      3. Upsert modules, sub-groups and parameters
      4. Return summary

    Args:
        csv_path:      Override CATALOG_CSV_PATH (for testing)
        database_url:  Override DATABASE_URL (for testing)
    """
    settings = get_settings()
    path = csv_path or settings.catalog_csv_path
    db_url = to_sync_url(database_url or settings.database_url)

    started_at = datetime.now(timezone.utc)
    logger.info("catalog_seed_started", csv_path=path)

    with open(path, encoding="utf-8") as fh:
        modules = parse_catalog_csv(fh)
    if not modules:
        raise ValueError(f"No modules found in {path}")
    validate_module_weights(modules, settings.module_weight_tolerance)

    conn = psycopg2.connect(db_url)
    try:
        counts = write_catalog(conn, modules)
    finally:
        conn.close()

    elapsed = (datetime.now(timezone.utc) - started_at).total_seconds()
    result = {
        "csv_path": path,
        **counts,
        "elapsed_seconds": round(elapsed, 2),
        "status": "success",
    }
    logger.info("catalog_seed_complete", **result)
    return result


if __name__ == "__main__":
    import sys
    configure_logging(get_settings())

    try:
        result = run_seed(sys.argv[1] if len(sys.argv) > 1 else None)
        print(f"✓ Catalog seeded: {result['modules']} modules, {result['sub_groups']} sub-groups, "
              f"{result['parameters']} parameters ({result['elapsed_seconds']}s)")
    except Exception as e:
        print(f"✗ Seed failed: {e}", file=sys.stderr)
        sys.exit(1)
