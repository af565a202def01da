"""
Repair Cost Calculator

Per module:
    repair_cost = base_repair_cost × module_risk ^ gamma

gamma > 1 keeps light wear cheap and makes heavy damage approach the full
base cost quickly; gamma < 1 front-loads cost (e.g. paperwork fixes).

Total = sum of unrounded per-module costs, rounded once at the end.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable


COST_PRECISION = 2
RISK_PRECISION = 4


@dataclass(frozen=True)
class ModuleCostOutput:
    slug: str
    module_name: str
    risk: float
    base_cost: float
    gamma: float
    repair_cost: float  # unrounded


def calculate_repair_cost(module_risk: float, base_cost: float, gamma: float) -> float:
    """Unrounded cost for one module. Risk is clamped to [0, 1]."""
    risk = min(max(module_risk, 0.0), 1.0)
    if base_cost <= 0:
        return 0.0
    return base_cost * (risk ** gamma)


def estimate_module_cost(
    slug: str,
    module_name: str,
    module_risk: float,
    base_cost: float,
    gamma: float,
) -> ModuleCostOutput:
    return ModuleCostOutput(
        slug=slug,
        module_name=module_name,
        risk=module_risk,
        base_cost=base_cost,
        gamma=gamma,
        repair_cost=calculate_repair_cost(module_risk, base_cost, gamma),
    )


def total_repair_cost(costs: Iterable[ModuleCostOutput]) -> float:
    return round(sum(c.repair_cost for c in costs), COST_PRECISION)
