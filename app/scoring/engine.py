"""
Inspection Risk Scoring Engine

Orchestrates:
  1. Group answers by module
  2. Module risk = mean severity of answered parameters
  3. VRI = Σ(risk × weight) / Σ(weight) over modules present
  4. Rating = 5 × (1 − VRI^1.3), clamped [0, 5]
  5. Red flags (hard decertification)
  6. Certification tier
  7. Repair cost estimate

Pure function of the answers + module parameters. No I/O, so a re-run on
identical input gives an identical result.
"""
from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import Optional, Sequence

import structlog

from app.schemas.inspection_response import (
    CertificationTier,
    ModuleRepairCost,
    RedFlagParam,
    ScoreResult,
)
from app.services.repair_cost_calculator import (
    COST_PRECISION,
    RISK_PRECISION,
    estimate_module_cost,
    total_repair_cost,
)

logger = structlog.get_logger()


RATING_EXPONENT = 1.3
MAX_RATING = 5.0
RATING_PRECISION = 2

# A red-flag parameter answered at or above this severity decertifies the vehicle
RED_FLAG_SEVERITY_THRESHOLD = 0.75


# ═══════════════════════════════════════════════════════════════
# Certification thresholds (on the rounded rating)
#   rating >= 4.5  → Gold
#   rating >= 3.5  → Silver
#   rating >= 2.5  → Verified
#   otherwise      → Not Certified
# ═══════════════════════════════════════════════════════════════
TIER_THRESHOLDS = [
    (4.5, CertificationTier.GOLD),
    (3.5, CertificationTier.SILVER),
    (2.5, CertificationTier.VERIFIED),
]


@dataclass(frozen=True)
class ModuleSpec:
    slug: str
    name: str
    weight: float
    base_repair_cost: float
    gamma: float


@dataclass(frozen=True)
class ScoredAnswer:
    module_slug: str
    param_number: int
    param_name: str
    severity_score: Optional[float]
    is_red_flag: bool


def evaluate(answers: Sequence[ScoredAnswer], modules: dict[str, ModuleSpec]) -> ScoreResult:
    """
    Main scoring entry point.

    Raises ValueError when there is nothing to score or an answer references
    a module that was not supplied.
    """
    if not answers:
        raise ValueError("No responses to score")

    # ── Step 1: Group by module (first-seen order) ──
    groups: "OrderedDict[str, list[ScoredAnswer]]" = OrderedDict()
    for answer in answers:
        if answer.module_slug not in modules:
            raise ValueError(f"Unknown module '{answer.module_slug}' for parameter #{answer.param_number}")
        groups.setdefault(answer.module_slug, []).append(answer)

    # ── Step 2: Module risk + repair cost ──
    module_risks: dict[str, float] = {}
    costs = []
    for slug, group in groups.items():
        risk = module_risk(group)
        module_risks[slug] = risk
        spec = modules[slug]
        costs.append(estimate_module_cost(slug, spec.name, risk, spec.base_repair_cost, spec.gamma))

    # ── Step 3: VRI over modules present only ──
    vri = composite_risk_index(module_risks, modules)

    # ── Step 4: Rating ──
    rating = rating_from_vri(vri)

    # ── Step 5: Red flags ──
    red_flags = find_red_flags(answers)

    # ── Step 6: Certification ──
    certification = certification_tier(rating, has_red_flags=bool(red_flags))

    # ── Step 7: Repair cost ──
    breakdown = {
        c.slug: ModuleRepairCost(
            module_name=c.module_name,
            risk=round(c.risk, RISK_PRECISION),
            base_cost=c.base_cost,
            gamma=c.gamma,
            repair_cost=round(c.repair_cost, COST_PRECISION),
        )
        for c in costs
    }

    result = ScoreResult(
        vri=round(vri, RISK_PRECISION),
        rating=rating,
        certification=certification,
        has_red_flags=bool(red_flags),
        red_flag_params=red_flags,
        total_repair_cost=total_repair_cost(costs),
        repair_cost_breakdown=breakdown,
        module_risks={slug: round(r, RISK_PRECISION) for slug, r in module_risks.items()},
    )

    logger.debug(
        "inspection_scored",
        modules=len(groups),
        vri=result.vri,
        rating=result.rating,
        certification=result.certification.value,
        red_flags=len(red_flags),
    )
    return result


def module_risk(answers: Sequence[ScoredAnswer]) -> float:
    """Mean severity; unanswered rows are left out of the denominator."""
    scored = [a.severity_score for a in answers if a.severity_score is not None]
    if not scored:
        return 0.0
    return sum(scored) / len(scored)


def composite_risk_index(module_risks: dict[str, float], modules: dict[str, ModuleSpec]) -> float:
    weighted = 0.0
    total_weight = 0.0
    for slug, risk in module_risks.items():
        weight = modules[slug].weight or 0.0
        weighted += risk * weight
        total_weight += weight

    # Normalise by weights actually present (fuel/transmission may drop modules)
    if total_weight > 0:
        return weighted / total_weight
    return weighted


def rating_from_vri(vri: float) -> float:
    vri = min(max(vri, 0.0), 1.0)
    rating = MAX_RATING * (1 - vri ** RATING_EXPONENT)
    rating = max(0.0, min(MAX_RATING, rating))
    return round(rating, RATING_PRECISION)


def find_red_flags(answers: Sequence[ScoredAnswer]) -> list[RedFlagParam]:
    return [
        RedFlagParam(
            param_number=a.param_number,
            param_name=a.param_name,
            severity_score=a.severity_score,
        )
        for a in answers
        if a.is_red_flag and a.severity_score is not None and a.severity_score >= RED_FLAG_SEVERITY_THRESHOLD
    ]


def certification_tier(rating: float, has_red_flags: bool) -> CertificationTier:
    if has_red_flags:
        return CertificationTier.NOT_CERTIFIED  # hard override
    for threshold, tier in TIER_THRESHOLDS:
        if rating >= threshold:
            return tier
    return CertificationTier.NOT_CERTIFIED
