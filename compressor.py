"""
Compressor — soulsmith
Promotes converged principles to axioms with a cascading evidence threshold.

The cascade tries the strictest evidence bar first and loosens it only
until enough axioms come out:
  1. N>=3 -> if at least 3 axioms, stop
  2. N>=2 -> if at least 3 axioms, stop
  3. N>=1 -> take whatever there is

Tier is always derived from a principle's actual N, never from the cascade
level that admitted it. An N=1 axiom is Emerging even if it was admitted at
the loosest level, and an N=4 axiom is Domain wherever it came from.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from principle_store import Principle

logger = logging.getLogger(__name__)

CASCADE_THRESHOLDS = (3, 2, 1)
MIN_AXIOM_TARGET = 3       # 3-4 chunks fit in working memory
COGNITIVE_LOAD_CAP = 25    # axioms beyond this are pruned (kept for audit)
CORE_MIN_N = 5
DOMAIN_MIN_N = 3


class AxiomTier(Enum):
    CORE = "core"
    DOMAIN = "domain"
    EMERGING = "emerging"


_TIER_ORDER = {AxiomTier.CORE: 0, AxiomTier.DOMAIN: 1, AxiomTier.EMERGING: 2}


def determine_tier(n_count: int, core_min_n: int = CORE_MIN_N, domain_min_n: int = DOMAIN_MIN_N) -> AxiomTier:
    if n_count >= core_min_n:
        return AxiomTier.CORE
    if n_count >= domain_min_n:
        return AxiomTier.DOMAIN
    return AxiomTier.EMERGING


# ── Data classes ─────────────────────────────────────────────────────────────

@dataclass
class Axiom:
    """A promoted principle with an honest tier label."""
    id: str
    principle_id: str
    text: str
    tier: AxiomTier
    n_count: int
    centroid: list[float]
    contributors: list[str]
    admitted_at_threshold: int
    promoted_at: float
    notated: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "principle_id": self.principle_id,
            "text": self.text,
            "tier": self.tier.value,
            "n_count": self.n_count,
            "centroid": list(self.centroid),
            "contributors": list(self.contributors),
            "admitted_at_threshold": self.admitted_at_threshold,
            "promoted_at": self.promoted_at,
            "notated": self.notated,
        }


@dataclass
class CascadeResult:
    """One promotion attempt at a single evidence threshold."""
    threshold: int
    count: int
    selected: bool = False


@dataclass
class CompressionResult:
    axioms: list[Axiom]
    unconverged: list[Principle]
    effective_threshold: int
    attempts: list[CascadeResult] = field(default_factory=list)
    pruned: list[Axiom] = field(default_factory=list)

    @property
    def axiom_count_by_threshold(self) -> dict[int, int]:
        return {a.threshold: a.count for a in self.attempts}


# ── Promotion ─────────────────────────────────────────────────────────────────

def _axiom_from(principle: Principle, k: int, tier: AxiomTier, now: float) -> Axiom:
    return Axiom(
        # deterministic: one axiom per principle per run
        id=f"ax_{principle.id.removeprefix('pri_')}",
        principle_id=principle.id,
        text=principle.text,
        tier=tier,
        n_count=principle.n_count,
        centroid=list(principle.centroid),
        contributors=list(principle.contributors),
        admitted_at_threshold=k,
        promoted_at=now,
    )


def _rank_key(axiom: Axiom):
    return (_TIER_ORDER[axiom.tier], -axiom.n_count, axiom.principle_id)


def compress_with_cascade(
    principles: list[Principle],
    cascade_thresholds: tuple[int, ...] = CASCADE_THRESHOLDS,
    min_axiom_target: int = MIN_AXIOM_TARGET,
    core_min_n: int = CORE_MIN_N,
    domain_min_n: int = DOMAIN_MIN_N,
    cognitive_load_cap: Optional[int] = COGNITIVE_LOAD_CAP,
) -> CompressionResult:
    """
    Select axioms from converged principles. Never raises on empty or sparse
    input: no principles simply means no axioms.

    Makes at most len(cascade_thresholds) attempts. Each attempt is recorded
    so the caller can see how many axioms every level would have produced.
    """
    if not cascade_thresholds:
        logger.warning("Empty cascade; using default thresholds %s", CASCADE_THRESHOLDS)
        cascade_thresholds = CASCADE_THRESHOLDS

    ordered = sorted(principles, key=lambda p: p.id)
    attempts: list[CascadeResult] = []
    selected: list[Principle] = []
    effective = cascade_thresholds[-1]

    for i, k in enumerate(cascade_thresholds):
        candidates = [p for p in ordered if p.n_count >= k]
        attempt = CascadeResult(threshold=k, count=len(candidates))
        attempts.append(attempt)
        if len(candidates) >= min_axiom_target or i == len(cascade_thresholds) - 1:
            attempt.selected = True
            selected = candidates
            effective = k
            break

    now = time.time()
    axioms = [
        _axiom_from(p, effective, determine_tier(p.n_count, core_min_n, domain_min_n), now)
        for p in selected
    ]
    axioms.sort(key=_rank_key)

    pruned: list[Axiom] = []
    if cognitive_load_cap is not None and len(axioms) > cognitive_load_cap:
        by_evidence = sorted(axioms, key=lambda a: (-a.n_count, _TIER_ORDER[a.tier], a.principle_id))
        keep = {a.id for a in by_evidence[:cognitive_load_cap]}
        pruned = [a for a in by_evidence if a.id not in keep]
        axioms = [a for a in axioms if a.id in keep]
        logger.info(
            "Pruned %d axioms to meet cognitive load cap (%d)", len(pruned), cognitive_load_cap
        )

    selected_ids = {p.id for p in selected}
    unconverged = [p for p in ordered if p.id not in selected_ids]

    logger.info(
        "Cascade: effective N>=%d, %d axioms (%s)",
        effective, len(axioms),
        ", ".join(f"N>={a.threshold}:{a.count}" for a in attempts),
    )

    return CompressionResult(
        axioms=axioms,
        unconverged=unconverged,
        effective_threshold=effective,
        attempts=attempts,
        pruned=pruned,
    )
