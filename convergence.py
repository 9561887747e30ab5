"""
Convergence Loop — soulsmith
Drives one PrincipleStore through successive passes over the full signal set,
raising the similarity bar each pass, until a pass changes nothing or the
pass cap is hit.

Every pass re-feeds all signals, not just new ones: a stricter threshold
lets loosely matched signals split off into more precise principles, while
well-supported principles keep their evidence.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable, Optional

from principle_store import Principle, PrincipleStore
from signals import Signal

logger = logging.getLogger(__name__)

DEFAULT_INITIAL_THRESHOLD = 0.75
DEFAULT_THRESHOLD_STEP = 0.02
DEFAULT_MAX_PASSES = 5


class SynthesisCancelled(Exception):
    """The run was aborted between passes."""

    def __init__(self, passes: list["PassSnapshot"]):
        super().__init__(f"synthesis cancelled after {len(passes)} pass(es)")
        self.passes = passes


# ── Data classes ─────────────────────────────────────────────────────────────

@dataclass
class PassSnapshot:
    index: int
    threshold: float
    principle_count: int
    total_n: int
    created: int
    reinforced: int
    released: int
    stable: bool

    def to_dict(self) -> dict:
        return {
            "index": self.index,
            "threshold": self.threshold,
            "principle_count": self.principle_count,
            "total_n": self.total_n,
            "created": self.created,
            "reinforced": self.reinforced,
            "released": self.released,
            "stable": self.stable,
        }


@dataclass
class ConvergenceResult:
    principles: list[Principle]
    passes: list[PassSnapshot] = field(default_factory=list)
    converged: bool = True
    final_threshold: Optional[float] = None

    @property
    def no_convergence(self) -> bool:
        """True when the pass cap was reached without a stable pass."""
        return not self.converged


# ── Loop ──────────────────────────────────────────────────────────────────────

def threshold_schedule(initial: float, step: float, max_passes: int) -> list[float]:
    """T0, T0+d, T0+2d, ... capped at 1.0."""
    return [round(min(initial + i * step, 1.0), 10) for i in range(max_passes)]


class ConvergenceLoop:
    """
    Owns the store for the duration of one run. Construct a new loop (and
    therefore a new store) per run; never share one across runs.
    """

    def __init__(
        self,
        store: Optional[PrincipleStore] = None,
        initial_threshold: float = DEFAULT_INITIAL_THRESHOLD,
        threshold_step: float = DEFAULT_THRESHOLD_STEP,
        max_passes: int = DEFAULT_MAX_PASSES,
        cancel_event: Optional[threading.Event] = None,
        on_status: Optional[Callable[[str], None]] = None,
    ):
        if max_passes < 1:
            raise ValueError(f"max_passes must be >= 1, got {max_passes}")
        self.store = store if store is not None else PrincipleStore(threshold=initial_threshold)
        self.initial_threshold = initial_threshold
        self.threshold_step = threshold_step
        self.max_passes = max_passes
        self.cancel_event = cancel_event
        self.on_status = on_status or (lambda x: None)

    def run(self, signals: list[Signal]) -> ConvergenceResult:
        """
        Run passes until stable or max_passes. Signals are fed in the order
        given; callers wanting creation order sort before calling.
        """
        if not signals:
            logger.info("No signals; nothing to converge")
            return ConvergenceResult(principles=self.store.snapshot(), converged=True)

        passes: list[PassSnapshot] = []
        converged = False
        threshold = None

        for index, threshold in enumerate(
            threshold_schedule(self.initial_threshold, self.threshold_step, self.max_passes)
        ):
            if self.cancel_event is not None and self.cancel_event.is_set():
                logger.warning("Cancellation requested before pass %d", index)
                raise SynthesisCancelled(passes)

            snapshot = self._run_pass(index, threshold, signals)
            passes.append(snapshot)
            self.on_status(
                f"[Convergence] pass {index} @ {threshold:.2f}: "
                f"{snapshot.principle_count} principles, N={snapshot.total_n}"
            )
            if snapshot.stable:
                converged = True
                break

        if not converged:
            logger.warning(
                "No convergence after %d passes (final threshold %.2f)",
                len(passes), threshold,
            )

        return ConvergenceResult(
            principles=self.store.snapshot(),
            passes=passes,
            converged=converged,
            final_threshold=threshold,
        )

    def _run_pass(self, index: int, threshold: float, signals: list[Signal]) -> PassSnapshot:
        """Apply one full pass atomically: all matches land, or none do."""
        store = self.store
        before = store.n_counts()

        store.begin_pass()
        try:
            store.set_threshold(threshold)
            for signal in signals:
                store.match(signal)
        except BaseException:
            store.rollback_pass()
            raise
        store.commit_pass()

        after = store.n_counts()
        stats = dict(store.pass_stats)
        stable = stats["created"] == 0 and stats["released"] == 0 and before == after

        snapshot = PassSnapshot(
            index=index,
            threshold=threshold,
            principle_count=len(after),
            total_n=sum(after.values()),
            created=stats["created"],
            reinforced=stats["reinforced"],
            released=stats["released"],
            stable=stable,
        )
        logger.info(
            "Pass %d @ %.2f: %d principles, total N=%d (+%d created, %d released)%s",
            index, threshold, snapshot.principle_count, snapshot.total_n,
            snapshot.created, snapshot.released, ", stable" if stable else "",
        )
        return snapshot
