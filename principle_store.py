"""
Principle Store — soulsmith
The evidence store behind one synthesis run. Owns every candidate principle,
matches incoming signals against their centroids and accumulates evidence.

One store lives for the whole run and is handed to every pass of the
convergence loop. Rebuilding it between passes would reset every N count.

Invariants:
- principle ids are unique and assigned in creation order (pri_00001, ...)
- principle.n_count == len(principle.contributors)
- a signal id sits in at most one principle's contributor list
- a non-empty principle's text is the text of one of its contributors
- principles are never deleted within a run
"""

from __future__ import annotations

import copy
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional

import numpy as np

from signals import Signal
from similarity import cosine_similarity, mean_vector, similarities_to

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.75
TIE_TOLERANCE = 1e-9


class ReassignmentPolicy(Enum):
    """What happens when a pass re-feeds a signal that is already assigned."""
    REPLAY = "replay"   # stay while the principle still admits it, else re-match
    STICKY = "sticky"   # never re-evaluate; only unseen signals are matched


# ── Data classes ─────────────────────────────────────────────────────────────

@dataclass
class PrincipleEvent:
    type: str           # "created" | "reinforced" | "released"
    timestamp: float
    details: str

    def to_dict(self) -> dict:
        return {"type": self.type, "timestamp": self.timestamp, "details": self.details}


@dataclass
class Principle:
    """A cluster of signals believed to express one recurring idea."""
    id: str
    text: str
    centroid: list[float]
    contributors: list[str]
    created_at: float
    last_update: float
    similarities: dict[str, float] = field(default_factory=dict)
    history: list[PrincipleEvent] = field(default_factory=list)
    text_source: str = ""   # signal id whose text labels the principle

    @property
    def n_count(self) -> int:
        return len(self.contributors)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "n_count": self.n_count,
            "centroid": list(self.centroid),
            "contributors": list(self.contributors),
            "text_source": self.text_source,
            "similarities": dict(self.similarities),
            "created_at": self.created_at,
            "last_update": self.last_update,
            "history": [e.to_dict() for e in self.history],
        }


# ── Store ─────────────────────────────────────────────────────────────────────

class PrincipleStore:
    """
    Evidence store for a single synthesis run.

    match() is the only mutating entry point besides set_threshold(). Pass
    boundaries are marked with begin_pass()/commit_pass()/rollback_pass() so
    a pass that fails halfway leaves no partial state behind.
    """

    def __init__(
        self,
        threshold: float = DEFAULT_THRESHOLD,
        policy: ReassignmentPolicy = ReassignmentPolicy.REPLAY,
        tie_tolerance: float = TIE_TOLERANCE,
        clock: Callable[[], float] = time.time,
    ):
        self._threshold = 0.0
        self.set_threshold(threshold)
        self.policy = policy
        self.tie_tolerance = tie_tolerance
        self._clock = clock

        self._principles: dict[str, Principle] = {}
        self._assignments: dict[str, str] = {}        # signal id -> principle id
        self._vectors: dict[str, np.ndarray] = {}     # signal id -> embedding
        self._texts: dict[str, str] = {}              # signal id -> text
        self._next_seq = 1
        self._checkpoint: Optional[tuple] = None
        self.pass_stats = {"created": 0, "reinforced": 0, "released": 0}

    # ── Threshold ─────────────────────────────────────────────────────────────

    @property
    def threshold(self) -> float:
        return self._threshold

    def set_threshold(self, value: float):
        """Applies to subsequent matches only; existing N counts are kept."""
        if not 0.0 <= value <= 1.0:
            raise ValueError(f"similarity threshold must be in [0, 1], got {value}")
        self._threshold = float(value)

    # ── Read access ───────────────────────────────────────────────────────────

    def __len__(self) -> int:
        return len(self._principles)

    def get(self, principle_id: str) -> Optional[Principle]:
        p = self._principles.get(principle_id)
        return copy.deepcopy(p) if p else None

    def assignment_of(self, signal_id: str) -> Optional[str]:
        return self._assignments.get(signal_id)

    def snapshot(self) -> list[Principle]:
        """Read-only copies of every principle, ordered by id."""
        return [copy.deepcopy(p) for p in self._principles.values()]

    def get_principles_above_n(self, k: int) -> list[Principle]:
        return [copy.deepcopy(p) for p in self._principles.values() if p.n_count >= k]

    def n_counts(self) -> dict[str, int]:
        return {pid: p.n_count for pid, p in self._principles.items()}

    # ── Matching ──────────────────────────────────────────────────────────────

    def match(self, signal: Signal) -> tuple[str, bool]:
        """
        Route one signal into the store. Returns (principle_id, created).

        A signal that is already assigned is only re-evaluated under the
        REPLAY policy, and only moves if its principle no longer admits it
        at the current threshold. Calling match() twice for the same signal
        at an unchanged threshold never counts it twice.
        """
        vec = np.asarray(signal.embedding, dtype=np.float64)

        current = self._assignments.get(signal.id)
        if current is not None:
            if self.policy is ReassignmentPolicy.STICKY:
                return current, False
            own = self._principles[current]
            own_sim = cosine_similarity(vec, own.centroid)
            if own_sim + self.tie_tolerance >= self._threshold:
                return current, False
            self._release(signal.id, own, own_sim)

        best_id, best_sim = self._best_match(vec)

        if best_id is not None:
            logger.debug(
                "MATCH signal=%s principle=%s similarity=%.3f threshold=%.2f",
                signal.id, best_id, best_sim, self._threshold,
            )
            self._reinforce(self._principles[best_id], signal, vec, best_sim)
            return best_id, False

        logger.debug(
            "NO_MATCH signal=%s best=%.3f threshold=%.2f text=%r",
            signal.id, best_sim, self._threshold, signal.text[:50],
        )
        principle = self._create(signal, vec, best_sim)
        return principle.id, True

    def _best_match(self, vec: np.ndarray) -> tuple[Optional[str], float]:
        """
        Highest-similarity principle that meets the threshold. Principles are
        scanned in id order and a later one only wins if it beats the current
        best by more than the tie tolerance, so ties go to the lowest id.
        Principles emptied by releases are dormant and never match.
        """
        ids = [pid for pid, p in self._principles.items() if p.contributors]
        if not ids:
            return None, 0.0

        matrix = np.array([self._principles[pid].centroid for pid in ids], dtype=np.float64)
        sims = similarities_to(vec, matrix)

        best_id: Optional[str] = None
        best_sim = -1.0
        top_sim = float(sims.max())
        for pid, sim in zip(ids, sims):
            if sim + self.tie_tolerance < self._threshold:
                continue
            if best_id is None or sim > best_sim + self.tie_tolerance:
                best_id, best_sim = pid, float(sim)

        return best_id, (best_sim if best_id is not None else top_sim)

    # ── Mutations ─────────────────────────────────────────────────────────────

    def _create(self, signal: Signal, vec: np.ndarray, best_sim: float) -> Principle:
        now = self._clock()
        principle = Principle(
            id=f"pri_{self._next_seq:05d}",
            text=signal.text,
            centroid=vec.tolist(),
            contributors=[signal.id],
            created_at=now,
            last_update=now,
            similarities={signal.id: 1.0},
            history=[PrincipleEvent(
                type="created",
                timestamp=now,
                details=f"Created from signal {signal.id} (best match was {best_sim:.3f})",
            )],
            text_source=signal.id,
        )
        self._next_seq += 1
        self._principles[principle.id] = principle
        self._assignments[signal.id] = principle.id
        self._vectors[signal.id] = vec
        self._texts[signal.id] = signal.text
        self.pass_stats["created"] += 1
        return principle

    def _reinforce(self, principle: Principle, signal: Signal, vec: np.ndarray, sim: float):
        n = principle.n_count
        # running mean == mean of all contributor vectors, every signal weighted equally
        principle.centroid = ((np.asarray(principle.centroid) * n + vec) / (n + 1)).tolist()
        principle.contributors.append(signal.id)
        principle.similarities[signal.id] = sim
        principle.last_update = self._clock()
        principle.history.append(PrincipleEvent(
            type="reinforced",
            timestamp=principle.last_update,
            details=f"Reinforced by signal {signal.id} (similarity: {sim:.3f})",
        ))
        self._assignments[signal.id] = principle.id
        self._vectors[signal.id] = vec
        self._texts[signal.id] = signal.text
        self.pass_stats["reinforced"] += 1

    def _release(self, signal_id: str, principle: Principle, sim: float):
        """
        Detach a signal whose principle no longer admits it. If that signal
        supplied the principle's text, the text passes to the earliest
        remaining contributor so the label always comes from a member.
        """
        principle.contributors.remove(signal_id)
        principle.similarities.pop(signal_id, None)
        details = (
            f"Released signal {signal_id} (similarity {sim:.3f} "
            f"< threshold {self._threshold:.2f})"
        )
        if principle.contributors:
            principle.centroid = mean_vector([self._vectors[sid] for sid in principle.contributors])
            if principle.text_source == signal_id:
                principle.text_source = principle.contributors[0]
                principle.text = self._texts[principle.text_source]
                details += f"; text now from signal {principle.text_source}"
        principle.last_update = self._clock()
        principle.history.append(PrincipleEvent(
            type="released",
            timestamp=principle.last_update,
            details=details,
        ))
        del self._assignments[signal_id]
        self.pass_stats["released"] += 1

    # ── Pass transactions ─────────────────────────────────────────────────────

    def begin_pass(self):
        """Checkpoint state so a failed pass can be undone."""
        self._checkpoint = (
            copy.deepcopy(self._principles),
            dict(self._assignments),
            dict(self._vectors),
            dict(self._texts),
            self._next_seq,
            self._threshold,
        )
        self.pass_stats = {"created": 0, "reinforced": 0, "released": 0}

    def commit_pass(self):
        self._checkpoint = None

    def rollback_pass(self):
        if self._checkpoint is None:
            return
        (self._principles, self._assignments, self._vectors, self._texts,
         self._next_seq, self._threshold) = self._checkpoint
        self._checkpoint = None
        self.pass_stats = {"created": 0, "reinforced": 0, "released": 0}
        logger.warning("Pass rolled back; store restored to pre-pass state")
