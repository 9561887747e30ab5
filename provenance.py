"""
Provenance — soulsmith
Audit trail from a promoted axiom back to every signal that contributed to it.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Optional

from compressor import Axiom
from principle_store import Principle
from signals import Signal


@dataclass
class SignalRef:
    id: str
    text: str
    locator: str
    similarity: Optional[float] = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "locator": self.locator,
            "similarity": self.similarity,
        }


@dataclass
class ProvenanceChain:
    axiom_id: str
    axiom_text: str
    principle_id: str
    n_count: int
    signals: list[SignalRef] = field(default_factory=list)
    missing: list[str] = field(default_factory=list)   # contributor ids with no known signal

    @property
    def complete(self) -> bool:
        return not self.missing and len(self.signals) == self.n_count

    def to_dict(self) -> dict:
        return {
            "axiom": {"id": self.axiom_id, "text": self.axiom_text},
            "principle": {"id": self.principle_id, "n_count": self.n_count},
            "signals": [s.to_dict() for s in self.signals],
            "missing": list(self.missing),
        }


def trace_to_source(
    axiom: Axiom,
    principles: dict[str, Principle],
    signals: dict[str, Signal],
) -> ProvenanceChain:
    """
    Walk axiom -> principle -> signals. Contributor order is preserved, so
    the first signal listed is the one that founded the principle.
    """
    principle = principles.get(axiom.principle_id)
    similarities = principle.similarities if principle else {}

    chain = ProvenanceChain(
        axiom_id=axiom.id,
        axiom_text=axiom.text,
        principle_id=axiom.principle_id,
        n_count=axiom.n_count,
    )
    for sid in axiom.contributors:
        signal = signals.get(sid)
        if signal is None:
            chain.missing.append(sid)
            continue
        chain.signals.append(SignalRef(
            id=signal.id,
            text=signal.text,
            locator=signal.source.locator(),
            similarity=similarities.get(sid),
        ))
    return chain


def format_chain(chain: ProvenanceChain) -> str:
    lines = [f"{chain.axiom_id}: {chain.axiom_text}", f"  <- {chain.principle_id} (N={chain.n_count})"]
    for ref in chain.signals:
        sim = f" [{ref.similarity:.3f}]" if ref.similarity is not None else ""
        lines.append(f"     <- {ref.id} {ref.locator}{sim}: {ref.text[:80]}")
    for sid in chain.missing:
        lines.append(f"     <- {sid} (unknown signal)")
    return "\n".join(lines)
