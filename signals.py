"""
Signals — soulsmith
Atomic observations extracted from memory text. A signal carries its text,
its embedding and a locator back to the file/line it came from.

Signals are immutable once created. The synthesis core consumes them and
never mutates them.
"""

from __future__ import annotations

import math
import time
import uuid
from dataclasses import dataclass, field
from typing import Optional


SOURCE_TYPES = ("memory", "interview", "template")


class MalformedObservation(ValueError):
    """A signal whose embedding cannot take part in centroid math."""

    def __init__(self, signal_id: str, reason: str):
        super().__init__(f"signal {signal_id}: {reason}")
        self.signal_id = signal_id
        self.reason = reason


# ── Data classes ─────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class SignalSource:
    """Where a signal came from."""
    file: str
    line: Optional[int] = None
    section: Optional[str] = None
    context: str = ""
    type: str = "memory"    # "memory" | "interview" | "template"

    def locator(self) -> str:
        return f"{self.file}:{self.line}" if self.line is not None else self.file

    def to_dict(self) -> dict:
        return {
            "file": self.file,
            "line": self.line,
            "section": self.section,
            "context": self.context,
            "type": self.type,
        }


@dataclass(frozen=True)
class Signal:
    id: str
    text: str
    embedding: tuple[float, ...]
    source: SignalSource
    created_at: float = field(default_factory=time.time)
    confidence: float = 1.0
    signal_type: str = "value"

    @property
    def dim(self) -> int:
        return len(self.embedding)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "text": self.text,
            "source": self.source.to_dict(),
            "created_at": self.created_at,
            "confidence": self.confidence,
            "signal_type": self.signal_type,
        }


def create_signal_id() -> str:
    return f"sig_{uuid.uuid4().hex[:12]}"


def create_signal(
    text: str,
    embedding,
    file: str,
    line: Optional[int] = None,
    context: str = "",
    section: Optional[str] = None,
    source_type: str = "memory",
    signal_id: Optional[str] = None,
    created_at: Optional[float] = None,
    confidence: float = 1.0,
    signal_type: str = "value",
) -> Signal:
    """
    Build a Signal from raw parts. The embedding is copied into a tuple so
    the signal stays immutable even if the caller reuses its list/array.
    """
    if source_type not in SOURCE_TYPES:
        raise ValueError(f"source_type must be one of {SOURCE_TYPES}, got {source_type!r}")
    return Signal(
        id=signal_id or create_signal_id(),
        text=text,
        embedding=tuple(float(v) for v in embedding),
        source=SignalSource(
            file=file,
            line=line,
            section=section,
            context=context,
            type=source_type,
        ),
        created_at=time.time() if created_at is None else created_at,
        confidence=max(0.0, min(1.0, confidence)),
        signal_type=signal_type,
    )


# ── Validation ───────────────────────────────────────────────────────────────

def validate_signal(signal: Signal, expected_dim: Optional[int] = None) -> None:
    """
    Raise MalformedObservation if the signal's vector is unusable:
    empty, non-finite, all zeros, or of a different dimension than the
    rest of the run.
    """
    vec = signal.embedding
    if not vec:
        raise MalformedObservation(signal.id, "empty embedding")
    if not all(math.isfinite(v) for v in vec):
        raise MalformedObservation(signal.id, "embedding contains NaN or inf")
    if not any(vec):
        raise MalformedObservation(signal.id, "zero vector")
    if expected_dim is not None and len(vec) != expected_dim:
        raise MalformedObservation(
            signal.id, f"dimension {len(vec)} != expected {expected_dim}"
        )


def partition_valid(signals: list[Signal]) -> tuple[list[Signal], list[MalformedObservation]]:
    """
    Split signals into (valid, rejected). The first valid signal fixes the
    expected dimension for the rest. Duplicate ids are rejected as well,
    since provenance is keyed on signal id.
    """
    valid: list[Signal] = []
    rejected: list[MalformedObservation] = []
    expected_dim: Optional[int] = None
    seen: set[str] = set()

    for signal in signals:
        try:
            if signal.id in seen:
                raise MalformedObservation(signal.id, "duplicate signal id")
            validate_signal(signal, expected_dim)
        except MalformedObservation as e:
            rejected.append(e)
            continue
        seen.add(signal.id)
        if expected_dim is None:
            expected_dim = signal.dim
        valid.append(signal)

    return valid, rejected
