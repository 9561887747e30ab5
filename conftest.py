"""Shared helpers for the soulsmith test modules."""

import math

import pytest

from signals import create_signal


def unit(*components):
    norm = math.sqrt(sum(c * c for c in components))
    return [c / norm for c in components]


def near(axis: int, wobble: float, dim: int = 8, offset: int = 0):
    """
    Unit vector pointing mostly along `axis`, nudged toward the next axis.
    Two vectors from the same axis with small wobbles have similarity ~0.99.
    """
    vec = [0.0] * dim
    vec[axis] = 1.0
    vec[(axis + 1 + offset) % dim] = wobble
    return unit(*vec)


def make_signal(sid: str, vec, text: str = None, line: int = None, created_at: float = 0.0):
    return create_signal(
        text=text or f"observation {sid}",
        embedding=vec,
        file="memory/notes.md",
        line=line,
        signal_id=sid,
        created_at=created_at,
    )


def cluster(prefix: str, axis: int, size: int = 5, dim: int = 8):
    """`size` signals that all sit within ~0.99 similarity of each other."""
    return [
        make_signal(f"{prefix}_{i}", near(axis, 0.02 * i, dim), text=f"{prefix} idea #{i}", line=i + 1)
        for i in range(size)
    ]


@pytest.fixture
def two_clusters():
    return cluster("focus", 0) + cluster("honesty", 4)
