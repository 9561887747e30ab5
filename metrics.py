"""
Metrics — soulsmith
Compression metrics for a synthesis run. Token counts are a word-based
approximation (words * 1.3); plug in a real tokenizer if exact numbers matter.
"""

import math
from dataclasses import dataclass


@dataclass
class CompressionMetrics:
    original_tokens: int
    compressed_tokens: int
    compression_ratio: float
    semantic_density: float     # principles per 100 compressed tokens
    signal_count: int
    principle_count: int
    axiom_count: int
    convergence_rate: float     # share of signals that reinforced instead of founding

    def to_dict(self) -> dict:
        return dict(self.__dict__)


def count_tokens(text: str) -> int:
    return math.ceil(len(text.split()) * 1.3)


def compression_ratio(original_tokens: int, compressed_tokens: int) -> float:
    return original_tokens / max(1, compressed_tokens)


def semantic_density(principle_count: int, token_count: int) -> float:
    if token_count == 0:
        return 0.0
    return principle_count / token_count * 100


def convergence_rate(signal_count: int, principle_count: int) -> float:
    """Every principle was founded by exactly one signal; the rest reinforced."""
    if signal_count == 0:
        return 0.0
    return max(0, signal_count - principle_count) / signal_count


def calculate_metrics(signal_texts: list[str], principle_count: int, axiom_texts: list[str]) -> CompressionMetrics:
    original = sum(count_tokens(t) for t in signal_texts)
    compressed = sum(count_tokens(t) for t in axiom_texts)
    return CompressionMetrics(
        original_tokens=original,
        compressed_tokens=compressed,
        compression_ratio=compression_ratio(original, compressed),
        semantic_density=semantic_density(principle_count, compressed),
        signal_count=len(signal_texts),
        principle_count=principle_count,
        axiom_count=len(axiom_texts),
        convergence_rate=convergence_rate(len(signal_texts), principle_count),
    )


def format_metrics_report(metrics: CompressionMetrics) -> str:
    lines = [
        "## Compression Metrics",
        "",
        "| Metric | Value |",
        "|--------|-------|",
        f"| Original tokens | {metrics.original_tokens} |",
        f"| Compressed tokens | {metrics.compressed_tokens} |",
        f"| **Compression ratio** | **{metrics.compression_ratio:.2f}:1** |",
        f"| Semantic density | {metrics.semantic_density:.2f} principles/100 tokens |",
        f"| Signals | {metrics.signal_count} |",
        f"| Principles | {metrics.principle_count} |",
        f"| Axioms | {metrics.axiom_count} |",
        f"| Convergence rate | {metrics.convergence_rate * 100:.1f}% |",
    ]
    return "\n".join(lines)
