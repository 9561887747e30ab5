"""
Synthesis — soulsmith
One end-to-end distillation run:

    signals -> validation -> convergence loop (one PrincipleStore)
            -> cascade promotion -> guardrails -> optional notation

Error policy:
- EmbeddingUnavailable / GenerationUnavailable abort the run (no partial result)
- malformed signals are rejected one by one and the run continues
- no convergence within max_passes is an advisory finding, not an error
- an empty input is an empty result, not an error
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

from compressor import Axiom, CascadeResult, compress_with_cascade
from convergence import ConvergenceLoop, PassSnapshot
from embeddings import EmbeddingGateway
from guardrails import GuardrailReport, check_guardrails
from metrics import CompressionMetrics, calculate_metrics, format_metrics_report
from notation import TextGenerator, annotate_axioms
from principle_store import Principle, PrincipleStore
from provenance import ProvenanceChain, trace_to_source
from signals import Signal, create_signal, partition_valid
from synthesis_config import SynthesisConfig

logger = logging.getLogger(__name__)


@dataclass
class SynthesisResult:
    axioms: list[Axiom]
    principles: list[Principle]
    unconverged: list[Principle]
    pruned: list[Axiom]
    effective_threshold: int
    cascade: list[CascadeResult]
    guardrails: GuardrailReport
    findings: list[str]
    passes: list[PassSnapshot]
    converged: bool
    rejected: list[dict]
    signal_count: int
    duration_ms: int
    metrics: CompressionMetrics
    signals: dict[str, Signal] = field(default_factory=dict, repr=False)

    @property
    def compression_ratio(self) -> float:
        """Signals per axiom (0 when nothing was promoted)."""
        return self.signal_count / len(self.axioms) if self.axioms else 0.0

    def trace(self, axiom_id: str) -> ProvenanceChain:
        axiom = next((a for a in self.axioms + self.pruned if a.id == axiom_id), None)
        if axiom is None:
            raise KeyError(axiom_id)
        return trace_to_source(axiom, {p.id: p for p in self.principles}, self.signals)

    def to_dict(self) -> dict:
        return {
            "axioms": [a.to_dict() for a in self.axioms],
            "principles": [p.to_dict() for p in self.principles],
            "unconverged": [p.id for p in self.unconverged],
            "pruned": [a.to_dict() for a in self.pruned],
            "effective_threshold": self.effective_threshold,
            "cascade": {a.threshold: a.count for a in self.cascade},
            "guardrails": self.guardrails.to_dict(),
            "findings": list(self.findings),
            "passes": [p.to_dict() for p in self.passes],
            "converged": self.converged,
            "rejected": list(self.rejected),
            "signal_count": self.signal_count,
            "compression_ratio": self.compression_ratio,
            "duration_ms": self.duration_ms,
            "metrics": self.metrics.to_dict(),
        }


# ── Run ───────────────────────────────────────────────────────────────────────

def run_synthesis(
    signals: list[Signal],
    config: Optional[SynthesisConfig] = None,
    generator: Optional[TextGenerator] = None,
    cancel_event: Optional[threading.Event] = None,
    on_status: Optional[Callable[[str], None]] = None,
    sort_by_created: bool = False,
) -> SynthesisResult:
    """
    Distill already-embedded signals into tiered axioms. Each call builds
    its own PrincipleStore, so concurrent runs never share state.

    Signals are matched in the order given, or in (created_at, id) order
    when sort_by_created is set.
    """
    config = config or SynthesisConfig()
    status = on_status or (lambda x: None)
    start = time.time()

    valid, rejected_errors = partition_valid(list(signals))
    for err in rejected_errors:
        logger.warning("Rejected signal %s: %s", err.signal_id, err.reason)
    if sort_by_created:
        valid.sort(key=lambda s: (s.created_at, s.id))

    logger.info("Starting synthesis with %d signals (%d rejected)", len(valid), len(rejected_errors))
    status(f"[Synthesis] {len(valid)} signals")

    store = PrincipleStore(
        threshold=config.initial_threshold,
        policy=config.policy,
        tie_tolerance=config.tie_tolerance,
    )
    loop = ConvergenceLoop(
        store=store,
        initial_threshold=config.initial_threshold,
        threshold_step=config.threshold_step,
        max_passes=config.max_passes,
        cancel_event=cancel_event,
        on_status=on_status,
    )
    convergence = loop.run(valid)

    compression = compress_with_cascade(
        convergence.principles,
        cascade_thresholds=config.cascade_thresholds,
        min_axiom_target=config.min_axiom_target,
        core_min_n=config.core_min_n,
        domain_min_n=config.domain_min_n,
        cognitive_load_cap=config.cognitive_load_cap,
    )

    report = check_guardrails(
        len(compression.axioms),
        len(valid),
        compression.effective_threshold,
        cascade_thresholds=config.cascade_thresholds,
        load_ratio=config.guardrail_load_ratio,
        load_limit=config.guardrail_load_cap,
    )
    findings = list(report.findings)
    if convergence.no_convergence:
        findings.append(
            f"No convergence after {len(convergence.passes)} passes; "
            f"using the last snapshot (threshold {convergence.final_threshold:.2f})"
        )

    if generator is not None and compression.axioms:
        fallbacks = annotate_axioms(generator, compression.axioms)
        if fallbacks:
            findings.append(f"Notation fell back to plain labels for {fallbacks} axiom(s)")

    principle_count = sum(1 for p in convergence.principles if p.n_count > 0)
    metrics = calculate_metrics(
        [s.text for s in valid],
        principle_count,
        [a.notated or a.text for a in compression.axioms],
    )
    duration_ms = int((time.time() - start) * 1000)

    logger.info(
        "Complete: %d signals -> %d principles -> %d axioms in %dms",
        len(valid), principle_count, len(compression.axioms), duration_ms,
    )
    status(f"[Synthesis] {len(compression.axioms)} axioms (N>={compression.effective_threshold})")

    return SynthesisResult(
        axioms=compression.axioms,
        principles=convergence.principles,
        unconverged=compression.unconverged,
        pruned=compression.pruned,
        effective_threshold=compression.effective_threshold,
        cascade=compression.attempts,
        guardrails=report,
        findings=findings,
        passes=convergence.passes,
        converged=convergence.converged,
        rejected=[{"id": e.signal_id, "reason": e.reason} for e in rejected_errors],
        signal_count=len(valid),
        duration_ms=duration_ms,
        metrics=metrics,
        signals={s.id: s for s in valid},
    )


def synthesize_texts(
    items: list[dict],
    embedder: EmbeddingGateway,
    config: Optional[SynthesisConfig] = None,
    generator: Optional[TextGenerator] = None,
    cancel_event: Optional[threading.Event] = None,
    on_status: Optional[Callable[[str], None]] = None,
) -> SynthesisResult:
    """
    Embed raw observations and run synthesis on them.

    items: [{"text": ..., "file": ..., "line": ..., "context": ..., "id": ...}]
    Only "text" is required. Ids default to sig_00001, sig_00002, ... in input
    order so repeated runs over the same input trace identically.

    EmbeddingUnavailable from the embedder propagates: no partial result.
    """
    texts = [item["text"] for item in items]
    vectors = embedder.embed_batch(texts) if texts else []

    signals = [
        create_signal(
            text=item["text"],
            embedding=vec,
            file=item.get("file", "<input>"),
            line=item.get("line"),
            context=item.get("context", ""),
            section=item.get("section"),
            source_type=item.get("type", "memory"),
            signal_id=item.get("id") or f"sig_{i + 1:05d}",
            created_at=item.get("created_at"),
        )
        for i, (item, vec) in enumerate(zip(items, vectors))
    ]
    return run_synthesis(
        signals,
        config=config,
        generator=generator,
        cancel_event=cancel_event,
        on_status=on_status,
    )


# ── Report ────────────────────────────────────────────────────────────────────

def format_report(result: SynthesisResult) -> str:
    lines = [
        "# Synthesis Report",
        "",
        f"**Duration**: {result.duration_ms}ms",
        f"**Compression**: {result.compression_ratio:.1f}:1",
        f"**Converged**: {'yes' if result.converged else 'no'} after {len(result.passes)} pass(es)",
        "",
        "## Results",
        "",
        "| Metric | Value |",
        "|--------|-------|",
        f"| Signals | {result.signal_count} |",
        f"| Rejected | {len(result.rejected)} |",
        f"| Principles | {len(result.principles)} |",
        f"| Axioms | {len(result.axioms)} |",
        f"| Unconverged | {len(result.unconverged)} |",
        f"| Pruned | {len(result.pruned)} |",
        f"| Effective Threshold | N>={result.effective_threshold} |",
        "",
        "## Cascade",
        "",
        "| Threshold | Count | Selected |",
        "|-----------|-------|----------|",
    ]
    for attempt in result.cascade:
        lines.append(f"| N>={attempt.threshold} | {attempt.count} | {'✓' if attempt.selected else ''} |")
    lines.append("")

    if result.passes:
        lines += [
            "## Passes",
            "",
            "| Pass | Threshold | Principles | Total N | Created | Released |",
            "|------|-----------|------------|---------|---------|----------|",
        ]
        for p in result.passes:
            lines.append(
                f"| {p.index} | {p.threshold:.2f} | {p.principle_count} | {p.total_n} "
                f"| {p.created} | {p.released} |"
            )
        lines.append("")

    if result.axioms:
        lines += ["## Axioms", ""]
        for a in result.axioms:
            label = f" ({a.notated})" if a.notated else ""
            lines.append(f"- [{a.tier.value}] (N={a.n_count}) {a.text}{label}")
        lines.append("")

    lines += [format_metrics_report(result.metrics), ""]

    if result.findings:
        lines += ["## Guardrail Warnings", ""]
        lines += [f"- {f}" for f in result.findings]
        lines.append("")

    return "\n".join(lines)
