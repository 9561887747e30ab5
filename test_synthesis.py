"""End-to-end tests for run_synthesis / synthesize_texts."""

import math
import threading

import httpx
import pytest

from conftest import cluster, make_signal, near
from convergence import SynthesisCancelled
from embeddings import EmbeddingUnavailable, HttpEmbeddingModel
from notation import GenerationResult, GenerationStatus, GenerationUnavailable
from synthesis import format_report, run_synthesis, synthesize_texts
from synthesis_config import SynthesisConfig


class FixedGenerator:
    def __init__(self, status=GenerationStatus.OK, text="🎯 焦: focus"):
        self.status = status
        self.text = text
        self.calls = 0

    def generate(self, prompt):
        self.calls += 1
        return GenerationResult(self.status, text=self.text, error="stub")


class TableEmbedder:
    """Looks up each text's vector in a dict."""

    def __init__(self, table):
        self.table = table

    def embed(self, text):
        return self.table[text]

    def embed_batch(self, texts):
        return [self.table[t] for t in texts]


def test_two_clusters_end_to_end(two_clusters):
    result = run_synthesis(two_clusters, config=SynthesisConfig(min_axiom_target=2))

    assert result.converged
    assert result.signal_count == 10
    assert result.effective_threshold == 3
    assert [a.tier.value for a in result.axioms] == ["core", "core"]
    assert result.findings == []
    assert result.compression_ratio == 5.0
    assert result.metrics.principle_count == 2


def test_malformed_signals_are_rejected_and_run_continues(two_clusters):
    bad = [make_signal("zero", [0.0] * 8), make_signal("short", [1.0, 0.0])]
    result = run_synthesis(two_clusters + bad)

    assert result.signal_count == 10
    assert [r["id"] for r in result.rejected] == ["zero", "short"]
    assert sum(p.n_count for p in result.principles) == 10


def test_no_convergence_is_a_finding(two_clusters):
    result = run_synthesis(two_clusters, config=SynthesisConfig(max_passes=1, min_axiom_target=2))
    assert not result.converged
    assert any(f.startswith("No convergence after 1 passes") for f in result.findings)
    assert len(result.axioms) == 2


def test_sort_by_created_changes_feed_order():
    late = make_signal("late", near(0, 0.0), text="late", created_at=20.0)
    early = make_signal("early", near(0, 0.05), text="early", created_at=10.0)
    result = run_synthesis([late, early], sort_by_created=True)
    assert result.principles[0].contributors == ["early", "late"]


def test_trace_from_result():
    signals = cluster("focus", 0)
    result = run_synthesis(signals)
    chain = result.trace(result.axioms[0].id)
    assert chain.complete
    assert [ref.id for ref in chain.signals] == [s.id for s in signals]
    with pytest.raises(KeyError):
        result.trace("ax_99999")


def test_generator_fills_notation(two_clusters):
    gen = FixedGenerator()
    result = run_synthesis(two_clusters, generator=gen)
    assert gen.calls == 2
    assert all(a.notated == "🎯 焦: focus" for a in result.axioms)


def test_malformed_generation_falls_back_with_finding(two_clusters):
    result = run_synthesis(two_clusters, generator=FixedGenerator(GenerationStatus.MALFORMED))
    assert all(a.notated.startswith("📌 理:") for a in result.axioms)
    assert any("Notation fell back" in f for f in result.findings)


def test_unavailable_generation_aborts(two_clusters):
    with pytest.raises(GenerationUnavailable):
        run_synthesis(two_clusters, generator=FixedGenerator(GenerationStatus.UNAVAILABLE))


def test_cancelled_run_raises(two_clusters):
    event = threading.Event()
    event.set()
    with pytest.raises(SynthesisCancelled):
        run_synthesis(two_clusters, cancel_event=event)


def test_concurrent_runs_do_not_share_state():
    results = {}

    def worker(name, signals):
        results[name] = run_synthesis(signals)

    threads = [
        threading.Thread(target=worker, args=("a", cluster("a", 0))),
        threading.Thread(target=worker, args=("b", cluster("b", 4, size=3))),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert [p.n_count for p in results["a"].principles] == [5]
    assert [p.n_count for p in results["b"].principles] == [3]
    assert results["a"].principles[0].id == results["b"].principles[0].id == "pri_00001"


def test_synthesize_texts_assigns_sequential_ids():
    table = {f"focus {i}": near(0, 0.02 * i) for i in range(3)}
    result = synthesize_texts(
        [{"text": t, "file": "MEMORY.md", "line": i + 1} for i, t in enumerate(table)],
        TableEmbedder(table),
    )
    assert result.principles[0].contributors == ["sig_00001", "sig_00002", "sig_00003"]
    assert result.signals["sig_00002"].source.locator() == "MEMORY.md:2"


def test_synthesize_texts_propagates_embedding_failure():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    embedder = HttpEmbeddingModel(client=httpx.Client(transport=httpx.MockTransport(handler)))
    with pytest.raises(EmbeddingUnavailable):
        synthesize_texts([{"text": "anything"}], embedder)


def test_empty_input():
    result = run_synthesis([])
    assert result.axioms == [] and result.principles == []
    assert result.guardrails.no_input
    assert len(result.findings) == 1
    assert result.to_dict()["signal_count"] == 0


def test_report_sections(two_clusters):
    report = format_report(run_synthesis(two_clusters))
    for heading in ("# Synthesis Report", "## Cascade", "## Passes", "## Axioms",
                    "## Compression Metrics", "## Guardrail Warnings"):
        assert heading in report
    assert "| N>=1 | 2 | ✓ |" in report


def test_axiom_text_comes_from_its_own_contributors():
    # a, b, c at 0/40/60 degrees: one principle founded by a at 0.75, then a
    # drifts out at 0.85 and founds its own
    angles = {"a": 0, "b": 40, "c": 60}
    signals = [
        make_signal(sid, [math.cos(math.radians(deg)), math.sin(math.radians(deg))], text=f"founder {sid}")
        for sid, deg in angles.items()
    ]
    result = run_synthesis(signals, config=SynthesisConfig(threshold_step=0.1, max_passes=3))

    texts = {s.id: s.text for s in signals}
    assert len(result.axioms) == 2
    for axiom in result.axioms:
        assert axiom.text in {texts[sid] for sid in axiom.contributors}
    assert len({a.text for a in result.axioms}) == len(result.axioms)
    assert [ref.text for ref in result.trace("ax_00001").signals] == ["founder b", "founder c"]
