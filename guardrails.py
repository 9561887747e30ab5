"""
Guardrails — soulsmith
Structural sanity checks on a promoted axiom set. Advisory only: findings
are attached to the run result and logged, the axioms are never touched.
"""

import logging
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

# 7±2 items for working memory, stretched to 30 for hierarchical structures
COGNITIVE_LOAD_LIMIT = 30
COGNITIVE_LOAD_RATIO = 0.5


@dataclass
class GuardrailReport:
    expansion: bool = False        # more axioms than signals
    cognitive_load: bool = False   # above min(ratio * signals, limit)
    fallback: bool = False         # cascade used its loosest level
    no_input: bool = False
    findings: list[str] = field(default_factory=list)

    @property
    def clean(self) -> bool:
        return not self.findings

    def to_dict(self) -> dict:
        return {
            "expansion": self.expansion,
            "cognitive_load": self.cognitive_load,
            "fallback": self.fallback,
            "no_input": self.no_input,
            "findings": list(self.findings),
        }


def load_ceiling(signal_count: int, ratio: float = COGNITIVE_LOAD_RATIO, limit: int = COGNITIVE_LOAD_LIMIT) -> float:
    return min(signal_count * ratio, limit)


def check_guardrails(
    axiom_count: int,
    signal_count: int,
    effective_threshold: int,
    cascade_thresholds=(3, 2, 1),
    load_ratio: float = COGNITIVE_LOAD_RATIO,
    load_limit: int = COGNITIVE_LOAD_LIMIT,
) -> GuardrailReport:
    """
    Evaluate the promoted set. With no input signals the only finding is
    "no input": an empty universe has nothing to compress or fall back from.
    """
    report = GuardrailReport()

    if signal_count == 0:
        report.no_input = True
        report.findings.append("No input: 0 signals, nothing to synthesize")
    else:
        if axiom_count > signal_count:
            report.expansion = True
            report.findings.append(
                f"Expansion instead of compression: {axiom_count} axioms > {signal_count} signals"
            )

        ceiling = load_ceiling(signal_count, load_ratio, load_limit)
        if axiom_count > ceiling:
            report.cognitive_load = True
            report.findings.append(
                f"Load ceiling exceeded: {axiom_count} axioms > {ceiling:g} "
                f"(min(signals*{load_ratio}, {load_limit}))"
            )

        if cascade_thresholds and effective_threshold == min(cascade_thresholds):
            report.fallback = True
            report.findings.append(
                f"Fell back to minimum evidence (N>={effective_threshold}): sparse evidence in input"
            )

    for message in report.findings:
        logger.warning("[guardrail] %s", message)

    return report
