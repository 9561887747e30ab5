"""
Synthesis Config — soulsmith
Every knob the synthesis core consumes, as plain numbers. Nothing here is a
global: a run gets a SynthesisConfig instance and passes the values down.

Stored as JSON (default ~/.config/soulsmith/synthesis.json). Unknown keys
are kept in `extra` and never reach the core.
"""

import json
import logging
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Optional

from principle_store import ReassignmentPolicy

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_DIR = Path.home() / ".config/soulsmith"
SYNTHESIS_CONFIG_FILE = DEFAULT_CONFIG_DIR / "synthesis.json"


@dataclass
class SynthesisConfig:
    # Convergence loop
    initial_threshold: float = 0.75     # generalised signals sit around 0.78-0.83
    threshold_step: float = 0.02
    max_passes: int = 5
    reassignment_policy: str = ReassignmentPolicy.REPLAY.value
    tie_tolerance: float = 1e-9

    # Cascade promoter
    cascade_thresholds: tuple = (3, 2, 1)
    min_axiom_target: int = 3
    core_min_n: int = 5
    domain_min_n: int = 3
    cognitive_load_cap: Optional[int] = 25

    # Guardrails
    guardrail_load_ratio: float = 0.5
    guardrail_load_cap: int = 30

    extra: dict = field(default_factory=dict, repr=False)

    def __post_init__(self):
        self.cascade_thresholds = tuple(int(k) for k in self.cascade_thresholds)
        self.validate()

    def validate(self):
        """Raise ValueError on values the core cannot work with."""
        if not 0.0 <= self.initial_threshold <= 1.0:
            raise ValueError(f"initial_threshold must be in [0, 1], got {self.initial_threshold}")
        if self.threshold_step < 0:
            raise ValueError(f"threshold_step must be >= 0, got {self.threshold_step}")
        if self.max_passes < 1:
            raise ValueError(f"max_passes must be >= 1, got {self.max_passes}")
        if not self.cascade_thresholds:
            raise ValueError("cascade_thresholds must not be empty")
        if any(k < 1 for k in self.cascade_thresholds):
            raise ValueError(f"cascade_thresholds must be >= 1, got {self.cascade_thresholds}")
        if list(self.cascade_thresholds) != sorted(set(self.cascade_thresholds), reverse=True):
            raise ValueError(
                f"cascade_thresholds must be strictly descending, got {self.cascade_thresholds}"
            )
        if self.min_axiom_target < 0:
            raise ValueError(f"min_axiom_target must be >= 0, got {self.min_axiom_target}")
        if not 1 <= self.domain_min_n <= self.core_min_n:
            raise ValueError(
                f"tier boundaries must satisfy 1 <= domain_min_n <= core_min_n, "
                f"got {self.domain_min_n}/{self.core_min_n}"
            )
        if self.cognitive_load_cap is not None and self.cognitive_load_cap < 1:
            raise ValueError(f"cognitive_load_cap must be >= 1 or None, got {self.cognitive_load_cap}")
        if self.guardrail_load_ratio <= 0 or self.guardrail_load_cap < 1:
            raise ValueError("guardrail load ratio/cap must be positive")
        # raises ValueError for unknown policy names
        ReassignmentPolicy(self.reassignment_policy)

    @property
    def policy(self) -> ReassignmentPolicy:
        return ReassignmentPolicy(self.reassignment_policy)

    def to_dict(self) -> dict:
        data = asdict(self)
        data.pop("extra")
        data["cascade_thresholds"] = list(self.cascade_thresholds)
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "SynthesisConfig":
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__ and k != "extra"}
        extra = {k: v for k, v in data.items() if k not in cls.__dataclass_fields__}
        return cls(**known, extra=extra)

    @classmethod
    def load(cls, config_file: Optional[Path] = None) -> "SynthesisConfig":
        """
        Load from JSON. A missing, unreadable or invalid file falls back to
        defaults with a warning rather than stopping the run.
        """
        path = Path(config_file) if config_file else SYNTHESIS_CONFIG_FILE
        if not path.exists():
            return cls()
        try:
            with open(path) as f:
                return cls.from_dict(json.load(f))
        except (OSError, AttributeError, TypeError, ValueError) as e:
            logger.warning("Config load error (%s): %s; using defaults", path, e)
            return cls()

    def save(self, config_file: Optional[Path] = None):
        path = Path(config_file) if config_file else SYNTHESIS_CONFIG_FILE
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
