"""Simulation configuration.

Every tuning constant of the engines lives here so experiments can override
it from YAML without touching code:

    config = ClinicConfig.from_yaml("configs/clinic.yaml")
"""

from dataclasses import asdict, dataclass, field, fields
from typing import Any

import yaml
from loguru import logger


@dataclass
class SelectionConfig:
    """Clue selection engine constants."""
    completion_threshold: int = 100     # a need is confirmed at this confidence
    false_positive_threshold: int = 80  # absent needs at/above this get a warning
    shortlist_size: int = 3             # random pick among the top-N candidates
    max_iterations: int = 50            # safety ceiling


@dataclass
class NeedDriftConfig:
    """Secondary need assignment and between-visit drift."""
    max_secondary: int = 2
    removal_probability: float = 0.2
    replacement_probability: float = 0.5


@dataclass
class ToxicityConfig:
    """Toxicity capacity and weakness amplification."""
    capacity_min: int = 80
    capacity_max: int = 120
    weakness_multiplier: float = 1.5
    # Upper bounds (exclusive) of the level/capacity ratio per pulse stage.
    stage_bounds: list = field(default_factory=lambda: [0.25, 0.50, 0.75])


@dataclass
class SatisfactionConfig:
    """Treatment satisfaction grading."""
    primary_weight: float = 2.0
    secondary_weight: float = 1.0
    benefit_multiplier: float = 1.2
    high_threshold: float = 0.8
    low_threshold: float = 0.4
    quality_multipliers: dict = field(
        default_factory=lambda: {"U": 1.5, "S": 1.3, "A": 1.15, "B": 1.0, "C": 0.8}
    )
    default_quality: str = "B"
    capped_quality: str = "C"           # primary met only at this grade caps High -> Medium
    max_remedies_per_batch: int = 3


@dataclass
class ClinicConfig:
    """Top-level configuration for a clinic simulation."""
    selection: SelectionConfig = field(default_factory=SelectionConfig)
    needs: NeedDriftConfig = field(default_factory=NeedDriftConfig)
    toxicity: ToxicityConfig = field(default_factory=ToxicityConfig)
    satisfaction: SatisfactionConfig = field(default_factory=SatisfactionConfig)

    @classmethod
    def from_dict(cls, raw: dict) -> "ClinicConfig":
        """Build a config from a nested dict; missing keys keep defaults."""
        raw = raw or {}
        sections = {
            "selection": SelectionConfig,
            "needs": NeedDriftConfig,
            "toxicity": ToxicityConfig,
            "satisfaction": SatisfactionConfig,
        }
        kwargs = {}
        for name, section_cls in sections.items():
            section_raw = raw.get(name) or {}
            known = {f.name for f in fields(section_cls)}
            unknown = set(section_raw) - known
            if unknown:
                logger.warning(f"Ignoring unknown {name} config keys: {sorted(unknown)}")
            values = {k: v for k, v in section_raw.items() if k in known}
            # dict fields are merged over their defaults, not replaced
            defaults = section_cls()
            for key, value in values.items():
                default = getattr(defaults, key)
                if isinstance(default, dict) and isinstance(value, dict):
                    values[key] = {**default, **value}
            kwargs[name] = section_cls(**values)
        return cls(**kwargs)

    @classmethod
    def from_yaml(cls, path: str) -> "ClinicConfig":
        """Load config from YAML file."""
        with open(path, "r") as f:
            raw = yaml.safe_load(f)
        return cls.from_dict(raw)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
