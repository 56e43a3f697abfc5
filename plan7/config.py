#!/usr/bin/env python3
"""
Unified configuration module for Plan7 model construction.

Strategy choices and tunables for every build stage, as dataclasses
loadable from YAML, JSON or plain dictionaries.
"""

import yaml
import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Dict, Any
from pathlib import Path
import logging

logger = logging.getLogger(__name__)


class ArchStrategy(Enum):
    FAST = "fast"
    HAND = "hand"


class WeightStrategy(Enum):
    NONE = "none"
    GIVEN = "given"
    PB = "pb"
    GSC = "gsc"
    BLOSUM = "blosum"


class EffnStrategy(Enum):
    NONE = "none"
    SET = "set"
    CLUST = "clust"
    ENTROPY = "entropy"


def _enum(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        choices = ", ".join(e.value for e in enum_cls)
        raise ValueError(f"Invalid {enum_cls.__name__} '{value}' (choose from: {choices})") from None


@dataclass
class ConstructionConfig:
    """Model architecture: consensus column assignment."""
    arch: ArchStrategy = ArchStrategy.FAST
    symfrac: float = 0.5

    def __post_init__(self):
        self.arch = _enum(ArchStrategy, self.arch)
        if not 0.0 <= self.symfrac <= 1.0:
            raise ValueError(f"symfrac must be in [0, 1], got {self.symfrac}")

    @classmethod
    def from_dict(cls, config: dict):
        return cls(**{k: v for k, v in config.items() if k in cls.__annotations__})


@dataclass
class WeightingConfig:
    """Relative sequence weighting."""
    strategy: WeightStrategy = WeightStrategy.GSC
    # sequence count at which position-based weighting is forced; None/-1 = never
    pbswitch: Optional[int] = 1000
    wid: float = 0.62

    def __post_init__(self):
        self.strategy = _enum(WeightStrategy, self.strategy)
        if self.pbswitch is not None and self.pbswitch < 0:
            self.pbswitch = None
        if not 0.0 <= self.wid <= 1.0:
            raise ValueError(f"wid must be in [0, 1], got {self.wid}")

    @classmethod
    def from_dict(cls, config: dict):
        return cls(**{k: v for k, v in config.items() if k in cls.__annotations__})


@dataclass
class EffectiveNumberConfig:
    """Effective sequence number determination."""
    strategy: EffnStrategy = EffnStrategy.ENTROPY
    eset: Optional[float] = None
    # target mean relative entropy per position; None = length-dependent default
    ere: Optional[float] = None
    eX: float = 6.0
    eid: float = 0.62

    def __post_init__(self):
        self.strategy = _enum(EffnStrategy, self.strategy)
        if self.strategy == EffnStrategy.SET and self.eset is None:
            raise ValueError("effective number strategy 'set' requires eset")
        if self.eset is not None and self.eset <= 0:
            raise ValueError(f"eset must be positive, got {self.eset}")
        if self.ere is not None and self.ere <= 0:
            raise ValueError(f"ere must be positive, got {self.ere}")

    @classmethod
    def from_dict(cls, config: dict):
        return cls(**{k: v for k, v in config.items() if k in cls.__annotations__})


@dataclass
class CalibrationConfig:
    """E-value calibration simulations and run-to-run variation."""
    EvL: int = 100
    EvN: int = 200
    EfL: int = 100
    EfN: int = 200
    Eft: float = 0.04
    # target length (residues) location parameters are extrapolated to; 0 = off
    bp_extrapolation: float = 0.0
    # 0 = arbitrary seed, no reseeding before each calibration
    seed: int = 42

    def __post_init__(self):
        if not 0.0 < self.Eft < 1.0:
            raise ValueError(f"Eft must be in (0, 1), got {self.Eft}")
        if self.seed < 0:
            raise ValueError(f"seed must be >= 0, got {self.seed}")

    @classmethod
    def from_dict(cls, config: dict):
        return cls(**{k: v for k, v in config.items() if k in cls.__annotations__})


@dataclass
class ScoreSystemConfig:
    """Substitution matrix and gap probabilities for single-sequence builds."""
    mxfile: Optional[str] = None
    env: Optional[str] = None
    popen: float = 0.02
    pextend: float = 0.4

    @classmethod
    def from_dict(cls, config: dict):
        return cls(**{k: v for k, v in config.items() if k in cls.__annotations__})


@dataclass
class Plan7Config:
    """Master configuration for Plan7 model construction."""
    construction: ConstructionConfig = field(default_factory=ConstructionConfig)
    weighting: WeightingConfig = field(default_factory=WeightingConfig)
    effective: EffectiveNumberConfig = field(default_factory=EffectiveNumberConfig)
    calibration: CalibrationConfig = field(default_factory=CalibrationConfig)
    score_system: Optional[ScoreSystemConfig] = None

    alphabet: Optional[str] = None
    logging: Optional[Dict[str, Any]] = None
    output: Optional[Dict[str, Any]] = None

    @classmethod
    def from_yaml(cls, yaml_path: str):
        """Load configuration from YAML file."""
        with open(yaml_path, 'r') as f:
            config = yaml.safe_load(f) or {}
        return cls.from_dict(config)

    @classmethod
    def from_json(cls, json_path: str):
        """Load configuration from JSON file."""
        with open(json_path, 'r') as f:
            config = json.load(f)
        return cls.from_dict(config)

    @classmethod
    def from_dict(cls, config: dict):
        """Load configuration from dictionary."""
        score_system = None
        if config.get('score_system') is not None:
            score_system = ScoreSystemConfig.from_dict(config['score_system'])

        return cls(
            construction=ConstructionConfig.from_dict(config.get('construction') or {}),
            weighting=WeightingConfig.from_dict(config.get('weighting') or {}),
            effective=EffectiveNumberConfig.from_dict(config.get('effective') or {}),
            calibration=CalibrationConfig.from_dict(config.get('calibration') or {}),
            score_system=score_system,
            alphabet=config.get('alphabet'),
            logging=config.get('logging'),
            output=config.get('output'),
        )

    def to_yaml(self, output_path: str):
        """Save configuration to YAML file."""
        with open(output_path, 'w') as f:
            yaml.dump(self._to_dict(), f, default_flow_style=False, sort_keys=False)

    def to_json(self, output_path: str):
        """Save configuration to JSON file."""
        with open(output_path, 'w') as f:
            json.dump(self._to_dict(), f, indent=2)

    def _to_dict(self) -> Dict[str, Any]:
        """
        Recursive conversion into plain Python values, safe for YAML/JSON
        and for pickling to worker processes.
        """
        from dataclasses import is_dataclass

        def convert(obj):
            if obj is None or isinstance(obj, (bool, int, float, str)):
                return obj
            if isinstance(obj, Enum):
                return obj.value
            if isinstance(obj, (list, tuple)):
                return [convert(x) for x in obj]
            if isinstance(obj, dict):
                return {k: convert(v) for k, v in obj.items()}
            if is_dataclass(obj):
                return {name: convert(getattr(obj, name))
                        for name in obj.__dataclass_fields__}
            return str(obj)

        return convert(self)


def load_config(config_path: str) -> Plan7Config:
    """
    Load configuration from file (YAML or JSON).

    Args:
        config_path: Path to configuration file

    Returns:
        Plan7Config instance
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    if path.suffix in ['.yaml', '.yml']:
        config = Plan7Config.from_yaml(config_path)
    elif path.suffix == '.json':
        config = Plan7Config.from_json(config_path)
    else:
        raise ValueError(f"Unsupported configuration format: {path.suffix}")
    logger.debug(f"Loaded configuration from {path}")
    return config
