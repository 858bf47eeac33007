"""
Configuration management for SetPrep.

Loads and validates TOML config against strict parameter bounds.
All tunable parameters are bounded and validated at startup.
"""

import os
from pathlib import Path
from typing import Dict, Any, Optional
import toml
import logging

from .analyze.clash import ClashDetector
from .analyze.key import CamelotTable
from .generate.suggest import SuggestionEngine, SuggestionSession
from .models import BpmRange, PlannerParams, Progression

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Raised when config validation fails."""
    pass


class Config:
    """Configuration loader and validator."""

    PARAM_BOUNDS = {
        "clash": {
            "bpm_clash_percent": (2.0, 12.0),
        },
        "planner": {
            "default_length": (1, 150),
            "default_progression": None,  # Checked against PARAM_CHOICES
            "strict": None,  # Checked against BOOL_PARAMS
        },
        "suggest": {
            "count": (1, 20),
            "candidate_limit": (5, 500),
            "fallback_match_score": (0.0, 1.0),
        },
        "library": {
            "max_xml_mb": (1, 200),
        },
    }

    PARAM_CHOICES = {
        ("planner", "default_progression"): [p.value for p in Progression],
    }

    BOOL_PARAMS = {
        ("planner", "strict"),
    }

    DEFAULT_CONFIG = {
        "config_version": "1.0",
        "clash": {
            "bpm_clash_percent": 6.0,
        },
        "planner": {
            "default_length": 10,
            "default_progression": "Linear",
            "strict": True,
        },
        "suggest": {
            "count": 5,
            "candidate_limit": 80,
            "fallback_match_score": 0.75,
        },
        "library": {
            "xml_path": "",
            "max_xml_mb": 20,
        },
    }

    def __init__(self, config_dict: Dict[str, Any]):
        """Initialize config from dictionary."""
        self.data = config_dict
        self._validate()

    @classmethod
    def defaults(cls) -> "Config":
        return cls({k: (dict(v) if isinstance(v, dict) else v) for k, v in cls.DEFAULT_CONFIG.items()})

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "Config":
        """
        Load config from TOML file.

        Args:
            config_path: Path to setprep.toml. If None, uses SETPREP_CONFIG_PATH env var
                        or defaults to configs/setprep.toml.

        Returns:
            Config instance.

        Raises:
            ConfigError: If config is invalid or missing.
        """
        if config_path is None:
            config_path = os.getenv("SETPREP_CONFIG_PATH", "configs/setprep.toml")

        config_path = Path(config_path)

        if not config_path.exists():
            logger.warning(f"Config file not found: {config_path}. Using defaults.")
            return cls.defaults()

        try:
            config_dict = toml.load(config_path)
        except (toml.TomlDecodeError, OSError) as e:
            raise ConfigError(f"Failed to load config from {config_path}: {e}")

        logger.info(f"Loaded config from {config_path}")
        return cls(config_dict)

    def _validate(self) -> None:
        """
        Validate all config parameters against their bounds.

        Raises:
            ConfigError: If any parameter is out of bounds.
        """
        for section, params in self.PARAM_BOUNDS.items():
            if section not in self.data:
                logger.warning(f"Missing config section: {section}. Using defaults.")
                self.data[section] = dict(self.DEFAULT_CONFIG.get(section, {}))
                continue

            section_data = self.data[section]

            for param, bounds in params.items():
                if param not in section_data:
                    default_val = self.DEFAULT_CONFIG.get(section, {}).get(param)
                    if default_val is not None:
                        logger.warning(f"Missing param {section}.{param}. Using default: {default_val}")
                        section_data[param] = default_val
                    continue

                value = section_data[param]

                choices = self.PARAM_CHOICES.get((section, param))
                if choices is not None:
                    if str(value).lower() not in [c.lower() for c in choices]:
                        raise ConfigError(f"Parameter {section}.{param}={value!r} not one of {choices}")
                    continue

                if (section, param) in self.BOOL_PARAMS:
                    if not isinstance(value, bool):
                        raise ConfigError(f"Parameter {section}.{param}={value!r} is not a boolean")
                    continue

                # Non-numeric params (no bounds check needed)
                if bounds is None:
                    continue

                min_val, max_val = bounds
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise ConfigError(f"Parameter {section}.{param}={value!r} is not a number")
                if not (min_val <= value <= max_val):
                    raise ConfigError(
                        f"Parameter {section}.{param}={value} out of bounds "
                        f"[{min_val}, {max_val}]"
                    )

        logger.info("✅ Config validation passed")

    def get(self, section: str, param: str, default: Any = None) -> Any:
        """Get a config parameter safely."""
        return self.data.get(section, {}).get(param, default)

    def __getitem__(self, section: str) -> Dict[str, Any]:
        """Allow dict-like access: config["planner"]"""
        return self.data.get(section, {})

    def detector(self, table: Optional[CamelotTable] = None) -> ClashDetector:
        """Clash detector using the configured tempo threshold."""
        return ClashDetector(table=table, bpm_threshold_percent=float(self.get("clash", "bpm_clash_percent")))

    def suggestion_engine(self, provider=None) -> SuggestionEngine:
        """Suggestion engine using the configured limits and fallback score."""
        return SuggestionEngine(
            provider=provider,
            candidate_limit=int(self.get("suggest", "candidate_limit")),
            fallback_score=float(self.get("suggest", "fallback_match_score")),
        )

    def suggestion_session(self, provider=None) -> SuggestionSession:
        """Suggestion session showing the configured number of suggestions per request."""
        return SuggestionSession(self.suggestion_engine(provider), count=int(self.get("suggest", "count")))

    def planner_params(self, **overrides: Any) -> PlannerParams:
        """
        Planner parameters from config, with per-request overrides.

        Overrides use PlannerParams field names; a (min, max) tuple is
        accepted for bpm_range.
        """
        values: Dict[str, Any] = {
            "progression": Progression.parse(self.get("planner", "default_progression")),
            "length": int(self.get("planner", "default_length")),
            "is_strict": bool(self.get("planner", "strict")),
        }
        values.update(overrides)
        if isinstance(values.get("progression"), str):
            values["progression"] = Progression.parse(values["progression"])
        if isinstance(values.get("bpm_range"), (tuple, list)):
            values["bpm_range"] = BpmRange(*values["bpm_range"])
        return PlannerParams(**values)

    def __repr__(self) -> str:
        version = self.data.get('config_version', 'unknown')
        return f"Config(version={version})"
