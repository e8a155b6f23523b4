"""Configuration resolver and loader.

Settings come either as keyword overrides on top of a named intensity preset
(``resolve_config``) or from the ``chaos`` section of a ``chaos-claws.yaml``
file (``Config``). Both end in the same validated, immutable ``ChaosConfig``.
"""

import math
import os
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple, Union

import yaml

from chaos_claws.brain.actions import ActionKind


class InvalidConfiguration(ValueError):
    """Raised when chaos settings cannot be resolved into a valid config."""


class Intensity(str, Enum):
    """Named chaos intensity presets."""
    MILD = "mild"
    WILD = "wild"
    EXTREME = "extreme"


PRESET_PROBABILITIES = {
    Intensity.MILD: 0.10,
    Intensity.WILD: 0.30,
    Intensity.EXTREME: 0.70,
}

DEFAULT_INTENSITY = Intensity.MILD
DEFAULT_DELAY_RANGE = (100.0, 3000.0)
DEFAULT_ERROR_CODES = (500, 502, 503, 429)
ACTION_KINDS = (ActionKind.DELAY, ActionKind.ERROR, ActionKind.CORRUPTION)

OPTION_NAMES = frozenset({
    "probability",
    "delay_range",
    "error_codes",
    "enabled_routes",
    "disabled_routes",
    "logging_enabled",
    "action_weights",
})

# YAML spelling -> keyword spelling
YAML_KEYS = {
    "probability": "probability",
    "delay_range": "delay_range",
    "error_codes": "error_codes",
    "enabled_routes": "enabled_routes",
    "disabled_routes": "disabled_routes",
    "logging": "logging_enabled",
    "logging_enabled": "logging_enabled",
    "weights": "action_weights",
}


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _is_finite_number(value: Any) -> bool:
    return _is_number(value) and math.isfinite(value)


@dataclass(frozen=True)
class ChaosConfig:
    """Canonical chaos configuration. Read-only after construction."""
    intensity: Intensity = DEFAULT_INTENSITY
    probability: float = PRESET_PROBABILITIES[DEFAULT_INTENSITY]
    delay_range: Tuple[float, float] = DEFAULT_DELAY_RANGE
    error_codes: Tuple[int, ...] = DEFAULT_ERROR_CODES
    enabled_routes: Tuple[str, ...] = ()
    disabled_routes: Tuple[str, ...] = ()
    logging_enabled: bool = False
    action_weights: Mapping[ActionKind, float] = field(
        default_factory=lambda: MappingProxyType({kind: 1.0 for kind in ACTION_KINDS})
    )

    def __post_init__(self) -> None:
        """Validate and normalize every field.

        Direct construction goes through the same checks as ``resolve_config``.

        Raises:
            InvalidConfiguration: If any value is invalid.
        """
        weights = _resolve_weights(self.action_weights)
        error_codes = _resolve_error_codes(self.error_codes)
        if not error_codes and weights[ActionKind.ERROR] > 0:
            raise InvalidConfiguration("error_codes cannot be empty while error injection is enabled")
        if not isinstance(self.logging_enabled, bool):
            raise InvalidConfiguration(f"logging_enabled must be a boolean, got {self.logging_enabled!r}")

        object.__setattr__(self, "intensity", _resolve_intensity(self.intensity))
        object.__setattr__(self, "probability", _resolve_probability(self.probability))
        object.__setattr__(self, "delay_range", _resolve_delay_range(self.delay_range))
        object.__setattr__(self, "error_codes", error_codes)
        object.__setattr__(self, "enabled_routes", _resolve_routes("enabled_routes", self.enabled_routes))
        object.__setattr__(self, "disabled_routes", _resolve_routes("disabled_routes", self.disabled_routes))
        object.__setattr__(self, "action_weights", MappingProxyType(weights))

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "ChaosConfig":
        """Resolve a config from the ``chaos`` section of a YAML file.

        Raises:
            InvalidConfiguration: On unknown keys or invalid values.
        """
        if data is None:
            return resolve_config()
        if not isinstance(data, Mapping):
            raise InvalidConfiguration("chaos section must be a mapping/object")

        preset = data.get("preset")
        overrides: Dict[str, Any] = {}
        for key, value in data.items():
            if key == "preset":
                continue
            if key not in YAML_KEYS:
                raise InvalidConfiguration(f"Unknown chaos option: {key}")
            overrides[YAML_KEYS[key]] = value
        return resolve_config(preset, **overrides)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "preset": self.intensity.value,
            "probability": self.probability,
            "delay_range": list(self.delay_range),
            "error_codes": list(self.error_codes),
            "enabled_routes": list(self.enabled_routes),
            "disabled_routes": list(self.disabled_routes),
            "logging": self.logging_enabled,
            "weights": {kind.value: weight for kind, weight in self.action_weights.items()},
        }


def _resolve_intensity(preset: Union[Intensity, str, None]) -> Intensity:
    if preset is None:
        return DEFAULT_INTENSITY
    if isinstance(preset, Intensity):
        return preset
    if isinstance(preset, str):
        try:
            return Intensity(preset.strip().lower())
        except ValueError:
            pass
    valid = ", ".join(i.value for i in Intensity)
    raise InvalidConfiguration(f"Unknown intensity preset: {preset!r} (expected one of {valid})")


def _resolve_probability(value: Any) -> float:
    if not _is_finite_number(value):
        raise InvalidConfiguration(f"probability must be a finite number, got {value!r}")
    if not 0.0 <= value <= 1.0:
        raise InvalidConfiguration(f"probability must be between 0 and 1, got {value}")
    return float(value)


def _resolve_delay_range(value: Any) -> Tuple[float, float]:
    if isinstance(value, Mapping):
        value = (value.get("min"), value.get("max"))
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        raise InvalidConfiguration(f"delay_range must be a (min, max) pair, got {value!r}")
    pair = tuple(value)
    if len(pair) != 2 or not all(_is_number(v) for v in pair):
        raise InvalidConfiguration(f"delay_range must be a (min, max) pair, got {value!r}")
    if not all(math.isfinite(v) for v in pair):
        raise InvalidConfiguration(f"delay_range bounds must be finite, got {value!r}")
    low, high = float(pair[0]), float(pair[1])
    if low < 0:
        raise InvalidConfiguration(f"delay_range minimum must be >= 0, got {low}")
    if low > high:
        raise InvalidConfiguration(f"delay_range is inverted: min {low} > max {high}")
    return low, high


def _resolve_error_codes(value: Any) -> Tuple[int, ...]:
    if isinstance(value, int) and not isinstance(value, bool):
        value = [value]
    if isinstance(value, (str, bytes)) or not isinstance(value, Iterable):
        raise InvalidConfiguration(f"error_codes must be a list of status codes, got {value!r}")
    codes = []
    for code in value:
        if not isinstance(code, int) or isinstance(code, bool) or not 100 <= code <= 599:
            raise InvalidConfiguration(f"Invalid HTTP status code in error_codes: {code!r}")
        if code not in codes:
            codes.append(code)
    return tuple(codes)


def _resolve_routes(name: str, value: Any) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, Iterable):
        raise InvalidConfiguration(f"{name} must be a list of path prefixes")
    routes = tuple(value)
    for route in routes:
        if not isinstance(route, str):
            raise InvalidConfiguration(f"{name} entries must be strings, got {route!r}")
    return routes


def _resolve_weights(value: Any) -> Dict[ActionKind, float]:
    if not isinstance(value, Mapping):
        raise InvalidConfiguration("action_weights must be a mapping of action kind to weight")
    weights = {kind: 1.0 for kind in ACTION_KINDS}
    for key, weight in value.items():
        try:
            kind = ActionKind(key)
        except ValueError:
            kind = None
        if kind not in ACTION_KINDS:
            raise InvalidConfiguration(f"Unknown action kind in weights: {key!r}")
        if not _is_finite_number(weight) or weight < 0:
            raise InvalidConfiguration(f"Weight for {kind.value} must be a finite non-negative number")
        weights[kind] = float(weight)
    if not any(weight > 0 for weight in weights.values()):
        raise InvalidConfiguration("At least one action kind needs a positive weight")
    return weights


def resolve_config(preset: Union[Intensity, str, None] = None, **overrides: Any) -> ChaosConfig:
    """Build a ``ChaosConfig`` from a preset plus explicit overrides.

    Each explicitly supplied option replaces the preset-derived default for
    that option only.

    Args:
        preset: Intensity preset (``mild``, ``wild``, ``extreme``). Defaults to mild.
        **overrides: Any of ``probability``, ``delay_range``, ``error_codes``,
            ``enabled_routes``, ``disabled_routes``, ``logging_enabled``,
            ``action_weights``.

    Returns:
        The validated configuration.

    Raises:
        InvalidConfiguration: If any value is invalid.
    """
    unknown = set(overrides) - OPTION_NAMES
    if unknown:
        raise InvalidConfiguration(f"Unknown chaos option(s): {', '.join(sorted(unknown))}")

    intensity = _resolve_intensity(preset)
    fields: Dict[str, Any] = {
        "intensity": intensity,
        "probability": PRESET_PROBABILITIES[intensity],
    }
    # None means "not given" so unset ${VAR} values keep the preset default
    for name in OPTION_NAMES:
        if overrides.get(name) is not None:
            fields[name] = overrides[name]

    return ChaosConfig(**fields)


class Config:
    """Load and validate chaos-claws.yaml configuration."""

    def __init__(self, config_path: Union[str, Path] = "chaos-claws.yaml") -> None:
        """Initialize config loader.

        Args:
            config_path: Path to configuration file
        """
        self.config_path = Path(config_path)
        self._config: Dict[str, Any] = {}
        self._chaos: Optional[ChaosConfig] = None

    def load(self) -> Dict[str, Any]:
        """Load and validate configuration.

        Returns:
            The raw configuration dictionary, with env vars expanded

        Raises:
            FileNotFoundError: If config file doesn't exist
            ValueError: If the file is not a mapping
            InvalidConfiguration: If the chaos section is invalid
        """
        if not self.config_path.exists():
            raise FileNotFoundError(
                f"Configuration file not found: {self.config_path}\n"
                "Run 'chaos-claws init' to create one."
            )

        with open(self.config_path, encoding="utf-8") as f:
            self._config = yaml.safe_load(f)

        if self._config is None:
            self._config = {}

        if not isinstance(self._config, dict):
            raise ValueError("Configuration root must be a mapping/object")

        self._expand_env_vars(self._config)
        self._chaos = ChaosConfig.from_mapping(self._config.get("chaos"))

        return self._config

    def _expand_env_vars(self, obj: Any) -> None:
        """Recursively expand ${VAR} environment variables."""
        if isinstance(obj, dict):
            for key, value in obj.items():
                if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
                    obj[key] = self._coerce(os.environ.get(value[2:-1], ""))
                elif isinstance(value, (dict, list)):
                    self._expand_env_vars(value)
        elif isinstance(obj, list):
            for index, item in enumerate(obj):
                if isinstance(item, str) and item.startswith("${") and item.endswith("}"):
                    obj[index] = self._coerce(os.environ.get(item[2:-1], ""))
                else:
                    self._expand_env_vars(item)

    @staticmethod
    def _coerce(raw: str) -> Any:
        # "0.5" from the environment should behave like 0.5 written in YAML
        if raw == "":
            return None
        try:
            return yaml.safe_load(raw)
        except yaml.YAMLError:
            return raw

    @property
    def chaos(self) -> ChaosConfig:
        """Get the resolved chaos configuration."""
        if self._chaos is None:
            raise RuntimeError("Configuration not loaded; call load() first")
        return self._chaos

    @property
    def target(self) -> Dict[str, Any]:
        """Get probe target configuration."""
        return self._config.get("target", {})
