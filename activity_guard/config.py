"""Detector thresholds and store limits.

Each section validates itself on construction, so a bad threshold fails at
startup and never at request time.  ``load_config`` reads the same sections
from YAML:

    rapid_pattern:
      threshold: 5
      window_seconds: 10
    brute_force:
      threshold: 5
      window_seconds: 900
      block_seconds: 3600
      fail_closed: false
"""

from dataclasses import dataclass, field, fields
from pathlib import Path

import yaml


class ConfigError(ValueError):
    pass


def _require_positive(section: str, **values) -> None:
    for name, value in values.items():
        if isinstance(value, bool) or not isinstance(value, (int, float)) or value <= 0:
            raise ConfigError(f"{section}.{name} must be a positive number, got {value!r}")


def _require_positive_int(section: str, **values) -> None:
    for name, value in values.items():
        if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
            raise ConfigError(f"{section}.{name} must be a positive integer, got {value!r}")


def _require_at_least_threshold(section: str, max_entries, threshold: int) -> None:
    _require_positive_int(section, max_entries=max_entries)
    if max_entries < threshold:
        raise ConfigError(
            f"{section}.max_entries ({max_entries}) must be at least threshold ({threshold})"
        )


@dataclass(frozen=True)
class LedgerConfig:
    capacity: int = 50
    ttl_seconds: float = 86400

    def __post_init__(self):
        _require_positive_int("ledger", capacity=self.capacity)
        _require_positive("ledger", ttl_seconds=self.ttl_seconds)


@dataclass(frozen=True)
class RapidPatternConfig:
    threshold: int = 5
    window_seconds: float = 10
    # Timestamps kept per actor; counts saturate here.
    max_entries: int = 1000

    def __post_init__(self):
        _require_positive_int("rapid_pattern", threshold=self.threshold)
        _require_positive("rapid_pattern", window_seconds=self.window_seconds)
        _require_at_least_threshold("rapid_pattern", self.max_entries, self.threshold)


@dataclass(frozen=True)
class BruteForceConfig:
    threshold: int = 5
    window_seconds: float = 900
    block_seconds: float = 3600
    # Treat an unreachable store as "blocked".
    fail_closed: bool = False
    max_entries: int = 1000

    def __post_init__(self):
        _require_positive_int("brute_force", threshold=self.threshold)
        _require_positive("brute_force", window_seconds=self.window_seconds,
                          block_seconds=self.block_seconds)
        if not isinstance(self.fail_closed, bool):
            raise ConfigError(f"brute_force.fail_closed must be a boolean, got {self.fail_closed!r}")
        _require_at_least_threshold("brute_force", self.max_entries, self.threshold)


@dataclass(frozen=True)
class DataAccessConfig:
    threshold: int = 100
    period_seconds: float = 3600

    def __post_init__(self):
        _require_positive_int("data_access", threshold=self.threshold)
        _require_positive("data_access", period_seconds=self.period_seconds)


@dataclass(frozen=True)
class AlertConfig:
    ttl_seconds: float = 86400
    feed_capacity: int = 100

    def __post_init__(self):
        _require_positive("alerts", ttl_seconds=self.ttl_seconds)
        _require_positive_int("alerts", feed_capacity=self.feed_capacity)


@dataclass(frozen=True)
class GuardConfig:
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    rapid_pattern: RapidPatternConfig = field(default_factory=RapidPatternConfig)
    brute_force: BruteForceConfig = field(default_factory=BruteForceConfig)
    data_access: DataAccessConfig = field(default_factory=DataAccessConfig)
    alerts: AlertConfig = field(default_factory=AlertConfig)


_SECTIONS = {f.name: f.default_factory for f in fields(GuardConfig)}


def load_config(path: str | Path) -> GuardConfig:
    """Parse a YAML file into a validated GuardConfig.  Missing sections use defaults."""
    path = Path(path)
    with open(path) as f:
        definition = yaml.safe_load(f) or {}
    return config_from_dict(definition, source=path.name)


def config_from_dict(definition: dict, source: str = "config") -> GuardConfig:
    if not isinstance(definition, dict):
        raise ConfigError(f"{source}: top level must be a mapping")

    sections = {}
    for name, values in definition.items():
        if name not in _SECTIONS:
            raise ConfigError(f"{source}: unknown section '{name}'")
        if not isinstance(values, dict):
            raise ConfigError(f"{source}: section '{name}' must be a mapping")
        section_cls = _SECTIONS[name]
        allowed = {f.name for f in fields(section_cls)}
        for key in values:
            if key not in allowed:
                raise ConfigError(f"{source}: unknown field '{name}.{key}'")
        sections[name] = section_cls(**values)
    return GuardConfig(**sections)
