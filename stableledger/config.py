"""Risk parameters of the engine and their YAML loader."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from .core import (
    LIQUIDATION_BONUS, LIQUIDATION_PRECISION, LIQUIDATION_THRESHOLD,
    MIN_HEALTH_FACTOR, STALENESS_TIMEOUT,
    ConfigurationError,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class EngineConfig:
    """
    Immutable risk parameters.

    liquidation_threshold / liquidation_precision is the share of collateral
    value that counts towards solvency; liquidation_bonus / liquidation_precision
    is the extra collateral paid to liquidators.
    """
    staleness_timeout: timedelta = STALENESS_TIMEOUT
    liquidation_threshold: int = LIQUIDATION_THRESHOLD
    liquidation_bonus: int = LIQUIDATION_BONUS
    liquidation_precision: int = LIQUIDATION_PRECISION
    min_health_factor: int = MIN_HEALTH_FACTOR

    def __post_init__(self):
        if self.staleness_timeout <= timedelta(0):
            raise ConfigurationError("staleness_timeout must be positive")
        if self.liquidation_precision <= 0:
            raise ConfigurationError("liquidation_precision must be positive")
        if not 0 < self.liquidation_threshold <= self.liquidation_precision:
            raise ConfigurationError(
                f"liquidation_threshold must be within (0, {self.liquidation_precision}], "
                f"got {self.liquidation_threshold}"
            )
        if not 0 <= self.liquidation_bonus < self.liquidation_precision:
            raise ConfigurationError(
                f"liquidation_bonus must be within [0, {self.liquidation_precision}), "
                f"got {self.liquidation_bonus}"
            )
        if self.min_health_factor <= 0:
            raise ConfigurationError("min_health_factor must be positive")


def config_from_mapping(raw: Dict[str, Any]) -> EngineConfig:
    """Build an EngineConfig from a plain mapping; missing keys use defaults."""
    defaults = EngineConfig()
    timeout = raw.get("staleness_timeout_seconds")
    try:
        return EngineConfig(
            staleness_timeout=(
                timedelta(seconds=int(timeout)) if timeout is not None else defaults.staleness_timeout
            ),
            liquidation_threshold=int(raw.get("liquidation_threshold", defaults.liquidation_threshold)),
            liquidation_bonus=int(raw.get("liquidation_bonus", defaults.liquidation_bonus)),
            liquidation_precision=int(raw.get("liquidation_precision", defaults.liquidation_precision)),
            min_health_factor=int(raw.get("min_health_factor", defaults.min_health_factor)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid engine configuration: {e}") from e


def load_config(config_path: Optional[Union[str, Path]]) -> EngineConfig:
    """Load risk parameters from the ``engine:`` section of a YAML file.

    Args:
        config_path: Path to the YAML file. None returns the defaults.
    """
    if config_path is None:
        return EngineConfig()
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    if not isinstance(raw, dict):
        raise ConfigurationError(f"{config_path}: top level must be a mapping")
    section = raw.get("engine") or {}
    if not isinstance(section, dict):
        raise ConfigurationError(f"{config_path}: 'engine' must be a mapping")

    cfg = config_from_mapping(section)
    logger.info("Configuration loaded from %s", config_path)
    return cfg
