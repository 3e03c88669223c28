"""
Configuration for ponbudget.

All tunable parameters in one place. Loaded from:
1. Defaults (this file)
2. Config file (~/.config/ponbudget/config.toml) if exists
3. Environment variables (PONBUDGET_*) override file
4. CLI flags / explicit arguments override everything
"""

from __future__ import annotations

import contextlib
import logging
import os
import tomllib  # stdlib in 3.11+
from dataclasses import dataclass, field
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class LossDefaults:
    """Default losses applied to newly created components."""
    fiber_attenuation: float = 0.35  # dB/km
    connector_loss: float = 0.25  # dB
    splice_loss: float = 0.05  # dB
    terminal_loss: float = 0.0  # dB
    splitter_extra_loss: float = 0.0  # dB added on top of the split table


@dataclass
class ReportConfig:
    """Terminal signal classification and path labelling."""
    warning_below: float = -25.0  # dBm
    critical_below: float = -28.0  # dBm, GPON class B+ sensitivity
    path_separator: str = " > "
    main_line_label: str = "Main Line"


@dataclass
class HistoryConfig:
    """Edit session undo depth."""
    limit: int = 20


@dataclass
class Config:
    """Root config with all settings."""
    defaults: LossDefaults = field(default_factory=LossDefaults)
    report: ReportConfig = field(default_factory=ReportConfig)
    history: HistoryConfig = field(default_factory=HistoryConfig)


def get_config_path() -> Path:
    """Get config file path, respecting XDG."""
    xdg = os.environ.get("XDG_CONFIG_HOME")
    if xdg:
        return Path(xdg) / "ponbudget" / "config.toml"
    return Path.home() / ".config" / "ponbudget" / "config.toml"


def load_config() -> Config:
    """Load config from file if exists, else return defaults."""
    config = Config()
    path = get_config_path()

    if path.exists():
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
            config = _apply_toml(config, data)
        except (OSError, tomllib.TOMLDecodeError, TypeError, ValueError) as e:
            logger.warning("Ignoring unreadable config file %s: %s", path, e)
            config = Config()

    # env var overrides
    config = _apply_env(config)

    return config


def _apply_toml(config: Config, data: dict) -> Config:
    """Apply toml data to config."""
    if "defaults" in data:
        d = data["defaults"]
        for attr in ("fiber_attenuation", "connector_loss", "splice_loss",
                     "terminal_loss", "splitter_extra_loss"):
            if attr in d:
                setattr(config.defaults, attr, float(d[attr]))

    if "report" in data:
        r = data["report"]
        if "warning_below" in r:
            config.report.warning_below = float(r["warning_below"])
        if "critical_below" in r:
            config.report.critical_below = float(r["critical_below"])
        if "path_separator" in r:
            config.report.path_separator = str(r["path_separator"])
        if "main_line_label" in r:
            config.report.main_line_label = str(r["main_line_label"])

    if "history" in data:
        h = data["history"]
        if "limit" in h:
            config.history.limit = int(h["limit"])

    return config


def _apply_env(config: Config) -> Config:
    """Apply environment variable overrides."""
    env_map: dict[str, tuple[str, str, type]] = {
        "PONBUDGET_FIBER_ATTENUATION": ("defaults", "fiber_attenuation", float),
        "PONBUDGET_CONNECTOR_LOSS": ("defaults", "connector_loss", float),
        "PONBUDGET_SPLICE_LOSS": ("defaults", "splice_loss", float),
        "PONBUDGET_TERMINAL_LOSS": ("defaults", "terminal_loss", float),
        "PONBUDGET_SPLITTER_EXTRA_LOSS": ("defaults", "splitter_extra_loss", float),
        "PONBUDGET_WARNING_BELOW": ("report", "warning_below", float),
        "PONBUDGET_CRITICAL_BELOW": ("report", "critical_below", float),
        "PONBUDGET_PATH_SEPARATOR": ("report", "path_separator", str),
        "PONBUDGET_MAIN_LINE_LABEL": ("report", "main_line_label", str),
        "PONBUDGET_HISTORY_LIMIT": ("history", "limit", int),
    }

    for env_key, (section, attr, conv) in env_map.items():
        val = os.environ.get(env_key)
        if val is not None:
            with contextlib.suppress(ValueError, AttributeError):
                setattr(getattr(config, section), attr, conv(val))

    return config


# Module-level config instance, loaded once on first use
_config: Config | None = None


def get_config() -> Config:
    """Get the global config instance."""
    global _config
    if _config is None:
        _config = load_config()
    return _config


def reset_config() -> None:
    """Forget the cached config so the next get_config() reloads it."""
    global _config
    _config = None
