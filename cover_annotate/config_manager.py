"""Configuration manager for cover-annotate using TOML files."""

from __future__ import annotations

import logging
from typing import Any, Dict

import toml

from . import config

logger = logging.getLogger(__name__)

REPORT_SECTION = "report"


def load_full_config() -> Dict[str, Any]:
    """Load the entire TOML config (all sections)."""
    if not config.CONFIG_FILE.exists():
        return {}
    try:
        with open(config.CONFIG_FILE, "r", encoding="utf-8") as f:
            return toml.load(f)
    except (OSError, toml.TomlDecodeError) as exc:
        logger.warning("Ignoring unreadable config %s: %s", config.CONFIG_FILE, exc)
        return {}


def load_config() -> Dict[str, Any]:
    """Load the report configuration.

    Returns:
        Defaults from :data:`config.DEFAULT_REPORT_CONFIG` overlaid with the
        ``[report]`` section of ``config.toml``, if present.
    """
    merged = dict(config.DEFAULT_REPORT_CONFIG)
    section = load_full_config().get(REPORT_SECTION, {})
    if isinstance(section, dict):
        merged.update({k: v for k, v in section.items() if k in merged})
    return merged


def coerce_value(key: str, value: str) -> Any:
    """Convert a command-line string to the type of the default for *key*.

    Raises:
        KeyError: *key* is not a known report setting.
        ValueError: *value* does not parse as the expected type.
    """
    default = config.DEFAULT_REPORT_CONFIG[key]
    if isinstance(default, int):
        return int(value)
    return value


def save_config(**values: Any) -> None:
    """Write report settings to ``config.toml``.

    Preserves other sections in the file.
    """
    unknown = set(values) - set(config.DEFAULT_REPORT_CONFIG)
    if unknown:
        raise KeyError(f"Unknown setting(s): {', '.join(sorted(unknown))}")

    full = load_full_config()
    section = full.get(REPORT_SECTION)
    if not isinstance(section, dict):
        section = {}
    section.update(values)
    full[REPORT_SECTION] = section

    config.ensure_base_dirs()
    with open(config.CONFIG_FILE, "w", encoding="utf-8") as f:
        toml.dump(full, f)
    logger.debug("Saved %s to %s", sorted(values), config.CONFIG_FILE)
