"""Configuration paths and report defaults for cover-annotate."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("COVER_ANNOTATE_HOME", str(Path.home() / ".cover-annotate"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"

# Defaults for the [report] section of config.toml (set via `cova config set`)
DEFAULT_REPORT_CONFIG = {
    "default_export": "cover.coverdata",
    "low_threshold": 60,
    "high_threshold": 80,
    "hit_marker": "+",
    "miss_marker": "-",
}


def ensure_base_dirs() -> None:
    """Create the base directory for local configuration if needed."""
    BASE_DIR.mkdir(parents=True, exist_ok=True)
