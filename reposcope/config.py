"""Configuration paths and analysis defaults for reposcope."""

from __future__ import annotations

import os
from pathlib import Path

BASE_DIR = Path(os.environ.get("REPOSCOPE_HOME", str(Path.home() / ".reposcope"))).expanduser()
CONFIG_FILE = BASE_DIR / "config.toml"

# Parse cache
DEFAULT_MAX_CACHE_ENTRIES = 500
DEFAULT_EVICTION_FRACTION = 0.2

# Orchestrator batching
DEFAULT_BATCH_SIZE = 50
DEFAULT_MAX_WORKERS = 4
DEFAULT_PARSE_TIMEOUT = 30.0

# Import resolution: suffixes tried, in order, after a relative specifier.
DEFAULT_RESOLUTION_SUFFIXES = [
    ".ts", ".tsx", ".js", ".jsx", ".mjs", ".cjs", ".py",
    "/index.ts", "/index.tsx", "/index.js", "/__init__.py",
]

SKIP_DIRS = {
    ".venv", "venv", "__pycache__", "node_modules", ".git",
    "site-packages", ".tox", ".pytest_cache", "build", "dist",
    ".mypy_cache", ".ruff_cache", "htmlcov", ".eggs", "coverage",
    ".next", ".nuxt", "out", "target", "vendor",
}
