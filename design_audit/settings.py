"""Audit runtime settings: tunable parameters for run execution.

All values read from environment variables with sensible defaults.
Import from here instead of hardcoding.

Secrets and endpoints (tokens, API URLs) stay in design_audit/config.py.
"""

from __future__ import annotations

import os


def _int(key: str, default: int) -> int:
    return int(os.getenv(key, str(default)))


def _float(key: str, default: float) -> float:
    return float(os.getenv(key, str(default)))


def _str(key: str, default: str) -> str:
    return os.getenv(key, default)


def _list(key: str, default: str) -> list[str]:
    return [v.strip() for v in os.getenv(key, default).split(",") if v.strip()]


# =====================================================================
# Figma
# =====================================================================

# HTTP timeout for Figma REST calls (seconds)
FIGMA_HTTP_TIMEOUT = _float("FIGMA_HTTP_TIMEOUT", 60.0)

# Rendered component screenshots
FIGMA_IMAGE_FORMAT = _str("FIGMA_IMAGE_FORMAT", "png")
FIGMA_IMAGE_SCALE = _int("FIGMA_IMAGE_SCALE", 2)


# =====================================================================
# Vision model
# =====================================================================

VISION_MODEL = _str("VISION_MODEL", "claude-sonnet-4-20250514")
VISION_MAX_TOKENS = _int("VISION_MAX_TOKENS", 2000)

# A single vision call may take a while for large screenshots
VISION_HTTP_TIMEOUT = _float("VISION_HTTP_TIMEOUT", 120.0)


# =====================================================================
# Runs
# =====================================================================

# Component types analysed when a request does not name any
DEFAULT_COMPONENTS = _list("DEFAULT_COMPONENTS", "toast,accordion,bottomsheet")

# Default page size for GET /api/runs
RUNS_PAGE_SIZE = _int("RUNS_PAGE_SIZE", 20)
