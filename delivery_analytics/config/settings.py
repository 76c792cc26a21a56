"""Environment-backed defaults for the analytics rollups."""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


DEFAULT_TOP_N = _env_int("ANALYTICS_TOP_N", 5)
DEFAULT_WEEK_ALIGNMENT = os.getenv("ANALYTICS_WEEK_ALIGNMENT", "rolling").strip().lower()
DEFAULT_MONTH_ALIGNMENT = os.getenv("ANALYTICS_MONTH_ALIGNMENT", "rolling").strip().lower()
# Shown instead of a measured average when there is no order at all.
FALLBACK_DURATION_MINUTES = _env_float("ANALYTICS_FALLBACK_DURATION_MINUTES", 18.0)
INCLUDE_UNDATED_IN_LIFETIME = _env_flag("ANALYTICS_INCLUDE_UNDATED", False)
ON_TIME_GRACE_MINUTES = _env_float("ANALYTICS_ON_TIME_GRACE_MINUTES", 10.0)
DEFAULT_ESTIMATED_MINUTES = _env_float("ANALYTICS_DEFAULT_ESTIMATED_MINUTES", 30.0)


__all__ = [
    "DEFAULT_ESTIMATED_MINUTES",
    "DEFAULT_MONTH_ALIGNMENT",
    "DEFAULT_TOP_N",
    "DEFAULT_WEEK_ALIGNMENT",
    "FALLBACK_DURATION_MINUTES",
    "INCLUDE_UNDATED_IN_LIFETIME",
    "ON_TIME_GRACE_MINUTES",
]
