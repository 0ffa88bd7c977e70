"""Environment variable parsing helpers."""

import os


def get_float_env(name: str, default: float) -> float:
    """Parse float env var with safe fallback."""
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        return default


def get_str_env(name: str, default: str) -> str:
    """Return a stripped string env var, falling back when unset or blank."""
    value = os.getenv(name, "").strip()
    return value or default


def is_truthy_env(name: str) -> bool:
    """Parse boolean env var using common truthy values."""
    return os.getenv(name, "").strip().lower() in {"1", "true", "yes", "on"}


def is_debug_enabled() -> bool:
    """Return True when verbose diagnostics were requested via the environment."""
    return is_truthy_env("AIW_DEBUG") or is_truthy_env("DEBUG")
