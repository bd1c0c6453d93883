"""Environment-driven service settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

_DEFAULT_CONFIG_SERVER_URL = "http://localhost:8888"
_DEFAULT_PROFILE = "default"
_DEFAULT_LABEL = "main"
_DEFAULT_TIMEOUT_SECONDS = 5.0
_DEFAULT_CACHE_MAX_ENTRIES = 500
_DEFAULT_CACHE_TTL_SECONDS = 3600.0
_DEFAULT_CONFIG_REPO_PATH = "../config-repo"
_DEFAULT_TEMPLATE_REFRESH_SECONDS = 5.0
_DEFAULT_MAX_CONCURRENCY = 4
_DEFAULT_QUEUE_TIMEOUT_SECONDS = 0.0
_DEFAULT_PREPROCESSING_RULES = "preprocessing/standard-enrollment-rules.yml"


@dataclass(frozen=True)
class Settings:
    config_server_url: str = _DEFAULT_CONFIG_SERVER_URL
    config_profile: str = _DEFAULT_PROFILE
    config_label: str = _DEFAULT_LABEL
    config_timeout_seconds: float = _DEFAULT_TIMEOUT_SECONDS
    cache_max_entries: int = _DEFAULT_CACHE_MAX_ENTRIES
    cache_ttl_seconds: float = _DEFAULT_CACHE_TTL_SECONDS
    candidate_order: tuple[str, ...] = ()
    config_repo_path: Path = Path(_DEFAULT_CONFIG_REPO_PATH)
    template_refresh_seconds: float = _DEFAULT_TEMPLATE_REFRESH_SECONDS
    max_concurrency: int = _DEFAULT_MAX_CONCURRENCY
    queue_timeout_seconds: float = _DEFAULT_QUEUE_TIMEOUT_SECONDS
    default_preprocessing_rules: str = _DEFAULT_PREPROCESSING_RULES


def load_settings() -> Settings:
    """Build settings from ``PDFGEN_*`` environment variables."""

    return Settings(
        config_server_url=_env_str("PDFGEN_CONFIG_SERVER_URL", _DEFAULT_CONFIG_SERVER_URL).rstrip(
            "/"
        ),
        config_profile=_env_str("PDFGEN_CONFIG_PROFILE", _DEFAULT_PROFILE),
        config_label=_env_str("PDFGEN_CONFIG_LABEL", _DEFAULT_LABEL),
        config_timeout_seconds=_env_float(
            "PDFGEN_CONFIG_TIMEOUT_SECONDS", _DEFAULT_TIMEOUT_SECONDS
        ),
        cache_max_entries=_env_int("PDFGEN_CACHE_MAX_ENTRIES", _DEFAULT_CACHE_MAX_ENTRIES),
        cache_ttl_seconds=_env_float("PDFGEN_CACHE_TTL_SECONDS", _DEFAULT_CACHE_TTL_SECONDS),
        candidate_order=_env_list("PDFGEN_CANDIDATE_ORDER"),
        config_repo_path=Path(_env_str("PDFGEN_CONFIG_REPO_PATH", _DEFAULT_CONFIG_REPO_PATH)),
        template_refresh_seconds=_env_float(
            "PDFGEN_TEMPLATE_REFRESH_SECONDS", _DEFAULT_TEMPLATE_REFRESH_SECONDS
        ),
        max_concurrency=_env_int("PDFGEN_MAX_CONCURRENCY", _DEFAULT_MAX_CONCURRENCY),
        queue_timeout_seconds=_env_float(
            "PDFGEN_QUEUE_TIMEOUT_SECONDS", _DEFAULT_QUEUE_TIMEOUT_SECONDS, allow_zero=True
        ),
        default_preprocessing_rules=_env_str(
            "PDFGEN_DEFAULT_PREPROCESSING_RULES", _DEFAULT_PREPROCESSING_RULES
        ),
    )


def _env_str(name: str, default: str) -> str:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        parsed = int(raw)
    except ValueError:
        return default
    return parsed if parsed > 0 else default


def _env_float(name: str, default: float, *, allow_zero: bool = False) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        parsed = float(raw)
    except ValueError:
        return default
    if parsed == 0 and allow_zero:
        return parsed
    return parsed if parsed > 0 else default


def _env_list(name: str) -> tuple[str, ...]:
    raw = os.getenv(name)
    if raw is None:
        return ()
    return tuple(item.strip() for item in raw.split(",") if item.strip())
