"""Configuration for projdash."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

_ENV_PREFIX = "PROJDASH_"


@dataclass(frozen=True)
class Config:
    """Application configuration."""

    supabase_url: str = ""
    supabase_key: str = ""
    webhook_url: str = ""
    cache_dir: Path = field(default_factory=lambda: Path.home() / ".cache" / "projdash")
    per_page: int = 10
    fetch_timeout: float = 10.0
    webhook_timeout: float = 5.0
    realtime_debounce: float = 0.3
    realtime_poll_interval: float = 5.0
    storage_bucket: str = "project-documents"

    @property
    def use_remote(self) -> bool:
        return bool(self.supabase_url and self.supabase_key)

    @property
    def db_path(self) -> Path:
        return self.cache_dir / "projdash.db"

    @property
    def storage_dir(self) -> Path:
        return self.cache_dir / "storage" / self.storage_bucket

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: object) -> Config:
        """Build a config from ``PROJDASH_*`` variables; keyword overrides win."""
        env = os.environ if environ is None else environ

        def _get(name: str) -> str | None:
            value = env.get(_ENV_PREFIX + name.upper())
            return value.strip() if value is not None and value.strip() else None

        values: dict[str, object] = {}
        for name in ("supabase_url", "supabase_key", "webhook_url", "storage_bucket"):
            raw = _get(name)
            if raw is not None:
                values[name] = raw
        raw_cache = _get("cache_dir")
        if raw_cache is not None:
            values["cache_dir"] = Path(raw_cache).expanduser()
        raw_per_page = _get("per_page")
        if raw_per_page is not None:
            values["per_page"] = _positive_int(raw_per_page, "per_page")
        for name in (
            "fetch_timeout",
            "webhook_timeout",
            "realtime_debounce",
            "realtime_poll_interval",
        ):
            raw = _get(name)
            if raw is not None:
                values[name] = _non_negative_float(raw, name)

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)  # type: ignore[arg-type]


def _positive_int(raw: str, name: str) -> int:
    try:
        value = int(raw)
    except ValueError:
        msg = f"{_ENV_PREFIX}{name.upper()} must be an integer, got {raw!r}"
        raise ValueError(msg) from None
    if value <= 0:
        msg = f"{_ENV_PREFIX}{name.upper()} must be positive, got {value}"
        raise ValueError(msg)
    return value


def _non_negative_float(raw: str, name: str) -> float:
    try:
        value = float(raw)
    except ValueError:
        msg = f"{_ENV_PREFIX}{name.upper()} must be a number, got {raw!r}"
        raise ValueError(msg) from None
    if value < 0:
        msg = f"{_ENV_PREFIX}{name.upper()} must not be negative, got {value}"
        raise ValueError(msg)
    return value
