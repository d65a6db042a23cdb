"""Environment-driven configuration."""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel, Field

from outingplanner.stop_resolver import DEFAULT_TIMEOUT_SECONDS, MAX_STOPS_PER_RESOLVE


def load_env_file(path: str = ".env") -> None:
    """Best-effort .env loader; variables already in the environment win."""
    env_path = Path(path)
    if not env_path.exists():
        return

    for raw_line in env_path.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#") or "=" not in line:
            continue
        key, value = line.split("=", 1)
        key = key.strip()
        value = value.strip().strip("\"'")
        if key and key not in os.environ:
            os.environ[key] = value


class Settings(BaseModel):
    places_api_key: str = ""
    api_base: str = "http://localhost:3001"
    resolve_timeout_seconds: float = Field(default=DEFAULT_TIMEOUT_SECONDS, gt=0)
    max_stops: int = Field(default=MAX_STOPS_PER_RESOLVE, gt=0, le=MAX_STOPS_PER_RESOLVE)
    http_timeout_seconds: float = Field(default=15.0, gt=0)

    @classmethod
    def from_env(cls) -> "Settings":
        values: dict[str, str] = {}
        env_map = {
            "places_api_key": "GOOGLE_PLACES_KEY",
            "api_base": "OUTINGPLANNER_API_BASE",
            "resolve_timeout_seconds": "OUTINGPLANNER_RESOLVE_TIMEOUT_S",
            "max_stops": "OUTINGPLANNER_MAX_STOPS",
            "http_timeout_seconds": "OUTINGPLANNER_HTTP_TIMEOUT_S",
        }
        for field_name, env_name in env_map.items():
            raw = os.getenv(env_name)
            if raw is not None and raw.strip():
                values[field_name] = raw.strip()
        return cls.model_validate(values)
