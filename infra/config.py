"""Configuration loading and validation for spelling practice."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping

RESULT_DETAIL_MODES = {"detailed", "minimal"}
_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class Settings:
    """Application settings loaded from environment variables."""

    supabase_url: str = ""
    supabase_anon_key: str = ""
    backend_timeout_seconds: float = 10.0
    feedback_dwell_ms: int = 2000
    speech_rate: float = 0.8
    speech_pitch: float = 1.1
    speech_volume: float = 1.0
    result_details: str = "detailed"
    allow_replay_during_feedback: bool = False
    shuffle_seed: int | None = None
    list_load_max_attempts: int = 3
    log_path: str = "/var/log/spelling-practice.log"

    @property
    def dwell_seconds(self) -> float:
        return self.feedback_dwell_ms / 1000.0

    @property
    def backend_configured(self) -> bool:
        return bool(self.supabase_url and self.supabase_anon_key)


def load_dotenv(path: str = ".env") -> None:
    """Load .env key-value pairs into environment without overriding existing values."""
    env_path = Path(path)
    if not env_path.exists():
        return

    for line in env_path.read_text().splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith("#") or "=" not in stripped:
            continue
        key, value = stripped.split("=", 1)
        os.environ.setdefault(key.strip(), value.strip())


def load_settings(env: Mapping[str, str] | None = None) -> Settings:
    """Load and validate application settings from environment."""
    source = os.environ if env is None else env
    seed = source.get("SHUFFLE_SEED", "").strip()
    settings = Settings(
        supabase_url=source.get("SUPABASE_URL", "").rstrip("/"),
        supabase_anon_key=source.get("SUPABASE_ANON_KEY", ""),
        backend_timeout_seconds=float(source.get("BACKEND_TIMEOUT_SECONDS", 10.0)),
        feedback_dwell_ms=int(source.get("FEEDBACK_DWELL_MS", 2000)),
        speech_rate=float(source.get("SPEECH_RATE", 0.8)),
        speech_pitch=float(source.get("SPEECH_PITCH", 1.1)),
        speech_volume=float(source.get("SPEECH_VOLUME", 1.0)),
        result_details=source.get("RESULT_DETAILS", "detailed").strip().lower(),
        allow_replay_during_feedback=_parse_bool(
            source.get("ALLOW_REPLAY_DURING_FEEDBACK", "false"), "ALLOW_REPLAY_DURING_FEEDBACK"
        ),
        shuffle_seed=int(seed) if seed else None,
        list_load_max_attempts=int(source.get("LIST_LOAD_MAX_ATTEMPTS", 3)),
        log_path=source.get("LOG_PATH", "/var/log/spelling-practice.log"),
    )
    _validate(settings)
    return settings


def _parse_bool(value: str, name: str) -> bool:
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean, got '{value}'")


def _validate(settings: Settings) -> None:
    if settings.backend_timeout_seconds <= 0:
        raise ValueError("BACKEND_TIMEOUT_SECONDS must be positive")
    if settings.feedback_dwell_ms <= 0:
        raise ValueError("FEEDBACK_DWELL_MS must be positive")
    if not 0.0 < settings.speech_rate <= 10.0:
        raise ValueError("SPEECH_RATE must be in (0, 10]")
    if not 0.0 <= settings.speech_pitch <= 2.0:
        raise ValueError("SPEECH_PITCH must be in [0, 2]")
    if not 0.0 <= settings.speech_volume <= 1.0:
        raise ValueError("SPEECH_VOLUME must be in [0, 1]")
    if settings.result_details not in RESULT_DETAIL_MODES:
        raise ValueError("RESULT_DETAILS must be detailed or minimal")
    if settings.list_load_max_attempts <= 0:
        raise ValueError("LIST_LOAD_MAX_ATTEMPTS must be positive")
