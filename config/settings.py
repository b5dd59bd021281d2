"""
Configuration loader for the scripted chat runtime.
Reads settings from YAML file with environment variable substitution.
"""
from __future__ import annotations

import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml

PROJECT_ROOT = Path(__file__).resolve().parent.parent


@dataclass
class DeliveryConfig:
    instant_mode: bool = False          # collapse every pacing delay to zero
    min_delay_ms: int = 300
    max_delay_ms: int = 4000
    base_delay_ms: int = 500
    per_word_delay_ms: int = 120
    interactive_delay_ms: int = 600     # pause before choices / text inputs appear
    user_response_id_offset: int = 1000
    max_walk_depth: int = 50


@dataclass
class SequencesConfig:
    directory: str = str(PROJECT_ROOT / "assets" / "sequences")
    default_sequence_id: str = "welcome"


@dataclass
class ContentConfig:
    directory: str = str(PROJECT_ROOT / "assets" / "content")
    formatters_path: str = str(PROJECT_ROOT / "config" / "formatters.yaml")


@dataclass
class StoreConfig:
    backend: str = "memory"             # "memory" | "file"
    file_path: str = "./data/store.json"


@dataclass
class SessionConfig:
    morning_start_hour: int = 5
    afternoon_start_hour: int = 12
    evening_start_hour: int = 17
    night_start_hour: int = 21
    deadline_windows: dict[int, str] = field(default_factory=lambda: {
        1: "10:00",
        2: "14:00",
        3: "18:00",
        4: "23:00",
    })
    default_deadline: str = "23:00"


@dataclass
class Settings:
    app_name: str = "ScriptedChat"
    debug: bool = False
    delivery: DeliveryConfig = field(default_factory=DeliveryConfig)
    sequences: SequencesConfig = field(default_factory=SequencesConfig)
    content: ContentConfig = field(default_factory=ContentConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    session: SessionConfig = field(default_factory=SessionConfig)


_settings: Optional[Settings] = None


def _substitute_env_vars(value: str) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""
    pattern = re.compile(r'\$\{(\w+)\}')
    def replacer(match):
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))
    return pattern.sub(replacer, value)


def _process_values(obj: Any) -> Any:
    """Recursively substitute env vars in all string values."""
    if isinstance(obj, str):
        return _substitute_env_vars(obj)
    elif isinstance(obj, dict):
        return {k: _process_values(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_process_values(v) for v in obj]
    return obj


def _as_bool(value: Any, default: bool) -> bool:
    # Env-substituted values arrive as strings
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return default if value is None else bool(value)


def _resolve_path(value: str) -> str:
    path = Path(value)
    return str(path if path.is_absolute() else PROJECT_ROOT / path)


def load_settings(config_path: str = None) -> Settings:
    """Load settings from YAML file."""
    global _settings

    if config_path is None:
        config_path = os.environ.get(
            "SCRIPTED_CHAT_CONFIG",
            str(Path(__file__).parent / "settings.yaml"),
        )

    settings = Settings()

    if Path(config_path).exists():
        with open(config_path) as f:
            raw = yaml.safe_load(f) or {}
        raw = _process_values(raw)

        settings.app_name = raw.get("app_name", settings.app_name)
        settings.debug = _as_bool(raw.get("debug"), settings.debug)

        if "delivery" in raw:
            d = raw["delivery"]
            defaults = DeliveryConfig()
            settings.delivery = DeliveryConfig(
                instant_mode=_as_bool(d.get("instant_mode"), defaults.instant_mode),
                min_delay_ms=int(d.get("min_delay_ms", defaults.min_delay_ms)),
                max_delay_ms=int(d.get("max_delay_ms", defaults.max_delay_ms)),
                base_delay_ms=int(d.get("base_delay_ms", defaults.base_delay_ms)),
                per_word_delay_ms=int(d.get("per_word_delay_ms", defaults.per_word_delay_ms)),
                interactive_delay_ms=int(d.get("interactive_delay_ms", defaults.interactive_delay_ms)),
                user_response_id_offset=int(d.get("user_response_id_offset", defaults.user_response_id_offset)),
                max_walk_depth=int(d.get("max_walk_depth", defaults.max_walk_depth)),
            )

        if "sequences" in raw:
            s = raw["sequences"]
            settings.sequences = SequencesConfig(
                directory=_resolve_path(s.get("directory", settings.sequences.directory)),
                default_sequence_id=s.get("default_sequence_id", settings.sequences.default_sequence_id),
            )

        if "content" in raw:
            c = raw["content"]
            settings.content = ContentConfig(
                directory=_resolve_path(c.get("directory", settings.content.directory)),
                formatters_path=_resolve_path(c.get("formatters_path", settings.content.formatters_path)),
            )

        if "store" in raw:
            st = raw["store"]
            settings.store = StoreConfig(
                backend=st.get("backend", settings.store.backend),
                file_path=st.get("file_path", settings.store.file_path),
            )

        if "session" in raw:
            se = raw["session"]
            defaults = SessionConfig()
            windows = se.get("deadline_windows") or defaults.deadline_windows
            settings.session = SessionConfig(
                morning_start_hour=int(se.get("morning_start_hour", defaults.morning_start_hour)),
                afternoon_start_hour=int(se.get("afternoon_start_hour", defaults.afternoon_start_hour)),
                evening_start_hour=int(se.get("evening_start_hour", defaults.evening_start_hour)),
                night_start_hour=int(se.get("night_start_hour", defaults.night_start_hour)),
                deadline_windows={int(k): str(v) for k, v in windows.items()},
                default_deadline=str(se.get("default_deadline", defaults.default_deadline)),
            )

    _settings = settings
    return settings


def get_settings() -> Settings:
    """Return cached settings or load from default path."""
    global _settings
    if _settings is None:
        _settings = load_settings()
    return _settings


def reset_settings() -> None:
    """Drop cached settings (for testing)."""
    global _settings
    _settings = None
