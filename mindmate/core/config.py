# mindmate/core/config.py
from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from mindmate.exceptions import ConfigError

# Repository root (the directory holding mindmate/)
BASE_DIR = Path(__file__).resolve().parents[2]

# .env loading
ENV_PATH = BASE_DIR / ".env"
if ENV_PATH.exists():
    load_dotenv(ENV_PATH)

# Log level (.env LOG_LEVEL, default INFO)
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# CORS
# - CORS_ORIGINS="http://localhost:3000,http://127.0.0.1:8000" in .env restricts origins
# - otherwise everything is allowed (["*"])
_cors_raw = os.getenv("CORS_ORIGINS", "")
if _cors_raw:
    CORS_ORIGINS = [o.strip() for o in _cors_raw.split(",") if o.strip()]
else:
    CORS_ORIGINS = ["*"]

DEFAULT_CHAT_MODEL = "meta-llama/Meta-Llama-3.1-8B-Instruct-Turbo"
DEFAULT_CRISIS_THRESHOLD = 0.7
DEFAULT_HISTORY_LIMIT = 10
DEFAULT_SESSION_IDLE_SECONDS = 3600.0


def _env_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None:
        return default
    try:
        return float(v)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    v = os.getenv(name)
    if v is None:
        return default
    try:
        return int(v)
    except ValueError:
        return default


def _env_str(name: str) -> Optional[str]:
    v = os.getenv(name)
    if v is None or not v.strip():
        return None
    return v.strip()


@dataclass(frozen=True)
class Settings:
    crisis_threshold: float = DEFAULT_CRISIS_THRESHOLD
    history_limit: int = DEFAULT_HISTORY_LIMIT
    session_idle_seconds: float = DEFAULT_SESSION_IDLE_SECONDS
    chat_model: str = DEFAULT_CHAT_MODEL
    chat_base_url: Optional[str] = None
    chat_timeout_seconds: float = 60.0
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    storage_backend: str = "yaml"
    yaml_store_path: Path = BASE_DIR / "output" / "mindmate_store.yaml"


def load_settings() -> Settings:
    """
    Build Settings from environment variables.

    Environment variables
    - CRISIS_THRESHOLD (default: 0.7)
    - HISTORY_LIMIT (default: 10)
    - SESSION_IDLE_SECONDS (default: 3600; idle chat services are dropped after this)
    - CHAT_MODEL, CHAT_BASE_URL, CHAT_TIMEOUT_SECONDS (default: 60)
    - SUPABASE_URL, SUPABASE_KEY
    - STORAGE_BACKEND ("supabase" | "yaml"; default supabase when SUPABASE_URL is set)
    - YAML_STORE_PATH (default: output/mindmate_store.yaml)
    """
    supabase_url = _env_str("SUPABASE_URL")
    supabase_key = _env_str("SUPABASE_KEY")

    backend = (_env_str("STORAGE_BACKEND") or ("supabase" if supabase_url else "yaml")).lower()
    if backend not in ("supabase", "yaml"):
        raise ConfigError(f"Unknown STORAGE_BACKEND: {backend!r} (expected 'supabase' or 'yaml')")

    yaml_path_raw = _env_str("YAML_STORE_PATH")
    yaml_store_path = Path(yaml_path_raw) if yaml_path_raw else BASE_DIR / "output" / "mindmate_store.yaml"

    history_limit = _env_int("HISTORY_LIMIT", DEFAULT_HISTORY_LIMIT)
    if history_limit <= 0:
        history_limit = DEFAULT_HISTORY_LIMIT

    return Settings(
        crisis_threshold=_env_float("CRISIS_THRESHOLD", DEFAULT_CRISIS_THRESHOLD),
        history_limit=history_limit,
        session_idle_seconds=_env_float("SESSION_IDLE_SECONDS", DEFAULT_SESSION_IDLE_SECONDS),
        chat_model=_env_str("CHAT_MODEL") or DEFAULT_CHAT_MODEL,
        chat_base_url=_env_str("CHAT_BASE_URL"),
        chat_timeout_seconds=_env_float("CHAT_TIMEOUT_SECONDS", 60.0),
        supabase_url=supabase_url,
        supabase_key=supabase_key,
        storage_backend=backend,
        yaml_store_path=yaml_store_path,
    )
