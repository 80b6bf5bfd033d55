"""
Runtime configuration for the Elder Health Assistant service.

Values come from the process environment (optionally seeded from a .env file).
Settings are re-read on every call; nothing here changes while the process runs.
"""
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

load_dotenv()

DEFAULT_PORT = 3000
DEFAULT_TEXT_MODEL = "gemini-2.5-flash"
DEFAULT_TTS_MODEL = "gemini-2.5-flash-preview-tts"
DEFAULT_TTS_VOICE = "Kore"
DEFAULT_MAX_BODY_BYTES = 50 * 1024 * 1024  # base64 images/PDFs are large

ANALYSIS_TEMPERATURE = 0.3
CHAT_TEMPERATURE = 0.7


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{name} must be an integer, got {raw!r}")


def _env_float(name: str) -> Optional[float]:
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be a number, got {raw!r}")


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


@dataclass(frozen=True)
class Settings:
    gemini_api_key: Optional[str]
    port: int = DEFAULT_PORT
    text_model: str = DEFAULT_TEXT_MODEL
    tts_model: str = DEFAULT_TTS_MODEL
    tts_voice: str = DEFAULT_TTS_VOICE
    timeout_seconds: Optional[float] = None  # None = transport default
    max_body_bytes: int = DEFAULT_MAX_BODY_BYTES
    static_dir: str = "public"
    log_level: str = "INFO"
    log_json: bool = True


def get_settings() -> Settings:
    """Build settings from the current environment."""
    return Settings(
        gemini_api_key=os.getenv("GEMINI_API_KEY") or None,
        port=_env_int("PORT", DEFAULT_PORT),
        text_model=os.getenv("GEMINI_MODEL", DEFAULT_TEXT_MODEL),
        tts_model=os.getenv("GEMINI_TTS_MODEL", DEFAULT_TTS_MODEL),
        tts_voice=os.getenv("GEMINI_TTS_VOICE", DEFAULT_TTS_VOICE),
        timeout_seconds=_env_float("GEMINI_TIMEOUT_SECONDS"),
        max_body_bytes=_env_int("MAX_BODY_BYTES", DEFAULT_MAX_BODY_BYTES),
        static_dir=os.getenv("STATIC_DIR", "public"),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
        log_json=_env_bool("LOG_JSON", True),
    )


def has_api_key() -> bool:
    """Whether a Gemini key is configured. Never exposes the value."""
    return bool(os.getenv("GEMINI_API_KEY"))


def get_logging_options() -> tuple:
    """(level, json_lines) for logging set up before the app starts."""
    return os.getenv("LOG_LEVEL", "INFO").upper(), _env_bool("LOG_JSON", True)
