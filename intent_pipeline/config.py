"""
Intent pipeline configuration.

Loads endpoint and gating parameters from environment variables. The
capability table itself lives in a YAML file (see capabilities.py).
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


DEFAULT_CHAT_ENDPOINT = "http://localhost:11434/api/chat"
DEFAULT_MODEL = "deepseek-r1:latest"
FEEDBACK_MODES = ("tts", "sound", "both")


def load_local_env(root: Optional[Path] = None) -> None:
    """Load .env_local / .env.local for local runs without overriding exported vars."""
    root = root or Path(__file__).parent.parent
    for name in (".env_local", ".env.local"):
        p = root / name
        if p.exists():
            load_dotenv(p, override=False)


def _clean_env(key: str) -> Optional[str]:
    """
    Read an environment variable, stripping inline comments and whitespace.

    "5  # seconds" -> "5"
    """
    value = os.environ.get(key)
    if not value:
        return None
    if "#" in value:
        value = value.split("#")[0]
    value = value.strip()
    return value or None


def _parse_int_env(key: str, default: int) -> int:
    value = _clean_env(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        return default


def _parse_float_env(key: str, default: float) -> float:
    value = _clean_env(key)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        return default


@dataclass(frozen=True)
class PipelineConfig:
    """Intent pipeline configuration."""

    # Local LLM runtime (Ollama-style /api/chat)
    chat_endpoint: str = DEFAULT_CHAT_ENDPOINT
    model: str = DEFAULT_MODEL
    timeout_seconds: float = 5.0

    # Gating and retry
    min_confidence: float = 0.6
    max_retries: int = 1
    retry_backoff_seconds: float = 0.5

    # Collaborators
    capabilities_file: str = "buddy.yaml"
    feedback_mode: str = "tts"

    # Command API
    api_host: str = "127.0.0.1"
    api_port: int = 8765
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "PipelineConfig":
        """Load configuration from environment variables."""
        feedback_mode = (os.environ.get("BUDDY_FEEDBACK_MODE") or "tts").strip().lower()
        if feedback_mode not in FEEDBACK_MODES:
            feedback_mode = "tts"
        return cls(
            chat_endpoint=os.environ.get("BUDDY_CHAT_ENDPOINT", DEFAULT_CHAT_ENDPOINT),
            model=os.environ.get("BUDDY_MODEL", DEFAULT_MODEL),
            timeout_seconds=max(0.1, _parse_float_env("BUDDY_TIMEOUT_SECONDS", default=5.0)),
            min_confidence=min(1.0, max(0.0, _parse_float_env("BUDDY_MIN_CONFIDENCE", default=0.6))),
            max_retries=max(0, _parse_int_env("BUDDY_MAX_RETRIES", default=1)),
            retry_backoff_seconds=max(0, _parse_int_env("BUDDY_RETRY_BACKOFF_MS", default=500)) / 1000,
            capabilities_file=os.environ.get("BUDDY_CAPABILITIES_FILE", "buddy.yaml"),
            feedback_mode=feedback_mode,
            api_host=os.environ.get("BUDDY_API_HOST", "127.0.0.1"),
            api_port=_parse_int_env("BUDDY_API_PORT", default=8765),
            log_level=os.environ.get("BUDDY_LOG_LEVEL", "INFO"),
        )


def get_config() -> PipelineConfig:
    """Get or create global config instance."""
    global _config
    if _config is None:
        _config = PipelineConfig.from_env()
    return _config


def reset_config() -> None:
    global _config
    _config = None


# Global config instance (lazy loaded)
_config: Optional[PipelineConfig] = None
