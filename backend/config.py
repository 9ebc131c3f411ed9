"""
Runtime Configuration for Nyx.

Provides a singleton RuntimeConfig class that allows dynamic adjustment of
model and connection parameters at runtime, without requiring service restart.

Usage:
    from config import runtime_config
    limit = runtime_config.history_limit
    runtime_config.update(history_limit=20, temperature=0.4)
"""

import os
import logging
from dataclasses import dataclass, field
from typing import Dict, Any
from threading import Lock

logger = logging.getLogger(__name__)


def _first_env(*keys: str, default: str) -> str:
    """Return the first non-empty environment value from keys, else default."""
    for key in keys:
        value = os.environ.get(key, "").strip()
        if value:
            return value
    return default


def _env_bool(key: str, default: str = "false") -> bool:
    return os.environ.get(key, default).lower() == "true"


@dataclass
class RuntimeConfig:
    """
    Singleton configuration for runtime-adjustable parameters.

    All values have defaults from environment variables, but can be
    changed at runtime via the update() method.
    """

    # LLM endpoint (any OpenAI-compatible server)
    llm_base_url: str = field(
        default_factory=lambda: _first_env("LLM_BASE_URL", "OPENAI_BASE_URL", default="http://localhost:8081/v1")
    )
    llm_api_key: str = field(
        default_factory=lambda: _first_env("LLM_API_KEY", "OPENAI_API_KEY", default="not-needed")
    )

    # Model names (can be hot-swapped)
    model_chat: str = field(default_factory=lambda: _first_env("LLM_CHAT_MODEL", default="gemini-2.5-flash"))
    model_vision: str = field(
        default_factory=lambda: _first_env("LLM_VISION_MODEL", "LLM_CHAT_MODEL", default="gemini-2.5-flash")
    )

    # Model parameters
    temperature: float = field(default_factory=lambda: float(os.environ.get("LLM_TEMPERATURE", "0.7")))
    top_p: float = field(default_factory=lambda: float(os.environ.get("LLM_TOP_P", "0.9")))
    max_output_tokens: int = field(default_factory=lambda: int(os.environ.get("LLM_MAX_OUTPUT_TOKENS", "2048")))

    # Seconds to wait for the next fragment before the stream counts as hung
    llm_stream_timeout: float = field(
        default_factory=lambda: float(os.environ.get("LLM_STREAM_TIMEOUT", "60"))
    )
    vision_timeout: float = field(default_factory=lambda: float(os.environ.get("VISION_TIMEOUT", "60")))

    # Conversation bounds
    history_limit: int = field(default_factory=lambda: int(os.environ.get("CHAT_HISTORY_LIMIT", "30")))
    history_load_limit: int = field(default_factory=lambda: int(os.environ.get("CHAT_HISTORY_LOAD_LIMIT", "50")))
    max_message_length: int = field(default_factory=lambda: int(os.environ.get("CHAT_MAX_MESSAGE_LENGTH", "4000")))

    # WebSocket outbound buffering
    ws_send_queue_size: int = field(default_factory=lambda: int(os.environ.get("WS_SEND_QUEUE_SIZE", "256")))
    ws_send_timeout: float = field(default_factory=lambda: float(os.environ.get("WS_SEND_TIMEOUT", "10")))
    ws_max_payload_bytes: int = field(
        default_factory=lambda: int(os.environ.get("WS_MAX_PAYLOAD_BYTES", str(10 * 1024 * 1024)))
    )  # Images arrive inline as data URLs

    # Persistence
    store_backend: str = field(default_factory=lambda: os.environ.get("STORE_BACKEND", "memory").lower())
    redis_url: str = field(default_factory=lambda: os.environ.get("REDIS_URL", "redis://localhost:6379/0"))
    redis_prefix: str = field(default_factory=lambda: os.environ.get("REDIS_PREFIX", "nyx:"))
    seed_demo_data: bool = field(default_factory=lambda: _env_bool("SEED_DEMO_DATA", "true"))

    # Assistant behaviour
    persona_id: str = field(default_factory=lambda: os.environ.get("PERSONA_ID", "nyx-v1"))
    inventory_halt_on_out_of_stock: bool = field(
        default_factory=lambda: _env_bool("INVENTORY_HALT_ON_OUT_OF_STOCK")
    )  # Skip the model's follow-up reply when a part is out of stock
    default_quote_price: float = field(
        default_factory=lambda: float(os.environ.get("DEFAULT_QUOTE_PRICE", "999"))
    )

    log_level: str = field(default_factory=lambda: os.environ.get("LOG_LEVEL", "INFO").upper())

    # Internal state
    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)
    _update_count: int = field(default=0, repr=False, compare=False)

    def update(self, **kwargs) -> Dict[str, Any]:
        """
        Update config values at runtime.

        Unknown keys and private fields are ignored with a warning.

        Returns:
            Dict of applied changes ({key: {"old": ..., "new": ...}})
        """
        changes = {}
        with self._lock:
            for key, value in kwargs.items():
                if key.startswith("_") or not hasattr(self, key):
                    logger.warning(f"Ignoring unknown config key: {key}")
                    continue
                old_value = getattr(self, key)
                if old_value != value:
                    setattr(self, key, value)
                    changes[key] = {"old": old_value, "new": value}
                    logger.info(f"Config updated: {key} = {value}")
            if changes:
                self._update_count += 1
        return changes

    def get_llm_params(self) -> Dict[str, Any]:
        """Get LLM parameters for OpenAI API calls."""
        return {
            "temperature": self.temperature,
            "top_p": self.top_p,
            "max_tokens": self.max_output_tokens,
        }

    def to_dict(self) -> Dict[str, Any]:
        """Export current config as dict (excludes internal fields and secrets)."""
        from dataclasses import fields as dataclass_fields

        result = {}
        for field_info in dataclass_fields(self):
            if field_info.name.startswith("_") or field_info.name == "llm_api_key":
                continue
            result[field_info.name] = getattr(self, field_info.name)
        return result

    def reset_to_defaults(self) -> Dict[str, Any]:
        """Reset all values to environment defaults."""
        defaults = RuntimeConfig()
        changes = {}

        with self._lock:
            for key in self.to_dict().keys():
                old_value = getattr(self, key)
                new_value = getattr(defaults, key)
                if old_value != new_value:
                    setattr(self, key, new_value)
                    changes[key] = {"old": old_value, "new": new_value}
            self._update_count += 1

        return {"reset": True, "changes": changes, "update_count": self._update_count}


# Singleton instance
runtime_config = RuntimeConfig()


def get_config() -> RuntimeConfig:
    """Get the singleton config instance."""
    return runtime_config
