"""Service configuration loaded from CHATGATE_* environment variables."""

from __future__ import annotations

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict

from chatgate.inbound.models.config import MessagesConfig, load_messages_config


class ChatgateSettings(BaseSettings):
    """Gateway process settings.

    All fields are read from environment variables with the ``CHATGATE_``
    prefix.  For example, ``CHATGATE_LOG_LEVEL=DEBUG`` maps to ``log_level``.

    Queue and debounce policy is **not** managed here -- it lives in the
    ``messages`` section of the JSON config file at ``config_path``.
    """

    model_config = SettingsConfigDict(
        env_prefix="CHATGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )

    # -- Logging ---------------------------------------------------------------
    log_level: str = "INFO"
    log_json: bool = False
    """Emit JSON log records instead of the coloured text format."""

    # -- Config file -----------------------------------------------------------
    config_path: str = "./chatgate.json"
    """JSON config file holding the ``messages`` section."""

    # -- Identity --------------------------------------------------------------
    agent_id: str = "main"
    """Agent component of every session key built by the gateway."""

    # -- Lifecycle -------------------------------------------------------------
    drain_timeout: float = 30.0
    """Seconds to wait for in-flight batches when the gateway stops."""

    def load_messages_config(self) -> MessagesConfig:
        return load_messages_config(self.config_path)


@lru_cache(maxsize=1)
def get_settings() -> ChatgateSettings:
    """Return a cached settings instance.

    Call ``get_settings.cache_clear()`` in tests to force a re-read after
    overriding env vars.
    """
    return ChatgateSettings()
