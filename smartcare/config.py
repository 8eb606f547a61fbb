"""Configuration system for the SmartCare gateway.

Supports loading from YAML files, dicts, environment variables or programmatic
construction via Pydantic models. Environment variables use the ``SMARTCARE_``
prefix with ``__`` between nested keys, e.g. ``SMARTCARE_AI__API_KEY``.
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from smartcare.prompts import (
    CALL_GREETING,
    CHAT_SYSTEM_PROMPT,
    EXTRACTION_PROMPT,
    REALTIME_INSTRUCTIONS,
)


class ServerConfig(BaseModel):
    """HTTP/WebSocket listener settings."""

    host: str = "0.0.0.0"
    port: int = 3000
    # Public base URL used in Twilio callbacks (falls back to the request host)
    public_url: str = ""
    media_path: str = "/media-stream"


class TelephonyConfig(BaseModel):
    """Twilio credentials and call behaviour."""

    account_sid: str = ""
    auth_token: str = ""
    from_number: str = ""
    greeting: str = CALL_GREETING


class RealtimeAIConfig(BaseModel):
    """OpenAI Realtime session settings."""

    api_key: str = ""
    url: str = "wss://api.openai.com/v1/realtime"
    model: str = "gpt-4o-realtime-preview-2024-10-01"
    voice: str = "echo"
    instructions: str = REALTIME_INSTRUCTIONS
    temperature: float = 0.8
    input_audio_format: str = "g711_ulaw"
    output_audio_format: str = "g711_ulaw"
    transcription_model: str = "whisper-1"
    # Transcription language hint (ISO-639-1); empty lets the model detect it
    language: str = ""
    turn_detection: str = "server_vad"
    # Delay between socket open and session.update; chosen empirically
    settle_delay_ms: int = 250

    @property
    def realtime_url(self) -> str:
        return f"{self.url}?model={self.model}"


class ExtractionConfig(BaseModel):
    """Structured-completion settings for transcript extraction."""

    model: str = "gpt-4o-mini"
    prompt: str = EXTRACTION_PROMPT
    timeout_seconds: float = 30.0
    max_retries: int = 2


class ChatConfig(BaseModel):
    """Settings for the request/response chat endpoint."""

    model: str = "gpt-4o-mini"
    system_prompt: str = CHAT_SYSTEM_PROMPT
    max_turns: int = 40
    # Chat sessions with no message for this long are dropped
    idle_timeout_seconds: float = 1800.0


class StoreConfig(BaseModel):
    """Document store backend selection."""

    backend: str = "memory"  # memory | supabase
    supabase_url: str = ""
    supabase_key: str = ""


class PipelineConfig(BaseModel):
    """Post-call ticket pipeline behaviour."""

    # Create a minimal manual ticket when extraction output is malformed
    manual_fallback: bool = False
    notify: bool = True
    ticket_prefix: str = "TKT"
    # Extracted ticket payload is POSTed here after creation, when set
    webhook_url: str = ""
    webhook_timeout_seconds: float = 10.0


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    file: str = ""
    rotation: str = "10 MB"


class GatewayConfig(BaseSettings):
    """Top-level SmartCare gateway configuration.

    Examples:
        # Programmatic
        config = GatewayConfig(ai=RealtimeAIConfig(api_key="sk-..."))

        # From YAML
        config = GatewayConfig.from_yaml("gateway.yaml")

        # Shorthand
        config = GatewayConfig.from_dict({
            "port": 3000,
            "openai_api_key": "sk-...",
            "twilio_account_sid": "AC...",
        })
    """

    model_config = SettingsConfigDict(
        env_prefix="SMARTCARE_",
        env_nested_delimiter="__",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    server: ServerConfig = Field(default_factory=ServerConfig)
    telephony: TelephonyConfig = Field(default_factory=TelephonyConfig)
    ai: RealtimeAIConfig = Field(default_factory=RealtimeAIConfig)
    extraction: ExtractionConfig = Field(default_factory=ExtractionConfig)
    chat: ChatConfig = Field(default_factory=ChatConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @property
    def telephony_enabled(self) -> bool:
        """Whether Twilio credentials are present."""
        return bool(self.telephony.account_sid and self.telephony.auth_token)

    @classmethod
    def from_yaml(cls, path: str | Path) -> GatewayConfig:
        """Load configuration from a YAML file, expanding ``${VAR}`` references."""
        path = Path(path)
        with path.open() as f:
            data = yaml.safe_load(f) or {}
        return cls._from_raw(_expand_env(data))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> GatewayConfig:
        """Load configuration from a dictionary.

        Supports both the full nested format and a flat shorthand format:

        Full format:
            {"server": {"port": 3000}, "ai": {"api_key": "..."}}

        Shorthand format:
            {"port": 3000, "openai_api_key": "..."}
        """
        return cls._from_raw(dict(data))

    @classmethod
    def _from_raw(cls, data: dict[str, Any]) -> GatewayConfig:
        """Normalize and construct config from a raw dict."""
        flat_mappings = {
            "host": ("server", "host"),
            "port": ("server", "port"),
            "public_url": ("server", "public_url"),
            "webhook_url": ("server", "public_url"),
            "openai_api_key": ("ai", "api_key"),
            "voice": ("ai", "voice"),
            "twilio_account_sid": ("telephony", "account_sid"),
            "twilio_auth_token": ("telephony", "auth_token"),
            "twilio_phone_number": ("telephony", "from_number"),
            "store_backend": ("store", "backend"),
            "log_level": ("logging", "level"),
        }

        for flat_key, (section, nested_key) in flat_mappings.items():
            if flat_key in data:
                section_data = dict(data.get(section) or {})
                section_data[nested_key] = data.pop(flat_key)
                data[section] = section_data

        return cls(**data)


_ENV_REF = re.compile(r"\$\{([A-Za-z_][A-Za-z0-9_]*)\}")


def _expand_env(value: Any) -> Any:
    """Replace ``${VAR}`` references in string values; unset variables become empty."""
    if isinstance(value, str):
        return _ENV_REF.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env(v) for v in value]
    return value


def load_config(source: str | Path | dict[str, Any] | GatewayConfig | None = None) -> GatewayConfig:
    """Load a GatewayConfig from any supported source.

    Args:
        source: A YAML file path, a dict, an existing GatewayConfig, or None
            to read everything from the environment.

    Returns:
        A GatewayConfig instance.
    """
    if source is None:
        return GatewayConfig()
    if isinstance(source, GatewayConfig):
        return source
    if isinstance(source, dict):
        return GatewayConfig.from_dict(source)
    if isinstance(source, (str, Path)):
        return GatewayConfig.from_yaml(source)
    raise TypeError(f"Cannot load config from {type(source)}")


# Default YAML template for `smartcare init`
DEFAULT_CONFIG_YAML = """\
# SmartCare Gateway Configuration

server:
  host: 0.0.0.0
  port: 3000
  public_url: ${WEBHOOK_URL}     # e.g. https://abc123.ngrok.app
  media_path: /media-stream

telephony:
  account_sid: ${TWILIO_ACCOUNT_SID}
  auth_token: ${TWILIO_AUTH_TOKEN}
  from_number: ${TWILIO_PHONE_NUMBER}

ai:
  api_key: ${OPENAI_API_KEY}
  voice: echo
  settle_delay_ms: 250
  # language: ar                # transcription hint; omit to auto-detect

extraction:
  model: gpt-4o-mini
  timeout_seconds: 30

store:
  backend: memory               # memory | supabase
  # supabase_url: ${SUPABASE_URL}
  # supabase_key: ${SUPABASE_SERVICE_KEY}

pipeline:
  manual_fallback: false
  notify: true
  # webhook_url: ${TICKET_WEBHOOK_URL}

chat:
  max_turns: 40
  idle_timeout_seconds: 1800

logging:
  level: INFO
  # file: call_log.txt
"""
