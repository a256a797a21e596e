"""Configuration management for toolchat."""

from __future__ import annotations

from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .errors import ApiKeyNotConfiguredError

DEFAULT_API_BASE = "https://api.openai.com/v1"
DEFAULT_MODEL = "gpt-4-1106-preview"
DEFAULT_SYSTEM_PROMPT = """you are a helpful assistant.
if the user asks about their machine or system, you have a function which can execute commands and should use it \
safely without harming the system.
generally prefer using python3 for any calculations, running scripts you first create (or edit) in the /tmp/ \
filesystem. install whatever libraries are necessary."""


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_prefix="TOOLCHAT_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )

    # API Configuration
    api_key: str | None = Field(
        default=None,
        validation_alias=AliasChoices("TOOLCHAT_API_KEY", "OPENAI_SECRET_KEY", "OPENAI_API_KEY"),
        description="API key for the chat completions endpoint",
    )
    key_file: Path | None = Field(default=None, description="File holding the API key")
    api_base: str = Field(default=DEFAULT_API_BASE, description="API base URL")
    model: str = Field(default=DEFAULT_MODEL, description="Model identifier")
    temperature: float = Field(default=0.7, ge=0.0, le=2.0, description="Sampling temperature")
    response_format: str = Field(default="text", description="Response format tag (text or json_object)")
    stream: bool = Field(default=True, description="Stream responses as incremental fragments")
    max_tokens: int | None = Field(default=None, ge=1, description="Maximum tokens for responses")
    timeout_seconds: float | None = Field(default=None, gt=0, description="Transport timeout, unset means none")

    # Conversation Configuration
    system_prompt: str = Field(default=DEFAULT_SYSTEM_PROMPT, description="System prompt for the conversation")
    jokes_file: Path = Field(default=Path("jokes.txt"), description="Joke source for the random_joke action")

    # Logging Configuration
    log_level: str = Field(default="INFO", description="Log level")

    @property
    def resolved_api_key(self) -> str:
        """Return the configured API key, reading ``key_file`` when needed."""
        if self.api_key and self.api_key.strip():
            return self.api_key.strip()
        if self.key_file is not None:
            try:
                key = self.key_file.expanduser().read_text(encoding="utf-8").strip()
            except OSError as exc:
                raise ApiKeyNotConfiguredError(f"can't read key file {self.key_file}: {exc}") from exc
            if key:
                return key
        raise ApiKeyNotConfiguredError(
            "API key not configured. Set TOOLCHAT_API_KEY (or OPENAI_SECRET_KEY), or point TOOLCHAT_KEY_FILE at a key file."
        )


def get_settings(**overrides: object) -> Settings:
    """Load settings from the environment and ``.env``, applying explicit overrides."""
    values = {key: value for key, value in overrides.items() if value is not None}
    return Settings(**values)
