"""Configuration management for the Colloquy conversation service."""

from pydantic_settings import BaseSettings
from pydantic import Field
from typing import Optional
from pathlib import Path


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Keys
    anthropic_api_key: Optional[str] = Field(default=None, alias="ANTHROPIC_API_KEY")
    openai_api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")

    # Persistence
    data_dir: Path = Field(default=Path("./data"), alias="DATA_DIR")
    log_directory_name: str = Field(default="ConversationLogs", alias="LOG_DIRECTORY_NAME")
    pretty_print_log: bool = Field(default=True, alias="PRETTY_PRINT_LOG")

    # Participants
    player_display_name: str = Field(default="Player", alias="PLAYER_DISPLAY_NAME")
    player_identifier: str = Field(default="player", alias="PLAYER_IDENTIFIER")
    randomize_after_opening: bool = Field(default=False, alias="RANDOMIZE_AFTER_OPENING")

    # Turn handling; 0 disables the per-turn timeout
    turn_timeout_seconds: float = Field(default=60.0, alias="TURN_TIMEOUT_SECONDS")

    # Prompt construction
    max_context_turns: Optional[int] = Field(default=None, alias="MAX_CONTEXT_TURNS")
    turn_format: str = Field(default="{speaker}: {message}", alias="TURN_FORMAT")
    turn_separator: str = Field(default="\n", alias="TURN_SEPARATOR")
    context_suffix_format: str = Field(default=" [{context}]", alias="CONTEXT_SUFFIX_FORMAT")
    include_initial_prompt: bool = Field(default=True, alias="INCLUDE_INITIAL_PROMPT")

    # Debug logging
    enable_prompt_logging: bool = Field(default=True, alias="ENABLE_PROMPT_LOGGING")
    enable_verbose_logging: bool = Field(default=False, alias="ENABLE_VERBOSE_LOGGING")

    # Server settings
    host: str = Field(default="0.0.0.0", alias="HOST")
    port: int = Field(default=8000, alias="PORT")
    debug: bool = Field(default=True, alias="DEBUG")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"
        populate_by_name = True


# Global settings instance
settings = Settings()


def get_settings() -> Settings:
    """Get the global settings instance."""
    return settings
