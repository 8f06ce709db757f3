"""Configuration settings for the application."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 8000
    DEBUG: bool = True
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # Completion service configuration
    COMPLETION_SERVICE: str = "openai"  # Options: openai, anthropic
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-3.5-turbo"
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_MODEL: str = "claude-3-5-haiku-latest"
    COMPLETION_TEMPERATURE: float = 0.2
    COMPLETION_MAX_TOKENS: int = 1024

    # Planning configuration
    PLANNER: str = "chat"
    MAX_EXTRA_TRIES: int = 1  # Retries after the first attempt

    # Raise on malformed role markers instead of skipping them
    TRANSCRIPT_STRICT: bool = False

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
