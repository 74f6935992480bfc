"""Configuration settings for the application."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # Provider configuration
    PROVIDER: str = "chat_completions"  # Options: chat_completions, responses, anthropic
    MODEL: str | None = None  # None: use the provider's default model
    OPENAI_API_KEY: str | None = None
    OPENAI_ENDPOINT: str | None = None
    RESPONSES_API_KEY: str | None = None
    RESPONSES_ENDPOINT: str | None = None
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_ENDPOINT: str | None = None
    REQUEST_TIMEOUT: float = 600.0
    MAX_RETRIES: int = 3
    RETRY_BASE_DELAY: float = 1.0  # seconds, doubled after every failed attempt

    # Agent loop configuration
    MAX_ITERATIONS: int = 30
    CONTEXT_WINDOW: int | None = None  # None: look the model up in the context-window table
    SYSTEM_PROMPT: str | None = None

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
