"""Application configuration with environment variables."""
from pydantic_settings import BaseSettings
from typing import Optional


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Database
    DATABASE_URL: str = "sqlite:///./levelup.db"

    # Application
    APP_NAME: str = "Level Up API"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # CORS
    CORS_ORIGINS: list[str] = ["*"]

    # Auth provider: "supabase" looks users up remotely, "jwt" verifies tokens locally
    AUTH_PROVIDER: str = "supabase"
    SUPABASE_URL: Optional[str] = None
    SUPABASE_ANON_KEY: Optional[str] = None
    SUPABASE_JWT_SECRET: Optional[str] = None
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = "authenticated"

    # OpenAI
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_MODEL: str = "gpt-4o"
    OPENAI_MAX_TOKENS: int = 1024
    OPENAI_TEMPERATURE: float = 0.7
    OPENAI_TIMEOUT_SECS: float = 30
    OPENAI_MAX_RETRIES: int = 2

    # Text-to-speech
    TTS_MODEL: str = "tts-1"
    TTS_HD_MODEL: str = "tts-1-hd"
    TTS_VOICE: str = "alloy"
    TTS_MAX_INPUT_CHARS: int = 4096

    # Audio storage
    AUDIO_DIR: str = "public/audio"
    AUDIO_URL_PREFIX: str = "/audio"
    AUDIO_RETENTION_DAYS: int = 30

    # Chat
    CHAT_EXCERPT_CHARS: int = 800
    CHAT_CANNED_STREAM_DELAY: float = 0.05
    SESSION_NAME_MAX_LENGTH: int = 50

    # Sharing
    SHARE_LINK_TTL_DAYS: int = 7

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


# Create global settings instance
settings = Settings()
