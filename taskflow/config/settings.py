"""
Application settings and configuration
"""

import os
from pathlib import Path
from dotenv import load_dotenv
from typing import Optional

# Load environment variables from .env file
env_path = Path(__file__).parent.parent.parent / ".env"
load_dotenv(dotenv_path=env_path)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() == "true"


class Settings:
    """Application settings loaded from environment variables"""

    # OpenAI
    OPENAI_API_KEY: str = os.getenv("OPENAI_API_KEY", "")

    # Auth
    AUTH_SECRET: str = os.getenv("AUTH_SECRET", "")
    AUTH_ALGORITHM: str = os.getenv("AUTH_ALGORITHM", "HS256")
    ACCESS_TOKEN_TTL_MINUTES: int = int(os.getenv("ACCESS_TOKEN_TTL_MINUTES", "60"))

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./taskflow.db")
    USE_MEMORY_STORE: bool = _env_bool("USE_MEMORY_STORE")

    # Rate limiting
    REDIS_URL: Optional[str] = os.getenv("REDIS_URL", None)
    RATE_LIMIT_FAIL_OPEN: bool = _env_bool("RATE_LIMIT_FAIL_OPEN")

    # Plans
    FREE_MESSAGE_LIMIT: int = int(os.getenv("FREE_MESSAGE_LIMIT", "10"))
    PRO_MESSAGE_LIMIT: int = int(os.getenv("PRO_MESSAGE_LIMIT", "100"))
    FREE_ISSUE_LIMIT: int = int(os.getenv("FREE_ISSUE_LIMIT", "10"))
    PRO_PRICE_ID: Optional[str] = os.getenv("PRO_PRICE_ID", "price_1R3aDvLxBMFKq9DZn1vkvwwW")
    STRIPE_SECRET_KEY: Optional[str] = os.getenv("STRIPE_SECRET_KEY", None)

    # Queue
    QSTASH_TOKEN: Optional[str] = os.getenv("QSTASH_TOKEN", None)
    QUEUE_SECRET: str = os.getenv("QUEUE_SECRET", "")
    PUBLIC_URL: str = os.getenv("PUBLIC_URL", "http://localhost:8000")

    # Application
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    LOG_TO_FILE: bool = _env_bool("LOG_TO_FILE", "true")
    WEB_PORT: int = int(os.getenv("WEB_PORT", "8000"))

    def __init__(self, **overrides):
        """
        Initialize settings, optionally overriding environment values

        Args:
            **overrides: Attribute values to use instead of environment ones
        """
        for name, value in overrides.items():
            if not hasattr(type(self), name):
                raise AttributeError(f"Unknown setting: {name}")
            setattr(self, name, value)

    @classmethod
    def validate(cls) -> bool:
        """Validate that all required settings are present"""
        required = {
            "OPENAI_API_KEY": cls.OPENAI_API_KEY,
            "AUTH_SECRET": cls.AUTH_SECRET,
        }

        missing = [name for name, value in required.items() if not value]

        if missing:
            raise ValueError(
                f"Missing required environment variables: {', '.join(missing)}"
            )

        return True


# Global settings instance
settings = Settings()
