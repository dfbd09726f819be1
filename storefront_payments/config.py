from functools import lru_cache
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    Loaded once at startup and never mutated afterwards.
    """

    # env vars take precedence over the .env file
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_ignore_empty=True,
        frozen=True,
    )

    # Database Configuration - required
    DATABASE_URL: str

    # Logging Configuration - required
    LOG_LEVEL: str

    # Yoco gateway
    YOCO_WEBHOOK_SECRET: str = ""  # whsec_<base64>
    YOCO_SECRET_KEY: str = ""
    YOCO_PUBLIC_KEY: str = ""
    YOCO_API_URL: str = "https://payments.yoco.com/api"
    YOCO_CURRENCY: str = "ZAR"
    STORE_NAME: str = "Counterfit"
    STORE_DESCRIPTION: str = "Luxury Streetwear"

    # Webhook replay window and key rotation behaviour
    WEBHOOK_TOLERANCE_MINUTES: int = 3
    WEBHOOK_VERIFY_ALL_SIGNATURES: bool = False

    # Stripe
    STRIPE_SECRET_KEY: str = ""
    STRIPE_PUBLISHABLE_KEY: str = ""
    STRIPE_API_VERSION: str = "2024-06-20"
    FRONTEND_URL: str = "http://localhost:3000"

    # Admin analytics proxy
    BACKEND_URL: str = "http://localhost:5000"
    ADMIN_API_KEY: str = ""

    HTTP_TIMEOUT_SECONDS: float = 10.0


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.
    Uses lru_cache to avoid reading .env file on every request.
    """
    return Settings()


# Global settings instance
settings = get_settings()
