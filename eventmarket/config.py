from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Database
    database_url: str = "sqlite:///./eventmarket.db"

    # Stripe
    stripe_secret_key: str = ""
    stripe_webhook_secret: str = ""
    currency: str = "usd"

    # Resend (Email)
    resend_api_key: str = ""
    from_email: str = "tickets@example.com"

    # Application
    base_url: str = "http://localhost:8000"
    client_url: str = "http://localhost:5173"  # success/cancel redirects land here
    uploads_dir: str = "uploads"

    # Branding
    org_name: str = "NepaEvents"
    org_color: str = "#ED4A43"

    # Authentication
    admin_api_key: str = ""  # empty = admin writes unprotected

    # CORS
    cors_origins: str = ""  # Comma-separated allowed origins (empty = allow all)

    # Rate limiting
    rate_limit_enabled: bool = True

    # Promo codes: the standalone validate endpoint consumes a use, like purchase does
    promo_validate_consumes: bool = True

    # Seat holds
    checkout_expiry_minutes: int = 30  # Stripe rejects anything shorter
    hold_grace_minutes: int = 10
    hold_sweep_minutes: int = 5

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache()
def get_settings() -> Settings:
    return Settings()
