from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    # App settings
    APP_NAME: str = "Vehicle Rental System"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = True
    LOG_LEVEL: str = "INFO"

    # MongoDB Settings
    MONGODB_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "vehicle_rental"
    SEED_ON_STARTUP: bool = True

    # JWT Settings
    SECRET_KEY: str = "your-super-secret-key-change-in-production-min-32-chars"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 30  # 30 days
    BCRYPT_ROUNDS: int = 12

    # Stripe Settings
    STRIPE_SECRET_KEY: str = ""
    STRIPE_PUBLISHABLE_KEY: str = ""
    STRIPE_WEBHOOK_SECRET: str = ""
    STRIPE_CURRENCY: str = "usd"

    # Booking Settings
    PAYMENT_SUCCESS_RATE: float = 0.9  # Simulated payment success rate
    REFUND_RATE: float = 0.5  # Share of total refunded on early cancellation
    REFUND_WINDOW_HOURS: int = 24  # Minimum notice for a refund

    # Cache Settings
    VEHICLE_CACHE_TTL_SECONDS: int = 300

    # Rate Limiting (per client address)
    RATE_LIMIT_ENABLED: bool = True
    RATE_LIMIT_WINDOW_SECONDS: int = 15 * 60
    RATE_LIMIT_MAX_REQUESTS: int = 1000
    AUTH_RATE_LIMIT_MAX_REQUESTS: int = 50

    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://localhost:5173",
    ]

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
