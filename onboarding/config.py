"""Service configuration from environment variables."""

from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="allow")

    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "postgresql+asyncpg://onboarding:onboarding@db:5432/onboarding"
    REDIS_URL: str = "redis://redis:6379/0"
    HTTP_TIMEOUT_SEC: float = 15.0

    # Object storage (Cloudinary unsigned uploads)
    CLOUDINARY_CLOUD_NAME: str = ""
    CLOUDINARY_UPLOAD_PRESET: str = "UdhyogUnity"
    CLOUDINARY_BASE_FOLDER: str = "UdhyogUnity"
    STORAGE_HOST_PREFIX: str = "https://res.cloudinary.com"

    # Identity provider
    FIREBASE_API_KEY: str = ""
    OTP_BACKEND: str = "firebase"  # "firebase" or "local"
    SMS_GATEWAY_URL: str = ""
    SMS_GATEWAY_TOKEN: str = ""

    # Reference data / geocoding
    CSC_API_KEY: str = ""
    COUNTRY_CODE: str = "IN"
    PHONE_COUNTRY_PREFIX: str = "+91"
    NOMINATIM_USER_AGENT: str = "UdhyogUnity/1.0"

    # Timers
    OTP_COOLDOWN_SEC: int = 60
    OTP_TTL_SEC: int = 600
    GEOCODE_DEBOUNCE_SEC: float = 1.0
    CITY_LIST_TIMEOUT_SEC: float = 5.0
    GEOCODE_CACHE_TTL: int = 30 * 24 * 3600


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
