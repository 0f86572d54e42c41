from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_prefix="SHORTENER_", extra="ignore")

    PROJECT_NAME: str = "URL Shortener"
    HOST: str = "localhost"
    PORT: int = 8000

    # Registry
    DEFAULT_VALIDITY_MIN: int = 30
    MAX_VALIDITY_MIN: int = 60 * 24 * 365
    SHORTCODE_LENGTH: int = 6
    MAX_GENERATION_ATTEMPTS: int = 100
    MAX_URL_LENGTH: int = 2048

    # Audit log
    LOG_DIR: str = "logs"
    LOG_FILE: str = "app.log"
    LOG_API_URL: Optional[str] = None
    LOG_API_TOKEN: Optional[str] = None
    LOG_API_TIMEOUT: float = 10.0
    LOG_API_MAX_PENDING: int = 256

    # Geolocation
    GEOIP_DB_PATH: Optional[str] = None


settings = Settings()
