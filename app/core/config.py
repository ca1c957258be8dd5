from pydantic_settings import BaseSettings, SettingsConfigDict
from typing import List

class Settings(BaseSettings):
    # Server
    DEBUG: bool = False
    HOST: str = "0.0.0.0"
    PORT: int = 8000

    # API Settings
    PROJECT_NAME: str = "Manual Journals API"
    API_V1_STR: str = "/api/v1"
    PROJECT_VERSION: str = "0.1.0"
    DESCRIPTION: str = "Double-entry manual journals and ledger posting API"

    # MongoDB
    MONGODB_URL: str = "mongodb://localhost:27017"
    DATABASE_NAME: str = "manual_journals"

    # CORS
    CORS_ORIGINS: List[str] = ["http://localhost:3000", "http://localhost:8000"]

    # JWT
    JWT_SECRET: str = "change-this-in-production"
    JWT_ALGORITHM: str = "HS256"
    JWT_EXPIRATION_MINUTES: int = 30

    # Logging
    LOG_LEVEL: str = "INFO"

    # Accounting
    DEFAULT_CURRENCY_CODE: str = "USD"
    DEFAULT_PAGE_SIZE: int = 12
    MAX_PAGE_SIZE: int = 100

    # Manual journal numbering
    MANUAL_JOURNAL_NUMBER_PREFIX: str = ""
    MANUAL_JOURNAL_NEXT_NUMBER: str = "00001"
    MANUAL_JOURNAL_AUTO_INCREMENT: bool = True

    model_config = SettingsConfigDict(
        case_sensitive=True,
        env_file=".env"
    )

settings = Settings()
