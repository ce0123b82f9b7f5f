from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=(".env", "datamodeler/.env"), env_ignore_empty=True, extra="ignore"
    )

    ENVIRONMENT: Literal["local", "staging", "development", "production"] = "local"
    SERVICE_NAME: str = "datamodeler"
    LOG_LEVEL: str = "INFO"

    DEFAULT_ROW_LIMIT: int = 100
    MAX_ROW_LIMIT: int = 10_000
    ENFORCE_READ_ONLY: bool = True

    DATABASE_URL: str = "sqlite+aiosqlite:///./datamodeler.db"

    DATABRICKS_HOST: str = ""
    DATABRICKS_HTTP_PATH: str = ""
    DATABRICKS_TOKEN: str = ""


settings = Settings()  # type: ignore
