from functools import lru_cache
from typing import Literal, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: str) -> list[str]:
    return [part.strip() for part in value.split(",") if part.strip()]


class ImportSettings(BaseSettings):
    """Runtime settings for the import pipeline, read from the environment (and `.env`)."""

    ENVIRONMENT: str = "dev"
    TABLE_NAMES: str = "restaurants,dishes,menus"
    ALLOWED_TABLES: str = ""

    BATCH_SIZE: int = Field(25, ge=1)
    MAX_RETRIES: int = Field(3, ge=1)
    RETRY_DELAY_MS: int = Field(100, ge=0)

    STORAGE_BACKEND: Literal["memory", "dynamodb", "postgres"] = "memory"
    EVENT_BACKEND: Literal["memory", "eventbridge"] = "memory"
    METRICS_BACKEND: Literal["prometheus", "cloudwatch"] = "prometheus"

    EVENT_BUS_NAME: Optional[str] = None
    EVENT_SOURCE: str = "restaurant-import"
    CLOUDWATCH_NAMESPACE: Optional[str] = None
    AWS_REGION: Optional[str] = None
    AWS_ENDPOINT_URL: Optional[str] = None

    POSTGRES_DSN: Optional[str] = None
    KEY_FIELDS: str = "id"

    DLQ_PATH: Optional[str] = None

    SIDE_EFFECT_QUEUE_CAPACITY: int = Field(1000, ge=1)
    SIDE_EFFECT_DRAIN_TIMEOUT_SEC: float = Field(10.0, gt=0)
    SIDE_EFFECT_TIMEOUT_SEC: float = Field(5.0, gt=0)

    model_config = SettingsConfigDict(env_file=".env", case_sensitive=False, extra="ignore")

    @property
    def allowed_tables(self) -> frozenset[str]:
        if self.ALLOWED_TABLES.strip():
            return frozenset(_split_csv(self.ALLOWED_TABLES))
        return frozenset(f"{name}-{self.ENVIRONMENT}" for name in _split_csv(self.TABLE_NAMES))

    @property
    def key_fields(self) -> tuple[str, ...]:
        return tuple(_split_csv(self.KEY_FIELDS))

    @property
    def metrics_namespace(self) -> str:
        return self.CLOUDWATCH_NAMESPACE or f"RestaurantImport/{self.ENVIRONMENT}"


@lru_cache()
def get_settings() -> ImportSettings:
    return ImportSettings()
