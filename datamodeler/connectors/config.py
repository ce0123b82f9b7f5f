import re
from typing import Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from datamodeler.config import settings

_SCHEME_RE = re.compile(r"^https?://", re.IGNORECASE)


class DatabricksConnectionConfig(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, from_attributes=True)

    id: Optional[str] = None
    name: Optional[str] = None
    host: str
    http_path: str = Field(validation_alias=AliasChoices("httpPath", "http_path", "path"))
    token: str = Field(repr=False)

    @field_validator("host")
    @classmethod
    def _normalize_host(cls, value: str) -> str:
        return _SCHEME_RE.sub("", value.strip()).rstrip("/")

    @classmethod
    def from_settings(cls) -> "DatabricksConnectionConfig":
        return cls(
            host=settings.DATABRICKS_HOST,
            http_path=settings.DATABRICKS_HTTP_PATH,
            token=settings.DATABRICKS_TOKEN,
        )
