from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from types import MappingProxyType
from typing import Dict, Iterable, Mapping, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class AppConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    intent_classification_url: str = Field(
        default="https://intent-classification-mcp.up.railway.app",
        validation_alias="INTENT_CLASSIFICATION_URL",
    )
    diagnosis_url: Optional[str] = Field(
        default="https://agrivision-mcp-server.up.railway.app",
        validation_alias="DIAGNOSIS_URL",
    )
    tool_call_timeout_seconds: float = Field(
        default=30.0, validation_alias="TOOL_CALL_TIMEOUT_SECONDS"
    )
    diagnosis_timeout_seconds: float = Field(
        default=45.0, validation_alias="DIAGNOSIS_TIMEOUT_SECONDS"
    )
    classifier_timeout_seconds: float = Field(
        default=15.0, validation_alias="CLASSIFIER_TIMEOUT_SECONDS"
    )
    health_check_timeout_seconds: float = Field(
        default=10.0, validation_alias="HEALTH_CHECK_TIMEOUT_SECONDS"
    )
    orchestrate_timeout_seconds: float = Field(
        default=60.0, validation_alias="ORCHESTRATE_TIMEOUT_SECONDS"
    )
    region_hierarchy_max_depth: int = Field(
        default=32, validation_alias="REGION_HIERARCHY_MAX_DEPTH"
    )
    catalog_store: str = Field(default="memory", validation_alias="CATALOG_STORE")
    catalog_path: Optional[str] = Field(default=None, validation_alias="CATALOG_PATH")
    catalog_db_path: Optional[str] = Field(
        default=None, validation_alias="CATALOG_DB_PATH"
    )
    tool_endpoints: Dict[str, str] = Field(
        default_factory=dict, validation_alias="TOOL_ENDPOINTS"
    )
    log_path: Optional[str] = Field(default=None, validation_alias="LOG_PATH")
    fastapi_port: int = Field(default=8000, validation_alias="FASTAPI_PORT")

    @field_validator("catalog_store", mode="after")
    @classmethod
    def normalize_catalog_store(cls, value: str) -> str:
        return value.lower() if value else value

    @field_validator("intent_classification_url", "diagnosis_url", mode="after")
    @classmethod
    def strip_trailing_slash(cls, value: Optional[str]) -> Optional[str]:
        return value.rstrip("/") if value else value

    @field_validator("region_hierarchy_max_depth", mode="after")
    @classmethod
    def clamp_max_depth(cls, value: int) -> int:
        return max(1, int(value))


@lru_cache(maxsize=1)
def get_config() -> AppConfig:
    return AppConfig()


@dataclass(frozen=True)
class EndpointConfig:
    """Read-only endpoint key -> base URL lookup for tool servers."""

    endpoints: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        cleaned = {
            str(key): str(url).rstrip("/")
            for key, url in dict(self.endpoints).items()
            if key and url
        }
        object.__setattr__(self, "endpoints", MappingProxyType(cleaned))

    def resolve_endpoint(self, server: object) -> Optional[str]:
        key = getattr(server, "endpoint_key", None)
        if not key:
            return None
        return self.endpoints.get(key)

    @classmethod
    def from_settings(
        cls,
        cfg: AppConfig,
        *,
        keys: Iterable[str] = (),
        environ: Optional[Mapping[str, str]] = None,
    ) -> "EndpointConfig":
        # Snapshot of the environment taken once, explicit entries win.
        environ = os.environ if environ is None else environ
        merged: Dict[str, str] = {}
        for key in keys:
            value = environ.get(key)
            if value:
                merged[key] = value
        merged.update(cfg.tool_endpoints)
        return cls(endpoints=merged)
