from __future__ import annotations

import json, yaml
from pathlib import Path
from typing import Any, Dict, List, Optional
from pydantic import AnyHttpUrl, BaseModel, Field, model_validator

from .export import ExportRequest

DEFAULT_API_BASE_URL = "https://api.cloudflare.com/client/v4"

class ServerConfig(BaseModel):
    base_url: AnyHttpUrl = Field(
        default=DEFAULT_API_BASE_URL,
        description="Base URL of the Cloudflare REST API"
    )
    account_id: str = Field(..., description="Account that owns the database")
    api_token: Optional[str] = Field(
        default=None,
        description="API token sent as a bearer token on API calls (never on signed downloads)"
    )
    verify_tls: bool = Field(default=True, description="Whether to verify TLS certificates")
    request_timeout: float = Field(
        default=30.0,
        ge=1.0,
        description="Timeout in seconds for each API request"
    )
    headers: Dict[str, str] = Field(
        default_factory=dict,
        description="Additional headers to include in API requests"
    )

    @model_validator(mode="after")
    def validate_account(self) -> "ServerConfig":
        if not self.account_id.strip():
            raise ValueError("`account_id` is required")
        return self

class DatabaseBinding(BaseModel):
    binding: str = Field(..., description="Binding name used by the worker")
    database_name: str = Field(..., description="Name of the remote database")
    database_id: str = Field(..., description="UUID of the remote database")

class ExportConfig(BaseModel):
    tables: List[str] = Field(
        default_factory=list,
        description="Tables to include in the export (all tables when empty)"
    )
    no_schema: bool = Field(default=False, description="Only output table contents, not the schema")
    no_data: bool = Field(default=False, description="Only output table schema, not the contents")
    output: Optional[str] = Field(
        default=None,
        description="Path of the .sql file to write"
    )
    poll_interval: float = Field(
        default=0.0,
        ge=0.0,
        description="Seconds to wait between status polls"
    )
    timeout: Optional[float] = Field(
        default=None,
        gt=0.0,
        description="Give up polling after this many seconds"
    )
    download_timeout: float = Field(
        default=300.0,
        ge=1.0,
        description="Timeout in seconds for the artifact download"
    )

    @model_validator(mode="after")
    def validate_content_toggles(self) -> "ExportConfig":
        if self.no_schema and self.no_data:
            raise ValueError("`no_schema` and `no_data` cannot both be set")
        return self

    def to_request(self, database_id: str) -> ExportRequest:
        return ExportRequest(
            database_id=database_id,
            tables=tuple(self.tables),
            no_schema=self.no_schema or None,
            no_data=self.no_data or None,
        )

class AppConfig(BaseModel):
    server: ServerConfig
    databases: List[DatabaseBinding] = Field(
        default_factory=list,
        description="Databases declared locally, looked up before asking the API"
    )
    export: ExportConfig = Field(default_factory=ExportConfig)

    @classmethod
    def load(cls, path: str, overrides: Optional[Dict[str, Any]] = None):
        data = _read_config_file(path)
        if overrides:
            data = _deep_merge(data, overrides)
        return cls.model_validate(data)

def _read_config_file(path: str):
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file does not exist: {path}")
    suffix = config_path.suffix.lower()
    content = config_path.read_text(encoding="utf-8")
    if not content.strip():
        return {}
    if suffix in {".yaml", ".yml"}:
        return yaml.safe_load(content) or {}
    if suffix == ".json":
        return json.loads(content)
    raise ValueError(f"Unsupported config file format: {suffix}")

def _deep_merge(base: Dict[str, Any], overrides: Dict[str, Any]):
    result = dict(base)
    for key, value in overrides.items():
        if (
            key in result
            and isinstance(result[key], dict)
            and isinstance(value, dict)
        ):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result
