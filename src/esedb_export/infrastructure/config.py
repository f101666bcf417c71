"""Configuration management for the ESE database exporter."""

from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class EngineConfig(BaseModel):
    """Storage engine configuration."""

    backend: Literal["auto", "esent", "dissect"] = Field(
        default="auto", description="Engine adapter ('auto' picks esent on Windows)"
    )
    instance_name: str = Field(default="esedb_export", description="Engine instance name")
    default_page_size: int = Field(
        default=4096, ge=2048, le=32768, description="Page size used when the header has none"
    )
    max_outstanding_io: int = Field(
        default=1024, ge=1, le=65536, description="Cap on outstanding engine I/O requests"
    )
    work_dir: Path | None = Field(
        default=None, description="Parent of the private working copy (temp dir if unset)"
    )


class RepairConfig(BaseModel):
    """External repair tool configuration."""

    executable: str = Field(default="esentutl.exe", description="Repair tool executable")
    repair_args: list[str] = Field(default_factory=lambda: ["/p", "/o"])
    defragment_args: list[str] = Field(default_factory=lambda: ["/d", "/o"])
    log_name: str = Field(default="repair.log", description="Repair transcript file name")


class GrouperConfig(BaseModel):
    """Indexed grouping configuration for the polymorphic table."""

    table: str = Field(default="SystemIndex_PropertyStore")
    key_column: str = Field(default="WorkID")
    major_type_property: str = Field(default="System_Search_Store")
    sub_type_property: str = Field(default="System_ItemType")
    kind_property: str = Field(default="System_Kind")
    kind_delimiter: str = Field(default=";")
    kind_major_type: str = Field(default="file")
    file_attributes_property: str = Field(default="System_FileAttributes")
    placeholder: str = Field(default="(none)")


class ExportConfig(BaseModel):
    """Output artifact configuration."""

    output_dir: Path = Field(default=Path("export"), description="Artifact directory")
    delimiter: str = Field(default="\t", min_length=1, max_length=1)
    encoding: str = Field(default="utf-8")
    hidden_tables: list[str] = Field(
        default_factory=lambda: [
            "MSysObjects",
            "MSysObjectsShadow",
            "MSysObjids",
            "MSysLocales",
        ]
    )
    strict_numeric_columns: dict[str, list[str]] = Field(
        default_factory=lambda: {
            "MSysObjects": ["ObjidTable", "Id", "Type"],
            "MSysObjectsShadow": ["ObjidTable", "Id", "Type"],
            "MSysObjids": ["objid", "objidTable", "type"],
        }
    )


class ObservabilityConfig(BaseModel):
    """Observability configuration."""

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Log level"
    )
    log_format: Literal["json", "console"] = Field(default="console", description="Log format")
    transcript: Path | None = Field(default=None, description="Optional log transcript file")
    metrics_port: int | None = Field(
        default=None, ge=1, le=65535, description="Prometheus metrics port (disabled if unset)"
    )
    otel_endpoint: str | None = Field(
        default=None, description="OpenTelemetry collector endpoint"
    )
    otel_service_name: str = Field(default="esedb_export", description="Service name for tracing")


class Config(BaseSettings):
    """Main configuration for the exporter."""

    model_config = SettingsConfigDict(
        env_prefix="ESEDB_EXPORT_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    engine: EngineConfig = Field(default_factory=EngineConfig)
    repair: RepairConfig = Field(default_factory=RepairConfig)
    grouper: GrouperConfig = Field(default_factory=GrouperConfig)
    export: ExportConfig = Field(default_factory=ExportConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)


@lru_cache
def get_config() -> Config:
    """Get the global configuration instance."""
    return Config()
