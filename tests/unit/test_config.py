"""Unit tests for configuration."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from esedb_export.infrastructure.config import Config, EngineConfig, ExportConfig


@pytest.mark.unit
class TestConfig:
    """Tests for Config."""

    def test_defaults(self) -> None:
        config = Config()

        assert config.engine.backend == "auto"
        assert config.engine.default_page_size == 4096
        assert config.repair.executable == "esentutl.exe"
        assert config.repair.repair_args == ["/p", "/o"]
        assert config.grouper.table == "SystemIndex_PropertyStore"
        assert config.grouper.key_column == "WorkID"
        assert config.grouper.placeholder == "(none)"
        assert config.export.delimiter == "\t"
        assert config.export.hidden_tables == [
            "MSysObjects",
            "MSysObjectsShadow",
            "MSysObjids",
            "MSysLocales",
        ]
        assert config.observability.metrics_port is None

    def test_strict_numeric_columns_cover_catalog_tables(self) -> None:
        strict = Config().export.strict_numeric_columns

        assert strict["MSysObjects"] == ["ObjidTable", "Id", "Type"]
        assert strict["MSysObjectsShadow"] == ["ObjidTable", "Id", "Type"]
        assert strict["MSysObjids"] == ["objid", "objidTable", "type"]
        assert "MSysLocales" not in strict

    def test_environment_overrides(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ESEDB_EXPORT_ENGINE__BACKEND", "dissect")
        monkeypatch.setenv("ESEDB_EXPORT_EXPORT__DELIMITER", ",")
        monkeypatch.setenv("ESEDB_EXPORT_EXPORT__OUTPUT_DIR", "/tmp/edb-out")
        monkeypatch.setenv("ESEDB_EXPORT_OBSERVABILITY__LOG_LEVEL", "DEBUG")

        config = Config()

        assert config.engine.backend == "dissect"
        assert config.export.delimiter == ","
        assert config.export.output_dir == Path("/tmp/edb-out")
        assert config.observability.log_level == "DEBUG"

    def test_rejects_unknown_backend(self) -> None:
        with pytest.raises(ValidationError):
            EngineConfig(backend="sqlite")

    def test_rejects_multi_character_delimiter(self) -> None:
        with pytest.raises(ValidationError):
            ExportConfig(delimiter="||")
