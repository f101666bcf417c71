"""Unit tests for the command-line entry point."""

from __future__ import annotations

from pathlib import Path

import pytest
from prometheus_client import CollectorRegistry

from esedb_export.adapters.inbound.cli import (
    EXIT_USAGE,
    apply_overrides,
    build_parser,
    main,
)
from esedb_export.infrastructure.config import Config
from esedb_export.infrastructure.container import Container
from esedb_export.infrastructure.logging import get_logger


@pytest.mark.unit
class TestParser:
    """Tests for argument parsing."""

    def test_source_only(self) -> None:
        args = build_parser().parse_args(["Windows.edb"])

        assert args.source == Path("Windows.edb")
        assert args.output_dir is None
        assert args.backend is None

    def test_log_level_is_case_insensitive(self) -> None:
        args = build_parser().parse_args(["Windows.edb", "--log-level", "debug"])
        assert args.log_level == "DEBUG"

    def test_rejects_unknown_backend(self) -> None:
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["Windows.edb", "--backend", "sqlite"])
        assert exc_info.value.code == 2

    def test_source_is_required(self) -> None:
        with pytest.raises(SystemExit):
            build_parser().parse_args([])


@pytest.mark.unit
class TestApplyOverrides:
    """Tests for applying flags over configuration."""

    def test_given_flags_replace_settings(self) -> None:
        args = build_parser().parse_args(
            [
                "Windows.edb",
                "-o", "out",
                "--backend", "dissect",
                "--delimiter", "comma",
                "--log-format", "json",
                "--metrics-port", "9100",
            ]
        )

        config = apply_overrides(Config(), args)

        assert config.export.output_dir == Path("out")
        assert config.export.delimiter == ","
        assert config.engine.backend == "dissect"
        assert config.observability.log_format == "json"
        assert config.observability.metrics_port == 9100

    def test_absent_flags_keep_settings(self) -> None:
        base = Config()
        config = apply_overrides(base, build_parser().parse_args(["Windows.edb"]))

        assert config.export == base.export
        assert config.engine == base.engine
        assert config.observability == base.observability

    def test_original_config_is_not_modified(self) -> None:
        base = Config()
        apply_overrides(base, build_parser().parse_args(["Windows.edb", "--delimiter", "pipe"]))
        assert base.export.delimiter == "\t"


@pytest.mark.unit
class TestMain:
    """Tests for main()."""

    def test_missing_source_is_a_usage_error(
        self, container: Container, temp_dir: Path
    ) -> None:
        assert main([str(temp_dir / "absent.edb")]) == EXIT_USAGE
        assert not (temp_dir / "work").exists()

    def test_transcript_is_closed_on_exit(self, test_config: Config, temp_dir: Path) -> None:
        transcript = temp_dir / "logs" / "run.log"
        observability = test_config.observability.model_copy(
            update={"transcript": transcript, "log_format": "json"}
        )
        Container.reset()
        Container.create(
            test_config.model_copy(update={"observability": observability}),
            registry=CollectorRegistry(auto_describe=True),
        )
        try:
            assert main([str(temp_dir / "absent.edb")]) == EXIT_USAGE
        finally:
            Container.reset()

        written = transcript.read_text(encoding="utf-8")
        assert "source_not_found" in written

        get_logger("esedb_export.test").error("after_exit")
        assert transcript.read_text(encoding="utf-8") == written
