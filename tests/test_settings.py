#!/usr/bin/env python3
"""
Settings and logging tests.

Covers ProvisionSettings defaults and validation, YAML loading with CLI
overrides, and the UTF-8 logger setup.
"""

import io
import logging
from pathlib import Path

import pytest


class TestProvisionSettings:
    """Defaults and field validation."""

    def test_defaults(self, tmp_path):
        from slam_setup.config import ProvisionSettings

        settings = ProvisionSettings(project_dir=tmp_path)

        assert settings.env_name == "mast3r-slam"
        assert settings.python_version == "3.11"
        assert settings.cuda_version is None
        assert settings.skip_checkpoints is False
        assert settings.max_retries == 3
        assert len(settings.checkpoints) == 3
        assert settings.resolved_checkpoint_dir == tmp_path / "checkpoints"

    def test_explicit_checkpoint_dir(self, tmp_path):
        from slam_setup.config import ProvisionSettings

        settings = ProvisionSettings(project_dir=tmp_path, checkpoint_dir=tmp_path / "w")
        assert settings.resolved_checkpoint_dir == tmp_path / "w"

    @pytest.mark.parametrize("field,value", [
        ("env_name", ""),
        ("env_name", "my env"),
        ("env_name", "a/b"),
        ("python_version", "three"),
        ("cuda_version", "12"),
        ("max_retries", 0),
        ("checkpoints", []),
        ("checkpoints", ["../escape.pth"]),
        ("log_level", "LOUD"),
    ])
    def test_invalid_values(self, field, value):
        from pydantic import ValidationError

        from slam_setup.config import ProvisionSettings

        with pytest.raises(ValidationError):
            ProvisionSettings(**{field: value})

    def test_unknown_field_rejected(self):
        from pydantic import ValidationError

        from slam_setup.config import ProvisionSettings

        with pytest.raises(ValidationError):
            ProvisionSettings(env_nmae="typo")

    def test_log_level_normalized(self):
        from slam_setup.config import ProvisionSettings

        assert ProvisionSettings(log_level="debug").log_level == "DEBUG"

    def test_patch_level_cuda_accepted(self):
        from slam_setup.config import ProvisionSettings

        assert ProvisionSettings(cuda_version="12.4.1").cuda_version == "12.4.1"


class TestLoadSettings:
    """YAML file plus overrides."""

    def test_no_file(self, tmp_path):
        from slam_setup.config import load_settings

        settings = load_settings(project_dir=tmp_path)
        assert settings.project_dir == tmp_path

    def test_yaml_values(self, tmp_path):
        from slam_setup.config import load_settings

        config = tmp_path / "setup.yaml"
        config.write_text(
            "env_name: mast3r-slam-dev\n"
            "cuda_version: '11.8'\n"
            "max_retries: 1\n"
            f"checkpoint_dir: {tmp_path / 'weights'}\n",
            encoding="utf-8",
        )

        settings = load_settings(config)

        assert settings.env_name == "mast3r-slam-dev"
        assert settings.cuda_version == "11.8"
        assert settings.max_retries == 1
        assert settings.resolved_checkpoint_dir == tmp_path / "weights"

    def test_overrides_win(self, tmp_path):
        from slam_setup.config import load_settings

        config = tmp_path / "setup.yaml"
        config.write_text("env_name: from-file\nmax_retries: 5\n", encoding="utf-8")

        settings = load_settings(config, env_name="from-cli", max_retries=None)

        assert settings.env_name == "from-cli"
        assert settings.max_retries == 5

    def test_empty_file(self, tmp_path):
        from slam_setup.config import load_settings

        config = tmp_path / "empty.yaml"
        config.write_text("", encoding="utf-8")

        assert load_settings(config).env_name == "mast3r-slam"

    def test_missing_file(self, tmp_path):
        from slam_setup.config import ConfigurationError, load_settings

        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(tmp_path / "nope.yaml")

        assert "not found" in str(exc_info.value)

    def test_syntax_error_reports_line(self, tmp_path):
        from slam_setup.config import ConfigurationError, load_settings

        config = tmp_path / "bad.yaml"
        config.write_text("env_name: ok\nmax_retries: [1\n", encoding="utf-8")

        with pytest.raises(ConfigurationError) as exc_info:
            load_settings(config)

        assert exc_info.value.line is not None
        assert str(config) in str(exc_info.value)

    def test_root_must_be_mapping(self, tmp_path):
        from slam_setup.config import ConfigurationError, load_settings

        config = tmp_path / "list.yaml"
        config.write_text("- a\n- b\n", encoding="utf-8")

        with pytest.raises(ConfigurationError):
            load_settings(config)

    def test_validation_error_names_field(self, tmp_path):
        from slam_setup.config import ConfigValidationError, load_settings

        config = tmp_path / "setup.yaml"
        config.write_text("max_retries: 0\n", encoding="utf-8")

        with pytest.raises(ConfigValidationError) as exc_info:
            load_settings(config)

        assert exc_info.value.field == "max_retries"
        assert exc_info.value.value == 0
        assert "max_retries" in str(exc_info.value)


class TestLogger:
    """setup_logger() handler wiring."""

    def test_console_and_file(self, tmp_path):
        from slam_setup.utils.logger import setup_logger

        stream = io.StringIO()
        log_file = tmp_path / "logs" / "setup.log"
        logger = setup_logger("slam_setup_test", log_level="INFO", log_file=log_file, stream=stream)

        try:
            logger.debug("debug detail")
            logger.info("  [OK] done")

            assert stream.getvalue() == "  [OK] done\n"
            for handler in logger.handlers:
                handler.flush()
            contents = log_file.read_text(encoding="utf-8")
            assert "debug detail" in contents
            assert "INFO: slam_setup_test -   [OK] done" in contents
        finally:
            for handler in logger.handlers:
                handler.close()
            logger.handlers = []

    def test_reconfigure_replaces_handlers(self):
        from slam_setup.utils.logger import setup_logger

        first = setup_logger("slam_setup_test2", stream=io.StringIO())
        second = setup_logger("slam_setup_test2", log_level="WARNING", stream=io.StringIO())

        try:
            assert first is second
            assert len(second.handlers) == 1
            assert second.handlers[0].level == logging.WARNING
        finally:
            second.handlers = []
