"""Tests for settings and logging setup."""

import logging

import pytest

from deptflow.core.config import Settings
from deptflow.core.logger import get_logger, setup_logger


class TestSettings:
    def test_defaults(self):
        settings = Settings(_env_file=None)
        assert settings.head_role == "HD"
        assert settings.default_min_approvers == 1
        assert settings.financial_control_departments_list == ["AF", "CG"]

    def test_environment_overrides(self, monkeypatch):
        monkeypatch.setenv("DEPTFLOW_FINANCIAL_CONTROL_DEPARTMENTS", "FIN, CTRL ,")
        monkeypatch.setenv("DEPTFLOW_POLICY_CACHE_TTL_SECONDS", "5")
        settings = Settings(_env_file=None)
        assert settings.financial_control_departments_list == ["FIN", "CTRL"]
        assert settings.policy_cache_ttl_seconds == 5


class TestLogger:
    @pytest.fixture
    def deptflow_logger(self):
        """Detach handlers a previous test or app start attached; restore them afterwards."""
        logger = logging.getLogger("deptflow")
        saved_handlers, saved_level = logger.handlers[:], logger.level
        logger.handlers = []
        yield logger
        for handler in logger.handlers:
            handler.close()
        logger.handlers = saved_handlers
        logger.setLevel(saved_level)

    def test_get_logger_namespaces(self):
        assert get_logger("workflow").name == "deptflow.workflow"
        assert get_logger("deptflow.api").name == "deptflow.api"

    def test_file_output_from_settings(self, deptflow_logger, tmp_path):
        settings = Settings(_env_file=None, log_level="debug", log_dir=str(tmp_path), log_to_file=True)
        logger = setup_logger(settings)

        assert logger is deptflow_logger
        assert logger.level == logging.DEBUG
        get_logger("workflow").debug("hello")
        for handler in logger.handlers:
            handler.flush()
        assert "hello" in (tmp_path / "deptflow.log").read_text()

    def test_console_only_by_default(self, deptflow_logger):
        logger = setup_logger(Settings(_env_file=None))
        assert [type(h) for h in logger.handlers] == [logging.StreamHandler]
        assert logger.level == logging.INFO

    def test_invalid_level(self, deptflow_logger):
        with pytest.raises(ValueError):
            setup_logger(Settings(_env_file=None, log_level="LOUD"))

    def test_no_duplicate_handlers(self, deptflow_logger):
        setup_logger(Settings(_env_file=None))
        logger = setup_logger(Settings(_env_file=None, log_level="WARNING"))
        assert len(logger.handlers) == 1
        assert logger.level == logging.WARNING
