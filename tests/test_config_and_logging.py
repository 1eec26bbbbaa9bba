import logging

from identity_sync import config as config_module
from identity_sync.logs import configure_logging


def test_settings_singleton_exists_and_matches_get_settings():
    assert hasattr(config_module, "settings")
    assert config_module.get_settings() is config_module.settings


def test_settings_read_prefixed_environment(monkeypatch, tmp_path):
    monkeypatch.setenv("IDENTITY_SYNC_LOG_LEVEL", "DEBUG")
    monkeypatch.setenv("IDENTITY_SYNC_STATE_FILE", str(tmp_path / "state.yaml"))
    monkeypatch.setenv("IDENTITY_SYNC_AUDIT_ENABLED", "false")

    settings = config_module.Settings()

    assert settings.log_level == "DEBUG"
    assert settings.state_file == tmp_path / "state.yaml"
    assert settings.audit_enabled is False


def test_configure_logging_uses_settings_level(monkeypatch):
    # Default settings.log_level is INFO in config.py
    called = {}

    def fake_basicConfig(*, level=None, **kwargs):
        called["level"] = level

    monkeypatch.setattr(logging, "basicConfig", fake_basicConfig)
    monkeypatch.setattr(config_module.settings, "log_level", "INFO")
    configure_logging()
    assert called["level"] == logging.INFO


def test_configure_logging_verbose_and_quiet_httpx(monkeypatch):
    called = {}

    def fake_basicConfig(*, level=None, **kwargs):
        called["level"] = level

    monkeypatch.setattr(logging, "basicConfig", fake_basicConfig)
    configure_logging(verbose=True)
    assert called["level"] == logging.DEBUG
    assert logging.getLogger("httpx").level == logging.WARNING
