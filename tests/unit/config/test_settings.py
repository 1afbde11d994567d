"""Unit tests for application settings."""

import takeoff.config as config_package
from takeoff.config import settings as settings_module
from takeoff.config.settings import PipelineSettings, Settings


def test_no_settings_instance_at_import():
    assert not hasattr(settings_module, "settings")
    assert "settings" not in config_package.__all__


def test_settings_groups(monkeypatch):
    monkeypatch.setenv("SCAN_BATCH_SIZE", "6")
    monkeypatch.setenv("LLM_PROVIDER", "gemini")

    app_settings = Settings()

    assert app_settings.pipeline.scan_batch_size == 6
    assert app_settings.llm.provider == "gemini"


def test_pipeline_defaults(monkeypatch):
    for name in ("EXTRACTION_BATCH_SIZE", "BATCH_COOLDOWN_MS", "MAX_EXTRACTION_PAGES"):
        monkeypatch.delenv(name, raising=False)

    pipeline = PipelineSettings(_env_file=None)

    assert pipeline.extraction_batch_size == 4
    assert pipeline.cooldown_ms == 1500
    assert pipeline.max_extraction_pages == 10
