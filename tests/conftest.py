import pytest

from nudge_service.core import config


@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    for name in ("OPENROUTER_API_KEY", "OPENAI_API_KEY", "PORT", "LLM_MODEL_ID", "CORS_ALLOW_ORIGINS"):
        monkeypatch.delenv(name, raising=False)
    config.get_settings.cache_clear()
    yield
    config.get_settings.cache_clear()
