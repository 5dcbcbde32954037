from fastapi.testclient import TestClient

from nudge_service.core import config
from nudge_service.core.config import Settings
from nudge_service.main import create_app
from nudge_service.services.llm_service import GenerationResult


class _StubLLM:
    model_id = "openai/gpt-4o-mini"
    configured = True

    def __init__(self, result: GenerationResult) -> None:
        self.result = result
        self.prompts = []

    async def generate(self, prompt):
        self.prompts.append(prompt)
        return self.result


def _settings(**overrides) -> Settings:
    return Settings(_env_file=None, **overrides)


def _client(**overrides) -> TestClient:
    return TestClient(create_app(_settings(**overrides)))


def test_settings_reads_environment_variables(monkeypatch) -> None:
    monkeypatch.setenv("PORT", "9000")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-demo")
    config.get_settings.cache_clear()

    settings = config.get_settings()

    assert settings.port == 9000
    assert settings.openrouter_api_key == "sk-demo"
    assert settings.has_llm_credential is True


def test_settings_defaults() -> None:
    settings = _settings()

    assert settings.port == 8787
    assert settings.llm_model_id == "openai/gpt-4o-mini"
    assert settings.has_llm_credential is False
    assert settings.cors_allow_origins == ["*"]


def test_health_reports_missing_credential() -> None:
    with _client() as client:
        response = client.get("/health")

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "healthy"
    assert body["hasOpenAI"] is False
    assert isinstance(body["timestamp"], int)


def test_health_reports_configured_credential() -> None:
    with _client(OPENROUTER_API_KEY="sk-test") as client:
        response = client.get("/health")

    assert response.json()["hasOpenAI"] is True


def test_generic_nudge_falls_back_without_credential() -> None:
    payload = {
        "sym": "ABC",
        "last": 100,
        "bid": 99.5,
        "ask": 100.5,
        "fair_value": 101,
        "sentiment_pct": 80,
        "hot_condition": "1",
    }
    with _client() as client:
        response = client.post("/generic-nudge", json=payload)

    assert response.status_code == 200
    body = response.json()
    text = body["suggestion_text"]
    assert body["model"] == "fallback-rule-based"
    assert "ABC" in text
    assert "Entry vs. fair value: -1.00." in text
    assert "High institutional activity (80%) creates strong market momentum." in text
    assert "Market volatility requires careful execution timing." in text
    assert body["meta"]["nudge_type"] == "generic"
    assert body["meta"]["fallback"] is True
    assert body["meta"]["is_hot"] is True
    assert body["suggestion_html"].startswith("<div><b>AI Trade Feedback:</b> You are placing")


def test_generic_nudge_ignores_profile_and_portfolio() -> None:
    payload = {
        "sym": "ABC",
        "profile": {
            "cct_score": 0.9,
            "cct_hot_cold_diff": 0.3,
            "psychological_traits": {"pre_mood": "Anxious", "pre_decision_fatigue": "High"},
        },
        "portfolio": {"balance": 10000, "currentDrawdownPct": 8},
    }
    with _client() as client:
        response = client.post("/generic-nudge", json=payload)

    body = response.json()
    text = body["suggestion_text"]
    assert text == "You are placing 0 Buy on ABC."
    assert "cct_score" not in body["meta"]


def test_enhanced_nudge_without_enhanced_blocks() -> None:
    payload = {"sym": "XYZ", "exec": {"side": "Sell", "qty": 10}, "profile": {"cct_score": 0.9}}
    with _client() as client:
        response = client.post("/enhanced-nudge", json=payload)

    body = response.json()
    text = body["suggestion_text"]
    assert response.status_code == 200
    assert text.startswith("You are placing 10 Sell on XYZ.")
    assert "Risk assessment (high risk tolerance): conservative approach recommended." in text
    assert "Portfolio:" not in text
    assert body["meta"]["enhanced_payload"] is False
    assert body["meta"]["cct_level"] == "high"
    assert body["meta"]["nudge_type"] == "enhanced"


def test_enhanced_nudge_with_portfolio_context() -> None:
    payload = {
        "sym": "XYZ",
        "profile": {"cct_score": 0.3, "cct_hot_cold_diff": -0.2},
        "portfolio": {"balance": 9500, "posQty": 20, "unrealizedPL": 120, "currentDrawdownPct": 4.2},
        "scenario": {"name": "Earnings", "timer_sec": 30},
    }
    with _client() as client:
        response = client.post("/enhanced-nudge", json=payload)

    text = response.json()["suggestion_text"]
    assert "Portfolio: $9500 balance, 20 position, +$120 unrealized P&L." in text
    assert "You're currently 4.2% below peak." in text
    assert "Your risk pattern shows more risk-taking under market pressure." in text
    assert response.json()["meta"]["enhanced_payload"] is True


def test_legacy_nudge_accepts_empty_object() -> None:
    with _client() as client:
        response = client.post("/nudge", json={})

    assert response.status_code == 200
    body = response.json()
    assert body["suggestion_text"].startswith("You are placing 0 Buy on TICKER.")
    assert body["meta"]["fallback"] is True


def test_legacy_nudge_accepts_missing_body() -> None:
    with _client() as client:
        response = client.post("/nudge")

    assert response.status_code == 200
    assert response.json()["suggestion_text"]


def test_generic_nudge_returns_500_for_malformed_json() -> None:
    with _client() as client:
        response = client.post(
            "/generic-nudge",
            content=b"{not json",
            headers={"content-type": "application/json"},
        )

    assert response.status_code == 500
    body = response.json()
    assert body["error"] == "Generic nudge generation failed"
    assert body["model"] == "error"
    assert body["suggestion_text"] == "Unable to generate nudge at this time."


def test_enhanced_and_legacy_reject_non_object_bodies() -> None:
    with _client() as client:
        enhanced = client.post("/enhanced-nudge", json=[1, 2, 3])
        legacy = client.post("/nudge", json="text")

    assert enhanced.status_code == 500
    assert enhanced.json()["error"] == "Enhanced nudge generation failed"
    assert legacy.status_code == 500
    assert legacy.json()["error"] == "Nudge generation failed"
    assert legacy.json()["meta"]["error"]


def test_oversized_body_is_rejected() -> None:
    with _client(MAX_BODY_BYTES=64) as client:
        response = client.post("/nudge", json={"sym": "A" * 200})

    assert response.status_code == 500
    assert "exceeds" in response.json()["meta"]["error"]


def test_model_generated_nudge_is_returned() -> None:
    stub = _StubLLM(GenerationResult(model="openai/gpt-4o-mini", text="Consider the 1.00 spread <now>.", tokens_used=42))
    app = create_app(_settings(), llm_service=stub)
    with TestClient(app) as client:
        response = client.post("/enhanced-nudge", json={"sym": "ABC", "profile": {"cct_score": 0.6}})

    body = response.json()
    assert body["model"] == "openai/gpt-4o-mini"
    assert body["suggestion_text"] == "Consider the 1.00 spread <now>."
    assert body["suggestion_html"] == "<div><b>AI Trade Feedback:</b> Consider the 1.00 spread &lt;now&gt;.</div>"
    assert body["meta"]["tokens_used"] == 42
    assert body["meta"]["cct_level"] == "medium"
    assert "fallback" not in body["meta"]
    assert len(stub.prompts) == 1


def test_generation_failure_sets_fallback_flag() -> None:
    stub = _StubLLM(GenerationResult.failure("openai/gpt-4o-mini", "provider unavailable"))
    app = create_app(_settings(), llm_service=stub)
    with TestClient(app) as client:
        response = client.post("/nudge", json={"sym": "ABC"})

    body = response.json()
    assert response.status_code == 200
    assert body["model"] == "fallback-rule-based"
    assert body["meta"]["fallback"] is True
    assert body["meta"]["error"] == "provider unavailable"


def test_cors_headers_are_applied() -> None:
    with _client() as client:
        response = client.get("/health", headers={"Origin": "http://example.org"})

    assert response.headers["access-control-allow-origin"] == "*"


def test_streamed_body_stops_at_size_limit() -> None:
    chunks = [b'{"sym": "', b"A" * 40, b"A" * 40, b'"}']
    with _client(MAX_BODY_BYTES=64) as client:
        response = client.post(
            "/generic-nudge",
            content=iter(chunks),
            headers={"content-type": "application/json"},
        )

    assert response.status_code == 500
    assert response.json()["error"] == "Generic nudge generation failed"
    assert "exceeds 64 bytes" in response.json()["meta"]["error"]


def test_body_within_size_limit_is_accepted() -> None:
    with _client(MAX_BODY_BYTES=64) as client:
        response = client.post("/generic-nudge", json={"sym": "ABC"})

    assert response.status_code == 200
    assert response.json()["suggestion_text"] == "You are placing 0 Buy on ABC."
