"""
Unit tests -- LLM client: mock mode + dispatch.
"""
import pytest
from querygate.copilot.llm_client import call_llm


def test_mock_prefix_and_echo():
    prompt = "Show revenue by month for the sales data"
    result = call_llm(prompt, provider="mock")
    assert result.startswith("[MOCK]")
    assert prompt[:20] in result


def test_unknown_provider_raises():
    with pytest.raises(NotImplementedError, match="not supported"):
        call_llm("hi", provider="banana")


def test_openai_missing_key_raises(monkeypatch):
    from querygate.core.config import get_settings
    monkeypatch.setattr(get_settings(), "openai_api_key", "")
    with pytest.raises(RuntimeError, match="openai_api_key"):
        call_llm("hi", provider="openai")


def test_anthropic_missing_key_raises(monkeypatch):
    from querygate.core.config import get_settings
    monkeypatch.setattr(get_settings(), "anthropic_api_key", "")
    with pytest.raises(RuntimeError, match="anthropic_api_key"):
        call_llm("hi", provider="anthropic")


def test_mock_accepts_timeout():
    assert call_llm("hi", provider="mock", timeout=0.5).startswith("[MOCK]")


def test_client_options_timeout():
    from querygate.copilot.llm_client import _client_options
    assert _client_options(2.0) == {"timeout": 2.0, "max_retries": 0}
    assert _client_options(None)["timeout"] == 60.0
