"""
LLM client abstraction -- provider-agnostic wrapper used by the analyzer.

Supported providers:
  mock      -- echo back the prompt (tests / offline dev, no key needed)
  openai    -- OpenAI ChatCompletion (gpt-4o-mini), JSON mode when asked
  anthropic -- Anthropic Messages (claude-3-haiku)

Provider SDKs are optional (``pip install querygate[llm]``) and imported on
first use.  Keys come from Settings (env / .env).
"""
from __future__ import annotations

import importlib
from types import ModuleType
from typing import Any

from querygate.core.config import get_settings
from querygate.core.logging import get_logger

logger = get_logger(__name__)

_MODELS = {
    "openai": "gpt-4o-mini",
    "anthropic": "claude-3-haiku-20240307",
}
_SYSTEM_PROMPT = "You are a data analyst assistant for a business-intelligence dashboard."
_TEMPERATURE = 0.2
_DEFAULT_TIMEOUT = 60.0  # seconds per provider request


def _require_key(provider: str) -> str:
    field = f"{provider}_api_key"
    key = getattr(get_settings(), field)
    if not key:
        raise RuntimeError(
            f"{field} is not set.  "
            f"Set {field.upper()} in your .env file or environment."
        )
    return key


def _client_options(timeout: float | None) -> dict[str, Any]:
    """SDK client kwargs; an explicit timeout also disables SDK retries."""
    if timeout is None:
        return {"timeout": _DEFAULT_TIMEOUT}
    return {"timeout": timeout, "max_retries": 0}


def _import_sdk(provider: str) -> ModuleType:
    try:
        return importlib.import_module(provider)
    except ImportError as exc:
        raise RuntimeError(
            f"The '{provider}' package is not installed.  "
            f"Run: pip install querygate[llm]"
        ) from exc


def _call_mock(prompt: str, max_tokens: int, json_mode: bool, timeout: float | None) -> str:
    logger.info("LLM mock mode -- returning echo")
    return f"[MOCK] {prompt[:200]}"


def _call_openai(prompt: str, max_tokens: int, json_mode: bool, timeout: float | None) -> str:
    api_key = _require_key("openai")
    openai = _import_sdk("openai")

    extra: dict[str, Any] = {}
    if json_mode:
        extra["response_format"] = {"type": "json_object"}

    client = openai.OpenAI(api_key=api_key, **_client_options(timeout))
    response = client.chat.completions.create(
        model=_MODELS["openai"],
        messages=[
            {"role": "system", "content": _SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ],
        temperature=_TEMPERATURE,
        max_tokens=max_tokens,
        **extra,
    )
    return response.choices[0].message.content or ""


def _call_anthropic(prompt: str, max_tokens: int, json_mode: bool, timeout: float | None) -> str:
    api_key = _require_key("anthropic")
    anthropic = _import_sdk("anthropic")

    client = anthropic.Anthropic(api_key=api_key, **_client_options(timeout))
    response = client.messages.create(
        model=_MODELS["anthropic"],
        max_tokens=max_tokens,
        temperature=_TEMPERATURE,
        system=_SYSTEM_PROMPT,
        messages=[{"role": "user", "content": prompt}],
    )
    return response.content[0].text if response.content else ""


_PROVIDERS: dict[str, Any] = {
    "mock": _call_mock,
    "openai": _call_openai,
    "anthropic": _call_anthropic,
}


def call_llm(
    prompt: str,
    provider: str | None = None,
    max_tokens: int = 1024,
    json_mode: bool = False,
    timeout: float | None = None,
) -> str:
    """Send *prompt* to the configured (or overridden) LLM provider.

    Parameters
    ----------
    prompt : str
        The full prompt text.
    provider : str, optional
        Override the provider from settings.  One of: mock, openai, anthropic.
    max_tokens : int
        Upper bound on the reply length.
    json_mode : bool
        Ask the provider for a JSON object where it supports that natively.
    timeout : float, optional
        Per-request timeout in seconds, enforced by the provider SDK
        (retries are disabled when set).  Defaults to 60s.
    """
    provider = (provider or get_settings().llm_provider).lower()

    fn = _PROVIDERS.get(provider)
    if fn is None:
        raise NotImplementedError(
            f"LLM provider '{provider}' is not supported.  "
            f"Choose from: {', '.join(_PROVIDERS)}"
        )

    logger.info("Calling LLM provider=%s  prompt_len=%d  json=%s", provider, len(prompt), json_mode)
    text = fn(prompt, max_tokens, json_mode, timeout)
    logger.info("LLM reply provider=%s  (%d chars)", provider, len(text))
    return text
