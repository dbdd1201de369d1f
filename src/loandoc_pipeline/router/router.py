import logging
import os
from typing import Optional

from crewai import LLM
from openai import OpenAI

LOGGER = logging.getLogger(__name__)

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_FALLBACK_MODEL = "gpt-4.1-mini"


def _ping_openai(model: str, timeout: Optional[float] = None) -> bool:
    """Ping OpenAI model with minimal request."""
    try:
        client = OpenAI(timeout=timeout) if timeout else OpenAI()
        resp = client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": "ping"}],
            max_tokens=1,
            temperature=0,
            )
        return bool(resp and resp.choices)
    except Exception as e:
        raise RuntimeError(f"OpenAI Ping test failed: {e}")


def _env_temperature(default: float) -> float:
    raw = (os.getenv("LOANDOC_LLM_TEMPERATURE") or "").strip()
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


def llmrouter(model_name: Optional[str] = None, temperature: Optional[float] = None,
              timeout: Optional[float] = None) -> LLM:
    """
    Simple LLM Router:
        - model_name, else LOANDOC_LLM_MODEL, else gpt-4o-mini
        - If the ping fails, fall back to LOANDOC_LLM_FALLBACK_MODEL (gpt-4.1-mini)
        - timeout (seconds) is handed to the LLM client
    """
    model_name = model_name or os.getenv("LOANDOC_LLM_MODEL") or DEFAULT_MODEL
    fallback_model_name = os.getenv("LOANDOC_LLM_FALLBACK_MODEL") or DEFAULT_FALLBACK_MODEL
    temperature = _env_temperature(0.1) if temperature is None else temperature
    try:
        _ping_openai(model_name, timeout)
        return LLM(
            model=model_name,
            temperature=temperature,
            timeout=timeout,
        )

    # Fallback
    except Exception as exc:
        LOGGER.warning("Model %s unavailable (%s); falling back to %s", model_name, exc, fallback_model_name)
        return LLM(
            model=fallback_model_name,
            temperature=temperature,
            timeout=timeout,
        )
