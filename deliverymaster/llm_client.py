"""Thin wrapper around the generative text service used for pricing and geocoding."""
from __future__ import annotations

import json
import logging
import os
from typing import Any, Optional

from dotenv import load_dotenv
from openai import OpenAI

load_dotenv()

logger = logging.getLogger(__name__)

GEMINI_OPENAI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta/openai/"
LLM_BASE_URL = os.environ.get("DELIVERY_LLM_BASE_URL", GEMINI_OPENAI_BASE_URL)
LLM_MODEL = os.environ.get("DELIVERY_LLM_MODEL", "gemini-2.5-flash")
API_KEY_ENV_VARS = ("DELIVERY_LLM_API_KEY", "GEMINI_API_KEY", "API_KEY")

_LLM_CLIENT: Optional[OpenAI] = None


def _api_key_from_env() -> Optional[str]:
    for name in API_KEY_ENV_VARS:
        value = os.environ.get(name)
        if value:
            return value
    return None


def get_llm_client(client: Optional[OpenAI] = None) -> OpenAI:
    """Return an OpenAI-compatible client, building it from the environment once."""

    if client is not None:
        return client

    global _LLM_CLIENT
    if _LLM_CLIENT is None:
        api_key = _api_key_from_env()
        if not api_key:
            raise RuntimeError(
                "Set DELIVERY_LLM_API_KEY env var (export DELIVERY_LLM_API_KEY=YOUR_KEY)"
            )
        _LLM_CLIENT = OpenAI(api_key=api_key, base_url=LLM_BASE_URL)
    return _LLM_CLIENT


def strip_code_fence(text: str) -> str:
    """Remove a surrounding Markdown code fence from a model reply."""

    reply = text.strip()
    if reply.startswith("```"):
        reply = reply[3:]
        if reply.lower().startswith("json"):
            reply = reply[4:]
        reply = reply.strip()
    if reply.endswith("```"):
        reply = reply[:-3].strip()
    return reply


def complete_json(
    prompt: str,
    *,
    client: Optional[OpenAI] = None,
    model: Optional[str] = None,
    json_object: bool = True,
) -> Any:
    """Send ``prompt`` and decode the reply as JSON.

    ``json_object`` asks the server for JSON-object mode; array replies
    (geocoding) must leave it off since that mode only permits objects.
    """

    resolved_client = get_llm_client(client)
    request: dict = {
        "model": model or LLM_MODEL,
        "messages": [{"role": "user", "content": prompt}],
        "temperature": 0,
    }
    if json_object:
        request["response_format"] = {"type": "json_object"}

    response = resolved_client.chat.completions.create(**request)
    choices = getattr(response, "choices", None) or []
    content = choices[0].message.content if choices else None
    if not content or not content.strip():
        raise ValueError("Empty response from generative service")

    reply = strip_code_fence(content)
    logger.debug("LLM reply (%d chars) from %s", len(reply), request["model"])
    return json.loads(reply)


__all__ = [
    "LLM_BASE_URL",
    "LLM_MODEL",
    "complete_json",
    "get_llm_client",
    "strip_code_fence",
]
