"""
LiteLLM-powered generation helpers shared by the text phases.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, MutableMapping

from litellm import acompletion

logger = logging.getLogger(__name__)

_FENCE_PATTERN = re.compile(r"^```[a-zA-Z0-9_-]*\s*|\s*```$")


@dataclass
class GenerationResult:
    """
    Outcome of a single generation call.

    Exactly one of ``text``/``binary_parts`` is usually populated. Upstream faults
    are reported through ``error`` instead of being raised.
    """

    text: str | None = None
    binary_parts: tuple[bytes, ...] = ()
    error: str | None = None
    raw: Any = field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return not self.error

    @classmethod
    def failure(cls, message: str, *, raw: Any = None) -> "GenerationResult":
        return cls(error=message or "Unknown generation error.", raw=raw)


GenerateCallable = Callable[..., Awaitable[GenerationResult]]


async def call_text_generation(
    model: str,
    prompt: str,
    *,
    system: str | None = None,
    temperature: float | None = None,
    max_tokens: int | None = None,
    api_key: str | None = None,
    json_mode: bool = False,
    **extra_kwargs: Any,
) -> GenerationResult:
    """
    Invoke LiteLLM's `acompletion` API and return the consolidated text.
    """
    messages: list[dict[str, str]] = []
    if system:
        messages.append({"role": "system", "content": system})
    messages.append({"role": "user", "content": prompt})

    payload: MutableMapping[str, Any] = {
        "model": model,
        "messages": messages,
    }

    if temperature is not None:
        payload["temperature"] = temperature

    if max_tokens is not None:
        payload["max_tokens"] = max_tokens

    if api_key is not None:
        payload["api_key"] = api_key

    if json_mode:
        payload["response_format"] = {"type": "json_object"}

    payload.update(extra_kwargs)

    try:
        response = await acompletion(**payload)
    except Exception as exc:
        logger.warning("LiteLLM call to %s failed: %s", model, exc)
        return GenerationResult.failure(f"{type(exc).__name__}: {exc}")

    try:
        message = response["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return GenerationResult.failure("Unexpected LiteLLM response format.", raw=response)

    text = str(message or "").strip()
    if not text:
        return GenerationResult.failure("Model returned an empty response.", raw=response)
    return GenerationResult(text=text, raw=response)


def extract_json(text: str | None) -> Any:
    """
    Parse a JSON document that may be wrapped in Markdown code fences.
    """
    if text is None:
        raise ValueError("No text to parse as JSON.")

    cleaned = _FENCE_PATTERN.sub("", text.strip()).strip()
    try:
        return json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise ValueError("Failed to parse model response as JSON.") from exc
