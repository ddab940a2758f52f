"""
LiteLLM-powered async chat completion helpers for the story stages.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Mapping, MutableMapping, Sequence

from litellm import acompletion

logger = logging.getLogger(__name__)

ChatMessage = Mapping[str, Any]


@dataclass
class ChatResult:
    """
    Structured response returned from an LLM chat completion.

    ``usage`` carries the backend's token counts when it reports them.
    """

    text: str
    raw: Any
    usage: dict[str, int] = field(default_factory=dict)


CompletionCallable = Callable[..., Awaitable[ChatResult]]


def _extract_usage(response: Any) -> dict[str, int]:
    try:
        usage = response["usage"]
    except (KeyError, TypeError):
        return {}
    if usage is None:
        return {}

    counts: dict[str, int] = {}
    for key in ("prompt_tokens", "completion_tokens", "total_tokens"):
        value = usage.get(key) if isinstance(usage, Mapping) else getattr(usage, key, None)
        if isinstance(value, int):
            counts[key] = value
    return counts


async def call_chat_completion(
    *,
    model: str,
    messages: Sequence[ChatMessage],
    temperature: float | None = None,
    max_tokens: int | None = None,
    api_key: str | None = None,
    json_mode: bool = True,
    **extra_kwargs: Any,
) -> ChatResult:
    """
    Invoke LiteLLM's `acompletion` API and return the consolidated text.

    Every stage expects a JSON object back, so JSON mode is requested unless
    ``json_mode`` is turned off for backends that reject ``response_format``.
    ``metadata`` (stage and page) is forwarded to LiteLLM for its callbacks.
    """
    payload: MutableMapping[str, Any] = {
        "model": model,
        "messages": list(messages),
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

    logger.debug("Calling %s for %s", model, payload.get("metadata") or "completion")
    response = await acompletion(**payload)

    try:
        message = response["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError) as exc:
        raise RuntimeError("Unexpected LiteLLM response format.") from exc

    text = str(message or "").strip()
    return ChatResult(text=text, raw=response, usage=_extract_usage(response))
