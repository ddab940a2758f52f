"""
Schema-validated decoding of JSON payloads returned by completion backends.

Completion text is untrusted: it may be bare JSON, JSON wrapped in a Markdown
fence, JSON surrounded by chatter, or not JSON at all. Every stage decodes
through :func:`decode_completion_payload` and inspects the tagged result
instead of catching parser exceptions itself.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, ValidationError

from .errors import MalformedCompletionPayload

ModelT = TypeVar("ModelT", bound=BaseModel)

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(.*?)\s*```", re.IGNORECASE | re.DOTALL)


@dataclass(frozen=True)
class PayloadDecodeResult(Generic[ModelT]):
    """
    Outcome of decoding a completion. Exactly one of ``payload``/``error`` is set.
    """

    payload: ModelT | None
    error: str | None
    raw_text: str

    @property
    def ok(self) -> bool:
        return self.payload is not None

    def unwrap(self, stage: str) -> ModelT:
        """
        Return the payload or raise :class:`MalformedCompletionPayload` for ``stage``.
        """
        if self.payload is None:
            raise MalformedCompletionPayload(stage, self.error or "empty payload", self.raw_text)
        return self.payload


def decode_completion_payload(text: str | None, schema: type[ModelT]) -> PayloadDecodeResult[ModelT]:
    """
    Decode ``text`` into ``schema``, returning a tagged success/error result.
    """
    raw_text = text or ""
    if not raw_text.strip():
        return PayloadDecodeResult(payload=None, error="completion was empty", raw_text=raw_text)

    document = _load_json_object(raw_text)
    if document is None:
        return PayloadDecodeResult(
            payload=None,
            error="completion did not contain a JSON object",
            raw_text=raw_text,
        )

    try:
        payload = schema.model_validate(document)
    except ValidationError as exc:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in err['loc']) or '<root>'}: {err['msg']}"
            for err in exc.errors()
        )
        return PayloadDecodeResult(
            payload=None,
            error=f"payload failed {schema.__name__} validation: {problems}",
            raw_text=raw_text,
        )

    return PayloadDecodeResult(payload=payload, error=None, raw_text=raw_text)


def _load_json_object(text: str) -> dict[str, Any] | None:
    candidates: list[str] = [text.strip()]

    fenced = _FENCE_PATTERN.search(text)
    if fenced:
        candidates.append(fenced.group(1).strip())

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start : end + 1])

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except json.JSONDecodeError:
            continue
        if isinstance(parsed, dict):
            return parsed
    return None
