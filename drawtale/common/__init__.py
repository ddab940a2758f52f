"""
Common utilities shared across DrawTale modules.
"""

from .errors import (
    CircuitOpenError,
    ConsistencyThresholdNotMet,
    DialogueEnhancementSkipped,
    DrawTaleError,
    MalformedCompletionPayload,
    OutlineGenerationFailed,
    SceneExpansionDegraded,
    StoryGenerationAborted,
)
from .llm import ChatResult, CompletionCallable, call_chat_completion
from .payloads import PayloadDecodeResult, decode_completion_payload
from .resilience import (
    CircuitBreaker,
    CircuitBreakerConfig,
    ResilientCompletion,
    RetryPolicy,
    is_rate_limit_error,
    is_retryable_error,
)

__all__ = [
    "ChatResult",
    "CompletionCallable",
    "call_chat_completion",
    "PayloadDecodeResult",
    "decode_completion_payload",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "ResilientCompletion",
    "RetryPolicy",
    "is_rate_limit_error",
    "is_retryable_error",
    "DrawTaleError",
    "MalformedCompletionPayload",
    "OutlineGenerationFailed",
    "SceneExpansionDegraded",
    "DialogueEnhancementSkipped",
    "ConsistencyThresholdNotMet",
    "StoryGenerationAborted",
    "CircuitOpenError",
]
