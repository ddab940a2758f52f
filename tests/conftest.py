"""Pytest fixtures shared across the DrawTale test suite."""

import pytest

from drawtale.common import CircuitBreakerConfig, RetryPolicy
from drawtale.pipeline import DrawTaleOrchestrator
from drawtale.story_generation import (
    AnalysisInsights,
    CharacterProfile,
    GenerationRequest,
    load_guidance_catalog,
)
from drawtale.story_generation.models import CharacterArc
from tests.fakes import FakeCompletion

NO_WAIT_RETRY = RetryPolicy(max_attempts=2, base_delay=0, max_delay=0)


def pytest_configure(config):
    """Register custom markers used across test directories."""
    config.addinivalue_line("markers", "slow: mark test as slow (real sleeps)")


@pytest.fixture
def request_age5():
    return GenerationRequest(
        child_age=5,
        language="en",
        child_name="Ada",
        child_gender="female",
        visual_description="A white rabbit with a pink bow next to a big apple tree",
    )


@pytest.fixture
def happy_insights():
    return AnalysisInsights.from_mapping(
        {"insights": [{"title": "Emotion", "summary": "The drawing radiates joy and play."}]}
    )


@pytest.fixture
def luna():
    return CharacterProfile(
        name="Luna",
        species="white rabbit",
        gender="female",
        age=5,
        appearance="Snow-white fur, a pink ribbon bow, big blue eyes, a small red backpack",
        personality=("curious", "kind", "helpful"),
        speech_style="Speaks softly",
        arc=CharacterArc(start="shy", middle="brave", end="generous"),
    )


@pytest.fixture(scope="session")
def guidance_catalog():
    return load_guidance_catalog()


@pytest.fixture
def fake_completion():
    return FakeCompletion()


@pytest.fixture
def make_orchestrator(guidance_catalog):
    """Build an orchestrator wired to a fake backend with instant retries."""

    def _make(completion, **kwargs):
        kwargs.setdefault("retry_policy", NO_WAIT_RETRY)
        kwargs.setdefault("breaker_config", CircuitBreakerConfig(failure_threshold=50))
        return DrawTaleOrchestrator(
            completion_fn=completion,
            guidance_catalog=guidance_catalog,
            **kwargs,
        )

    return _make
