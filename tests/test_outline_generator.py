"""Tests for stage 1 outline generation."""

import pytest

from drawtale.common.errors import OutlineGenerationFailed
from drawtale.story_generation import GenerationRequest, OutlineGenerator
from tests.fakes import FakeCompletion, outline_payload


def _generator(completion, guidance_catalog):
    return OutlineGenerator(model="fake-model", completion_fn=completion, guidance_catalog=guidance_catalog)


class TestOutlineGenerator:
    """Tests for OutlineGenerator.generate."""

    @pytest.mark.asyncio
    async def test_builds_outline_for_age_bucket(self, request_age5, happy_insights, guidance_catalog):
        """A valid payload becomes an outline with one beat per page."""
        completion = FakeCompletion()
        outline = await _generator(completion, guidance_catalog).generate(request_age5, happy_insights)

        assert len(outline.story_beats) == 5
        assert outline.theme == "Sharing"
        assert outline.mood == "happy"
        character = outline.main_character
        assert character.name == "Luna"
        assert character.species == "white rabbit"
        assert character.age == 5
        assert character.personality == ("curious", "kind", "helpful")

        call = completion.calls_for("outline")[0]
        assert call["model"] == "fake-model"
        assert "Exactly 5 beats for 5 pages" in call["messages"][0]["content"]
        assert "A white rabbit with a pink bow" in call["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_extra_beats_are_truncated(self, request_age5, happy_insights, guidance_catalog):
        completion = FakeCompletion(outline=lambda page, kwargs: outline_payload(pages=8))
        outline = await _generator(completion, guidance_catalog).generate(request_age5, happy_insights)
        assert len(outline.story_beats) == 5

    @pytest.mark.asyncio
    async def test_too_few_beats_fail(self, request_age5, happy_insights, guidance_catalog):
        completion = FakeCompletion(outline=lambda page, kwargs: outline_payload(pages=3))
        with pytest.raises(OutlineGenerationFailed, match="3 beat"):
            await _generator(completion, guidance_catalog).generate(request_age5, happy_insights)

    @pytest.mark.asyncio
    async def test_summary_beat_fails(self, request_age5, happy_insights, guidance_catalog):
        """Beats that are not concrete events are rejected."""
        payload = outline_payload()
        payload["storyBeats"][2] = "They had fun"
        completion = FakeCompletion(outline=lambda page, kwargs: payload)
        with pytest.raises(OutlineGenerationFailed, match="Beat 3"):
            await _generator(completion, guidance_catalog).generate(request_age5, happy_insights)

    @pytest.mark.asyncio
    async def test_needs_two_distinct_traits(self, request_age5, happy_insights, guidance_catalog):
        completion = FakeCompletion(
            outline=lambda page, kwargs: outline_payload(personality=["kind", "Kind"])
        )
        with pytest.raises(OutlineGenerationFailed, match="personality"):
            await _generator(completion, guidance_catalog).generate(request_age5, happy_insights)

    @pytest.mark.asyncio
    async def test_malformed_payload_fails(self, request_age5, happy_insights, guidance_catalog):
        completion = FakeCompletion(outline=lambda page, kwargs: "I cannot write JSON today.")
        with pytest.raises(OutlineGenerationFailed, match="malformed"):
            await _generator(completion, guidance_catalog).generate(request_age5, happy_insights)

    @pytest.mark.asyncio
    async def test_backend_error_fails(self, request_age5, happy_insights, guidance_catalog):
        completion = FakeCompletion(outline=lambda page, kwargs: RuntimeError("boom"))
        with pytest.raises(OutlineGenerationFailed) as excinfo:
            await _generator(completion, guidance_catalog).generate(request_age5, happy_insights)
        assert isinstance(excinfo.value.__cause__, RuntimeError)

    @pytest.mark.asyncio
    async def test_child_gender_wins(self, happy_insights, guidance_catalog):
        """The character inherits the child's gender when it is known."""
        request = GenerationRequest(child_age=8, child_gender="male")
        completion = FakeCompletion(outline=lambda page, kwargs: outline_payload(pages=6, gender="female"))
        outline = await _generator(completion, guidance_catalog).generate(request, happy_insights)
        assert outline.main_character.gender == "male"
        assert outline.main_character.age == 8

    @pytest.mark.asyncio
    async def test_unknown_mood_falls_back(self, request_age5, happy_insights, guidance_catalog):
        completion = FakeCompletion(outline=lambda page, kwargs: outline_payload(mood="grumpy"))
        outline = await _generator(completion, guidance_catalog).generate(request_age5, happy_insights)
        assert outline.mood == "happy"

    @pytest.mark.asyncio
    async def test_sensitive_category_adds_guidance(self, happy_insights, guidance_catalog):
        """Flagged content injects the category's guidance blocks into the prompt."""
        request = GenerationRequest(child_age=5, sensitive_category="bullying")
        completion = FakeCompletion()
        await _generator(completion, guidance_catalog).generate(request, happy_insights)

        user_prompt = completion.calls_for("outline")[0]["messages"][1]["content"]
        entry = guidance_catalog.for_category("bullying")
        assert "SUPPORTIVE STORY MODE" in user_prompt
        assert entry.principles in user_prompt

    @pytest.mark.asyncio
    async def test_no_guidance_without_category(self, request_age5, happy_insights, guidance_catalog):
        completion = FakeCompletion()
        await _generator(completion, guidance_catalog).generate(request_age5, happy_insights)
        assert "SUPPORTIVE STORY MODE" not in completion.calls_for("outline")[0]["messages"][1]["content"]

    def test_model_from_environment(self, monkeypatch):
        monkeypatch.setenv("DRAWTALE_OUTLINE_MODEL", "env-model")
        assert OutlineGenerator().model == "env-model"
