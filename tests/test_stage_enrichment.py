"""Tests for stage 2 scene expansion and stage 3 dialogue enhancement."""

import dataclasses

import pytest

from drawtale.common.errors import DialogueEnhancementSkipped, SceneExpansionDegraded
from drawtale.pipeline.consistency import StoryConsistencyEngine
from drawtale.story_generation import DialogueEnhancer, Scene, SceneExpander
from drawtale.story_generation.policy import get_age_parameters
from tests.fakes import FakeCompletion, scene_payload

BEAT = "Luna finds a glowing stone in the garden"


class TestSceneExpander:
    """Tests for SceneExpander.expand."""

    @pytest.mark.asyncio
    async def test_expands_beat(self, luna):
        completion = FakeCompletion()
        outcome = await SceneExpander(completion_fn=completion).expand(
            BEAT, 2, luna, get_age_parameters(5)
        )

        assert not outcome.degraded
        scene = outcome.scene
        assert scene.page_number == 2
        assert scene.text.startswith("On page 2, Luna hopped")
        assert scene.emotion == "curious"
        assert scene.visual_elements == ("sunny garden", "golden stone", "apple tree 2")

        call = completion.calls[0]
        assert call["metadata"] == {"stage": "scene", "page": 2}
        assert BEAT in call["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_unknown_emotion_and_duplicate_elements(self, luna):
        """Emotions outside the fixed set become happy; elements dedupe case-insensitively."""
        completion = FakeCompletion(
            scene=lambda page, kwargs: {
                "text": "Luna waves.",
                "emotion": "Ecstatic",
                "visualElements": ["Tree", "tree", " ", "Pond"],
            }
        )
        outcome = await SceneExpander(completion_fn=completion).expand(BEAT, 1, luna, get_age_parameters(5))
        assert outcome.scene.emotion == "happy"
        assert outcome.scene.visual_elements == ("Tree", "Pond")

    @pytest.mark.asyncio
    async def test_backend_failure_falls_back_to_beat(self, luna):
        completion = FakeCompletion(scene=lambda page, kwargs: RuntimeError("offline"))
        outcome = await SceneExpander(completion_fn=completion).expand(BEAT, 3, luna, get_age_parameters(5))

        assert outcome.degraded
        assert isinstance(outcome.notice, SceneExpansionDegraded)
        assert outcome.notice.page_number == 3
        assert outcome.scene == Scene(page_number=3, text=BEAT, degraded=True)

    @pytest.mark.asyncio
    async def test_malformed_payload_falls_back(self, luna):
        completion = FakeCompletion(scene=lambda page, kwargs: '{"emotion": "sad"}')
        outcome = await SceneExpander(completion_fn=completion).expand(BEAT, 1, luna, get_age_parameters(5))
        assert outcome.scene.text == BEAT
        assert "text" in outcome.notice.reason

    @pytest.mark.asyncio
    async def test_out_of_budget_scene_is_kept_by_default(self, luna):
        """With one attempt, a short scene is logged but still used."""
        completion = FakeCompletion(scene=lambda page, kwargs: {"text": "Luna naps.", "emotion": "happy"})
        outcome = await SceneExpander(completion_fn=completion).expand(BEAT, 1, luna, get_age_parameters(5))
        assert outcome.scene.text == "Luna naps."
        assert not outcome.degraded
        assert len(completion.calls) == 1

    @pytest.mark.asyncio
    async def test_budget_reprompt_keeps_closest_attempt(self, luna):
        """Extra attempts carry word-count feedback and stop once within budget."""
        texts = iter(["Luna naps.", None])

        def scene(page, kwargs):
            text = next(texts)
            return {"text": text} if text else scene_payload(page)

        completion = FakeCompletion(scene=scene)
        expander = SceneExpander(completion_fn=completion, budget_attempts=3)
        outcome = await expander.expand(BEAT, 1, luna, get_age_parameters(5))

        assert outcome.scene.text.startswith("On page 1, Luna hopped")
        assert len(completion.calls) == 2
        assert "PREVIOUS ATTEMPT MISSED THE TARGET" in completion.calls[1]["messages"][1]["content"]

    @pytest.mark.asyncio
    async def test_failed_reprompt_keeps_earlier_attempt(self, luna):
        responses = iter([{"text": "Luna naps."}, RuntimeError("offline")])
        completion = FakeCompletion(scene=lambda page, kwargs: next(responses))
        expander = SceneExpander(completion_fn=completion, budget_attempts=2)
        outcome = await expander.expand(BEAT, 1, luna, get_age_parameters(5))

        assert outcome.scene.text == "Luna naps."
        assert not outcome.degraded


class TestDialogueEnhancer:
    """Tests for DialogueEnhancer.enhance."""

    @pytest.fixture
    def scene(self):
        return Scene(page_number=2, text="Luna sees a squirrel.", emotion="curious")

    @pytest.mark.asyncio
    async def test_adds_dialogue(self, luna, scene):
        completion = FakeCompletion(
            dialogue=lambda page, kwargs: {
                "text": "Luna sees a squirrel. 'Hello!' said Luna.",
                "dialogue": ["'Hello!' said Luna.", "a", "b", "c", "d"],
            }
        )
        outcome = await DialogueEnhancer(completion_fn=completion).enhance(scene, luna)

        assert outcome.scene.text.endswith("'Hello!' said Luna.")
        assert len(outcome.scene.dialogue) == 4
        assert outcome.scene.emotion == "curious"
        assert completion.calls[0]["metadata"] == {"stage": "dialogue", "page": 2}

    @pytest.mark.asyncio
    async def test_empty_text_keeps_scene_text(self, luna, scene):
        completion = FakeCompletion()
        outcome = await DialogueEnhancer(completion_fn=completion).enhance(scene, luna)
        assert outcome.scene.text == scene.text
        assert outcome.scene.dialogue == ("'Maybe we can share,' said Luna.",)

    @pytest.mark.asyncio
    async def test_young_characters_skip_dialogue(self, luna, scene):
        """Characters under four never get dialogue and no call is made."""
        toddler = dataclasses.replace(luna, age=3)
        completion = FakeCompletion()
        outcome = await DialogueEnhancer(completion_fn=completion).enhance(scene, toddler)

        assert outcome.scene is scene
        assert not outcome.degraded
        assert completion.calls == []

    @pytest.mark.asyncio
    async def test_failure_keeps_scene(self, luna, scene):
        completion = FakeCompletion(dialogue=lambda page, kwargs: "nothing useful")
        outcome = await DialogueEnhancer(completion_fn=completion).enhance(scene, luna)

        assert outcome.scene is scene
        assert isinstance(outcome.notice, DialogueEnhancementSkipped)
        assert outcome.notice.page_number == 2

    @pytest.mark.asyncio
    async def test_guidelines_shape_the_voice(self, luna, scene):
        """Tracked reactions, catch phrases and spoken lines reach the prompt."""
        engine = StoryConsistencyEngine()
        engine.initialize(luna, child_age=5)
        engine.record_used_phrase("'Look at that!' said Luna.")
        guidelines = engine.get_text_guidelines(2, "curious", scene.text)

        completion = FakeCompletion()
        await DialogueEnhancer(completion_fn=completion).enhance(scene, luna, guidelines=guidelines)

        system = completion.calls[0]["messages"][0]["content"]
        assert "VOICE:" in system
        assert "- Reaction when curious: Luna leaned in curiously" in system
        assert '- Catch phrase you may use once: "Maybe..." thought Luna' in system
        assert "- Already said, do not repeat: 'Look at that!' said Luna." in system
        assert "guidelines" not in completion.calls[0]

    @pytest.mark.asyncio
    async def test_no_guidelines_no_voice_section(self, luna, scene):
        completion = FakeCompletion()
        await DialogueEnhancer(completion_fn=completion).enhance(scene, luna)
        assert "VOICE:" not in completion.calls[0]["messages"][0]["content"]
