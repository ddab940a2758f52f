"""Tests for the per-request story consistency engine."""

import pytest

from drawtale.common.errors import ConsistencyThresholdNotMet
from drawtale.pipeline.consistency import (
    ConsistencyPolicy,
    StoryConsistencyEngine,
    is_valid_transition,
)
from drawtale.story_generation import StoryPage


def _page(number, text, prompt, emotion="happy"):
    return StoryPage(
        page_number=number,
        text=text,
        scene_description="",
        visual_prompt=prompt,
        seed=number,
        emotion=emotion,
    )


@pytest.fixture
def engine(luna):
    engine = StoryConsistencyEngine()
    engine.initialize(luna, child_age=5, language="en")
    return engine


class TestInitialize:
    """Tests for StoryConsistencyEngine.initialize."""

    def test_profile_from_character(self, engine):
        profile = engine.profile
        assert profile.name == "Luna"
        assert profile.speech_style.sentence_length == "short"
        assert profile.speech_style.punctuation_style == "minimal"
        assert profile.emotional_profile.base_emotion == "curious"
        assert profile.clothing_style == "simple clothing"
        assert profile.catch_phrases[0] == '"Wow!" said Luna'
        assert engine.state.narrative.introduced_characters == ["Luna"]

    def test_turkish_reactions(self, luna):
        engine = StoryConsistencyEngine()
        profile = engine.initialize(luna, child_age=5, language="tr")
        assert profile.typical_reactions["happy"] == "Luna mutlulukla gülümsedi"
        assert "savaş" in profile.vocabulary_level.forbidden_concepts

    def test_use_before_initialize_raises(self):
        with pytest.raises(RuntimeError):
            StoryConsistencyEngine().get_text_guidelines(1, "happy")


class TestGuidance:
    """Tests for per-page visual prompts and text guidelines."""

    def test_visual_prompt_tracks_seed_and_emotion(self, engine):
        page_prompt = engine.get_visual_prompt(2, 5, ["garden"], "excited")

        assert page_prompt.prompt.startswith(engine.profile.identity.anchor_prompt)
        assert engine.state.page_seeds[2] == page_prompt.seed
        assert engine.state.current_emotion == "excited"
        assert engine.state.emotion_history == [(2, "excited")]

    def test_text_guidelines_flag_transitions(self, engine):
        guidelines = engine.get_text_guidelines(1, "scared")
        assert guidelines.previous_emotion == "curious"
        assert not guidelines.is_valid_transition

    def test_catch_phrase_rotation(self, engine):
        """Used phrases are not suggested again."""
        first = engine.get_text_guidelines(1, "excited").suggested_phrase
        assert first == '"Wow!" said Luna'

        engine.record_used_phrase(first)
        second = engine.get_text_guidelines(2, "excited").suggested_phrase
        assert second == '"Amazing!" exclaimed Luna'
        assert first in engine.get_text_guidelines(3, "happy").avoid_repetition

    def test_phrases_run_out(self, engine):
        for phrase in engine.profile.catch_phrases:
            engine.record_used_phrase(phrase)
        assert engine.get_text_guidelines(1, "happy").suggested_phrase is None

    def test_narrative_elements(self, engine):
        engine.record_narrative_element("location", "forest")
        engine.record_narrative_element("location", "forest")
        snapshot = engine.get_text_guidelines(1, "happy").narrative_context
        assert snapshot.visited_locations == ("forest",)

        with pytest.raises(ValueError):
            engine.record_narrative_element("weather", "rain")


class TestValidateConsistency:
    """Tests for validate_consistency scoring."""

    def test_clean_story_scores_full_marks(self, engine):
        prompt = engine.get_visual_prompt(1, 2, ["garden"], "happy").prompt
        pages = [
            _page(1, "Luna hops.", prompt, "happy"),
            _page(2, "Luna smiles.", prompt, "excited"),
        ]
        result = engine.validate_consistency(pages)

        assert result.score == 100
        assert result.is_consistent
        assert result.issues == ()
        result.raise_if_inconsistent()

    def test_penalties(self, engine):
        """Missing anchors, names and forbidden words each lower their sub-score."""
        prompt = engine.get_visual_prompt(1, 2, ["garden"], "happy").prompt
        pages = [
            _page(1, "A rabbit hops.", "a plain cat", "happy"),
            _page(2, "Luna hears about a war.", prompt, "sad"),
        ]
        result = engine.validate_consistency(pages)

        assert result.visual_score == 80
        assert result.text_score == 75
        assert result.emotional_score == 95
        assert result.score == round((80 + 75 + 95) / 3)
        assert {issue.type for issue in result.issues} == {"visual", "text", "emotional"}
        assert "Use the character's name at least once on every page" in result.suggestions

    @pytest.mark.parametrize(
        "emotions, expected",
        [
            (["happy", "excited", "curious", "worried"], []),
            (["happy", "sad"], [("emotional", "low")]),
        ],
    )
    def test_emotion_sequences(self, engine, emotions, expected):
        """Only unlisted emotion jumps are reported, each as a low-severity issue."""
        prompt = engine.get_visual_prompt(1, len(emotions), ["garden"], emotions[0]).prompt
        pages = [
            _page(number, "Luna plays.", prompt, emotion)
            for number, emotion in enumerate(emotions, start=1)
        ]
        result = engine.validate_consistency(pages)

        emotional = [(issue.type, issue.severity) for issue in result.issues if issue.type == "emotional"]
        assert emotional == expected
        assert result.emotional_score == 100 - 5 * len(expected)

    def test_scores_never_go_negative(self, engine):
        pages = [_page(number, "nobody", "nothing") for number in range(1, 8)]
        result = engine.validate_consistency(pages)
        assert result.visual_score == 0
        assert result.text_score == 30
        assert not result.is_consistent

        with pytest.raises(ConsistencyThresholdNotMet):
            result.raise_if_inconsistent()

    def test_custom_policy(self, luna):
        policy = ConsistencyPolicy.from_mapping({"pass_threshold": 101})
        engine = StoryConsistencyEngine(policy)
        engine.initialize(luna, child_age=5)
        prompt = engine.get_visual_prompt(1, 1, [], "happy").prompt
        assert not engine.validate_consistency([_page(1, "Luna", prompt)]).is_consistent

    def test_policy_rejects_unknown_keys(self):
        with pytest.raises(ValueError, match="bogus"):
            ConsistencyPolicy.from_mapping({"bogus": 1})


@pytest.mark.parametrize(
    "previous, current, valid",
    [("happy", "happy", True), ("happy", "worried", True), ("happy", "sad", False), ("sad", "hopeful", True)],
)
def test_is_valid_transition(previous, current, valid):
    assert is_valid_transition(previous, current) is valid
