"""Tests for the LiteLLM completion helper."""

import pytest

from drawtale.common import llm


class TestCallChatCompletion:
    """Tests for call_chat_completion."""

    @pytest.mark.asyncio
    async def test_builds_payload_and_reads_text(self, monkeypatch):
        captured = {}

        async def fake_acompletion(**kwargs):
            captured.update(kwargs)
            return {
                "choices": [{"message": {"content": '  {"ok": true}  '}}],
                "usage": {"prompt_tokens": 12, "completion_tokens": 4, "total_tokens": 16},
            }

        monkeypatch.setattr(llm, "acompletion", fake_acompletion)

        result = await llm.call_chat_completion(
            model="gpt-4o",
            messages=[{"role": "user", "content": "hi"}],
            temperature=0.5,
            metadata={"stage": "scene", "page": 1},
        )

        assert result.text == '{"ok": true}'
        assert result.usage == {"prompt_tokens": 12, "completion_tokens": 4, "total_tokens": 16}
        assert captured["response_format"] == {"type": "json_object"}
        assert captured["metadata"] == {"stage": "scene", "page": 1}
        assert "max_tokens" not in captured
        assert "api_key" not in captured

    @pytest.mark.asyncio
    async def test_json_mode_can_be_disabled(self, monkeypatch):
        captured = {}

        async def fake_acompletion(**kwargs):
            captured.update(kwargs)
            return {"choices": [{"message": {"content": None}}]}

        monkeypatch.setattr(llm, "acompletion", fake_acompletion)
        result = await llm.call_chat_completion(model="m", messages=[], json_mode=False)

        assert "response_format" not in captured
        assert result.text == ""
        assert result.usage == {}

    @pytest.mark.asyncio
    async def test_unexpected_response_shape(self, monkeypatch):
        async def fake_acompletion(**kwargs):
            return {"choices": []}

        monkeypatch.setattr(llm, "acompletion", fake_acompletion)
        with pytest.raises(RuntimeError, match="Unexpected"):
            await llm.call_chat_completion(model="m", messages=[])
