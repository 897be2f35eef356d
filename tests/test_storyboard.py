"""Tests for story variants and visual prompt generation."""

import json
from unittest.mock import AsyncMock

import pytest

from storyreel.storyboard import (
    Storyboard,
    StoryboardError,
    detect_language,
    fit_prompt_count,
    parse_prompt_list,
)


def _engine(*responses) -> AsyncMock:
    engine = AsyncMock()
    engine.chat_completion.side_effect = list(responses)
    return engine


class TestParsing:
    def test_plain_json_array(self) -> None:
        assert parse_prompt_list('["a", "b"]') == ["a", "b"]

    def test_fenced_and_chatty_reply(self) -> None:
        reply = 'Here you go:\n```json\n[\n  "wide shot of a harbor",\n  "close-up of a lantern"\n]\n```\nEnjoy!'
        assert parse_prompt_list(reply) == ["wide shot of a harbor", "close-up of a lantern"]

    def test_trailing_brackets_after_array(self) -> None:
        reply = '["scene one", "scene two"]\n\nNote: shots [1] and [2] share the same lighting.'
        assert parse_prompt_list(reply) == ["scene one", "scene two"]

    def test_python_style_list(self) -> None:
        assert parse_prompt_list("['one', 'two']") == ["one", "two"]

    @pytest.mark.parametrize("reply", ["", "no list here", "[]", '["ok", 3]', '["ok", "  "]', "[unparseable"])
    def test_invalid_replies(self, reply: str) -> None:
        with pytest.raises(StoryboardError):
            parse_prompt_list(reply)

    def test_fit_prompt_count(self) -> None:
        assert fit_prompt_count(["a", "b", "c"], 2) == ["a", "b"]
        assert fit_prompt_count(["a", "b"], 4) == ["a", "b", "b", "b"]
        assert fit_prompt_count(["a"], 1) == ["a"]

    def test_detect_language(self) -> None:
        assert detect_language("Кот летит в космос") == "ru"
        assert detect_language("A cat flies to space") == "en"


class TestStoryboard:
    @pytest.mark.asyncio
    async def test_generate_video_prompts_requests_segment_count(self) -> None:
        prompts = [f"shot {i}" for i in range(3)]
        engine = _engine(json.dumps(prompts))

        result = await Storyboard(engine).generate_video_prompts("A short story.", duration=12)

        assert result == prompts
        system_prompt = engine.chat_completion.call_args.args[0][0]["content"]
        assert "EXACTLY 3 prompts" in system_prompt

    @pytest.mark.asyncio
    async def test_generate_video_prompts_pads_short_reply(self) -> None:
        engine = _engine('["only one"]')
        result = await Storyboard(engine).generate_video_prompts("story", duration=6)
        assert result == ["only one", "only one"]

    @pytest.mark.asyncio
    async def test_story_variants_use_rising_temperatures(self) -> None:
        engine = _engine("story one", "story two", "story three")

        variants = await Storyboard(engine).generate_story_variants("a lighthouse keeper", 30)

        assert [v.variant for v in variants] == [1, 2, 3]
        assert [v.text for v in variants] == ["story one", "story two", "story three"]
        temperatures = sorted(c.kwargs["temperature"] for c in engine.chat_completion.call_args_list)
        assert temperatures == pytest.approx([0.9, 1.0, 1.1])
        system_prompt = engine.chat_completion.call_args.args[0][0]["content"]
        assert "about 75 words" in system_prompt
        assert "in English" in system_prompt

    @pytest.mark.asyncio
    async def test_story_variants_follow_description_language(self) -> None:
        engine = _engine("один", "два", "три")
        await Storyboard(engine).generate_story_variants("Маяк на краю света", 60)
        system_prompt = engine.chat_completion.call_args.args[0][0]["content"]
        assert "in Russian" in system_prompt

    @pytest.mark.asyncio
    async def test_empty_variant_fails(self) -> None:
        engine = _engine("story one", "", "story three")
        with pytest.raises(StoryboardError):
            await Storyboard(engine).generate_story_variants("desc", 30)

    @pytest.mark.asyncio
    async def test_modify_variant_sends_original_and_request(self) -> None:
        engine = _engine("modified story")

        text = await Storyboard(engine).modify_variant("original story", "make it funnier", 30)

        assert text == "modified story"
        user_message = engine.chat_completion.call_args.args[0][1]["content"]
        assert "original story" in user_message
        assert "make it funnier" in user_message

    @pytest.mark.asyncio
    async def test_regenerate_variant(self) -> None:
        engine = _engine("fresh story")
        assert await Storyboard(engine).regenerate_variant("desc", 30, temperature=1.2) == "fresh story"
        assert engine.chat_completion.call_args.kwargs["temperature"] == 1.2
