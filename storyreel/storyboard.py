# File: storyreel/storyboard.py
"""
Story and Storyboard Module

Uses the OpenRouter engine to:
1. Write narration story variants from a short description
   (three in parallel at rising temperatures), regenerate one, or modify one.
2. Split a finished story into visual prompts, one per 4-second segment.

Prompt parsing decodes the first JSON array of the reply (markdown fences and
chatter around it are ignored) and falls back to `ast.literal_eval` on the
outermost `[...]` block for Python-style lists.
The count is forced to the segment count: extra prompts are dropped, missing
ones are filled by repeating the last prompt.
"""

import ast
import asyncio
import json
import logging
import re
import time
from typing import Dict, List

from .duration import segment_count, target_word_count
from .models import SEGMENT_DURATION_SECONDS, StoryVariant
from .openrouter_engine import OpenRouterEngine

VARIANT_COUNT = 3
VARIANT_BASE_TEMPERATURE = 0.9
VARIANT_TEMPERATURE_STEP = 0.1
STORY_MAX_TOKENS = 800
PROMPTS_MAX_TOKENS = 2000
PROMPTS_TEMPERATURE = 0.7
MODIFY_TEMPERATURE = 0.7

CYRILLIC_PATTERN = re.compile("[\u0400-\u04FF]")
LIST_PATTERN = re.compile(r"\[[\s\S]*\]")
JSON_DECODER = json.JSONDecoder()

logger = logging.getLogger(__name__)


class StoryboardError(Exception):
    """Custom exception for story and prompt generation errors."""
    pass


def detect_language(text: str) -> str:
    return "ru" if CYRILLIC_PATTERN.search(text) else "en"


def language_instruction(language: str) -> str:
    if language == "ru":
        return "Write the story in Russian"
    return "Write the story in English"


def _decode_first_list(response_text: str):
    start = response_text.find("[")
    if start != -1:
        try:
            parsed, _ = JSON_DECODER.raw_decode(response_text, start)
            return parsed
        except json.JSONDecodeError:
            pass
    # Python-style lists (single quotes) only parse as one greedy `[...]` block.
    match = LIST_PATTERN.search(response_text)
    if not match:
        raise StoryboardError(f"Could not find a list ('[...]') in the response: {response_text[:200]}")
    try:
        return ast.literal_eval(match.group(0))
    except (ValueError, SyntaxError) as e:
        raise StoryboardError(f"Failed to parse prompt list: {e}") from e


def parse_prompt_list(response_text: str) -> List[str]:
    if not response_text or not response_text.strip():
        raise StoryboardError("LLM response was empty.")
    parsed = _decode_first_list(response_text)
    if not isinstance(parsed, list) or not parsed:
        raise StoryboardError("Parsed response is not a non-empty list.")
    if not all(isinstance(item, str) and item.strip() for item in parsed):
        raise StoryboardError("Prompt list contains empty or non-string elements.")
    return [item.strip() for item in parsed]


def fit_prompt_count(prompts: List[str], expected: int) -> List[str]:
    if len(prompts) == expected:
        return prompts
    logger.warning(f"LLM generated {len(prompts)} prompts, {expected} expected. Adjusting to {expected}.")
    if len(prompts) > expected:
        return prompts[:expected]
    return prompts + [prompts[-1]] * (expected - len(prompts))


class Storyboard:
    """Story writing and visual prompt generation on top of OpenRouterEngine."""

    def __init__(self, engine: OpenRouterEngine):
        self.engine = engine

    def _story_system_prompt(self, duration: int, language: str) -> str:
        words = target_word_count(duration)
        return f"""You are a creative screenwriter for short videos.
Your task is to create an engaging story for a {duration}-second video based on the user's description.

REQUIREMENTS:
- The text should be approximately {duration} seconds of narration (about {words} words)
- The text should be dynamic, interesting, and suitable for a short video
- Use vivid visual imagery that can be easily conveyed in video
- The text should be coherent and have a clear structure
- Use dramatic structure: exposition, rising action, climax, resolution
- {language_instruction(language)}

RESPONSE FORMAT:
Return only the clean story text, without additional explanations or markup."""

    def _story_messages(self, description: str, duration: int) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": self._story_system_prompt(duration, detect_language(description))},
            {"role": "user", "content": description},
        ]

    async def generate_story_variants(self, description: str, duration: int) -> List[StoryVariant]:
        """Writes VARIANT_COUNT stories concurrently. Any failing variant fails the call."""
        start_time = time.monotonic()
        messages = self._story_messages(description, duration)
        logger.info(f"Generating {VARIANT_COUNT} story variants ({duration}s, language {detect_language(description)})")

        async def _variant(i: int) -> StoryVariant:
            text = await self.engine.chat_completion(
                messages, temperature=VARIANT_BASE_TEMPERATURE + i * VARIANT_TEMPERATURE_STEP,
                max_tokens=STORY_MAX_TOKENS)
            if not text:
                raise StoryboardError(f"Variant {i + 1} came back empty.")
            logger.info(f"Variant {i + 1} generated ({len(text)} characters)")
            return StoryVariant(text=text, variant=i + 1)

        variants = await asyncio.gather(*(_variant(i) for i in range(VARIANT_COUNT)))
        logger.info(f"Story variants ready in {time.monotonic() - start_time:.1f}s")
        return list(variants)

    async def regenerate_variant(self, description: str, duration: int,
                                 temperature: float = VARIANT_BASE_TEMPERATURE) -> str:
        text = await self.engine.chat_completion(self._story_messages(description, duration),
                                                 temperature=temperature, max_tokens=STORY_MAX_TOKENS)
        if not text:
            raise StoryboardError("Regenerated story came back empty.")
        return text

    async def modify_variant(self, original_text: str, modification: str, duration: int) -> str:
        words = target_word_count(duration)
        system_prompt = f"""You are a creative screenwriter for short videos.
Your task is to modify an existing story based on the user's request.

REQUIREMENTS:
- The text should be approximately {duration} seconds of narration (about {words} words)
- Keep the general structure and flow unless asked to change it
- Apply the user's requested modifications
- The text should remain dynamic, interesting, and suitable for a short video
- {language_instruction(detect_language(original_text))}

RESPONSE FORMAT:
Return only the modified story text, without additional explanations or markup."""
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": f"Original story:\n{original_text}\n\nModification request: {modification}"},
        ]
        text = await self.engine.chat_completion(messages, temperature=MODIFY_TEMPERATURE, max_tokens=STORY_MAX_TOKENS)
        if not text:
            raise StoryboardError("Modified story came back empty.")
        return text

    def _prompt_messages(self, story_text: str, duration: int, count: int) -> List[Dict[str, str]]:
        system_prompt = f"""You are an expert at creating prompts for AI video generation.
Your task is to split the story text into segments and create visual prompts for each segment.

REQUIREMENTS:
- Divide the text into {count} segments ({SEGMENT_DURATION_SECONDS} seconds each for a {duration}-second video)
- For each segment, create a detailed visual prompt for video generation
- Prompts must be in English
- Each prompt should describe a specific visual scene
- Use cinematic terms: camera angle, lighting, movement, composition
- Prompts should be consistent with each other (unified style, characters, locations)

RESPONSE FORMAT:
Return only a JSON array of EXACTLY {count} prompts:
["prompt 1", "prompt 2", "prompt 3", ...]"""
        return [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": f"Story text:\n\n{story_text}"},
        ]

    async def generate_video_prompts(self, story_text: str, duration: int) -> List[str]:
        count = segment_count(duration)
        start_time = time.monotonic()
        logger.info(f"Generating {count} visual prompts ({SEGMENT_DURATION_SECONDS}s segments, {len(story_text)} characters of story)")
        response_text = await self.engine.chat_completion(
            self._prompt_messages(story_text, duration, count),
            temperature=PROMPTS_TEMPERATURE, max_tokens=PROMPTS_MAX_TOKENS)
        prompts = fit_prompt_count(parse_prompt_list(response_text), count)
        logger.info(f"Generated {len(prompts)} prompts in {time.monotonic() - start_time:.1f}s")
        for i, prompt in enumerate(prompts, start=1):
            logger.debug(f"  {i}. {prompt[:80]}...")
        return prompts
