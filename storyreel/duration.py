# File: storyreel/duration.py
"""Narration-length and segment planning helpers."""

import math
from dataclasses import dataclass

from .models import SEGMENT_DURATION_SECONDS

WORDS_PER_MINUTE = 150
DURATION_CHOICES = (6, 12, 30, 45, 60)
DEFAULT_DURATION_SECONDS = 60


@dataclass
class DurationPlan:
    total_duration: int
    segment_duration: int
    segment_count: int
    words_per_minute: int
    estimated_words: int

    def describe(self) -> str:
        return (f"Total duration: {self.total_duration}s ({self.total_duration / 60:.1f} min), "
                f"{self.segment_count} segments x {self.segment_duration}s, ~{self.estimated_words} words")


def segment_count(total_duration: float, segment_duration: int = SEGMENT_DURATION_SECONDS) -> int:
    if total_duration <= 0:
        raise ValueError("Duration must be positive.")
    return math.ceil(total_duration / segment_duration)


def target_word_count(total_duration: float) -> int:
    return math.floor(total_duration / 60 * WORDS_PER_MINUTE)


def estimate_speech_seconds(text: str) -> float:
    words = len(text.split())
    return words / WORDS_PER_MINUTE * 60


def plan_duration(total_duration: int, segment_duration: int = SEGMENT_DURATION_SECONDS) -> DurationPlan:
    return DurationPlan(
        total_duration=total_duration,
        segment_duration=segment_duration,
        segment_count=segment_count(total_duration, segment_duration),
        words_per_minute=WORDS_PER_MINUTE,
        estimated_words=target_word_count(total_duration),
    )
