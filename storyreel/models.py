# File: storyreel/models.py
"""Plain data types shared across the pipeline."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Literal

AspectRatio = Literal["16:9", "9:16"]
ASPECT_RATIOS = ("16:9", "9:16")

SEGMENT_DURATION_SECONDS = 4


@dataclass
class Segment:
    """One fixed-length slice of the timeline, produced from one visual prompt."""
    index: int
    prompt: str
    duration: int = SEGMENT_DURATION_SECONDS
    image_path: Optional[Path] = None
    image_url: Optional[str] = None
    video_path: Optional[Path] = None
    is_generating: bool = False
    error: Optional[str] = None

    @property
    def number(self) -> int:
        """1-based position, used for file names."""
        return self.index + 1


@dataclass
class GenerationResult:
    """Outcome of one segment worker. Billable calls made along the way are counted too."""
    index: int
    path: Optional[Path]
    success: bool
    error: Optional[str] = None
    prompt: Optional[str] = None
    images_generated: int = 0
    videos_generated: int = 0


@dataclass
class StoryVariant:
    text: str
    variant: int


@dataclass
class WordTiming:
    text: str
    start: float
    end: float


@dataclass
class Transcript:
    text: str
    segments: List[WordTiming] = field(default_factory=list)
    language_code: str = "unknown"
    duration: float = 0.0
