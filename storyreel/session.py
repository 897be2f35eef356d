# File: storyreel/session.py
"""
Session / artifact store.

One directory per run:

    <base_dir>/session_<YYYY-MM-DDTHH-MM-SS>/
        images/image_<n>.png
        videos/video_<n>.mp4
        audio/narration.mp3
        result/merged_video.mp4
        result/final_video.mp4
        metadata.json

Paths are pure functions of a 1-based segment number, so concurrent segment
workers can write without coordination. Nothing is ever deleted.
"""

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Optional

logger = logging.getLogger(__name__)

SESSION_PREFIX = "session_"
METADATA_FILENAME = "metadata.json"
CATEGORY_DIRS = ("images", "videos", "audio", "result")


class SessionManager:
    """Owns the on-disk layout of one run."""

    def __init__(self, base_dir: str | Path = "output", clock: Optional[Callable[[], datetime]] = None):
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.created_at = self._clock()
        self.session_id = f"{SESSION_PREFIX}{self.created_at.strftime('%Y-%m-%dT%H-%M-%S')}"

        self.root_dir = Path(base_dir) / self.session_id
        self.images_dir = self.root_dir / "images"
        self.videos_dir = self.root_dir / "videos"
        self.audio_dir = self.root_dir / "audio"
        self.result_dir = self.root_dir / "result"
        self._create_directories()

        logger.info(f"Session created: {self.session_id} ({self.root_dir})")

    def _create_directories(self):
        for directory in (self.root_dir, self.images_dir, self.videos_dir, self.audio_dir, self.result_dir):
            directory.mkdir(parents=True, exist_ok=True)

    def image_path(self, number: int) -> Path:
        return self.images_dir / f"image_{number}.png"

    def video_path(self, number: int) -> Path:
        return self.videos_dir / f"video_{number}.mp4"

    def audio_path(self) -> Path:
        return self.audio_dir / "narration.mp3"

    def merged_video_path(self) -> Path:
        return self.result_dir / "merged_video.mp4"

    def final_video_path(self) -> Path:
        return self.result_dir / "final_video.mp4"

    def metadata_path(self) -> Path:
        return self.root_dir / METADATA_FILENAME

    def save_manifest(self, data: Dict[str, Any]) -> Path:
        """Writes `data` merged with sessionId and createdAt to metadata.json, replacing any previous file."""
        manifest = {
            "sessionId": self.session_id,
            "createdAt": self._clock().isoformat(),
            **data,
        }
        path = self.metadata_path()
        with open(path, 'w', encoding='utf-8') as f:
            json.dump(manifest, f, indent=2, ensure_ascii=False, default=str)
        logger.info(f"Metadata saved: {path}")
        return path

    def print_summary(self):
        summary_width = 60
        print("\n" + "=" * summary_width)
        print("SESSION SUMMARY")
        print("=" * summary_width)
        print(f"Session ID: {self.session_id}")
        print(f"Folder:     {self.root_dir}")
        print(f"  Images:   {self.images_dir}")
        print(f"  Videos:   {self.videos_dir}")
        print(f"  Audio:    {self.audio_dir}")
        print(f"  Result:   {self.result_dir}")
        print("=" * summary_width + "\n")
