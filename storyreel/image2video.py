# File: storyreel/image2video.py
"""
Image-to-Video Module using fal.ai.

Supports:
- fal-ai/veo3.1/fast/image-to-video (default): durations "4s"/"6s"/"8s",
  720p, generate_audio enabled.
- Seedance (any model ID containing "seedance"): plain numeric durations,
  minimum 5 seconds, so "4s" becomes "5".

Returns the remote video URL; the caller persists it.
"""

import logging
import time
from typing import Any, Dict, Optional

from .fal_queue import FalApiError, FalQueueClient

DEFAULT_VIDEO_DURATION = "4s"
VEO_RESOLUTION = "720p"
SEEDANCE_MIN_DURATION_SEC = 5

logger = logging.getLogger(__name__)


class VideoGenerationError(Exception):
    """Custom exception for ImageToVideo errors."""
    pass


def is_seedance_model(model_id: str) -> bool:
    return "seedance" in model_id


def normalize_duration(model_id: str, duration: str) -> str:
    """Adapts a "<n>s" duration string to what the model accepts."""
    if not is_seedance_model(model_id):
        return duration
    seconds = int(duration.rstrip("s"))
    return str(max(seconds, SEEDANCE_MIN_DURATION_SEC))


class ImageToVideo:
    def __init__(self, queue: FalQueueClient, model_id: str):
        self.queue = queue
        self.model_id = model_id
        self.total_requests = 0
        self.total_successful_requests = 0
        logger.info(f"ImageToVideo initialized. Model: {self.model_id}"
                    f"{' (Seedance duration rules)' if is_seedance_model(model_id) else ''}")

    def build_payload(self, prompt: str, image_url: str, duration: str = DEFAULT_VIDEO_DURATION,
                      aspect_ratio: Optional[str] = None) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "prompt": prompt,
            "image_url": image_url,
            "duration": normalize_duration(self.model_id, duration),
        }
        if not is_seedance_model(self.model_id):
            payload["resolution"] = VEO_RESOLUTION
            payload["generate_audio"] = True
        if aspect_ratio:
            payload["aspect_ratio"] = aspect_ratio
        return payload

    async def generate_video(self, prompt: str, image_url: str, duration: str = DEFAULT_VIDEO_DURATION,
                             aspect_ratio: Optional[str] = None, log_prefix: str = "Video") -> str:
        payload = self.build_payload(prompt, image_url, duration, aspect_ratio)
        self.total_requests += 1
        start_time = time.monotonic()
        logger.info(f"{log_prefix}: submitting {payload['duration']} clip ({aspect_ratio or 'default aspect'})")
        try:
            result = await self.queue.run(self.model_id, payload, log_prefix=log_prefix)
        except FalApiError as e:
            raise VideoGenerationError(f"Video generation failed: {e}") from e

        video = result.get("video") or {}
        video_url = video.get("url") if isinstance(video, dict) else None
        if not video_url:
            raise VideoGenerationError(f"No video URL in result: {str(result)[:200]}")
        self.total_successful_requests += 1
        logger.info(f"{log_prefix}: generated in {time.monotonic() - start_time:.1f}s -> {video_url}")
        return video_url
