# File: storyreel/prompt2image.py
"""
Prompt-to-Image Module using the fal.ai Flux family.

Generates one still per segment. The style suffix (if any) is appended to the
prompt, and an optional shared reference image conditions every request
(`image_url` + `strength`). The image is downloaded to the session path and
its remote URL is returned so the video stage can use it directly.
"""

import logging
import time
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Optional

from .fal_queue import FalApiError, FalQueueClient
from .media_io import MediaIOError, download_file

IMAGE_SIZES = {
    "16:9": {"width": 1280, "height": 720},
    "9:16": {"width": 720, "height": 1280},
}
DEFAULT_NUM_INFERENCE_STEPS = 4
REFERENCE_IMAGE_STRENGTH = 0.75

logger = logging.getLogger(__name__)


class ImageGenerationError(Exception):
    """Custom exception for PromptToImage errors."""
    pass


def apply_style(prompt: str, style: Optional[str]) -> str:
    if style and style.strip():
        return f"{prompt}, {style.strip()}"
    return prompt


class PromptToImage:
    def __init__(self, queue: FalQueueClient, model_id: str,
                 downloader: Callable[[str, Path], Awaitable[Path]] = download_file):
        self.queue = queue
        self.model_id = model_id
        self._download = downloader
        self.total_requests = 0
        self.total_successful_requests = 0
        logger.info(f"PromptToImage initialized. Model: {self.model_id}")

    def build_payload(self, prompt: str, aspect_ratio: str = "9:16", reference_image_url: Optional[str] = None,
                      style: Optional[str] = None) -> Dict[str, Any]:
        if aspect_ratio not in IMAGE_SIZES:
            raise ImageGenerationError(f"Invalid parameter: unsupported aspect ratio '{aspect_ratio}'")
        payload: Dict[str, Any] = {
            "prompt": apply_style(prompt, style),
            "image_size": dict(IMAGE_SIZES[aspect_ratio]),
            "num_inference_steps": DEFAULT_NUM_INFERENCE_STEPS,
            "num_images": 1,
            "enable_safety_checker": False,
        }
        if reference_image_url:
            payload["image_url"] = reference_image_url
            payload["strength"] = REFERENCE_IMAGE_STRENGTH
        return payload

    async def generate_image(self, prompt: str, output_path: str | Path, aspect_ratio: str = "9:16",
                             reference_image_url: Optional[str] = None, style: Optional[str] = None) -> str:
        """Generates, saves to `output_path` and returns the remote image URL."""
        output_path = Path(output_path)
        log_prefix = f"Image ({output_path.name})"
        payload = self.build_payload(prompt, aspect_ratio, reference_image_url, style)
        self.total_requests += 1
        start_time = time.monotonic()
        logger.info(f"{log_prefix}: generating {payload['image_size']['width']}x{payload['image_size']['height']} "
                    f"{'with reference image ' if reference_image_url else ''}- {payload['prompt'][:80]}...")
        try:
            result = await self.queue.run(self.model_id, payload, log_prefix=log_prefix)
        except FalApiError as e:
            raise ImageGenerationError(f"Image generation failed: {e}") from e

        images = result.get("images") or []
        image_url = images[0].get("url") if images and isinstance(images[0], dict) else None
        if not image_url:
            raise ImageGenerationError(f"No image URL in result: {str(result)[:200]}")

        try:
            await self._download(image_url, output_path)
        except MediaIOError as e:
            raise ImageGenerationError(f"Failed to save image: {e}") from e
        self.total_successful_requests += 1
        logger.info(f"{log_prefix}: saved ({time.monotonic() - start_time:.1f}s)")
        return image_url
