# File: storyreel/media_io.py
"""
Reference image upload and streamed downloads of generated media.

- `upload_reference_image` accepts an http(s) URL (passed through) or a local
  .jpg/.jpeg/.png/.webp file, which is checked with Pillow and uploaded to fal
  storage through fal_client.
- `download_file` streams a URL to disk with aiohttp, writing to a temporary
  `.part` file and renaming on success.
"""

import asyncio
import logging
import time
from pathlib import Path
from typing import Optional

import aiohttp
import fal_client
from PIL import Image, UnidentifiedImageError

DOWNLOAD_CHUNK_SIZE = 1024 * 1024
DEFAULT_DOWNLOAD_TIMEOUT_SEC = 300
ALLOWED_IMAGE_EXTENSIONS = (".jpg", ".jpeg", ".png", ".webp")

logger = logging.getLogger(__name__)


class MediaIOError(Exception):
    """Custom exception for upload/download errors."""
    pass


def is_url(value: str) -> bool:
    return isinstance(value, str) and value.startswith(("http://", "https://"))


def validate_local_image(image_path: str | Path) -> Path:
    path = Path(image_path).expanduser().resolve()
    if not path.is_file():
        raise MediaIOError(f"File not found: {path}")
    if path.suffix.lower() not in ALLOWED_IMAGE_EXTENSIONS:
        raise MediaIOError(f"Unsupported format: {path.suffix}. Use one of: {', '.join(ALLOWED_IMAGE_EXTENSIONS)}")
    try:
        with Image.open(path) as img:
            img.verify()
    except (UnidentifiedImageError, OSError) as e:
        raise MediaIOError(f"Not a readable image: {path} ({e})") from e
    return path


def detect_aspect_ratio(image_path: str | Path) -> Optional[str]:
    """Suggests '16:9' for landscape images and '9:16' otherwise. None if the image can't be read."""
    try:
        with Image.open(image_path) as img:
            width, height = img.size
    except (UnidentifiedImageError, OSError) as e:
        logger.warning(f"Could not read image size for {image_path}: {e}")
        return None
    if width <= 0 or height <= 0:
        return None
    return "16:9" if width > height else "9:16"


async def upload_reference_image(image_path_or_url: str, fal_key: str) -> str:
    """Returns a URL usable as a conditioning image for all segments."""
    if is_url(image_path_or_url):
        logger.info(f"Using reference image URL: {image_path_or_url}")
        return image_path_or_url

    path = validate_local_image(image_path_or_url)
    client = fal_client.AsyncClient(key=fal_key)
    start_time = time.monotonic()
    try:
        uploaded_url = await client.upload_file(path)
    except Exception as e:
        raise MediaIOError(f"Failed to upload reference image {path.name}: {e}") from e
    size_kb = path.stat().st_size / 1024
    logger.info(f"Reference image uploaded to {uploaded_url} ({size_kb:.1f} KB, {time.monotonic() - start_time:.2f}s)")
    return uploaded_url


async def download_file(url: str, output_path: str | Path, session: Optional[aiohttp.ClientSession] = None,
                        timeout_sec: int = DEFAULT_DOWNLOAD_TIMEOUT_SEC) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = output_path.with_name(output_path.name + ".part")

    own_session = session is None
    if own_session:
        session = aiohttp.ClientSession()
    start_time = time.monotonic()
    try:
        async with session.get(url, timeout=aiohttp.ClientTimeout(total=timeout_sec)) as response:
            if response.status != 200:
                body = await response.text()
                raise MediaIOError(f"Download failed for {url}: HTTP {response.status} - {body[:200]}")
            expected = response.content_length
            with open(temp_path, "wb") as f:
                async for chunk in response.content.iter_chunked(DOWNLOAD_CHUNK_SIZE):
                    f.write(chunk)
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        temp_path.unlink(missing_ok=True)
        raise MediaIOError(f"Download failed for {url}: {type(e).__name__}: {e}") from e
    except MediaIOError:
        temp_path.unlink(missing_ok=True)
        raise
    finally:
        if own_session:
            await session.close()

    size = temp_path.stat().st_size
    if size == 0:
        temp_path.unlink(missing_ok=True)
        raise MediaIOError(f"Downloaded file is empty: {url}")
    if expected is not None and size != expected:
        logger.warning(f"Size mismatch for {output_path.name}: expected {expected} bytes, got {size}")
    temp_path.replace(output_path)
    logger.info(f"Saved {output_path} ({size / 1024 / 1024:.2f} MB, {time.monotonic() - start_time:.1f}s)")
    return output_path
