# File: storyreel/config.py
"""
Configuration for StoryReel.

All credentials and model IDs are collected once into a `PipelineConfig`
and passed explicitly to every client. Library modules never read the
environment themselves.

Environment variables (a `.env` file is honoured through python-dotenv):
- FAL_KEY / FAL_API_KEY           fal.ai credentials ('key_id:key_secret')
- OPENROUTER_API_KEY / OPENROUTER_KEY
- OPENROUTER_MODEL, OPENROUTER_MODEL_FREE
- FAL_IMAGE_MODEL, FAL_IMAGE_MODEL_FREE
- FAL_VIDEO_MODEL, FAL_VIDEO_MODEL_FREE
- FAL_TTS_MODEL, FAL_STT_MODEL, ELEVENLABS_VOICE_ID
- STORYREEL_OUTPUT_DIR, STORYREEL_STYLES_FILE
"""

import os
import sys
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping, Optional, List

from dotenv import load_dotenv

# --- Model IDs ---
DEFAULT_TEXT_MODEL = "openai/gpt-4o-mini"
DEFAULT_TEXT_MODEL_FREE = "x-ai/grok-4.1-fast:free"
DEFAULT_IMAGE_MODEL = "fal-ai/flux/schnell"
DEFAULT_IMAGE_MODEL_FREE = "fal-ai/flux-lora"
DEFAULT_VIDEO_MODEL = "fal-ai/veo3.1/fast/image-to-video"
DEFAULT_VIDEO_MODEL_FREE = "fal-ai/bytedance/seedance/v1/lite/image-to-video"
DEFAULT_TTS_MODEL = "fal-ai/elevenlabs/tts/eleven-v3"
DEFAULT_STT_MODEL = "fal-ai/whisper"
DEFAULT_VOICE_ID = "JBFqnCBsd6RMkjVDRZzb"

OPENROUTER_BASE_URL = "https://openrouter.ai/api/v1"
FAL_QUEUE_BASE_URL = "https://queue.fal.run"

DEFAULT_OUTPUT_DIR = "output"
DEFAULT_STYLES_FILE = "styles.json"
DEFAULT_POLL_MAX_ATTEMPTS = 300
DEFAULT_POLL_INTERVAL_SEC = 2.0

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Custom exception for configuration errors."""
    pass


@dataclass
class PipelineConfig:
    fal_key: str = ""
    openrouter_key: str = ""
    text_model: str = DEFAULT_TEXT_MODEL
    image_model: str = DEFAULT_IMAGE_MODEL
    video_model: str = DEFAULT_VIDEO_MODEL
    tts_model: str = DEFAULT_TTS_MODEL
    stt_model: str = DEFAULT_STT_MODEL
    voice_id: str = DEFAULT_VOICE_ID
    output_dir: Path = field(default_factory=lambda: Path(DEFAULT_OUTPUT_DIR))
    styles_file: Path = field(default_factory=lambda: Path(DEFAULT_STYLES_FILE))
    openrouter_base_url: str = OPENROUTER_BASE_URL
    fal_queue_base_url: str = FAL_QUEUE_BASE_URL
    poll_max_attempts: int = DEFAULT_POLL_MAX_ATTEMPTS
    poll_interval_seconds: float = DEFAULT_POLL_INTERVAL_SEC
    use_free_models: bool = False

    @classmethod
    def from_env(cls, use_free_models: bool = False, env: Optional[Mapping[str, str]] = None,
                 dotenv: bool = True) -> "PipelineConfig":
        """
        Builds a config from environment variables.

        Args:
            use_free_models (bool): Pick the *_FREE model variables and defaults.
            env (Optional[Mapping[str, str]]): Source mapping. Defaults to os.environ.
            dotenv (bool): Load a `.env` file first (only when reading os.environ).
        """
        if env is None:
            if dotenv:
                load_dotenv()
            env = os.environ

        def pick(*names: str, default: str = "") -> str:
            for name in names:
                value = env.get(name)
                if value:
                    return value
            return default

        if use_free_models:
            text_model = pick("OPENROUTER_MODEL_FREE", default=DEFAULT_TEXT_MODEL_FREE)
            image_model = pick("FAL_IMAGE_MODEL_FREE", default=DEFAULT_IMAGE_MODEL_FREE)
            video_model = pick("FAL_VIDEO_MODEL_FREE", default=DEFAULT_VIDEO_MODEL_FREE)
        else:
            text_model = pick("OPENROUTER_MODEL", default=DEFAULT_TEXT_MODEL)
            image_model = pick("FAL_IMAGE_MODEL", default=DEFAULT_IMAGE_MODEL)
            video_model = pick("FAL_VIDEO_MODEL", default=DEFAULT_VIDEO_MODEL)

        return cls(
            fal_key=pick("FAL_KEY", "FAL_API_KEY"),
            openrouter_key=pick("OPENROUTER_API_KEY", "OPENROUTER_KEY"),
            text_model=text_model,
            image_model=image_model,
            video_model=video_model,
            tts_model=pick("FAL_TTS_MODEL", default=DEFAULT_TTS_MODEL),
            stt_model=pick("FAL_STT_MODEL", default=DEFAULT_STT_MODEL),
            voice_id=pick("ELEVENLABS_VOICE_ID", default=DEFAULT_VOICE_ID),
            output_dir=Path(pick("STORYREEL_OUTPUT_DIR", default=DEFAULT_OUTPUT_DIR)),
            styles_file=Path(pick("STORYREEL_STYLES_FILE", default=DEFAULT_STYLES_FILE)),
            use_free_models=use_free_models,
        )

    def missing_keys(self) -> List[str]:
        missing = []
        if not self.fal_key: missing.append("FAL_KEY")
        if not self.openrouter_key: missing.append("OPENROUTER_API_KEY")
        return missing

    def validate(self) -> "PipelineConfig":
        missing = self.missing_keys()
        if missing:
            raise ConfigError(f"Missing required configuration: {', '.join(missing)}. Set them in the environment or a .env file.")
        if self.poll_max_attempts < 1:
            raise ConfigError("poll_max_attempts must be at least 1.")
        return self


def setup_logging(verbose: bool = False):
    """Configures root logging for the CLI and quiets chatty client libraries."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO, format=LOG_FORMAT,
                        handlers=[logging.StreamHandler(sys.stdout)])
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("fal_client").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)
