# File: storyreel/text2speech.py
"""
Text-to-Speech Module using ElevenLabs on fal.ai.

Synthesizes the narration for the whole story in one request and saves it to
the session's audio path.
"""

import logging
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Awaitable, Callable

from .duration import estimate_speech_seconds
from .fal_queue import FalApiError, FalQueueClient
from .media_io import MediaIOError, download_file

ELEVENLABS_MODEL_ID = "eleven_multilingual_v2"
VOICE_SETTINGS = {
    "stability": 0.5,
    "similarity_boost": 0.75,
    "style": 0.5,
    "use_speaker_boost": True,
}

logger = logging.getLogger(__name__)


class TextToSpeechError(Exception):
    """Custom exception for TextToSpeech errors."""
    pass


@dataclass
class SpeechResult:
    audio_path: Path
    audio_url: str
    estimated_duration: float
    characters: int


class TextToSpeech:
    def __init__(self, queue: FalQueueClient, model_id: str, voice_id: str,
                 downloader: Callable[[str, Path], Awaitable[Path]] = download_file):
        self.queue = queue
        self.model_id = model_id
        self.voice_id = voice_id
        self._download = downloader
        logger.info(f"TextToSpeech initialized. Model: {self.model_id}, Voice: {self.voice_id}")

    def set_voice(self, voice_id: str):
        self.voice_id = voice_id

    async def generate_speech(self, text: str, output_path: str | Path) -> SpeechResult:
        if not text or not text.strip():
            raise TextToSpeechError("Invalid parameter: narration text is empty.")
        output_path = Path(output_path)
        payload = {
            "text": text,
            "voice": self.voice_id,
            "model_id": ELEVENLABS_MODEL_ID,
            "voice_settings": dict(VOICE_SETTINGS),
        }
        start_time = time.monotonic()
        logger.info(f"Synthesizing narration ({len(text)} characters, voice {self.voice_id})")
        try:
            result = await self.queue.run(self.model_id, payload, log_prefix="TTS")
        except FalApiError as e:
            raise TextToSpeechError(f"Speech synthesis failed: {e}") from e

        audio = result.get("audio") or {}
        audio_url = audio.get("url") if isinstance(audio, dict) else None
        if not audio_url:
            raise TextToSpeechError(f"No audio URL in result: {str(result)[:200]}")
        try:
            await self._download(audio_url, output_path)
        except MediaIOError as e:
            raise TextToSpeechError(f"Failed to save narration: {e}") from e

        estimated = estimate_speech_seconds(text)
        logger.info(f"Narration saved to {output_path} (~{estimated:.1f}s estimated, {time.monotonic() - start_time:.1f}s)")
        return SpeechResult(audio_path=output_path, audio_url=audio_url, estimated_duration=estimated,
                            characters=len(text))
