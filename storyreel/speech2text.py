# File: storyreel/speech2text.py
"""
Speech-to-Text Module using fal.ai (Whisper / ElevenLabs STT).

Providers return word timings in different shapes:
- ElevenLabs: {"text": ..., "words": [{"text", "start", "end"}, ...]}
- Whisper:    {"text": ..., "chunks": [{"text", "timestamp": [start, end]}, ...]}
              (older responses use "start"/"end" keys on each chunk)
- Text only:  {"text": ...}

`parse_response` tags a raw response as one of the variants below and
`normalize_transcript` turns any variant into a `Transcript`.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from .fal_queue import FalApiError, FalQueueClient
from .models import Transcript, WordTiming

logger = logging.getLogger(__name__)


class SpeechToTextError(Exception):
    """Custom exception for SpeechToText errors."""
    pass


@dataclass(frozen=True)
class WordsResponse:
    text: str
    words: List[Dict[str, Any]]
    language_code: Optional[str] = None


@dataclass(frozen=True)
class ChunksResponse:
    text: str
    chunks: List[Dict[str, Any]]
    language_code: Optional[str] = None


@dataclass(frozen=True)
class TextOnlyResponse:
    text: str
    language_code: Optional[str] = None


SpeechResponse = Union[WordsResponse, ChunksResponse, TextOnlyResponse]


def _language_of(raw: Dict[str, Any]) -> Optional[str]:
    if raw.get("language_code"):
        return raw["language_code"]
    inferred = raw.get("inferred_languages")
    if isinstance(inferred, list) and inferred:
        return inferred[0]
    return None


def parse_response(raw: Dict[str, Any]) -> SpeechResponse:
    text = raw.get("text") or ""
    language = _language_of(raw)
    if isinstance(raw.get("words"), list):
        return WordsResponse(text=text, words=raw["words"], language_code=language)
    if isinstance(raw.get("chunks"), list):
        return ChunksResponse(text=text, chunks=raw["chunks"], language_code=language)
    return TextOnlyResponse(text=text, language_code=language)


def _as_float(value: Any, default: float) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _chunk_bounds(chunk: Dict[str, Any]) -> tuple:
    timestamp = chunk.get("timestamp")
    if isinstance(timestamp, (list, tuple)) and len(timestamp) == 2:
        start = _as_float(timestamp[0], 0.0)
        return start, _as_float(timestamp[1], start)
    start = _as_float(chunk.get("start"), 0.0)
    return start, _as_float(chunk.get("end"), start)


def _raw_items(response: SpeechResponse) -> List[tuple]:
    if isinstance(response, WordsResponse):
        items = []
        for word in response.words:
            start = _as_float(word.get("start"), 0.0)
            items.append((word.get("text"), start, _as_float(word.get("end"), start)))
        return items
    if isinstance(response, ChunksResponse):
        return [(chunk.get("text"), *_chunk_bounds(chunk)) for chunk in response.chunks]
    return []


def normalize_transcript(response: SpeechResponse) -> Transcript:
    items = _raw_items(response)
    if not items and response.text:
        items = [(response.text, 0.0, 0.0)]

    segments = [WordTiming(text=str(text).strip(), start=start, end=end)
                for text, start, end in items if text is not None and str(text).strip()]
    segments.sort(key=lambda w: w.start)

    text = response.text or " ".join(w.text for w in segments)
    duration = max((w.end for w in segments), default=0.0)
    return Transcript(text=text, segments=segments, language_code=response.language_code or "unknown",
                      duration=duration)


def transcript_to_dict(transcript: Transcript) -> Dict[str, Any]:
    return {
        "languageCode": transcript.language_code,
        "text": transcript.text,
        "duration": transcript.duration,
        "words": [{"text": w.text, "start": w.start, "end": w.end} for w in transcript.segments],
    }


class SpeechToText:
    def __init__(self, queue: FalQueueClient, model_id: str, language_code: str = "en"):
        self.queue = queue
        self.model_id = model_id
        self.language_code = language_code
        logger.info(f"SpeechToText initialized. Model: {self.model_id}")

    def build_payload(self, audio_url: str) -> Dict[str, Any]:
        return {
            "audio_url": audio_url,
            "task": "transcribe",
            "language": self.language_code,
            "diarize": False,
            "chunk_level": "word",
            "version": "3",
            "batch_size": 64,
        }

    async def transcribe(self, audio_url: str) -> Transcript:
        try:
            raw = await self.queue.run(self.model_id, self.build_payload(audio_url), log_prefix="STT")
        except FalApiError as e:
            raise SpeechToTextError(f"Transcription failed: {e}") from e
        transcript = normalize_transcript(parse_response(raw))
        logger.info(f"Transcribed {len(transcript.segments)} words, {transcript.duration:.1f}s, "
                    f"language {transcript.language_code}")
        return transcript

    async def transcribe_to_file(self, audio_url: str, output_path: str | Path) -> Transcript:
        transcript = await self.transcribe(audio_url)
        with open(output_path, 'w', encoding='utf-8') as f:
            json.dump(transcript_to_dict(transcript), f, indent=2, ensure_ascii=False)
        logger.info(f"Transcript saved: {output_path}")
        return transcript
