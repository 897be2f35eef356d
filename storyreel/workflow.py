# File: storyreel/workflow.py
"""
Video Generation Workflow (orchestrator)

Pipeline for one run:

    prompts -> [ segments (image -> video -> download) x N  ||  narration ] -> concat -> mux -> manifest

- Prompt generation: retried 3x (2000 ms, x2). Fatal on failure.
- Segments: one task per prompt, all launched together with no concurrency cap.
  Each worker retries its image->video->download chain 3x (3000 ms, x2) and
  always returns its own GenerationResult; failures never cancel siblings.
  Results are sorted by index after the join. Zero successes is fatal;
  otherwise failed segments are skipped and the rest keep their order.
- Narration: runs concurrently with the segment stage, retried 3x (3000 ms, x2).
  Fatal on failure.
- Concat and mux: fatal on failure, not retried.

Artifacts are left on disk in the session folder whatever the outcome.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Awaitable, Callable, Dict, List, Optional

from .config import PipelineConfig
from .cost import CostAccumulator
from .fal_queue import FalQueueClient
from .ffmpeg_assembler import FFmpegAssembler
from .image2video import ImageToVideo
from .media_io import download_file, upload_reference_image
from .models import GenerationResult, Segment, SEGMENT_DURATION_SECONDS
from .openrouter_engine import OpenRouterEngine
from .prompt2image import PromptToImage
from .retry import logged_retry_options, retry_async
from .session import SessionManager
from .speech2text import SpeechToText
from .storyboard import Storyboard
from .text2speech import SpeechResult, TextToSpeech

PROMPT_RETRY = dict(max_attempts=3, initial_delay_ms=2000, backoff_multiplier=2)
SEGMENT_RETRY = dict(max_attempts=3, initial_delay_ms=3000, backoff_multiplier=2)
AUDIO_RETRY = dict(max_attempts=3, initial_delay_ms=3000, backoff_multiplier=2)

TRANSCRIPT_FILENAME = "transcript.json"

ProgressCallback = Callable[[int, int], None]

logger = logging.getLogger(__name__)


class WorkflowError(Exception):
    """Fatal error for a run. `stage` names the pipeline stage that failed."""
    def __init__(self, stage: str, message: str):
        super().__init__(f"[{stage}] {message}")
        self.stage = stage


@dataclass
class RunSummary:
    prompts: List[str] = field(default_factory=list)
    results: List[GenerationResult] = field(default_factory=list)
    stage_times: Dict[str, float] = field(default_factory=dict)
    final_video: Optional[Path] = None
    narration_duration: Optional[float] = None

    @property
    def successful(self) -> List[GenerationResult]:
        return [r for r in self.results if r.success and r.path]

    @property
    def failed(self) -> List[GenerationResult]:
        return [r for r in self.results if not r.success]


def successful_video_paths(results: List[GenerationResult]) -> List[Path]:
    """Paths of successful segments in ascending index order."""
    return [r.path for r in sorted(results, key=lambda r: r.index) if r.success and r.path]


class VideoGenerationWorkflow:
    """
    Orchestrates story text -> final narrated video. Collaborators are built from
    `config` unless injected.
    """

    def __init__(self, config: PipelineConfig,
                 session: Optional[SessionManager] = None,
                 storyboard: Optional[Storyboard] = None,
                 engine: Optional[OpenRouterEngine] = None,
                 image_client: Optional[PromptToImage] = None,
                 video_client: Optional[ImageToVideo] = None,
                 tts_client: Optional[TextToSpeech] = None,
                 stt_client: Optional[SpeechToText] = None,
                 assembler: Optional[FFmpegAssembler] = None,
                 cost: Optional[CostAccumulator] = None,
                 uploader: Optional[Callable[[str], Awaitable[str]]] = None,
                 downloader: Callable[[str, Path], Awaitable[Path]] = download_file,
                 sleep: Callable[[float], Awaitable[None]] = asyncio.sleep):
        self.config = config
        self._owned_queue: Optional[FalQueueClient] = None
        self._owned_engine: Optional[OpenRouterEngine] = None

        if any(client is None for client in (image_client, video_client, tts_client, stt_client)):
            self._owned_queue = FalQueueClient(config)
        if storyboard is None:
            self._owned_engine = OpenRouterEngine(config)

        queue = self._owned_queue
        self.storyboard = storyboard or Storyboard(self._owned_engine)
        self.engine = engine or self._owned_engine
        self.image_client = image_client or PromptToImage(queue, config.image_model)
        self.video_client = video_client or ImageToVideo(queue, config.video_model)
        self.tts_client = tts_client or TextToSpeech(queue, config.tts_model, config.voice_id)
        self.stt_client = stt_client or SpeechToText(queue, config.stt_model)
        self.assembler = assembler or FFmpegAssembler()
        self.cost = cost or CostAccumulator(video_model=config.video_model, image_model=config.image_model)
        self.session = session or SessionManager(config.output_dir)
        self._upload = uploader or (lambda ref: upload_reference_image(ref, config.fal_key))
        self._download = downloader
        self._sleep = sleep

        self.segments: List[Segment] = []
        self.summary = RunSummary()

    async def close(self):
        if self._owned_queue: await self._owned_queue.close()
        if self._owned_engine: await self._owned_engine.close()

    # --- Stage: prompts ---

    async def generate_video_prompts(self, story_text: str, duration: int) -> List[str]:
        if duration <= 0:
            raise ValueError(f"Invalid parameter: duration must be positive, got {duration}.")
        options = logged_retry_options("Prompt generation", log=logger, **PROMPT_RETRY)
        return await retry_async(lambda: self.storyboard.generate_video_prompts(story_text, duration),
                                 options, sleep=self._sleep)

    # --- Stage: segments ---

    async def prepare_reference_image(self, reference_image: Optional[str]) -> Optional[str]:
        """Uploads the reference image once. An upload failure only drops the reference."""
        if not reference_image:
            return None
        try:
            url = await self._upload(reference_image)
            logger.info("Reference image ready to use")
            return url
        except Exception as e:
            logger.warning(f"Reference image upload failed ({e}). Continuing without reference image.")
            return None

    async def _generate_segment(self, segment: Segment, total: int, aspect_ratio: str,
                                style: Optional[str], reference_url: Optional[str]) -> GenerationResult:
        label = f"Segment {segment.number}/{total}"
        images_generated = 0
        videos_generated = 0

        async def _attempt() -> Path:
            nonlocal images_generated, videos_generated
            image_path = self.session.image_path(segment.number)
            image_url = await self.image_client.generate_image(segment.prompt, image_path, aspect_ratio,
                                                               reference_url, style)
            images_generated += 1
            segment.image_path, segment.image_url = image_path, image_url

            video_url = await self.video_client.generate_video(segment.prompt, image_url, f"{segment.duration}s",
                                                               aspect_ratio, log_prefix=label)
            videos_generated += 1
            video_path = self.session.video_path(segment.number)
            await self._download(video_url, video_path)
            return video_path

        segment.is_generating = True
        start_time = time.monotonic()
        logger.info(f"{label}: starting - {segment.prompt[:80]}...")
        try:
            video_path = await retry_async(_attempt, logged_retry_options(label, log=logger, **SEGMENT_RETRY),
                                           sleep=self._sleep)
        except Exception as e:
            segment.error = str(e)
            logger.error(f"{label} FAILED after all attempts: {e}")
            logger.error(f"{label} prompt: {segment.prompt}")
            return GenerationResult(index=segment.index, path=None, success=False, error=str(e),
                                    prompt=segment.prompt, images_generated=images_generated,
                                    videos_generated=videos_generated)
        finally:
            segment.is_generating = False

        segment.video_path = video_path
        segment.error = None
        logger.info(f"{label}: saved {video_path.name} ({time.monotonic() - start_time:.1f}s)")
        return GenerationResult(index=segment.index, path=video_path, success=True, prompt=segment.prompt,
                                images_generated=images_generated, videos_generated=videos_generated)

    async def generate_segments(self, prompts: List[str], aspect_ratio: str = "9:16",
                                reference_image: Optional[str] = None, style: Optional[str] = None,
                                on_progress: Optional[ProgressCallback] = None) -> List[GenerationResult]:
        """Runs every segment concurrently and returns one result per prompt, sorted by index."""
        reference_url = await self.prepare_reference_image(reference_image)
        self.segments = [Segment(index=i, prompt=p, duration=SEGMENT_DURATION_SECONDS) for i, p in enumerate(prompts)]
        total = len(self.segments)
        logger.info(f"Launching {total} segment pipelines in parallel"
                    f"{f' (style: {style})' if style else ''}")

        tasks = [asyncio.create_task(self._generate_segment(s, total, aspect_ratio, style, reference_url),
                                     name=f"segment-{s.number}") for s in self.segments]
        results: List[GenerationResult] = []
        completed = 0
        for next_done in asyncio.as_completed(tasks):
            result = await next_done
            results.append(result)
            self.cost.add_image(result.images_generated)
            self.cost.add_video(result.videos_generated)
            if result.success:
                completed += 1
                if on_progress: on_progress(completed, total)

        results.sort(key=lambda r: r.index)
        return results

    def report_segment_results(self, results: List[GenerationResult], elapsed: float):
        failed = [r for r in results if not r.success]
        summary_width = 60
        print("\n" + "=" * summary_width)
        print("VIDEO GENERATION RESULTS")
        print("=" * summary_width)
        print(f"Successful: {len(results) - len(failed)}/{len(results)} videos")
        if failed:
            print(f"Failed: {len(failed)}/{len(results)} videos\n")
            print("Problematic prompts:")
            for r in failed:
                print(f"  {r.index + 1}. {(r.prompt or '')[:60]}...")
                print(f"     Error: {r.error}\n")
        print(f"Total time: {elapsed:.1f}s")
        print("=" * summary_width + "\n")

    async def generate_videos(self, prompts: List[str], aspect_ratio: str = "9:16",
                              reference_image: Optional[str] = None, style: Optional[str] = None,
                              on_progress: Optional[ProgressCallback] = None) -> List[Path]:
        """Segment stage with the partial-success floor applied."""
        start_time = time.monotonic()
        results = await self.generate_segments(prompts, aspect_ratio, reference_image, style, on_progress)
        self.summary.results = results
        self.report_segment_results(results, time.monotonic() - start_time)

        video_paths = successful_video_paths(results)
        if not video_paths:
            raise WorkflowError("segments", "Failed to generate any videos. Check prompts and API settings.")
        if len(video_paths) < len(results):
            logger.warning(f"Continuing with {len(video_paths)} of {len(results)} videos")
        return video_paths

    # --- Stage: narration ---

    async def generate_audio(self, text: str, voice_id: Optional[str] = None) -> SpeechResult:
        if voice_id:
            self.tts_client.set_voice(voice_id)
        options = logged_retry_options("Narration", log=logger, **AUDIO_RETRY)
        return await retry_async(lambda: self.tts_client.generate_speech(text, self.session.audio_path()),
                                 options, sleep=self._sleep)

    async def transcribe_narration(self, speech: SpeechResult) -> Optional[float]:
        """Optional check of the real narration length. Failures are logged, not raised."""
        try:
            transcript = await self.stt_client.transcribe_to_file(speech.audio_url,
                                                                  self.session.audio_dir / TRANSCRIPT_FILENAME)
        except Exception as e:
            logger.warning(f"Narration transcription skipped: {e}")
            return None
        return transcript.duration

    # --- Stage: post-processing ---

    async def merge_videos(self, video_paths: List[Path]) -> Path:
        return await self.assembler.concatenate(video_paths, self.session.merged_video_path())

    async def add_audio_to_video(self, video_path: Path, audio_path: Path) -> Path:
        return await self.assembler.mux_audio(video_path, audio_path, self.session.final_video_path())

    # --- Full run ---

    async def _timed(self, stage: str, coro):
        start_time = time.monotonic()
        try:
            return await coro
        finally:
            self.summary.stage_times[stage] = time.monotonic() - start_time

    async def run(self, story_text: str, duration: int, description: str = "", aspect_ratio: str = "9:16",
                  reference_image: Optional[str] = None, style: Optional[str] = None,
                  voice_id: Optional[str] = None, transcribe: bool = False,
                  on_progress: Optional[ProgressCallback] = None) -> Path:
        """Runs the whole pipeline and returns the final video path. Raises WorkflowError on fatal failures."""
        run_start = time.monotonic()

        try:
            prompts = await self._timed("prompts", self.generate_video_prompts(story_text, duration))
        except Exception as e:
            raise WorkflowError("prompts", f"Prompt generation failed: {e}") from e
        self.summary.prompts = prompts
        logger.info(f"Created {len(prompts)} prompts")

        videos_task = asyncio.create_task(
            self._timed("segments", self.generate_videos(prompts, aspect_ratio, reference_image, style, on_progress)),
            name="segments")
        audio_task = asyncio.create_task(self._timed("narration", self.generate_audio(story_text, voice_id)),
                                         name="narration")
        videos_outcome, audio_outcome = await asyncio.gather(videos_task, audio_task, return_exceptions=True)

        if isinstance(videos_outcome, WorkflowError):
            raise videos_outcome
        if isinstance(videos_outcome, Exception):
            raise WorkflowError("segments", f"Segment generation failed: {videos_outcome}") from videos_outcome
        if isinstance(audio_outcome, Exception):
            raise WorkflowError("narration", f"Narration generation failed: {audio_outcome}") from audio_outcome
        video_paths: List[Path] = videos_outcome
        speech: SpeechResult = audio_outcome
        self.cost.add_audio(speech.characters)

        if transcribe:
            self.summary.narration_duration = await self._timed("transcript", self.transcribe_narration(speech))

        try:
            merged_path = await self._timed("concat", self.merge_videos(video_paths))
        except Exception as e:
            raise WorkflowError("concat", f"Video merging failed: {e}") from e
        try:
            final_path = await self._timed("mux", self.add_audio_to_video(merged_path, speech.audio_path))
        except Exception as e:
            raise WorkflowError("mux", f"Adding narration failed: {e}") from e

        self.summary.final_video = final_path
        self.summary.stage_times["total"] = time.monotonic() - run_start
        self.sync_text_cost()
        breakdown = self.cost.calculate()
        manifest = {
            "description": description,
            "storyText": story_text,
            "prompts": prompts,
            "videoCount": len(video_paths),
            "finalVideo": str(final_path),
            "duration": duration,
            "aspectRatio": aspect_ratio,
            "style": style or None,
            "voiceId": self.tts_client.voice_id,
            "failedSegments": [r.index + 1 for r in self.summary.failed],
            "estimatedCost": str(breakdown.total),
        }
        if self.summary.narration_duration is not None:
            manifest["narrationDuration"] = self.summary.narration_duration
        self.session.save_manifest(manifest)
        return final_path

    def log_run_summary(self):
        summary = self.summary
        summary_width = 60
        print("\n" + "=" * ((summary_width - 13) // 2) + " Run Summary " + "=" * ((summary_width - 12) // 2))
        print(f"Session: {self.session.session_id}")
        if "total" in summary.stage_times:
            print(f"Total Processing Time: {summary.stage_times['total']:.1f}s")
        for stage in ("prompts", "segments", "narration", "transcript", "concat", "mux"):
            if stage in summary.stage_times:
                print(f"  {stage:<10} {summary.stage_times[stage]:.1f}s")
        print("-" * summary_width)
        print(f"Prompts: {len(summary.prompts)}  Segments OK / Failed: {len(summary.successful)} / {len(summary.failed)}")
        if summary.narration_duration is not None:
            print(f"Narration length (transcribed): {summary.narration_duration:.1f}s")
        if summary.final_video:
            print(f"Final Output: {summary.final_video}")
        print("=" * summary_width + "\n")
        self.sync_text_cost()
        self.cost.print_breakdown()

    def sync_text_cost(self):
        """Copies the engine's LLM spend (story variants included) into the cost tally."""
        if self.engine is not None:
            self.cost.set_text_cost(self.engine.get_total_cost())
