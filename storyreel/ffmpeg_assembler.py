# File: storyreel/ffmpeg_assembler.py
"""
FFmpeg Assembly Module

Local media post-processing for a finished run:
- `concatenate(video_paths, output_path)`: stream-copy concat through the
  concat demuxer (`-f concat -safe 0 -i list.txt -c copy`). The inputs are
  expected to share codec parameters, which holds for clips from one model.
- `mux_audio(video_path, audio_path, output_path)`: copies the video stream,
  encodes the narration to AAC and trims to the shorter input (`-shortest`).
- `probe_duration(path)`: container duration via ffprobe.

Requires FFmpeg and FFprobe on PATH.
"""

import asyncio
import logging
import shlex
import shutil
import time
from pathlib import Path
from typing import List, Optional, Sequence, Tuple

AUDIO_CODEC = "aac"
AUDIO_BITRATE = "192k"
CONCAT_LIST_FILENAME = "concat_list.txt"

logger = logging.getLogger(__name__)


class FFmpegAssemblyError(Exception):
    """Custom exception for FFmpeg assembly errors."""
    pass


def check_ffmpeg_available() -> List[str]:
    """Returns the names of missing tools (empty when both are on PATH)."""
    return [tool for tool in ("ffmpeg", "ffprobe") if shutil.which(tool) is None]


def _concat_list_line(path: Path) -> str:
    # Single quotes inside a path are escaped as '\'' for the concat demuxer.
    escaped = str(path.resolve()).replace("'", "'\\''")
    return f"file '{escaped}'"


class FFmpegAssembler:
    """Concatenation and audio muxing with FFmpeg."""

    def __init__(self, ffmpeg_bin: str = "ffmpeg", ffprobe_bin: str = "ffprobe"):
        self.ffmpeg_bin = ffmpeg_bin
        self.ffprobe_bin = ffprobe_bin

    async def _run_command_async(self, command: str, command_args: Sequence[str], log_prefix: str) -> Tuple[bool, str, str]:
        full_command_str = f"{command} {' '.join(shlex.quote(str(arg)) for arg in command_args)}"
        logger.debug(f"{log_prefix}: Executing: {full_command_str}")
        start_time = time.monotonic()

        try:
            process = await asyncio.create_subprocess_exec(
                command,
                *[str(arg) for arg in command_args],
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE
            )
        except FileNotFoundError as e:
            raise FFmpegAssemblyError(f"{log_prefix}: '{command}' not found on PATH.") from e

        stdout_bytes, stderr_bytes = await process.communicate()
        stdout = stdout_bytes.decode('utf-8', errors='replace').strip()
        stderr = stderr_bytes.decode('utf-8', errors='replace').strip()
        duration = time.monotonic() - start_time

        if process.returncode == 0:
            logger.debug(f"{log_prefix}: Command successful ({duration:.3f}s).")
            return True, stdout, stderr
        logger.error(f"{log_prefix}: Command failed with return code {process.returncode} ({duration:.3f}s).")
        if stderr: logger.error(f"{log_prefix}: Stderr (Failure):\n---\n{stderr[-2000:]}\n---")
        return False, stdout, stderr

    async def _run_ffmpeg_async(self, command_args: Sequence[str], log_prefix: str = "FFmpeg") -> Tuple[bool, str, str]:
        return await self._run_command_async(self.ffmpeg_bin, command_args, log_prefix)

    async def _run_ffprobe_async(self, command_args: Sequence[str], log_prefix: str = "FFprobe") -> Tuple[bool, str, str]:
        return await self._run_command_async(self.ffprobe_bin, command_args, log_prefix)

    async def concatenate(self, video_paths: Sequence[str | Path], output_path: str | Path) -> Path:
        if not video_paths:
            raise ValueError("concatenate() needs at least one input video.")
        output_path = Path(output_path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        inputs = [Path(p) for p in video_paths]
        missing = [str(p) for p in inputs if not p.is_file()]
        if missing:
            raise FFmpegAssemblyError(f"Input videos not found: {', '.join(missing)}")

        list_path = output_path.parent / CONCAT_LIST_FILENAME
        with open(list_path, 'w', encoding='utf-8') as f:
            f.write("\n".join(_concat_list_line(p) for p in inputs) + "\n")
        logger.info(f"Concatenating {len(inputs)} videos -> {output_path.name}")

        args = ["-y", "-f", "concat", "-safe", "0", "-i", str(list_path), "-c", "copy", str(output_path)]
        try:
            success, _, stderr = await self._run_ffmpeg_async(args, "FFmpegConcat")
        finally:
            list_path.unlink(missing_ok=True)
        if not success or not output_path.exists():
            raise FFmpegAssemblyError(f"Video concatenation failed: {stderr[-500:] if stderr else 'no output'}")
        logger.info(f"Videos concatenated: {output_path} ({output_path.stat().st_size / 1024 / 1024:.2f} MB)")
        return output_path

    async def mux_audio(self, video_path: str | Path, audio_path: str | Path, output_path: str | Path) -> Path:
        video_path, audio_path, output_path = Path(video_path), Path(audio_path), Path(output_path)
        for path in (video_path, audio_path):
            if not path.is_file():
                raise FFmpegAssemblyError(f"Input not found for muxing: {path}")
        output_path.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"Adding narration {audio_path.name} to {video_path.name}")

        args = [
            "-y",
            "-i", str(video_path),
            "-i", str(audio_path),
            "-map", "0:v:0", "-map", "1:a:0",
            "-c:v", "copy",
            "-c:a", AUDIO_CODEC, "-b:a", AUDIO_BITRATE,
            "-shortest",
            str(output_path),
        ]
        success, _, stderr = await self._run_ffmpeg_async(args, "FFmpegMux")
        if not success or not output_path.exists():
            raise FFmpegAssemblyError(f"Audio muxing failed: {stderr[-500:] if stderr else 'no output'}")
        logger.info(f"Final video: {output_path} ({output_path.stat().st_size / 1024 / 1024:.2f} MB)")
        return output_path

    async def probe_duration(self, path: str | Path) -> Optional[float]:
        """Container duration in seconds, or None when ffprobe can't tell."""
        args = ["-v", "error", "-show_entries", "format=duration", "-of", "default=nw=1:nk=1", str(Path(path).resolve())]
        success, stdout, _ = await self._run_ffprobe_async(args, f"FFprobe[{Path(path).name}]")
        if not success or not stdout:
            return None
        try:
            return float(stdout.splitlines()[0])
        except ValueError:
            logger.warning(f"Unexpected ffprobe duration output for {path}: {stdout[:100]}")
            return None
