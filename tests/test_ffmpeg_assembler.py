"""Tests for the FFmpeg post-processor. Subprocess execution is patched."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from storyreel.ffmpeg_assembler import FFmpegAssembler, FFmpegAssemblyError, check_ffmpeg_available


def _process(returncode: int = 0, stdout: bytes = b"", stderr: bytes = b"") -> MagicMock:
    process = MagicMock()
    process.returncode = returncode
    process.communicate = AsyncMock(return_value=(stdout, stderr))
    return process


def _clips(tmp_path: Path, count: int):
    paths = []
    for i in range(1, count + 1):
        path = tmp_path / f"video_{i}.mp4"
        path.write_bytes(b"clip")
        paths.append(path)
    return paths


class TestConcatenate:
    @pytest.mark.asyncio
    async def test_stream_copy_concat(self, tmp_path: Path) -> None:
        clips = _clips(tmp_path, 3)
        output = tmp_path / "result" / "merged_video.mp4"
        list_contents = {}

        async def fake_exec(*cmd, **kwargs):
            list_path = Path(cmd[cmd.index("-i") + 1])
            list_contents["text"] = list_path.read_text(encoding="utf-8")
            Path(cmd[-1]).write_bytes(b"merged")
            list_contents["cmd"] = cmd
            return _process()

        with patch("storyreel.ffmpeg_assembler.asyncio.create_subprocess_exec", side_effect=fake_exec):
            result = await FFmpegAssembler().concatenate(clips, output)

        assert result == output
        cmd = list_contents["cmd"]
        assert cmd[0] == "ffmpeg"
        assert cmd[cmd.index("-f") + 1] == "concat"
        assert cmd[cmd.index("-safe") + 1] == "0"
        assert cmd[cmd.index("-c") + 1] == "copy"
        lines = list_contents["text"].strip().splitlines()
        assert lines == [f"file '{p.resolve()}'" for p in clips]
        assert not (output.parent / "concat_list.txt").exists()

    @pytest.mark.asyncio
    async def test_empty_input_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(ValueError):
            await FFmpegAssembler().concatenate([], tmp_path / "out.mp4")

    @pytest.mark.asyncio
    async def test_missing_input_rejected(self, tmp_path: Path) -> None:
        with pytest.raises(FFmpegAssemblyError, match="not found"):
            await FFmpegAssembler().concatenate([tmp_path / "ghost.mp4"], tmp_path / "out.mp4")

    @pytest.mark.asyncio
    async def test_ffmpeg_failure_raises(self, tmp_path: Path) -> None:
        clips = _clips(tmp_path, 2)
        failing = AsyncMock(return_value=_process(returncode=1, stderr=b"Invalid data found"))
        with patch("storyreel.ffmpeg_assembler.asyncio.create_subprocess_exec", failing):
            with pytest.raises(FFmpegAssemblyError, match="Invalid data found"):
                await FFmpegAssembler().concatenate(clips, tmp_path / "out.mp4")
        assert not (tmp_path / "concat_list.txt").exists()

    @pytest.mark.asyncio
    async def test_ffmpeg_not_installed(self, tmp_path: Path) -> None:
        clips = _clips(tmp_path, 1)
        with patch("storyreel.ffmpeg_assembler.asyncio.create_subprocess_exec",
                   AsyncMock(side_effect=FileNotFoundError("ffmpeg"))):
            with pytest.raises(FFmpegAssemblyError, match="not found on PATH"):
                await FFmpegAssembler().concatenate(clips, tmp_path / "out.mp4")


class TestMuxAudio:
    @pytest.mark.asyncio
    async def test_mux_arguments(self, tmp_path: Path) -> None:
        video = _clips(tmp_path, 1)[0]
        audio = tmp_path / "narration.mp3"
        audio.write_bytes(b"audio")
        output = tmp_path / "final_video.mp4"
        captured = {}

        async def fake_exec(*cmd, **kwargs):
            captured["cmd"] = cmd
            output.write_bytes(b"final")
            return _process()

        with patch("storyreel.ffmpeg_assembler.asyncio.create_subprocess_exec", side_effect=fake_exec):
            result = await FFmpegAssembler().mux_audio(video, audio, output)

        cmd = list(captured["cmd"])
        assert result == output
        assert cmd[cmd.index("-c:v") + 1] == "copy"
        assert cmd[cmd.index("-c:a") + 1] == "aac"
        assert cmd[cmd.index("-b:a") + 1] == "192k"
        assert "-shortest" in cmd
        assert ["-map", "0:v:0", "-map", "1:a:0"] == cmd[cmd.index("-map"):cmd.index("-map") + 4]

    @pytest.mark.asyncio
    async def test_missing_audio(self, tmp_path: Path) -> None:
        video = _clips(tmp_path, 1)[0]
        with pytest.raises(FFmpegAssemblyError, match="Input not found"):
            await FFmpegAssembler().mux_audio(video, tmp_path / "none.mp3", tmp_path / "final.mp4")


class TestProbe:
    @pytest.mark.asyncio
    async def test_probe_duration(self, tmp_path: Path) -> None:
        with patch("storyreel.ffmpeg_assembler.asyncio.create_subprocess_exec",
                   AsyncMock(return_value=_process(stdout=b"12.480000\n"))):
            assert await FFmpegAssembler().probe_duration(tmp_path / "v.mp4") == pytest.approx(12.48)

    @pytest.mark.asyncio
    async def test_probe_failure_returns_none(self, tmp_path: Path) -> None:
        with patch("storyreel.ffmpeg_assembler.asyncio.create_subprocess_exec",
                   AsyncMock(return_value=_process(returncode=1, stderr=b"No such file"))):
            assert await FFmpegAssembler().probe_duration(tmp_path / "v.mp4") is None


def test_check_ffmpeg_available() -> None:
    with patch("storyreel.ffmpeg_assembler.shutil.which", side_effect=lambda tool: None if tool == "ffprobe" else "/usr/bin/ffmpeg"):
        assert check_ffmpeg_available() == ["ffprobe"]
