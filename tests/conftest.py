"""Shared fixtures for StoryReel tests."""

from datetime import datetime, timezone
from pathlib import Path
from typing import List

import pytest

from storyreel.config import PipelineConfig
from storyreel.session import SessionManager


class SleepRecorder:
    """Stands in for asyncio.sleep and remembers every requested delay."""

    def __init__(self) -> None:
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def fake_sleep() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def config(tmp_path: Path) -> PipelineConfig:
    return PipelineConfig(
        fal_key="fal-test-key",
        openrouter_key="or-test-key",
        output_dir=tmp_path / "output",
        styles_file=tmp_path / "styles.json",
    )


@pytest.fixture
def fixed_clock():
    moment = datetime(2025, 1, 15, 10, 30, 45, tzinfo=timezone.utc)
    return lambda: moment


@pytest.fixture
def session(tmp_path: Path, fixed_clock) -> SessionManager:
    return SessionManager(tmp_path / "output", clock=fixed_clock)
