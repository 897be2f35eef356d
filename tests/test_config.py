"""Tests for configuration loading."""

from pathlib import Path

import pytest

from storyreel.config import (
    DEFAULT_TEXT_MODEL_FREE,
    DEFAULT_VIDEO_MODEL,
    DEFAULT_VIDEO_MODEL_FREE,
    ConfigError,
    PipelineConfig,
)


class TestPipelineConfig:
    def test_from_env_mapping(self) -> None:
        config = PipelineConfig.from_env(env={
            "FAL_KEY": "fal",
            "OPENROUTER_API_KEY": "or",
            "FAL_IMAGE_MODEL": "fal-ai/flux/dev",
            "STORYREEL_OUTPUT_DIR": "runs",
        })

        assert config.fal_key == "fal"
        assert config.openrouter_key == "or"
        assert config.image_model == "fal-ai/flux/dev"
        assert config.video_model == DEFAULT_VIDEO_MODEL
        assert config.output_dir == Path("runs")
        assert config.validate() is config

    def test_key_fallback_names(self) -> None:
        config = PipelineConfig.from_env(env={"FAL_API_KEY": "a", "OPENROUTER_KEY": "b"})
        assert (config.fal_key, config.openrouter_key) == ("a", "b")

    def test_free_models(self) -> None:
        config = PipelineConfig.from_env(use_free_models=True, env={})
        assert config.text_model == DEFAULT_TEXT_MODEL_FREE
        assert config.video_model == DEFAULT_VIDEO_MODEL_FREE
        assert config.use_free_models

    def test_validate_names_every_missing_key(self) -> None:
        with pytest.raises(ConfigError) as exc_info:
            PipelineConfig.from_env(env={}).validate()
        assert "FAL_KEY" in str(exc_info.value)
        assert "OPENROUTER_API_KEY" in str(exc_info.value)

    def test_validate_poll_attempts(self) -> None:
        config = PipelineConfig(fal_key="a", openrouter_key="b", poll_max_attempts=0)
        with pytest.raises(ConfigError):
            config.validate()
