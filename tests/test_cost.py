"""Tests for cost accounting."""

from decimal import Decimal

import pytest

from storyreel.config import DEFAULT_IMAGE_MODEL_FREE, DEFAULT_VIDEO_MODEL_FREE
from storyreel.cost import CostAccumulator


class TestCostAccumulator:
    def test_per_second_video_pricing_uses_four_second_clips(self) -> None:
        acc = CostAccumulator(video_model="fal-ai/veo3.1/fast/image-to-video", image_model="fal-ai/flux/schnell")
        acc.add_video(3)

        breakdown = acc.calculate()

        assert breakdown.video_cost == Decimal("3.000000")

    def test_per_video_pricing(self) -> None:
        acc = CostAccumulator(video_model="fal-ai/bytedance/seedance/v1/lite/image-to-video",
                              image_model="fal-ai/flux/schnell")
        acc.add_video(2)

        assert acc.calculate().video_cost == Decimal("0.360000")

    def test_images_and_audio(self) -> None:
        acc = CostAccumulator(video_model="fal-ai/veo3", image_model="fal-ai/flux/schnell")
        acc.add_image()
        acc.add_image(4)
        acc.add_audio(1000)

        breakdown = acc.calculate()

        assert breakdown.image_count == 5
        assert breakdown.image_cost == Decimal("0.015000")
        assert breakdown.audio_cost == Decimal("0.030000")
        assert breakdown.total == Decimal("0.045000")

    def test_unknown_models_cost_zero(self, caplog) -> None:
        with caplog.at_level("WARNING"):
            acc = CostAccumulator(video_model="acme/video", image_model="acme/image")
        acc.add_image(10)
        acc.add_video(10)

        assert acc.calculate().total == Decimal("0")
        assert "acme/video" in caplog.text

    def test_default_free_models_are_priced(self, caplog) -> None:
        with caplog.at_level("WARNING"):
            acc = CostAccumulator(video_model=DEFAULT_VIDEO_MODEL_FREE, image_model=DEFAULT_IMAGE_MODEL_FREE)
        acc.add_image(2)

        assert "No pricing entry" not in caplog.text
        assert acc.calculate().image_cost == Decimal("0.070000")

    def test_text_cost_is_included_in_total(self, capsys) -> None:
        acc = CostAccumulator(video_model="fal-ai/veo3", image_model="fal-ai/flux/schnell")
        acc.add_image()
        acc.set_text_cost(Decimal("0.0012"))
        acc.set_text_cost(Decimal("0.0020"))

        breakdown = acc.calculate()

        assert breakdown.text_cost == Decimal("0.002000")
        assert breakdown.total == Decimal("0.005000")
        with pytest.raises(ValueError):
            acc.set_text_cost(Decimal("-1"))

        acc.print_breakdown()
        assert "[Story & prompts] OpenRouter" in capsys.readouterr().out

    def test_counts_only_grow(self) -> None:
        acc = CostAccumulator(video_model="fal-ai/veo3", image_model="fal-ai/flux/dev")
        acc.add_image(2)
        first = acc.calculate().total
        acc.add_image(0)
        assert acc.calculate().total == first

        with pytest.raises(ValueError):
            acc.add_image(-1)
        with pytest.raises(ValueError):
            acc.add_audio(-5)

    def test_print_breakdown(self, capsys) -> None:
        acc = CostAccumulator(video_model="fal-ai/veo3", image_model="fal-ai/flux/dev")
        acc.add_video(1)
        acc.print_breakdown()

        out = capsys.readouterr().out
        assert "COST BREAKDOWN" in out
        assert "TOTAL: $0.8000" in out
