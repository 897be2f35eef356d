# File: storyreel/cost.py
"""
Estimated cost tracking for a session.

Counts are purely additive; the breakdown is recomputed from the counts on every
call. Prices are ESTIMATES taken from provider pricing pages and may drift.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Optional

logger = logging.getLogger(__name__)

# Per-second video pricing is applied to clips of this length.
ASSUMED_VIDEO_SECONDS = 4
AUDIO_PRICING_KEY = "elevenlabs"


@dataclass(frozen=True)
class ModelPricing:
    per_image: Decimal = Decimal("0")
    per_video: Optional[Decimal] = None
    per_second: Optional[Decimal] = None
    per_character: Decimal = Decimal("0")


MODEL_PRICING: Dict[str, ModelPricing] = {
    # Video models
    "fal-ai/veo3": ModelPricing(per_second=Decimal("0.20")),
    "fal-ai/veo3/fast": ModelPricing(per_second=Decimal("0.25")),
    "fal-ai/veo3.1/fast/image-to-video": ModelPricing(per_second=Decimal("0.25")),
    "fal-ai/veo3/fast/image-to-video": ModelPricing(per_second=Decimal("0.25")),
    "fal-ai/bytedance/seedance/v1/lite/image-to-video": ModelPricing(per_video=Decimal("0.18")),
    "fal-ai/bytedance/seedance/v1/pro/image-to-video": ModelPricing(per_video=Decimal("0.74")),
    "fal-ai/pixverse/v5": ModelPricing(per_video=Decimal("0.15")),
    "fal-ai/luma-dream-machine/ray-2-flash/image-to-video": ModelPricing(per_video=Decimal("0.20")),
    "fal-ai/minimax/hailuo-2.3-fast/standard/image-to-video": ModelPricing(per_video=Decimal("0.19")),
    # Image models
    "fal-ai/flux/dev": ModelPricing(per_image=Decimal("0.025")),
    "fal-ai/flux/schnell": ModelPricing(per_image=Decimal("0.003")),
    "fal-ai/flux-pro": ModelPricing(per_image=Decimal("0.05")),
    "fal-ai/flux-lora": ModelPricing(per_image=Decimal("0.035")),
    # Audio
    AUDIO_PRICING_KEY: ModelPricing(per_character=Decimal("0.00003")),
}


@dataclass
class CostBreakdown:
    image_count: int
    image_model: str
    image_cost: Decimal
    video_count: int
    video_model: str
    video_cost: Decimal
    audio_characters: int
    audio_model: str
    audio_cost: Decimal
    text_cost: Decimal = Decimal("0")

    @property
    def total(self) -> Decimal:
        return self.image_cost + self.video_cost + self.audio_cost + self.text_cost


def _quantize(value: Decimal) -> Decimal:
    return value.quantize(Decimal("0.000001"), rounding=ROUND_HALF_UP)


class CostAccumulator:
    """Running tally of billable units for one session."""

    def __init__(self, video_model: str, image_model: str, audio_model: str = AUDIO_PRICING_KEY):
        self.video_model = video_model
        self.image_model = image_model
        self.audio_model = audio_model
        self.image_count = 0
        self.video_count = 0
        self.audio_characters = 0
        # LLM spend as reported by OpenRouter.
        self.text_cost = Decimal("0")
        for model in (video_model, image_model, audio_model):
            if model not in MODEL_PRICING:
                logger.warning(f"No pricing entry for model '{model}'. Its cost will be reported as $0.")

    def add_image(self, count: int = 1):
        if count < 0: raise ValueError("count must be non-negative")
        self.image_count += count

    def add_video(self, count: int = 1):
        if count < 0: raise ValueError("count must be non-negative")
        self.video_count += count

    def add_audio(self, characters: int):
        if characters < 0: raise ValueError("characters must be non-negative")
        self.audio_characters += characters

    def set_text_cost(self, amount: Decimal):
        """Replaces the LLM total with the engine's running figure."""
        if amount < 0: raise ValueError("amount must be non-negative")
        self.text_cost = Decimal(amount)

    def calculate(self) -> CostBreakdown:
        video_pricing = MODEL_PRICING.get(self.video_model, ModelPricing())
        image_pricing = MODEL_PRICING.get(self.image_model, ModelPricing())
        audio_pricing = MODEL_PRICING.get(self.audio_model, ModelPricing())

        if video_pricing.per_video is not None:
            video_cost = self.video_count * video_pricing.per_video
        elif video_pricing.per_second is not None:
            video_cost = self.video_count * ASSUMED_VIDEO_SECONDS * video_pricing.per_second
        else:
            video_cost = Decimal("0")

        return CostBreakdown(
            image_count=self.image_count,
            image_model=self.image_model,
            image_cost=_quantize(self.image_count * image_pricing.per_image),
            video_count=self.video_count,
            video_model=self.video_model,
            video_cost=_quantize(video_cost),
            audio_characters=self.audio_characters,
            audio_model=self.audio_model,
            audio_cost=_quantize(self.audio_characters * audio_pricing.per_character),
            text_cost=_quantize(self.text_cost),
        )

    def print_breakdown(self):
        breakdown = self.calculate()
        summary_width = 60
        print("\n" + "=" * summary_width)
        print("COST BREAKDOWN (estimated)")
        print("=" * summary_width)
        if breakdown.image_count:
            print(f"[Images] {breakdown.image_model}")
            print(f"  Count: {breakdown.image_count}  Cost: ${float(breakdown.image_cost):.4f}")
        if breakdown.video_count:
            print(f"[Videos] {breakdown.video_model}")
            print(f"  Count: {breakdown.video_count}  Cost: ${float(breakdown.video_cost):.4f}")
        if breakdown.audio_characters:
            print(f"[Narration] {breakdown.audio_model}")
            print(f"  Characters: {breakdown.audio_characters}  Cost: ${float(breakdown.audio_cost):.4f}")
        if breakdown.text_cost:
            print("[Story & prompts] OpenRouter")
            print(f"  Cost: ${float(breakdown.text_cost):.4f}")
        print("-" * summary_width)
        print(f"TOTAL: ${float(breakdown.total):.4f}")
        print("=" * summary_width + "\n")
