# File: storyreel/styles.py
"""Style presets stored in a JSON file (newest custom style first, at most 20)."""

import json
import logging
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import List

MAX_STYLES = 20

logger = logging.getLogger(__name__)


@dataclass
class StylePreset:
    name: str
    prompt: str


DEFAULT_STYLES = [
    StylePreset("Cinematic realism", "photorealistic, cinematic lighting, dramatic composition, film grain, high quality, 4k"),
    StylePreset("Anime", "anime style, vibrant colors, Studio Ghibli aesthetic, cel shaded, detailed illustration"),
    StylePreset("Cyberpunk", "cyberpunk aesthetic, neon lights, futuristic cityscape, dark atmosphere, high contrast"),
    StylePreset("Oil painting", "oil painting, impressionist style, soft brushstrokes, artistic, painterly effect"),
    StylePreset("Minimalism", "minimalist, clean lines, pastel colors, simple composition, modern aesthetic"),
]


class StyleManager:
    def __init__(self, styles_file: str | Path = "styles.json"):
        self.styles_file = Path(styles_file)

    def load(self) -> List[StylePreset]:
        if not self.styles_file.exists():
            self.save(DEFAULT_STYLES)
            logger.info(f"Created {self.styles_file} with default styles")
        try:
            with open(self.styles_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            return [StylePreset(name=item["name"], prompt=item["prompt"]) for item in data]
        except (json.JSONDecodeError, KeyError, TypeError, OSError) as e:
            logger.error(f"Failed to load styles from {self.styles_file}: {e}. Using defaults.")
            return list(DEFAULT_STYLES)

    def save(self, styles: List[StylePreset]):
        with open(self.styles_file, 'w', encoding='utf-8') as f:
            json.dump([asdict(s) for s in styles], f, indent=2, ensure_ascii=False)

    def add_custom_style(self, name: str, prompt: str) -> List[StylePreset]:
        styles = [s for s in self.load() if s.name != name]
        styles.insert(0, StylePreset(name=name, prompt=prompt))
        styles = styles[:MAX_STYLES]
        self.save(styles)
        logger.info(f"Style '{name}' saved")
        return styles
