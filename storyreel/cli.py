# File: storyreel/cli.py
"""
StoryReel command line entry point.

Either fully argument driven (`-y`) or a step-by-step terminal wizard:
description -> duration -> aspect ratio -> story variant -> reference image
-> style -> voice -> generate.

Exit codes: 0 on success, 1 on any failed check or pipeline error, 130 when
interrupted.
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from .config import ConfigError, PipelineConfig, setup_logging
from .duration import DEFAULT_DURATION_SECONDS, DURATION_CHOICES, plan_duration
from .ffmpeg_assembler import check_ffmpeg_available
from .media_io import MediaIOError, detect_aspect_ratio, is_url, validate_local_image
from .models import ASPECT_RATIOS
from .openrouter_engine import OpenRouterError
from .storyboard import Storyboard, StoryboardError
from .styles import StyleManager
from .workflow import VideoGenerationWorkflow, WorkflowError

VOICE_PRESETS: List[Tuple[str, str]] = [
    ("Josh (male, deep)", "3EuKHIEZbSzrHGNmdYsx"),
    ("Rachel (female, calm)", "TUQNWEvVPBLzMBSVDPUA"),
    ("Clyde (male, mid)", "Aa6nEBJJMKJwJkCx8VU2"),
]
ASPECT_LABELS = {"9:16": "9:16 (vertical - TikTok/Reels)", "16:9": "16:9 (horizontal - YouTube)"}
CUSTOM_STYLE_NAME_LENGTH = 30

logger = logging.getLogger("storyreel")

InputFn = Callable[[str], str]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="storyreel",
                                     description="StoryReel: short description to narrated short video.",
                                     formatter_class=argparse.ArgumentDefaultsHelpFormatter)
    parser.add_argument("description", nargs="?", default=None,
                        help="What the video is about. Prompted for when omitted.")
    parser.add_argument("--duration", type=int, choices=DURATION_CHOICES, default=None,
                        help=f"Target video length in seconds (defaults to {DEFAULT_DURATION_SECONDS}).")
    parser.add_argument("--aspect-ratio", choices=ASPECT_RATIOS, default=None,
                        help="Output aspect ratio (defaults to 9:16).")
    parser.add_argument("--reference-image", default=None, help="Local image path or URL used to condition every segment.")
    parser.add_argument("--style", default=None, help="Style preset name, or free-form style text.")
    parser.add_argument("--voice", default=None, help="ElevenLabs voice ID for the narration.")
    parser.add_argument("--story-file", type=Path, default=None, help="Use this narration text instead of generating variants.")
    parser.add_argument("--transcribe", action="store_true", help="Transcribe the narration and record its real length.")
    parser.add_argument("--free", action="store_true", help="Use the free model variants.")
    parser.add_argument("--output-dir", type=Path, default=None, help="Base folder for session output.")
    parser.add_argument("-y", "--yes", action="store_true", help="Non-interactive: take defaults and the first story variant.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable DEBUG logging.")
    parser.add_argument("--check", action="store_true", help="Only run the dependency and API key checks.")
    return parser


def run_checks(config: PipelineConfig) -> bool:
    """Pre-run checks: external tools on PATH and API keys present."""
    logger.info("--- Running Pre-run Checks ---")
    checks_passed = True
    missing_tools = check_ffmpeg_available()
    if missing_tools:
        logger.error(f"Error: {', '.join(missing_tools)} not found in system PATH. Install FFmpeg and make sure it is on PATH.")
        checks_passed = False
    else:
        logger.info("Info: ffmpeg and ffprobe found.")
    for key in config.missing_keys():
        logger.error(f"Error: `{key}` missing. Set it in the environment or a .env file.")
        checks_passed = False
    if checks_passed:
        logger.info("--- Pre-run checks passed ---")
    else:
        logger.critical("--- Pre-run checks failed. Please resolve the errors above before running again. ---")
    return checks_passed


# --- Terminal prompts ---

def ask(question: str, default: Optional[str] = None, input_fn: InputFn = input) -> str:
    suffix = f" [{default}]" if default else ""
    answer = input_fn(f"{question}{suffix}: ").strip()
    return answer or (default or "")


def choose(title: str, options: Sequence[str], default_index: int = 0, input_fn: InputFn = input) -> int:
    """Numbered menu. Returns the 0-based index of the chosen option."""
    print(f"\n{title}")
    for i, option in enumerate(options, start=1):
        print(f"  {i}. {option}")
    while True:
        answer = input_fn(f"Choose 1-{len(options)} [{default_index + 1}]: ").strip()
        if not answer:
            return default_index
        if answer.isdigit() and 1 <= int(answer) <= len(options):
            return int(answer) - 1
        print("Invalid choice, try again.")


# --- Wizard steps ---

def resolve_duration(args, input_fn: InputFn = input) -> int:
    if args.duration is not None or args.yes:
        return args.duration or DEFAULT_DURATION_SECONDS
    labels = [plan_duration(d).describe() for d in DURATION_CHOICES]
    return DURATION_CHOICES[choose("Video duration:", labels, DURATION_CHOICES.index(DEFAULT_DURATION_SECONDS), input_fn)]


def resolve_aspect_ratio(args, input_fn: InputFn = input) -> str:
    if args.aspect_ratio or args.yes:
        return args.aspect_ratio or "9:16"
    ratios = ["9:16", "16:9"]
    return ratios[choose("Aspect ratio:", [ASPECT_LABELS[r] for r in ratios], 0, input_fn)]


def _print_variants(variants: List[str]):
    for i, text in enumerate(variants, start=1):
        print("\n" + "-" * 60)
        print(f"Variant {i}:")
        print(text)
    print("-" * 60)


async def choose_story(storyboard: Storyboard, description: str, duration: int, assume_yes: bool = False,
                       input_fn: InputFn = input) -> str:
    """Generates the story variants and lets the user pick, regenerate or modify one."""
    variants = [v.text for v in await storyboard.generate_story_variants(description, duration)]
    if assume_yes:
        return variants[0]

    while True:
        _print_variants(variants)
        options = [f"Use variant {i}" for i in range(1, len(variants) + 1)]
        options += ["Regenerate a variant", "Modify a variant", "Write my own text"]
        choice = choose("Story:", options, 0, input_fn)

        if choice < len(variants):
            return variants[choice]
        action = options[choice]
        if action == "Write my own text":
            text = ask("Story text", input_fn=input_fn)
            if text:
                return text
            continue

        target = choose("Which variant?", [f"Variant {i}" for i in range(1, len(variants) + 1)], 0, input_fn)
        if action == "Regenerate a variant":
            variants[target] = await storyboard.regenerate_variant(description, duration)
        else:
            modification = ask("What should change", input_fn=input_fn)
            if modification:
                variants[target] = await storyboard.modify_variant(variants[target], modification, duration)


def resolve_reference_image(args, aspect_ratio: str, input_fn: InputFn = input) -> Optional[str]:
    reference = args.reference_image
    if reference is None and not args.yes:
        reference = ask("Reference image path or URL (empty to skip)", input_fn=input_fn) or None
    if not reference or is_url(reference):
        return reference

    validate_local_image(reference)
    suggested = detect_aspect_ratio(reference)
    if suggested and suggested != aspect_ratio:
        logger.warning(f"Reference image looks {suggested} but the video is {aspect_ratio}.")
    return reference


def resolve_style(args, style_manager: StyleManager, input_fn: InputFn = input) -> Optional[str]:
    """Returns the style prompt text, or None for no style."""
    styles = style_manager.load()
    if args.style:
        for preset in styles:
            if preset.name.lower() == args.style.lower():
                return preset.prompt
        style_manager.add_custom_style(args.style[:CUSTOM_STYLE_NAME_LENGTH], args.style)
        return args.style
    if args.yes:
        return None

    options = ["No style"] + [f"{s.name} - {s.prompt}" for s in styles] + ["Custom style"]
    choice = choose("Visual style:", options, 0, input_fn)
    if choice == 0:
        return None
    if choice <= len(styles):
        return styles[choice - 1].prompt
    prompt = ask("Style description", input_fn=input_fn)
    if not prompt:
        return None
    name = ask("Name for this style", default=prompt[:CUSTOM_STYLE_NAME_LENGTH], input_fn=input_fn)
    style_manager.add_custom_style(name, prompt)
    return prompt


def resolve_voice(args, config: PipelineConfig, input_fn: InputFn = input) -> str:
    if args.voice or args.yes:
        return args.voice or config.voice_id
    options = [f"{label} ({voice_id})" for label, voice_id in VOICE_PRESETS] + ["Enter my own voice ID"]
    choice = choose("Narration voice:", options, 0, input_fn)
    if choice < len(VOICE_PRESETS):
        return VOICE_PRESETS[choice][1]
    return ask("Voice ID", default=config.voice_id, input_fn=input_fn)


def print_progress(completed: int, total: int):
    print(f"Segments ready: {completed}/{total}")


# --- Main flow ---

async def run_pipeline(args, config: PipelineConfig, input_fn: InputFn = input) -> int:
    workflow = VideoGenerationWorkflow(config)
    workflow.session.print_summary()
    try:
        description = args.description or ask("Describe your video", input_fn=input_fn)
        if not description and not args.story_file:
            logger.error("A description (or --story-file) is required.")
            return 1
        duration = resolve_duration(args, input_fn)
        aspect_ratio = resolve_aspect_ratio(args, input_fn)

        if args.story_file:
            story_text = args.story_file.read_text(encoding="utf-8").strip()
        else:
            story_text = await choose_story(workflow.storyboard, description, duration, args.yes, input_fn)

        reference_image = resolve_reference_image(args, aspect_ratio, input_fn)
        style = resolve_style(args, StyleManager(config.styles_file), input_fn)
        voice_id = resolve_voice(args, config, input_fn)

        final_path = await workflow.run(story_text, duration, description=description, aspect_ratio=aspect_ratio,
                                        reference_image=reference_image, style=style, voice_id=voice_id,
                                        transcribe=args.transcribe, on_progress=print_progress)
        workflow.log_run_summary()
        print(f"Video ready: {final_path}")
        return 0
    except WorkflowError as e:
        logger.error(f"Generation failed at stage '{e.stage}': {e}")
        workflow.log_run_summary()
        return 1
    except (StoryboardError, OpenRouterError, MediaIOError, OSError) as e:
        logger.error(f"A critical error occurred in module {type(e).__name__}: {e}")
        return 1
    except Exception as e:
        logger.error(f"An unexpected error occurred during generation: {e}", exc_info=True)
        return 1
    finally:
        await workflow.close()


def main(argv: Optional[Sequence[str]] = None, input_fn: InputFn = input) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.verbose)

    config = PipelineConfig.from_env(use_free_models=args.free)
    if args.output_dir:
        config.output_dir = args.output_dir
    if args.check:
        return 0 if run_checks(config) else 1

    try:
        config.validate()
    except ConfigError as e:
        logger.error(str(e))
        return 1
    missing_tools = check_ffmpeg_available()
    if missing_tools:
        logger.error(f"{', '.join(missing_tools)} not found in system PATH. Run `storyreel --check` for details.")
        return 1

    try:
        return asyncio.run(run_pipeline(args, config, input_fn))
    except (KeyboardInterrupt, EOFError):
        logger.info("\nGeneration interrupted by user.")
        return 130


if __name__ == "__main__":
    sys.exit(main())
