"""Tests for the command line entry point and wizard steps."""

from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from storyreel import cli
from storyreel.models import StoryVariant
from storyreel.styles import StyleManager


def scripted(*answers):
    """input() replacement that replays answers in order."""
    remaining = list(answers)
    return lambda prompt: remaining.pop(0)


def _args(*argv):
    return cli.build_parser().parse_args(list(argv))


class TestParser:
    def test_defaults(self) -> None:
        args = _args("a cat in space")
        assert args.description == "a cat in space"
        assert args.duration is None
        assert not args.yes

    def test_rejects_unknown_duration(self) -> None:
        with pytest.raises(SystemExit):
            _args("x", "--duration", "7")


class TestWizardSteps:
    def test_non_interactive_defaults(self, config) -> None:
        args = _args("x", "-y")
        assert cli.resolve_duration(args) == 60
        assert cli.resolve_aspect_ratio(args) == "9:16"
        assert cli.resolve_reference_image(args, "9:16") is None
        assert cli.resolve_voice(args, config) == config.voice_id

    def test_menu_choices(self, config) -> None:
        args = _args("x")
        assert cli.resolve_duration(args, scripted("1")) == 6
        assert cli.resolve_aspect_ratio(args, scripted("2")) == "16:9"
        assert cli.resolve_voice(args, config, scripted("2")) == cli.VOICE_PRESETS[1][1]
        assert cli.resolve_voice(args, config, scripted("4", "my-voice")) == "my-voice"

    def test_choose_reprompts_on_bad_input(self, capsys) -> None:
        assert cli.choose("Pick:", ["a", "b"], 0, scripted("9", "abc", "2")) == 1
        assert "Invalid choice" in capsys.readouterr().out

    def test_style_by_preset_name(self, tmp_path: Path) -> None:
        manager = StyleManager(tmp_path / "styles.json")
        style = cli.resolve_style(_args("x", "--style", "anime"), manager)
        assert style.startswith("anime style")

    def test_free_form_style_is_saved(self, tmp_path: Path) -> None:
        manager = StyleManager(tmp_path / "styles.json")
        style = cli.resolve_style(_args("x", "--style", "watercolor, soft edges"), manager)
        assert style == "watercolor, soft edges"
        assert manager.load()[0].prompt == "watercolor, soft edges"

    def test_interactive_custom_style(self, tmp_path: Path) -> None:
        manager = StyleManager(tmp_path / "styles.json")
        custom_index = str(len(manager.load()) + 2)
        style = cli.resolve_style(_args("x"), manager, scripted(custom_index, "pixel art", "Pixel"))
        assert style == "pixel art"
        assert manager.load()[0].name == "Pixel"

    def test_reference_url_passes_through(self) -> None:
        args = _args("x", "--reference-image", "https://example.com/r.png")
        assert cli.resolve_reference_image(args, "9:16") == "https://example.com/r.png"


class TestChooseStory:
    @pytest.mark.asyncio
    async def test_yes_takes_first_variant(self) -> None:
        storyboard = MagicMock()
        storyboard.generate_story_variants = AsyncMock(return_value=[StoryVariant("one", 1), StoryVariant("two", 2)])
        assert await cli.choose_story(storyboard, "desc", 30, assume_yes=True) == "one"

    @pytest.mark.asyncio
    async def test_modify_then_use(self) -> None:
        storyboard = MagicMock()
        storyboard.generate_story_variants = AsyncMock(
            return_value=[StoryVariant("one", 1), StoryVariant("two", 2), StoryVariant("three", 3)])
        storyboard.modify_variant = AsyncMock(return_value="two, funnier")

        # "Modify a variant" -> variant 2 -> request -> use variant 2
        story = await cli.choose_story(storyboard, "desc", 30, input_fn=scripted("5", "2", "funnier", "2"))

        assert story == "two, funnier"
        storyboard.modify_variant.assert_awaited_once_with("two", "funnier", 30)

    @pytest.mark.asyncio
    async def test_regenerate_then_use(self) -> None:
        storyboard = MagicMock()
        storyboard.generate_story_variants = AsyncMock(return_value=[StoryVariant("one", 1)])
        storyboard.regenerate_variant = AsyncMock(return_value="fresh")

        story = await cli.choose_story(storyboard, "desc", 30, input_fn=scripted("2", "1", "1"))

        assert story == "fresh"


class TestMain:
    def test_check_reports_missing_keys(self, config) -> None:
        config.fal_key = ""
        with patch("storyreel.cli.PipelineConfig.from_env", return_value=config), \
             patch("storyreel.cli.check_ffmpeg_available", return_value=[]):
            assert cli.main(["--check"]) == 1

    def test_check_passes(self, config) -> None:
        with patch("storyreel.cli.PipelineConfig.from_env", return_value=config), \
             patch("storyreel.cli.check_ffmpeg_available", return_value=[]):
            assert cli.main(["--check"]) == 0

    def test_missing_ffmpeg_exits_1(self, config) -> None:
        with patch("storyreel.cli.PipelineConfig.from_env", return_value=config), \
             patch("storyreel.cli.check_ffmpeg_available", return_value=["ffmpeg", "ffprobe"]):
            assert cli.main(["a cat", "-y"]) == 1

    def test_runs_pipeline_non_interactively(self, config, tmp_path: Path) -> None:
        story_file = tmp_path / "story.txt"
        story_file.write_text("Once upon a time.\n", encoding="utf-8")
        workflow = MagicMock()
        workflow.run = AsyncMock(return_value=tmp_path / "final_video.mp4")
        workflow.close = AsyncMock()

        with patch("storyreel.cli.PipelineConfig.from_env", return_value=config), \
             patch("storyreel.cli.check_ffmpeg_available", return_value=[]), \
             patch("storyreel.cli.VideoGenerationWorkflow", return_value=workflow):
            code = cli.main(["a fairy tale", "-y", "--story-file", str(story_file), "--duration", "12",
                             "--aspect-ratio", "16:9", "--output-dir", str(tmp_path / "out")])

        assert code == 0
        kwargs = workflow.run.call_args.kwargs
        assert workflow.run.call_args.args == ("Once upon a time.", 12)
        assert kwargs["aspect_ratio"] == "16:9"
        assert kwargs["style"] is None
        assert config.output_dir == tmp_path / "out"
        workflow.close.assert_awaited_once()

    def test_workflow_error_exits_1(self, config) -> None:
        from storyreel.workflow import WorkflowError

        workflow = MagicMock()
        workflow.storyboard.generate_story_variants = AsyncMock(return_value=[StoryVariant("story", 1)])
        workflow.run = AsyncMock(side_effect=WorkflowError("segments", "Failed to generate any videos."))
        workflow.close = AsyncMock()

        with patch("storyreel.cli.PipelineConfig.from_env", return_value=config), \
             patch("storyreel.cli.check_ffmpeg_available", return_value=[]), \
             patch("storyreel.cli.VideoGenerationWorkflow", return_value=workflow):
            assert cli.main(["a cat", "-y"]) == 1
        workflow.close.assert_awaited_once()
