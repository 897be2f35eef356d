"""StoryReel: short description to narrated short video through fal.ai and OpenRouter."""

from .config import PipelineConfig
from .workflow import VideoGenerationWorkflow, WorkflowError

__version__ = "0.1.0"

__all__ = ["PipelineConfig", "VideoGenerationWorkflow", "WorkflowError", "__version__"]
