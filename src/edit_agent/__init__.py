"""Edit Agent package."""

from .config import PipelineConfig
from .types import Chunk, EditRequest, Intent, IntentResult

__all__ = ["Chunk", "EditRequest", "Intent", "IntentResult", "PipelineConfig"]
