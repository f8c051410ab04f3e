"""
Pipeline module for the card recognition system.

The pipeline orchestrates the full processing flow:
- Per-frame inference (detection, crop, embedding, matching)
- At-most-one-in-flight frame dispatch
- Frame acquisition loop over observation sources
"""

from .orchestrator import InferencePipeline
from .dispatcher import FrameDispatcher
from .engine import PipelineEngine, EngineConfig, create_engine_from_config
from .overlay import draw_results, format_label

__all__ = [
    "InferencePipeline",
    "FrameDispatcher",
    "PipelineEngine",
    "EngineConfig",
    "create_engine_from_config",
    "draw_results",
    "format_label",
]
