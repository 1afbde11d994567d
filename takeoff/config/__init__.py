"""Configuration package."""

from takeoff.config.settings import LLMSettings, PipelineSettings, Settings
from takeoff.config.topics import TOPICS, Topic

__all__ = [
    "LLMSettings",
    "PipelineSettings",
    "Settings",
    "TOPICS",
    "Topic",
]
