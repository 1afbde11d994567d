"""Pipeline entry points."""

from takeoff.pipeline.takeoff_pipeline import TakeoffPipeline

__all__ = ["TakeoffPipeline"]
