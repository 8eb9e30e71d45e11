"""RPKI Dash pipeline orchestration"""

from .workflow import PipelineConfig, RPKIDashPipeline, build_pipeline, run_pipeline

__all__ = ["PipelineConfig", "RPKIDashPipeline", "build_pipeline", "run_pipeline"]
