from .orchestrator import MessagePipeline, PipelineStats

__all__ = ["MessagePipeline", "PipelineStats"]
