"""
Services Layer - Wire codec, publisher and the relay pipeline
"""

from .publisher import ZmqPublisher, PublisherBindError, PublishError
from .relay_pipeline import RelayPipeline, PipelineState

__all__ = ["ZmqPublisher", "PublisherBindError", "PublishError", "RelayPipeline", "PipelineState"]
