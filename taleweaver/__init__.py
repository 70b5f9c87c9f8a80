"""
Taleweaver package: cached, continuity-aware generation of illustrated children's stories.
"""

from .ai_generation import GenerationRouter, ReplicateImageGenerator
from .common import PipelineSettings
from .pipeline import (
    ContinuityEngine,
    PhaseEvent,
    PipelineOrchestrator,
    StoryPackage,
    StoryRequest,
)
from .storage import ArtifactCache, GCSBlobStore, sanitize_topic
from .story_generation import FallbackOracle, StoryBlueprint

__all__ = [
    "ArtifactCache",
    "ContinuityEngine",
    "FallbackOracle",
    "GCSBlobStore",
    "GenerationRouter",
    "PhaseEvent",
    "PipelineOrchestrator",
    "PipelineSettings",
    "ReplicateImageGenerator",
    "StoryBlueprint",
    "StoryPackage",
    "StoryRequest",
    "sanitize_topic",
]
