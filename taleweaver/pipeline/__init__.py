"""
End-to-end orchestration and cross-page continuity for Taleweaver stories.
"""

from .continuity import (
    ContinuityEngine,
    FrameConfig,
    PageNotFoundError,
    missing_frame_sections,
)
from .pipeline import (
    PageFailure,
    Phase,
    PhaseEvent,
    PhaseResult,
    PhaseStatus,
    PipelineOrchestrator,
    StoryPackage,
    StoryRequest,
    VisualsReport,
)

__all__ = [
    "ContinuityEngine",
    "FrameConfig",
    "PageFailure",
    "PageNotFoundError",
    "Phase",
    "PhaseEvent",
    "PhaseResult",
    "PhaseStatus",
    "PipelineOrchestrator",
    "StoryPackage",
    "StoryRequest",
    "VisualsReport",
    "missing_frame_sections",
]
