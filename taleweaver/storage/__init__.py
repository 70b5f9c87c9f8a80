"""
Artifact persistence: local disk cache with optional remote replication.
"""

from .artifact_cache import (
    ArtifactCache,
    ArtifactKey,
    ArtifactKind,
    SaveResult,
    generate_story_key,
    sanitize_topic,
)
from .blob_store import BlobStore, GCSBlobStore

__all__ = [
    "ArtifactCache",
    "ArtifactKey",
    "ArtifactKind",
    "BlobStore",
    "GCSBlobStore",
    "SaveResult",
    "generate_story_key",
    "sanitize_topic",
]
