"""
Generation backends: LiteLLM text models and Replicate image models.
"""

from .replicate_service import ReplicateImageGenerator, normalize_image_outputs
from .router import GenerationRouter

__all__ = ["GenerationRouter", "ReplicateImageGenerator", "normalize_image_outputs"]
