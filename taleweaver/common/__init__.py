"""
Common utilities shared across Taleweaver modules.
"""

from .config import PipelineSettings
from .llm import GenerateCallable, GenerationResult, call_text_generation, extract_json

__all__ = [
    "GenerateCallable",
    "GenerationResult",
    "PipelineSettings",
    "call_text_generation",
    "extract_json",
]
