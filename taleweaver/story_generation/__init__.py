"""
Story planning utilities: blueprint model, reading levels, cultural defaults and prompts.
"""

from .blueprint import (
    ActorProfile,
    BlueprintError,
    PageSpec,
    PropBinding,
    StoryBlueprint,
    normalize_actor_registry,
)
from .cultural_fallback import (
    CulturalContext,
    FallbackOracle,
    is_usable_context,
    normalize_locale,
)
from .level_config import LevelConfig, get_level_config
from .prompting import StoryPrompt

__all__ = [
    "ActorProfile",
    "BlueprintError",
    "CulturalContext",
    "FallbackOracle",
    "LevelConfig",
    "PageSpec",
    "PropBinding",
    "StoryBlueprint",
    "StoryPrompt",
    "get_level_config",
    "is_usable_context",
    "normalize_locale",
    "normalize_actor_registry",
]
