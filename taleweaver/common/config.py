"""
Environment-driven settings for the Taleweaver pipeline.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

DEFAULT_TEXT_MODELS = ("gpt-4.1-mini", "gpt-4o-mini")
DEFAULT_IMAGE_MODELS = ("replicate/black-forest-labs/flux-kontext-pro",)

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off"}


@dataclass(frozen=True)
class PipelineSettings:
    """
    Tunables consumed by :class:`~taleweaver.pipeline.PipelineOrchestrator`.

    Attributes
    ----------
    blueprint_models, cultural_models, narrative_models, vocabulary_models, audio_models:
        Ordered model chains for the text phases. The first entry is the
        primary model, the rest are tried in order when it fails.
    image_models:
        Ordered model chain for page illustrations.
    batch_size:
        Number of pages generated concurrently in one visuals batch.
    batch_cooldown:
        Seconds to idle between two visuals batches (never after the last one).
    call_timeout:
        Upper bound, in seconds, for a single generation call.
    max_retries:
        Extra attempts on the same model after a quota or overload error
        (``429``, ``503``, ...) before moving on to the next model in the chain.
    retry_backoff:
        Base delay in seconds for those retries; it doubles after each attempt.
    enable_vocabulary, enable_audio:
        Toggle the optional enrichment phases.
    anchor_first_frame:
        Generate page 0 first and reuse it as a reference image for later pages.
    asset_root:
        Local directory holding the private artifact cache.
    gcs_bucket, gcs_prefix:
        Remote cache tier. When ``gcs_bucket`` is ``None`` the cache is local-only.
    """

    blueprint_models: tuple[str, ...] = DEFAULT_TEXT_MODELS
    cultural_models: tuple[str, ...] = DEFAULT_TEXT_MODELS
    narrative_models: tuple[str, ...] = DEFAULT_TEXT_MODELS
    vocabulary_models: tuple[str, ...] = DEFAULT_TEXT_MODELS
    audio_models: tuple[str, ...] = DEFAULT_TEXT_MODELS
    image_models: tuple[str, ...] = DEFAULT_IMAGE_MODELS
    batch_size: int = 3
    batch_cooldown: float = 1.5
    call_timeout: float = 60.0
    max_retries: int = 3
    retry_backoff: float = 2.0
    enable_vocabulary: bool = True
    enable_audio: bool = True
    anchor_first_frame: bool = False
    asset_root: Path = field(default_factory=lambda: Path("private_assets"))
    gcs_bucket: str | None = None
    gcs_prefix: str = ""

    def __post_init__(self) -> None:
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, received {self.batch_size}.")
        if self.batch_cooldown < 0:
            raise ValueError("batch_cooldown cannot be negative.")
        if self.call_timeout <= 0:
            raise ValueError("call_timeout must be positive.")
        if self.max_retries < 0:
            raise ValueError("max_retries cannot be negative.")
        if self.retry_backoff < 0:
            raise ValueError("retry_backoff cannot be negative.")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> "PipelineSettings":
        env = os.environ if environ is None else environ
        text_default = _parse_models(env.get("LITELLM_MODEL")) or DEFAULT_TEXT_MODELS
        image_default = (
            tuple(_as_replicate_model(m) for m in _parse_models(env.get("REPLICATE_MODEL")))
            or DEFAULT_IMAGE_MODELS
        )

        def models(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
            return _parse_models(env.get(name)) or default

        return cls(
            blueprint_models=models("TALEWEAVER_BLUEPRINT_MODELS", text_default),
            cultural_models=models("TALEWEAVER_CULTURAL_MODELS", text_default),
            narrative_models=models("TALEWEAVER_NARRATIVE_MODELS", text_default),
            vocabulary_models=models("TALEWEAVER_VOCABULARY_MODELS", text_default),
            audio_models=models("TALEWEAVER_AUDIO_MODELS", text_default),
            image_models=models("TALEWEAVER_IMAGE_MODELS", image_default),
            batch_size=_parse_number(env, "TALEWEAVER_BATCH_SIZE", 3, int),
            batch_cooldown=_parse_number(env, "TALEWEAVER_BATCH_COOLDOWN", 1.5, float),
            call_timeout=_parse_number(env, "TALEWEAVER_CALL_TIMEOUT", 60.0, float),
            max_retries=_parse_number(env, "TALEWEAVER_MAX_RETRIES", 3, int),
            retry_backoff=_parse_number(env, "TALEWEAVER_RETRY_BACKOFF", 2.0, float),
            enable_vocabulary=_parse_flag(env, "TALEWEAVER_ENABLE_VOCABULARY", True),
            enable_audio=_parse_flag(env, "TALEWEAVER_ENABLE_AUDIO", True),
            anchor_first_frame=_parse_flag(env, "TALEWEAVER_ANCHOR_FIRST_FRAME", False),
            asset_root=Path(env.get("TALEWEAVER_ASSET_ROOT") or "private_assets"),
            gcs_bucket=(env.get("TALEWEAVER_GCS_BUCKET") or "").strip() or None,
            gcs_prefix=(env.get("TALEWEAVER_GCS_PREFIX") or "").strip(),
        )


def _parse_models(raw: str | None) -> tuple[str, ...]:
    if not raw:
        return ()
    return tuple(item.strip() for item in raw.split(",") if item.strip())


def _as_replicate_model(model: str) -> str:
    return model if model.startswith("replicate/") else f"replicate/{model}"


def _parse_number(env: Mapping[str, str], name: str, default, cast):
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    try:
        return cast(raw.strip())
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, received {raw!r}.") from exc


def _parse_flag(env: Mapping[str, str], name: str, default: bool) -> bool:
    raw = env.get(name)
    if raw is None or not raw.strip():
        return default
    value = raw.strip().lower()
    if value in _TRUTHY:
        return True
    if value in _FALSY:
        return False
    raise ValueError(f"{name} must be a boolean flag, received {raw!r}.")
