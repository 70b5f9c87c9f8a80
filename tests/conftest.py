"""Shared fixtures for the Taleweaver test suite."""

from unittest.mock import AsyncMock

import pytest

from taleweaver.common import PipelineSettings
from taleweaver.pipeline import PipelineOrchestrator
from taleweaver.story_generation import FallbackOracle

from .fakes import RecordingCache


# ── Fixtures ─────────────────────────────────────────────


@pytest.fixture
def settings():
    return PipelineSettings(
        blueprint_models=("blueprint-a", "blueprint-b"),
        cultural_models=("culture",),
        narrative_models=("narrative",),
        vocabulary_models=("vocab",),
        audio_models=("audio",),
        image_models=("replicate/painter",),
        batch_size=3,
        batch_cooldown=1.5,
        call_timeout=5,
    )


@pytest.fixture
def cache(tmp_path):
    return RecordingCache(tmp_path / "assets")


@pytest.fixture
def oracle():
    return FallbackOracle()


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def make_orchestrator(cache, oracle, settings, sleep):
    def _make(generator, **overrides):
        options = {
            "generate_fn": generator,
            "cache": cache,
            "oracle": oracle,
            "settings": settings,
            "sleep": sleep,
        }
        options.update(overrides)
        return PipelineOrchestrator(**options)

    return _make
