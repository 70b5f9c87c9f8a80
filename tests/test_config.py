from pathlib import Path

import pytest

from taleweaver.common import PipelineSettings
from taleweaver.common.config import DEFAULT_IMAGE_MODELS, DEFAULT_TEXT_MODELS


def test_defaults_without_environment():
    settings = PipelineSettings.from_env({})

    assert settings.blueprint_models == DEFAULT_TEXT_MODELS
    assert settings.image_models == DEFAULT_IMAGE_MODELS
    assert settings.batch_size == 3
    assert settings.batch_cooldown == 1.5
    assert (settings.max_retries, settings.retry_backoff) == (3, 2.0)
    assert settings.asset_root == Path("private_assets")
    assert settings.gcs_bucket is None


def test_legacy_model_variables_seed_every_chain():
    settings = PipelineSettings.from_env(
        {
            "LITELLM_MODEL": "gemini/gemini-2.5-flash",
            "REPLICATE_MODEL": "black-forest-labs/flux-schnell",
        }
    )

    assert settings.narrative_models == ("gemini/gemini-2.5-flash",)
    assert settings.image_models == ("replicate/black-forest-labs/flux-schnell",)


def test_per_phase_chains_and_tunables():
    settings = PipelineSettings.from_env(
        {
            "TALEWEAVER_BLUEPRINT_MODELS": "gpt-4.1, claude-sonnet-4 ,",
            "TALEWEAVER_BATCH_SIZE": "5",
            "TALEWEAVER_BATCH_COOLDOWN": "0",
            "TALEWEAVER_CALL_TIMEOUT": "12.5",
            "TALEWEAVER_MAX_RETRIES": "0",
            "TALEWEAVER_RETRY_BACKOFF": "0.5",
            "TALEWEAVER_ENABLE_AUDIO": "off",
            "TALEWEAVER_ANCHOR_FIRST_FRAME": "yes",
            "TALEWEAVER_GCS_BUCKET": " story-assets ",
            "TALEWEAVER_GCS_PREFIX": "private",
        }
    )

    assert settings.blueprint_models == ("gpt-4.1", "claude-sonnet-4")
    assert settings.cultural_models == DEFAULT_TEXT_MODELS
    assert settings.batch_size == 5
    assert settings.batch_cooldown == 0.0
    assert settings.call_timeout == 12.5
    assert settings.max_retries == 0
    assert settings.retry_backoff == 0.5
    assert settings.enable_audio is False
    assert settings.anchor_first_frame is True
    assert settings.gcs_bucket == "story-assets"
    assert settings.gcs_prefix == "private"


@pytest.mark.parametrize(
    "name, value",
    [
        ("TALEWEAVER_BATCH_SIZE", "three"),
        ("TALEWEAVER_BATCH_SIZE", "0"),
        ("TALEWEAVER_CALL_TIMEOUT", "-1"),
        ("TALEWEAVER_MAX_RETRIES", "-2"),
        ("TALEWEAVER_ENABLE_VOCABULARY", "maybe"),
    ],
)
def test_invalid_values_are_rejected(name, value):
    with pytest.raises(ValueError):
        PipelineSettings.from_env({name: value})
