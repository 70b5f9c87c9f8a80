import pytest

from taleweaver.story_generation import FallbackOracle, StoryBlueprint, get_level_config
from taleweaver.story_generation.prompting import (
    build_blueprint_prompt,
    build_narrative_prompt,
    build_vocabulary_prompt,
)

from .fakes import make_blueprint_payload


@pytest.mark.parametrize("level, expected", [(0, 1), (None, 1), (3, 3), (42, 8), ("5", 5)])
def test_levels_are_clamped(level, expected):
    assert get_level_config(level).level == expected


def test_default_page_count_follows_sentence_count():
    assert get_level_config(1).default_page_count == 3
    assert get_level_config(8).default_page_count == 10


def test_blueprint_prompt_carries_request_and_level():
    prompt = build_blueprint_prompt(
        topic="Helping Grandfather",
        language="ta",
        level=get_level_config(2),
        page_count=4,
        premise="A rainy market day",
    )

    assert "- Topic: Helping Grandfather" in prompt.user
    assert "- Premise: A rainy market day" in prompt.user
    assert "Protagonist gender" not in prompt.user
    assert "- Reading level: 2 (Beginner)" in prompt.user
    assert prompt.user.endswith("Return exactly 4 entries in story_sequence.")
    assert '"story_sequence"' in prompt.system


def test_narrative_prompt_lists_pages_and_names():
    blueprint = StoryBlueprint.from_mapping(make_blueprint_payload(pages=2))
    culture = FallbackOracle().resolve("ta")

    prompt = build_narrative_prompt(blueprint=blueprint, culture=culture, level=get_level_config(2))

    assert "writing in Tamil" in prompt.system
    assert "- elders male: Thatha, Periyappa" in prompt.user
    assert "2. PROT_ARUN and ELDER_THATHA in scene-2." in prompt.user


def test_vocabulary_prompt_numbers_page_texts():
    prompt = build_vocabulary_prompt(pages=["One.", "Two."], language="Tamil", level=3)
    assert prompt.user == "Story text:\n1. One.\n2. Two."
