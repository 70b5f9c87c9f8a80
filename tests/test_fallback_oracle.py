import pytest

from taleweaver.story_generation import CulturalContext, FallbackOracle, is_usable_context, normalize_locale
from taleweaver.story_generation.cultural_fallback import load_cultural_defaults


@pytest.fixture(scope="module")
def oracle():
    return FallbackOracle()


def test_packaged_defaults_cover_known_locales(oracle):
    assert {"ta", "hi", "ja", "zh", "es", "en"} <= set(oracle.locales)


def test_region_suffix_is_ignored(oracle):
    context = oracle.resolve("ta-IN")

    assert context.locale == "ta"
    assert context.language == "Tamil"
    assert "Thatha" in context.naming["elders_male"]


def test_unknown_locale_falls_back_to_baseline(oracle):
    assert oracle.resolve("xx").locale == "ta"
    assert oracle.resolve(None).locale == "ta"


def test_regional_base_is_merged_and_overridden(oracle):
    visual = oracle.resolve("ta").visual_identity

    assert visual["horizon"] == "Distant temple tower or palm trees."
    assert visual["architecture"].startswith("Tropical Dravidian")


def test_visual_notes_include_avoid_list(oracle):
    notes = oracle.resolve("ta").visual_notes()

    assert any(note.startswith("Horizon: ") for note in notes)
    assert notes[-1].startswith("Avoid: Aggressive facial expressions")


def test_custom_data_requires_baseline_record():
    with pytest.raises(ValueError):
        FallbackOracle({"en": {"language": "English"}})

    oracle = FallbackOracle({"en": {"language": "English"}}, baseline_locale="en")
    assert oracle.resolve("fr").language == "English"


def test_defaults_file_without_locales_is_rejected(tmp_path):
    path = tmp_path / "defaults.yaml"
    path.write_text("bases: {}\n", encoding="utf-8")

    with pytest.raises(ValueError):
        load_cultural_defaults(path)


@pytest.mark.parametrize(
    "raw, expected",
    [("ta-IN", "ta"), ("TA_in", "ta"), (" en ", "en"), ("", ""), (None, "")],
)
def test_normalize_locale(raw, expected):
    assert normalize_locale(raw) == expected


def test_usable_context_needs_naming_or_visuals():
    assert is_usable_context({"naming": {"protagonist_boys": ["Arun"]}})
    assert is_usable_context({"visual_identity": {"architecture": "tiled roofs"}})
    assert not is_usable_context({"naming": {}, "visual_identity": "unknown"})
    assert not is_usable_context(["Arun"])


def test_live_payload_shapes_are_accepted():
    context = CulturalContext.from_mapping(
        "ta",
        {
            "language": {"name": "Tamil"},
            "naming": {"protagonist_boys": ["Arun", " "], "locked_behavior": "Vanakkam"},
            "negatives": {"avoid": "Shoes indoors", "emotion_guideline": "Gentle"},
        },
    )

    assert context.language == "Tamil"
    assert context.naming == {"protagonist_boys": ("Arun",)}
    assert context.locked_behavior == "Vanakkam"
    assert context.avoid == ("Shoes indoors",)
    assert context.emotion_guideline == "Gentle"
