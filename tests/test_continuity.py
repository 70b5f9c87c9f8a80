import pytest

from taleweaver.pipeline import ContinuityEngine, FrameConfig, PageNotFoundError, missing_frame_sections
from taleweaver.pipeline.continuity import REQUIRED_SECTIONS, SECTION_INTERACTION
from taleweaver.story_generation import PageSpec, StoryBlueprint

from .fakes import make_blueprint_payload


@pytest.fixture
def engine():
    return ContinuityEngine()


@pytest.fixture
def blueprint():
    return StoryBlueprint.from_mapping(make_blueprint_payload(pages=3))


def test_frame_prompt_lists_every_actor_on_every_page(engine, blueprint):
    for index in range(blueprint.page_count):
        prompt = engine.build_frame_prompt(index, blueprint)
        assert "PROT_ARUN: age: 8; hair: short black; wearing blue school uniform" in prompt
        assert "ELDER_THATHA: elderly man, silver hair; wearing white veshti" in prompt


def test_frame_prompt_sections_are_ordered(engine, blueprint):
    prompt = engine.build_frame_prompt(1, blueprint)

    positions = [prompt.index(f"{name}:") for name in REQUIRED_SECTIONS]
    assert positions == sorted(positions)
    assert missing_frame_sections(prompt) == []


def test_action_is_carried_verbatim(engine, blueprint):
    prompt = engine.build_frame_prompt(2, blueprint)
    assert "ACTION:\nPROT_ARUN and ELDER_THATHA in scene-3." in prompt


def test_external_panel_numbers_win_over_position(engine):
    pages = [
        PageSpec(index=0, action="second panel", panel_id=2),
        PageSpec(index=1, action="first panel", panel_id=1),
    ]

    assert engine.resolve_page(0, pages).action == "first panel"
    assert engine.resolve_page(1, pages).action == "second panel"


def test_position_is_used_when_numbers_do_not_match(engine):
    pages = [PageSpec(index=0, action="only", page_number=7)]
    assert engine.resolve_page(0, pages).action == "only"


def test_unresolvable_page_raises(engine, blueprint):
    with pytest.raises(PageNotFoundError) as excinfo:
        engine.build_frame_prompt(5, blueprint)

    assert str(excinfo.value) == "Page 5 not found."
    assert excinfo.value.page_index == 5
    with pytest.raises(PageNotFoundError):
        engine.resolve_page(-1, blueprint.pages)


def test_interaction_lock_only_when_page_requests_it(engine):
    payload = make_blueprint_payload(pages=2)
    payload["story_sequence"][1]["lock_state"] = "hand_hold"
    blueprint = StoryBlueprint.from_mapping(payload)

    assert SECTION_INTERACTION not in engine.build_frame_prompt(0, blueprint)
    locked = engine.build_frame_prompt(1, blueprint)
    assert "INTERACTION LOCK:\n- hand_hold: PROT_ARUN holds ELDER_THATHA's right wrist" in locked


def test_unknown_lock_state_adds_no_section(engine):
    payload = make_blueprint_payload(pages=1)
    payload["story_sequence"][0]["lock_state"] = "PIGGYBACK"

    prompt = engine.build_frame_prompt(0, StoryBlueprint.from_mapping(payload))

    assert SECTION_INTERACTION not in prompt


def test_hidden_prop_is_left_out(engine):
    payload = make_blueprint_payload(pages=2)
    payload["story_sequence"][1]["action"] = "ELDER_THATHA sits down [PROP_CANE: HIDDEN]."
    blueprint = StoryBlueprint.from_mapping(payload)

    assert "PROP_CANE stays attached to ELDER_THATHA (left hand)" in engine.build_frame_prompt(0, blueprint)
    assert "PROP_CANE stays attached" not in engine.build_frame_prompt(1, blueprint)


def test_first_page_is_an_establishing_shot(engine):
    payload = make_blueprint_payload(pages=2)
    for page in payload["story_sequence"]:
        page["camera"] = "Low angle"
    blueprint = StoryBlueprint.from_mapping(payload)

    assert "Camera: Wide angle establishing shot" in engine.build_frame_prompt(0, blueprint)
    assert "Camera: Low angle" in engine.build_frame_prompt(1, blueprint)


def test_zoning_is_translated_into_frame_positions(engine):
    payload = make_blueprint_payload(pages=1)
    payload["story_sequence"][0]["zoning"] = {"PROT_ARUN": "Zone A", "ELDER_THATHA": "Zone C"}

    prompt = engine.build_frame_prompt(0, StoryBlueprint.from_mapping(payload))

    assert "Position: PROT_ARUN in the LEFT THIRD of the frame" in prompt
    assert "Position: ELDER_THATHA in the RIGHT THIRD of the frame" in prompt


def test_cultural_notes_join_the_environment(engine, blueprint):
    prompt = engine.build_frame_prompt(0, blueprint, cultural_notes=["Architecture: tiled roofs"])
    environment = prompt.split("ACTOR REGISTRY:")[0]
    assert "- Architecture: tiled roofs" in environment


def test_entity_context_appended_for_present_ids(engine):
    annotated = engine.inject_entity_context(
        "PROT_ARUN walks.", {"PROT_ARUN": "8yo boy", "DOG": "brown puppy"}
    )
    assert annotated == "PROT_ARUN walks. [VISUAL CONTEXT (PROT_ARUN): 8yo boy]"


def test_entity_context_leaves_text_alone_without_matches(engine):
    assert engine.inject_entity_context("It rains.", {"PROT_ARUN": "8yo boy"}) == "It rains."


def test_entity_traits_are_truncated():
    engine = ContinuityEngine(FrameConfig(max_trait_length=10))
    annotated = engine.inject_entity_context("CAT naps.", {"CAT": "a very fluffy orange tabby"})
    assert annotated.endswith("[VISUAL CONTEXT (CAT): a very fl…]")


def test_registry_free_blueprint_gets_flat_scene_prompt(engine):
    blueprint = StoryBlueprint.from_mapping(
        {
            "style": "Crayon drawing",
            "entities": {"MILO": "small grey mouse"},
            "pages": ["MILO finds a cheese wheel."],
        }
    )

    prompt = engine.prompt_for_page(0, blueprint)

    assert prompt.startswith("Crayon drawing")
    assert "[VISUAL CONTEXT (MILO): small grey mouse]" in prompt
    assert "ACTOR REGISTRY" not in prompt
