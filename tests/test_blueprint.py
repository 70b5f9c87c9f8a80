import dataclasses

import pytest

from taleweaver.story_generation import BlueprintError, StoryBlueprint, normalize_actor_registry

from .fakes import make_blueprint_payload


def test_list_and_mapping_registries_normalize_identically():
    as_list = normalize_actor_registry(
        [{"id": "PROT_ARUN", "traits": "8yo boy", "wardrobe": "blue shirt"}]
    )
    as_mapping = normalize_actor_registry(
        {"PROT_ARUN": {"traits": "8yo boy", "wardrobe": "blue shirt"}}
    )

    assert as_list == as_mapping
    assert as_list["PROT_ARUN"].describe() == "8yo boy; wearing blue shirt"


def test_nested_dna_is_flattened_into_traits():
    registry = normalize_actor_registry({"PROT_ARUN": {"dna": {"age": "8", "skin_tone": "brown"}}})
    assert registry["PROT_ARUN"].traits == "age: 8; skin tone: brown"


def test_registry_of_unexpected_type_is_rejected():
    with pytest.raises(BlueprintError):
        normalize_actor_registry(42)


def test_blueprint_reads_alternate_keys():
    blueprint = StoryBlueprint.from_mapping(make_blueprint_payload(pages=3))

    assert blueprint.page_count == 3
    assert blueprint.visual_lock == "Soft watercolor, warm palette"
    assert blueprint.environment_lock == "Busy Chennai road. Lighting: Golden hour"
    assert list(blueprint.actor_registry) == ["PROT_ARUN", "ELDER_THATHA"]
    assert blueprint.prop_manifest[0].parent_actor_id == "ELDER_THATHA"
    assert blueprint.prop_manifest[0].attachment_point == "left hand"
    assert [page.page_number for page in blueprint.pages] == [1, 2, 3]
    assert [page.index for page in blueprint.pages] == [0, 1, 2]


def test_locked_props_and_visual_definition_shapes():
    blueprint = StoryBlueprint.from_mapping(
        {
            "visual_definition": {"actors": {"CAT": "orange tabby"}},
            "prop_manifest": {"LOCKED_PROPS": {"RED_BALL": {"parent": "CAT"}}},
            "panels": ["CAT chases RED_BALL."],
        }
    )

    assert blueprint.actor_registry["CAT"].traits == "orange tabby"
    assert blueprint.prop_manifest[0].prop_id == "RED_BALL"
    assert blueprint.pages[0].action == "CAT chases RED_BALL."


def test_hidden_props_come_from_list_and_prop_state():
    payload = make_blueprint_payload(pages=1)
    payload["story_sequence"][0].update(
        {"hidden_props": ["PROP_BAG"], "prop_state": {"PROP_CANE": "hidden"}}
    )

    page = StoryBlueprint.from_mapping(payload).pages[0]

    assert page.hidden_props == ("PROP_BAG", "PROP_CANE")


def test_page_without_action_is_rejected():
    payload = make_blueprint_payload(pages=2)
    payload["story_sequence"][1] = {"page": 2, "zoning": "Zone A"}

    with pytest.raises(BlueprintError, match="Page 1"):
        StoryBlueprint.from_mapping(payload)


def test_missing_page_sequence_is_rejected():
    payload = make_blueprint_payload()
    del payload["story_sequence"]

    with pytest.raises(BlueprintError):
        StoryBlueprint.from_mapping(payload)


def test_blueprint_is_immutable():
    blueprint = StoryBlueprint.from_mapping(make_blueprint_payload())

    with pytest.raises(dataclasses.FrozenInstanceError):
        blueprint.visual_lock = "Pencil sketch"
    with pytest.raises(TypeError):
        blueprint.actor_registry["NEW"] = None
