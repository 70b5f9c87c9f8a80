"""
Structured story blueprint shared by every page of a generation run.

Upstream models describe the same blueprint in several shapes (actor registries
as mappings or lists, props nested under different keys, pages called
``story_sequence`` or ``panels``). Everything is normalized here, once, into
immutable dataclasses so the rest of the pipeline never checks shapes again.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Sequence


class BlueprintError(ValueError):
    """Raised when an upstream blueprint payload cannot be used."""


def _coerce_optional_str(value: Any) -> str | None:
    if value is None:
        return None

    text = str(value).strip()
    return text or None


def _coerce_optional_int(value: Any) -> int | None:
    if value is None or value == "" or isinstance(value, bool):
        return None

    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _first_present(payload: Mapping[str, Any], *keys: str) -> Any:
    for key in keys:
        value = payload.get(key)
        if value not in (None, "", [], {}):
            return value
    return None


def _flatten_description(value: Any) -> str | None:
    """
    Turn nested trait structures into a single ``key: value`` descriptor.
    """
    if value is None:
        return None

    if isinstance(value, str):
        return _coerce_optional_str(value)

    if isinstance(value, Mapping):
        parts: list[str] = []
        for key, item in value.items():
            text = _flatten_description(item)
            if text:
                parts.append(f"{str(key).replace('_', ' ')}: {text}")
        return "; ".join(parts) or None

    if isinstance(value, Iterable) and not isinstance(value, (bytes, bytearray)):
        parts = [_flatten_description(item) for item in value]
        return ", ".join(filter(None, parts)) or None

    return _coerce_optional_str(value)


def _is_record_list(value: Any) -> bool:
    return isinstance(value, Sequence) and not isinstance(value, (str, bytes))


@dataclass(frozen=True)
class ActorProfile:
    """
    Locked visual identity of one recurring character.
    """

    actor_id: str
    traits: str
    wardrobe: str | None = None
    state: str | None = None

    def describe(self) -> str:
        parts = [self.traits]
        if self.wardrobe:
            parts.append(f"wearing {self.wardrobe}")
        if self.state:
            parts.append(f"state: {self.state}")
        return "; ".join(part for part in parts if part)


@dataclass(frozen=True)
class PropBinding:
    """A prop that must stay attached to the same actor on every page."""

    prop_id: str
    parent_actor_id: str | None = None
    attachment_point: str | None = None
    description: str | None = None


@dataclass(frozen=True)
class PageSpec:
    """
    Per-page delta rendered on top of the locked blueprint state.

    ``index`` is the zero-based position in the page sequence and the only
    identity used for caching. ``page_number``/``panel_id`` are whatever the
    model returned and may be missing or inconsistent.
    """

    index: int
    action: str
    page_number: int | None = None
    panel_id: int | None = None
    motion_vector: str | None = None
    zoning: Any = None
    focus: str | None = None
    lock_state: str | None = None
    depth: str | None = None
    camera: str | None = None
    environment_override: str | None = None
    hidden_props: tuple[str, ...] = ()
    narrative_beat: str | None = None

    @classmethod
    def from_mapping(cls, index: int, payload: Mapping[str, Any] | str) -> "PageSpec":
        if isinstance(payload, str):
            payload = {"action": payload}
        if not isinstance(payload, Mapping):
            raise BlueprintError(f"Page {index} must be a mapping, received {type(payload).__name__}.")

        action = _flatten_description(
            _first_present(payload, "action", "visual_action", "description", "scene")
        )
        if not action:
            raise BlueprintError(f"Page {index} is missing its action text.")

        zoning = _first_present(payload, "zoning", "composition")
        if isinstance(zoning, Mapping):
            zoning = MappingProxyType({str(k): str(v) for k, v in zoning.items()})
        elif zoning is not None:
            zoning = str(zoning).strip() or None

        environment_override = _first_present(payload, "environment_override", "environment")
        return cls(
            index=index,
            action=action,
            page_number=_coerce_optional_int(_first_present(payload, "page_number", "page")),
            panel_id=_coerce_optional_int(payload.get("panel_id")),
            motion_vector=_flatten_description(payload.get("motion_vector")),
            zoning=zoning,
            focus=_flatten_description(payload.get("focus")),
            lock_state=_coerce_optional_str(payload.get("lock_state")),
            depth=_flatten_description(_first_present(payload, "depth", "z_index")),
            camera=_flatten_description(payload.get("camera")),
            environment_override=_describe_environment(environment_override),
            hidden_props=_normalize_hidden_props(payload),
            narrative_beat=_coerce_optional_str(_first_present(payload, "text", "narrative_beat")),
        )


@dataclass(frozen=True)
class StoryBlueprint:
    """
    Story-wide state produced once per run and read by every frame prompt.
    """

    narrative: str
    visual_lock: str
    actor_registry: Mapping[str, ActorProfile] = field(
        default_factory=lambda: MappingProxyType({})
    )
    prop_manifest: tuple[PropBinding, ...] = ()
    environment_lock: str = ""
    interaction_rules: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    entity_notes: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    pages: tuple[PageSpec, ...] = ()

    @property
    def page_count(self) -> int:
        return len(self.pages)

    def entity_map(self) -> dict[str, str]:
        """Identifier to traits mapping used for substring annotation."""
        if self.actor_registry:
            return {actor_id: actor.describe() for actor_id, actor in self.actor_registry.items()}
        return dict(self.entity_notes)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "StoryBlueprint":
        if not isinstance(payload, Mapping):
            raise BlueprintError("Blueprint payload must be a mapping.")

        global_locks = payload.get("global_locks")
        if not isinstance(global_locks, Mapping):
            global_locks = {}
        visual_definition = payload.get("visual_definition")
        if not isinstance(visual_definition, Mapping):
            visual_definition = {}

        narrative = _flatten_description(
            _first_present(payload, "narrative", "summary", "story_summary")
        ) or ""
        visual_lock = _flatten_description(
            _first_present(payload, "visual_lock", "style")
            or global_locks.get("style_engine")
        ) or ""
        actors_raw = _first_present(payload, "actor_registry", "actors") or visual_definition.get(
            "actors"
        )
        environment_raw = _first_present(payload, "environment_lock") or global_locks.get(
            "environmental_anchors"
        ) or payload.get("environment")

        pages_raw = _first_present(payload, "pages", "story_sequence", "panels")
        if not _is_record_list(pages_raw):
            raise BlueprintError("Blueprint must contain a non-empty page sequence.")
        pages = tuple(PageSpec.from_mapping(index, item) for index, item in enumerate(pages_raw))

        return cls(
            narrative=narrative,
            visual_lock=visual_lock,
            actor_registry=MappingProxyType(normalize_actor_registry(actors_raw)),
            prop_manifest=tuple(_normalize_props(payload)),
            environment_lock=_describe_environment(environment_raw) or "",
            interaction_rules=MappingProxyType(
                _normalize_rules(_first_present(payload, "interaction_rules", "physics_rules"))
            ),
            entity_notes=MappingProxyType(
                _normalize_entity_notes(_first_present(payload, "entities", "characters"))
            ),
            pages=pages,
        )


def normalize_actor_registry(value: Any) -> dict[str, ActorProfile]:
    """
    Canonicalize an actor registry given as a keyed mapping or a list of records.
    """
    if value is None:
        return {}

    registry: dict[str, ActorProfile] = {}

    def _add(actor_id: Any, record: Any) -> None:
        actor_text = _coerce_optional_str(actor_id)
        if not actor_text:
            return
        if isinstance(record, Mapping):
            traits = _flatten_description(
                _first_present(record, "dna", "traits", "visual", "description", "appearance")
            )
            wardrobe = _flatten_description(_first_present(record, "wardrobe", "clothing"))
            state = _flatten_description(_first_present(record, "state", "behavior", "behaviour"))
        else:
            traits = _flatten_description(record)
            wardrobe = None
            state = None
        registry[actor_text] = ActorProfile(
            actor_id=actor_text,
            traits=traits or "",
            wardrobe=wardrobe,
            state=state,
        )

    if isinstance(value, Mapping):
        for actor_id, record in value.items():
            _add(actor_id, record)
        return registry

    if _is_record_list(value):
        for record in value:
            if isinstance(record, Mapping):
                _add(_first_present(record, "id", "actor_id", "name"), record)
        return registry

    raise BlueprintError("Actor registry must be a mapping or a list of records.")


def _normalize_props(payload: Mapping[str, Any]) -> list[PropBinding]:
    manifest = payload.get("prop_manifest")
    if isinstance(manifest, Mapping):
        manifest = _first_present(manifest, "LOCKED_PROPS", "locked_props", "props")
    if manifest is None:
        manifest = payload.get("props")
    if isinstance(manifest, Mapping):
        manifest = [
            {"id": prop_id, **details} if isinstance(details, Mapping)
            else {"id": prop_id, "description": details}
            for prop_id, details in manifest.items()
        ]
    if not _is_record_list(manifest):
        return []

    props: list[PropBinding] = []
    for item in manifest:
        if not isinstance(item, Mapping):
            continue
        prop_id = _coerce_optional_str(_first_present(item, "id", "prop_id", "name"))
        if not prop_id:
            continue
        props.append(
            PropBinding(
                prop_id=prop_id,
                parent_actor_id=_coerce_optional_str(
                    _first_present(item, "parent", "parent_actor_id", "parent_actor", "owner")
                ),
                attachment_point=_coerce_optional_str(
                    _first_present(item, "grip", "attachment_point", "attachment")
                ),
                description=_flatten_description(item.get("description")),
            )
        )
    return props


def _describe_environment(value: Any) -> str | None:
    if isinstance(value, Mapping):
        location = _flatten_description(_first_present(value, "location", "setting"))
        lighting = _flatten_description(value.get("lighting"))
        background = _flatten_description(
            _first_present(value, "background", "background_elements")
        )
        parts = [location]
        if lighting:
            parts.append(f"Lighting: {lighting}")
        if background:
            parts.append(f"Background: {background}")
        return ". ".join(part for part in parts if part) or _flatten_description(value)
    return _flatten_description(value)


def _normalize_rules(value: Any) -> dict[str, str]:
    if isinstance(value, Mapping):
        return {
            str(name).strip(): text
            for name, rule in value.items()
            if str(name).strip() and (text := _flatten_description(rule))
        }
    if _is_record_list(value):
        rules: dict[str, str] = {}
        for item in value:
            if not isinstance(item, Mapping):
                continue
            name = _coerce_optional_str(_first_present(item, "id", "name", "lock_state"))
            text = _flatten_description(_first_present(item, "rule", "description"))
            if name and text:
                rules[name] = text
        return rules
    return {}


def _normalize_entity_notes(value: Any) -> dict[str, str]:
    if not isinstance(value, Mapping):
        return {}
    notes: dict[str, str] = {}
    for name, details in value.items():
        text = _flatten_description(details)
        if text and str(name).strip():
            notes[str(name).strip()] = text
    return notes


def _normalize_hidden_props(payload: Mapping[str, Any]) -> tuple[str, ...]:
    hidden = payload.get("hidden_props")
    if isinstance(hidden, str):
        hidden = [hidden]
    names: list[str] = []
    if _is_record_list(hidden):
        names.extend(str(item).strip() for item in hidden if str(item).strip())

    prop_state = payload.get("prop_state")
    if isinstance(prop_state, Mapping):
        for prop_id, state in prop_state.items():
            if str(state).strip().upper() == "HIDDEN":
                names.append(str(prop_id).strip())
    return tuple(dict.fromkeys(names))
