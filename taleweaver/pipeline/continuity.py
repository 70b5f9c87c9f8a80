"""
Continuity helpers to keep Taleweaver illustrations consistent across pages.

Every frame prompt restates the full locked blueprint state (style, environment,
all actors, prop bindings) and adds only the page's own delta, so pages can be
generated in any order or in parallel without drifting apart.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Mapping, Sequence

from taleweaver.story_generation.blueprint import PageSpec, PropBinding, StoryBlueprint

SECTION_STYLE = "GLOBAL STYLE LOCK"
SECTION_ENVIRONMENT = "ENVIRONMENT ANCHORS"
SECTION_ACTORS = "ACTOR REGISTRY"
SECTION_PROPS = "PROP PHYSICS BINDINGS"
SECTION_COMPOSITION = "SHOT COMPOSITION"
SECTION_INTERACTION = "INTERACTION LOCK"
SECTION_ACTION = "ACTION"
SECTION_RENDER = "RENDER INSTRUCTION"

REQUIRED_SECTIONS = (
    SECTION_STYLE,
    SECTION_ENVIRONMENT,
    SECTION_ACTORS,
    SECTION_PROPS,
    SECTION_COMPOSITION,
    SECTION_ACTION,
    SECTION_RENDER,
)

_ZONE_POSITIONS = {
    "zone a": "LEFT THIRD of the frame",
    "zone b-1": "CENTER of the frame",
    "zone b-2": "CENTER of the frame (symmetric)",
    "zone c": "RIGHT THIRD of the frame",
}

_HIDDEN_TAG = re.compile(r"\[(\w+):\s*HIDDEN\]", re.IGNORECASE)


class PageNotFoundError(LookupError):
    """Raised when no page of the blueprint corresponds to a requested index."""

    def __init__(self, page_index: int) -> None:
        super().__init__(f"Page {page_index} not found.")
        self.page_index = page_index


@dataclass(frozen=True)
class FrameConfig:
    """
    Configuration knobs for frame prompt rendering.

    Attributes
    ----------
    max_trait_length:
        Maximum number of characters of an entity's traits kept by
        :meth:`ContinuityEngine.inject_entity_context`. Longer traits are cut
        and end with an ellipsis.
    render_instruction:
        Closing instruction appended to every frame prompt.
    establishing_shot:
        Camera directive forced on the first page of the story.
    default_shot:
        Camera directive used when neither the page nor its keywords pick one.
    """

    max_trait_length: int = 120
    render_instruction: str = (
        "Render exactly this frame as a single storybook illustration, using only the "
        "locked style, environment, actors and props above. Do not add text, extra "
        "characters or props."
    )
    establishing_shot: str = "Wide angle establishing shot, full body framing."
    default_shot: str = "Wide angle shot showing the characters in their environment."


class ContinuityEngine:
    """
    Builds self-contained, cross-page consistent generation prompts from a blueprint.
    """

    def __init__(self, config: FrameConfig | None = None) -> None:
        self._config = config or FrameConfig()

    @property
    def config(self) -> FrameConfig:
        return self._config

    def resolve_page(self, page_index: int, pages: Sequence[PageSpec]) -> PageSpec:
        """
        Find the page for ``page_index``.

        External page numbers are tried first (``page_number`` or ``panel_id`` equal
        to ``page_index + 1``), then the position in ``pages``.
        """
        wanted = page_index + 1
        for page in pages:
            if page.page_number == wanted or page.panel_id == wanted:
                return page
        if 0 <= page_index < len(pages):
            return pages[page_index]
        raise PageNotFoundError(page_index)

    def build_frame_prompt(
        self,
        page_index: int,
        blueprint: StoryBlueprint,
        pages: Sequence[PageSpec] | None = None,
        *,
        cultural_notes: Sequence[str] | None = None,
    ) -> str:
        """
        Render the frame prompt of one page in the fixed section order.

        Raises :class:`PageNotFoundError` when the page cannot be resolved.
        """
        page = self.resolve_page(page_index, blueprint.pages if pages is None else pages)

        sections = [
            _format_section(SECTION_STYLE, [blueprint.visual_lock or "Consistent storybook illustration style."]),
            _format_section(
                SECTION_ENVIRONMENT,
                [page.environment_override or blueprint.environment_lock or "Unspecified setting."]
                + list(cultural_notes or ()),
            ),
            _format_section(
                SECTION_ACTORS,
                [f"{actor_id}: {actor.describe() or 'no traits recorded'}"
                 for actor_id, actor in blueprint.actor_registry.items()]
                or ["No recurring actors."],
            ),
            _format_section(SECTION_PROPS, self._prop_lines(blueprint.prop_manifest, page)),
            _format_section(SECTION_COMPOSITION, self._composition_lines(page, page_index)),
        ]

        interaction = self._interaction_rule(page, blueprint.interaction_rules)
        if interaction is not None:
            sections.append(_format_section(SECTION_INTERACTION, [interaction]))

        sections.append(f"{SECTION_ACTION}:\n{page.action}")
        sections.append(f"{SECTION_RENDER}:\n{self._config.render_instruction}")
        return "\n\n".join(sections)

    def build_scene_prompt(
        self,
        page_index: int,
        blueprint: StoryBlueprint,
        pages: Sequence[PageSpec] | None = None,
        *,
        cultural_notes: Sequence[str] | None = None,
    ) -> str:
        """
        Flat prompt for blueprints without an actor registry.
        """
        page = self.resolve_page(page_index, blueprint.pages if pages is None else pages)
        lines = [
            blueprint.visual_lock,
            page.environment_override or blueprint.environment_lock,
            *(cultural_notes or ()),
            self.inject_entity_context(page.action, blueprint.entity_map()),
        ]
        return "\n".join(line for line in lines if line)

    def prompt_for_page(
        self,
        page_index: int,
        blueprint: StoryBlueprint,
        pages: Sequence[PageSpec] | None = None,
        *,
        cultural_notes: Sequence[str] | None = None,
    ) -> str:
        if blueprint.actor_registry:
            return self.build_frame_prompt(
                page_index, blueprint, pages, cultural_notes=cultural_notes
            )
        return self.build_scene_prompt(page_index, blueprint, pages, cultural_notes=cultural_notes)

    def inject_entity_context(self, action_text: str, entity_map: Mapping[str, Any]) -> str:
        """
        Append a ``[VISUAL CONTEXT (id): traits]`` note for every entity id that
        literally occurs in ``action_text``.
        """
        annotations: list[str] = []
        for entity_id, traits in entity_map.items():
            entity_text = _sanitize(entity_id)
            if not entity_text or entity_text not in action_text:
                continue
            marker = f"[VISUAL CONTEXT ({entity_text})"
            if marker in action_text:
                continue
            trait_text = _truncate(_sanitize(traits) or "", self._config.max_trait_length)
            annotations.append(f"{marker}: {trait_text}]")

        if not annotations:
            return action_text
        return " ".join([action_text.rstrip(), *annotations])

    def _prop_lines(self, props: Sequence[PropBinding], page: PageSpec) -> list[str]:
        hidden = {name.upper() for name in page.hidden_props}
        hidden.update(match.upper() for match in _HIDDEN_TAG.findall(page.action))

        lines: list[str] = []
        for prop in props:
            if prop.prop_id.upper() in hidden:
                continue
            line = prop.prop_id
            if prop.parent_actor_id:
                line += f" stays attached to {prop.parent_actor_id}"
                if prop.attachment_point:
                    line += f" ({prop.attachment_point})"
            if prop.description:
                line += f": {prop.description}"
            lines.append(line)
        return lines or ["No locked props in this frame."]

    def _composition_lines(self, page: PageSpec, page_index: int) -> list[str]:
        lines = [f"Camera: {self._camera_directive(page, page_index)}"]
        lines.extend(_zoning_lines(page.zoning))
        if page.motion_vector:
            lines.append(f"Motion: {page.motion_vector}")
        if page.focus:
            lines.append(f"Focus: {page.focus}")
        if page.depth:
            lines.append(f"Depth: {page.depth}")
        return lines

    def _camera_directive(self, page: PageSpec, page_index: int) -> str:
        if page_index == 0:
            return self._config.establishing_shot
        if page.camera:
            return page.camera

        keywords = " ".join(
            filter(None, [page.action, page.zoning if isinstance(page.zoning, str) else None])
        ).lower()
        if "close up" in keywords or "close-up" in keywords or "closeup" in keywords:
            return "Close-up shot, focus on detail and expression."
        if "medium shot" in keywords:
            return "Medium shot, waist-up framing."
        return self._config.default_shot

    @staticmethod
    def _interaction_rule(page: PageSpec, rules: Mapping[str, str]) -> str | None:
        if not page.lock_state or not rules:
            return None
        rule = rules.get(page.lock_state)
        if rule is None:
            wanted = page.lock_state.lower()
            rule = next((text for name, text in rules.items() if name.lower() == wanted), None)
        if rule is None:
            return None
        return f"{page.lock_state}: {rule}"


def missing_frame_sections(prompt: str) -> list[str]:
    """Return the mandatory section headings absent from ``prompt``."""
    return [name for name in REQUIRED_SECTIONS if f"{name}:" not in prompt]


def _zoning_lines(zoning: Any) -> list[str]:
    if not zoning:
        return []
    if isinstance(zoning, Mapping):
        return [
            f"Position: {actor} in the {_translate_zone(zone)}"
            for actor, zone in zoning.items()
        ]
    return [f"Position: {_translate_zone(str(zoning))}"]


def _translate_zone(zone: str) -> str:
    key = zone.strip().lower()
    if key in _ZONE_POSITIONS:
        return _ZONE_POSITIONS[key]
    if "left" in key:
        return "LEFT THIRD of the frame"
    if "right" in key:
        return "RIGHT THIRD of the frame"
    return zone.strip()


def _format_section(title: str, lines: Sequence[str]) -> str:
    body = "\n".join(f"- {line}" for line in lines if line)
    return f"{title}:\n{body}"


def _sanitize(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _truncate(text: str, limit: int) -> str:
    if limit <= 0 or len(text) <= limit:
        return text
    return text[: max(limit - 1, 0)].rstrip() + "…"
