"""
Prompt construction utilities for the Taleweaver text phases.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Sequence

from .blueprint import StoryBlueprint
from .cultural_fallback import CulturalContext
from .level_config import LevelConfig

BLUEPRINT_SCHEMA = """{
  "narrative": "2-3 sentence summary of the whole story",
  "global_locks": {
    "style_engine": "art style, palette and lighting shared by every page",
    "environmental_anchors": {"location": "string", "lighting": "string"}
  },
  "actor_registry": [
    {"id": "PROT_NAME", "dna": {"age": "string", "hair": "string", "skin": "string"}, "wardrobe": "string"}
  ],
  "prop_manifest": [
    {"id": "PROP_NAME", "parent": "PROT_NAME", "grip": "left hand", "description": "string"}
  ],
  "interaction_rules": {"HAND_HOLD": "how the locked interaction must look"},
  "story_sequence": [
    {"page": 1, "action": "what happens, naming actors by id", "zoning": {"PROT_NAME": "Zone A"},
     "motion_vector": "string", "focus": "string", "lock_state": null}
  ]
}"""


@dataclass(frozen=True)
class StoryPrompt:
    """
    Container for the system and user prompts passed to a text model.
    """

    system: str
    user: str


def build_blueprint_prompt(
    *,
    topic: str,
    language: str,
    level: LevelConfig,
    page_count: int,
    premise: str = "",
    protagonist_gender: str | None = None,
) -> StoryPrompt:
    """
    Build the prompt pair that asks for the story-wide visual and narrative plan.
    """
    system_prompt = f"""You are the story director of an illustrated children's book series.
You plan a complete story before any page is written or drawn, and you lock every
visual decision so that independently drawn pages stay consistent.

Planning directives:
- Give every recurring character a stable uppercase id (e.g. PROT_ARUN, ELDER_THATHA) and a precise visual DNA.
- Attach every recurring prop to the actor who carries it and say how it is held.
- Fix one art style and one environment for the whole book.
- Describe each page as a single visual moment; refer to characters only by id.
- Place actors on the page with zones: Zone A (left), Zone B-1/B-2 (center), Zone C (right).
- Keep the plot gentle, safe and age-appropriate.

Respond with valid JSON matching this schema:
{BLUEPRINT_SCHEMA}

Do not include commentary outside the JSON."""

    lines = [
        f"Topic: {topic}",
        f"Story language: {language}",
        f"Number of pages: {page_count}",
    ]
    if premise:
        lines.append(f"Premise: {premise}")
    if protagonist_gender:
        lines.append(f"Protagonist gender: {protagonist_gender}")
    lines.extend(level.prompt_lines())

    user_prompt = (
        "Plan the story described below.\n\n"
        + "\n".join(f"- {line}" for line in lines)
        + f"\n\nReturn exactly {page_count} entries in story_sequence."
    )
    return StoryPrompt(system=system_prompt, user=user_prompt)


def build_cultural_prompt(*, topic: str, language: str, level: int) -> StoryPrompt:
    system_prompt = """You are a cultural anthropologist advising a children's book studio.
You describe authentic, respectful cultural context for one region and one story.

Respond with JSON only:
{
  "naming": {"protagonist_boys": [], "protagonist_girls": [], "elders_male": [], "elders_female": []},
  "visual_identity": {"architecture": "string", "environment": "string", "clothing": "string"},
  "values": ["string"],
  "sensory_elements": {"sounds": ["string"], "smells": ["string"]},
  "negatives": {"avoid": ["string"], "emotion_guideline": "string"}
}"""

    user_prompt = (
        f"Story topic: {topic}\n"
        f"Language / region: {language}\n"
        f"Reader level: {level}\n\n"
        "Be specific to the topic and avoid stereotypes."
    )
    return StoryPrompt(system=system_prompt, user=user_prompt)


def build_narrative_prompt(
    *,
    blueprint: StoryBlueprint,
    culture: CulturalContext,
    level: LevelConfig,
) -> StoryPrompt:
    """
    Ask for the read-aloud text of every page, in the story language.
    """
    system_prompt = f"""You are a children's author writing in {culture.language}.
You turn a locked story plan into short read-aloud text, one entry per page.

Writing directives:
- Follow the plan page by page; never add or drop pages.
- Use culturally authentic names and forms of address.
- Respect the grammar and vocabulary limits of the reading level exactly.
- Emotional tone: {culture.emotion_guideline or "warm and gentle"}.

Respond with JSON only:
{{"pages": [{{"page": 1, "text": "string"}}]}}"""

    page_lines = [f"{page.index + 1}. {page.action}" for page in blueprint.pages]
    sections = [
        _format_bullet_section("Reading level", level.prompt_lines()),
        _format_bullet_section("Names to draw from", _naming_lines(culture)),
        _format_bullet_section("Cultural behaviour", [culture.locked_behavior or ""]),
        f"Story summary:\n{blueprint.narrative or '(none)'}",
        "Pages:\n" + "\n".join(page_lines),
    ]
    user_prompt = "\n\n".join(section for section in sections if section)
    return StoryPrompt(system=system_prompt, user=user_prompt)


def build_vocabulary_prompt(*, pages: Sequence[str], language: str, level: int) -> StoryPrompt:
    system_prompt = f"""You are a {language} language teacher preparing a word list for a level {level} reader.
Pick the words from the story that a learner at this level should study.

Respond with JSON only:
{{"vocabulary": [{{"native": "string", "transliteration": "string", "meaning_en": "string", "type": "noun|verb|adjective|other"}}]}}"""
    user_prompt = "Story text:\n" + _numbered(pages)
    return StoryPrompt(system=system_prompt, user=user_prompt)


def build_audio_direction_prompt(*, pages: Sequence[str], language: str) -> StoryPrompt:
    system_prompt = f"""You are a voice director preparing a {language} read-aloud recording for children.
For each page give the narrator short acting directions: pace, emotion and where to pause.

Respond with JSON only:
{{"directions": [{{"page": 1, "pace": "slow|medium|fast", "emotion": "string", "notes": "string"}}]}}"""
    user_prompt = "Story text:\n" + _numbered(pages)
    return StoryPrompt(system=system_prompt, user=user_prompt)


def _naming_lines(culture: CulturalContext) -> list[str]:
    return [
        f"{role.replace('_', ' ')}: {', '.join(names)}"
        for role, names in culture.naming.items()
    ]


def _numbered(pages: Iterable[str]) -> str:
    return "\n".join(f"{index}. {text}" for index, text in enumerate(pages, start=1))


def _format_bullet_section(title: str, lines: Iterable[str]) -> str:
    cleaned = [line.strip() for line in lines if line and line.strip()]
    if not cleaned:
        return ""
    return f"{title}:\n" + "\n".join(f"- {line}" for line in cleaned)
