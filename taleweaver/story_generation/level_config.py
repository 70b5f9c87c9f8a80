"""
Reading-level presets that shape every text prompt.
"""

from __future__ import annotations

from dataclasses import dataclass

MIN_LEVEL = 1
MAX_LEVEL = 8
SENTENCES_PER_PAGE = 2


@dataclass(frozen=True)
class LevelConfig:
    level: int
    label: str
    sentence_count: int
    words_per_sentence: str
    grammar_focus: str
    vocabulary_tier: str
    knowledge_depth: str

    @property
    def default_page_count(self) -> int:
        return max(2, self.sentence_count // SENTENCES_PER_PAGE)

    def prompt_lines(self) -> list[str]:
        return [
            f"Reading level: {self.level} ({self.label})",
            f"Total sentences: {self.sentence_count}",
            f"Words per sentence: {self.words_per_sentence}",
            f"Grammar focus: {self.grammar_focus}",
            f"Vocabulary tier: {self.vocabulary_tier}",
            f"Knowledge depth: {self.knowledge_depth}",
        ]


_LEVELS: tuple[LevelConfig, ...] = (
    LevelConfig(
        1,
        "Emergent",
        6,
        "3-5",
        "Simple SV or SVO sentences. Present tense only.",
        "High-frequency sight words. Concrete nouns.",
        "Surface: direct correspondence to the illustration.",
    ),
    LevelConfig(
        2,
        "Beginner",
        8,
        "6-8",
        "Compound sentences using 'and', 'but'. Present continuous tense. Avoid passive voice.",
        "Routine actions, basic emotions.",
        "Linear time order only.",
    ),
    LevelConfig(
        3,
        "Developing",
        10,
        "8-10",
        "Complex sentences with 'because', 'when', 'if'. Simple past tense.",
        "Abstract concepts (courage, friendship). Descriptive adjectives.",
        "Dialogue tags permitted. Cause and effect.",
    ),
    LevelConfig(
        4,
        "Expanding",
        12,
        "10-12",
        "Compound-complex sentences. Future tense.",
        "Context-specific vocabulary. Adverbs of manner.",
        "Paragraph structure with a topic sentence.",
    ),
    LevelConfig(
        5,
        "Bridging",
        14,
        "12-15",
        "Past continuous and perfect tenses. Relative clauses.",
        "Simple idiomatic expressions. Synonyms.",
        "Inference required; meaning may be implied rather than shown.",
    ),
    LevelConfig(
        6,
        "Fluent",
        16,
        "15-18",
        "Passive voice. Type 1 and 2 conditionals. Varied sentence beginnings.",
        "Academic vocabulary. Multiple-meaning words.",
        "Flashbacks or non-linear narrative elements allowed.",
    ),
    LevelConfig(
        7,
        "Proficient",
        18,
        "18-20+",
        "Complex conditionals. Subjunctive mood. Stylistic devices such as alliteration.",
        "Nuanced emotional vocabulary. Domain-specific terms.",
        "Character internal monologue and motivation.",
    ),
    LevelConfig(
        8,
        "Mastery",
        20,
        "Varied (long/short)",
        "Full range of tenses and structures. Rhetorical questions.",
        "Literary terms. Metaphors.",
        "Cultural subtext and proverbs used heavily.",
    ),
)


def clamp_level(level: int | None) -> int:
    try:
        value = int(level or MIN_LEVEL)
    except (TypeError, ValueError):
        value = MIN_LEVEL
    return max(MIN_LEVEL, min(MAX_LEVEL, value))


def get_level_config(level: int | None) -> LevelConfig:
    """Return the preset for ``level``; out-of-range values are clamped to 1-8."""
    return _LEVELS[clamp_level(level) - 1]
