"""
Static, per-locale cultural defaults served when live enrichment fails.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping

import yaml

logger = logging.getLogger(__name__)

BASELINE_LOCALE = "ta"
DEFAULT_DATA_PATH = Path(__file__).with_name("data") / "cultural_defaults.yaml"


@dataclass(frozen=True)
class CulturalContext:
    """
    Locale-specific guidance consumed by the narrative and visuals phases.
    """

    locale: str
    language: str
    naming: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    locked_behavior: str | None = None
    visual_identity: Mapping[str, str] = field(default_factory=dict)
    settings: Mapping[str, str] = field(default_factory=dict)
    avoid: tuple[str, ...] = ()
    emotion_guideline: str | None = None
    values: tuple[str, ...] = ()
    sensory_elements: Mapping[str, tuple[str, ...]] = field(default_factory=dict)
    plot_anchors: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, locale: str, payload: Mapping[str, Any]) -> "CulturalContext":
        language = payload.get("language")
        if isinstance(language, Mapping):
            language = language.get("name")
        return cls(
            locale=locale,
            language=str(language or locale).strip(),
            naming=_string_lists(payload.get("naming")),
            locked_behavior=_optional_text(
                payload.get("locked_behavior")
                or _nested(payload, "naming", "locked_behavior")
            ),
            visual_identity=_string_map(payload.get("visual_identity")),
            settings=_string_map(payload.get("settings") or payload.get("urban_settings")),
            avoid=_string_tuple(payload.get("avoid") or _nested(payload, "negatives", "avoid")),
            emotion_guideline=_optional_text(
                payload.get("emotion_guideline")
                or _nested(payload, "negatives", "emotion_guideline")
            ),
            values=_string_tuple(payload.get("values")),
            sensory_elements=_string_lists(payload.get("sensory_elements")),
            plot_anchors=_string_map(payload.get("plot_anchors")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "locale": self.locale,
            "language": self.language,
            "naming": {key: list(names) for key, names in self.naming.items()},
            "locked_behavior": self.locked_behavior,
            "visual_identity": dict(self.visual_identity),
            "settings": dict(self.settings),
            "avoid": list(self.avoid),
            "emotion_guideline": self.emotion_guideline,
            "values": list(self.values),
            "sensory_elements": {key: list(items) for key, items in self.sensory_elements.items()},
            "plot_anchors": dict(self.plot_anchors),
        }

    def visual_notes(self) -> list[str]:
        """Short lines describing the locale's look, for frame prompts."""
        notes = [
            f"{key.replace('_', ' ').capitalize()}: {value}"
            for key, value in self.visual_identity.items()
        ]
        if self.avoid:
            notes.append("Avoid: " + "; ".join(self.avoid))
        return notes


class FallbackOracle:
    """
    Serves curated cultural defaults keyed by locale.

    Parameters
    ----------
    data:
        Optional mapping of ``locale -> record``. Defaults to the packaged YAML file.
    baseline_locale:
        Locale returned when the requested one is unknown.
    """

    def __init__(
        self,
        data: Mapping[str, Mapping[str, Any]] | None = None,
        *,
        baseline_locale: str = BASELINE_LOCALE,
    ) -> None:
        records = data if data is not None else load_cultural_defaults()
        self._records = {str(locale).lower(): dict(record) for locale, record in records.items()}
        if baseline_locale.lower() not in self._records:
            raise ValueError(f"Baseline locale '{baseline_locale}' has no default record.")
        self._baseline = baseline_locale.lower()

    @property
    def locales(self) -> tuple[str, ...]:
        return tuple(sorted(self._records))

    def resolve(self, locale: str | None) -> CulturalContext:
        key = normalize_locale(locale)
        record = self._records.get(key)
        if record is None:
            logger.info("No cultural defaults for %r; using baseline '%s'.", locale, self._baseline)
            key = self._baseline
            record = self._records[key]
        return CulturalContext.from_mapping(key, record)


def normalize_locale(locale: str | None) -> str:
    """``"ta-IN"`` and ``"TA_in"`` both become ``"ta"``."""
    text = str(locale or "").strip().lower().replace("_", "-")
    return text.split("-", 1)[0]


def load_cultural_defaults(path: str | Path = DEFAULT_DATA_PATH) -> Mapping[str, Mapping[str, Any]]:
    data = yaml.safe_load(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, Mapping) or not isinstance(data.get("locales"), Mapping):
        raise ValueError("Cultural defaults YAML must contain a 'locales' mapping.")
    return data["locales"]


def is_usable_context(payload: Any) -> bool:
    """A live answer is usable when it carries naming or visual guidance."""
    if not isinstance(payload, Mapping):
        return False
    naming = payload.get("naming")
    visual = payload.get("visual_identity")
    return bool(
        (isinstance(naming, Mapping) and naming)
        or (isinstance(visual, Mapping) and visual)
    )


def _nested(payload: Mapping[str, Any], outer: str, inner: str) -> Any:
    container = payload.get(outer)
    if isinstance(container, Mapping):
        return container.get(inner)
    return None


def _optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _string_tuple(value: Any) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        value = [value]
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(text for item in value if (text := _optional_text(item)))


def _string_lists(value: Any) -> dict[str, tuple[str, ...]]:
    if not isinstance(value, Mapping):
        return {}
    result: dict[str, tuple[str, ...]] = {}
    for key, items in value.items():
        if isinstance(items, (list, tuple)):
            names = _string_tuple(items)
            if names:
                result[str(key)] = names
    return result


def _string_map(value: Any) -> dict[str, str]:
    if isinstance(value, str):
        text = _optional_text(value)
        return {"description": text} if text else {}
    if not isinstance(value, Mapping):
        return {}
    result: dict[str, str] = {}
    for key, item in value.items():
        if isinstance(item, (list, tuple)):
            text = ", ".join(_string_tuple(item)) or None
        elif isinstance(item, Mapping):
            text = "; ".join(f"{k}: {v}" for k, v in item.items() if _optional_text(v)) or None
        else:
            text = _optional_text(item)
        if text:
            result[str(key)] = text
    return result
