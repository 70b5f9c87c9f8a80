"""
Orchestrates the full Taleweaver pipeline from topic to cached illustrations.

Phases run in a fixed order and each one is cache-first:

``BLUEPRINT -> CULTURAL_CONTEXT -> NARRATIVE_TEXT -> VOCABULARY_ENRICHMENT -> VISUALS -> AUDIO_DIRECTION``

The orchestrator never raises out of a phase. Failures are encoded in
:class:`PhaseResult` objects and reported to the optional observer as
:class:`PhaseEvent` instances.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, Mapping, Sequence

import yaml
from tenacity import AsyncRetrying, RetryCallState, retry_if_result, stop_after_attempt, wait_exponential

from taleweaver.common import GenerateCallable, GenerationResult, PipelineSettings, extract_json
from taleweaver.storage import ArtifactCache, ArtifactKey, ArtifactKind, generate_story_key
from taleweaver.story_generation import (
    CulturalContext,
    FallbackOracle,
    LevelConfig,
    StoryBlueprint,
    StoryPrompt,
    get_level_config,
    is_usable_context,
    normalize_locale,
)
from taleweaver.story_generation.prompting import (
    build_audio_direction_prompt,
    build_blueprint_prompt,
    build_cultural_prompt,
    build_narrative_prompt,
    build_vocabulary_prompt,
)

from .continuity import ContinuityEngine, missing_frame_sections

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    BLUEPRINT = "blueprint"
    CULTURAL_CONTEXT = "cultural_context"
    NARRATIVE_TEXT = "narrative_text"
    VOCABULARY_ENRICHMENT = "vocabulary_enrichment"
    VISUALS = "visuals"
    AUDIO_DIRECTION = "audio_direction"

    @property
    def title(self) -> str:
        return _PHASE_TITLES[self]


_PHASE_TITLES = {
    Phase.BLUEPRINT: "Phase 1: Blueprint",
    Phase.CULTURAL_CONTEXT: "Phase 2: Cultural Context",
    Phase.NARRATIVE_TEXT: "Phase 3: Narrative Text",
    Phase.VOCABULARY_ENRICHMENT: "Phase 4: Vocabulary Enrichment",
    Phase.VISUALS: "Phase 5: Visuals",
    Phase.AUDIO_DIRECTION: "Phase 6: Audio Direction",
}

_LOG_NAMES = {
    Phase.BLUEPRINT: "saga_blueprint",
    Phase.CULTURAL_CONTEXT: "cultural_context",
    Phase.NARRATIVE_TEXT: "narrative_text",
    Phase.VOCABULARY_ENRICHMENT: "vocabulary",
    Phase.AUDIO_DIRECTION: "audio_direction",
}

_RETRYABLE_MARKERS = ("429", "quota", "too many requests", "503", "overloaded")


class PhaseStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    INFO = "info"


@dataclass(frozen=True)
class PhaseEvent:
    """Informational progress record handed to the observer."""

    name: str
    status: PhaseStatus
    payload: Mapping[str, Any] = field(default_factory=dict)


PhaseObserver = Callable[[PhaseEvent], None]
ImageOptimizer = Callable[[bytes], bytes]


@dataclass
class PhaseResult:
    """
    Outcome of one phase.

    ``status`` is ``"success"``, ``"error"`` or ``"skipped"``; ``source`` tells
    where a successful output came from (``"cache"``, ``"live"`` or ``"fallback"``).
    """

    phase: Phase
    status: str
    source: str | None = None
    model: str | None = None
    error: str | None = None
    output: Any = field(default=None, repr=False)

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self.phase.value,
            "status": self.status,
            "source": self.source,
            "model": self.model,
            "error": self.error,
        }


@dataclass(frozen=True)
class PageFailure:
    index: int
    message: str


@dataclass
class VisualsReport:
    """Per-run summary of the visuals phase."""

    attempted: int = 0
    succeeded: int = 0
    failed: list[PageFailure] = field(default_factory=list)
    from_cache: bool = False
    persist_failures: list[PageFailure] = field(default_factory=list)
    images: dict[int, bytes] = field(default_factory=dict, repr=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": [{"index": item.index, "message": item.message} for item in self.failed],
            "from_cache": self.from_cache,
            "persist_failures": [
                {"index": item.index, "message": item.message} for item in self.persist_failures
            ],
        }


@dataclass(frozen=True)
class StoryRequest:
    """What the caller wants generated."""

    topic: str
    language: str = "en"
    level: int = 1
    page_count: int | None = None
    premise: str = ""
    protagonist_gender: str | None = None

    def artifact_key(self, kind: ArtifactKind = ArtifactKind.IMAGES) -> ArtifactKey:
        return ArtifactKey(self.language, self.level, self.topic, kind)


@dataclass
class StoryPackage:
    """Aggregated output of one pipeline run."""

    request: StoryRequest
    story_key: str
    blueprint: StoryBlueprint | None = None
    culture: CulturalContext | None = None
    page_texts: list[str] = field(default_factory=list)
    vocabulary: list[dict[str, Any]] = field(default_factory=list)
    audio_directions: list[dict[str, Any]] = field(default_factory=list)
    visuals: VisualsReport | None = None
    phase_results: list[PhaseResult] = field(default_factory=list)
    halted_at: Phase | None = None

    @property
    def completed(self) -> bool:
        return self.halted_at is None

    def result_for(self, phase: Phase) -> PhaseResult | None:
        return next((result for result in self.phase_results if result.phase is phase), None)

    def to_dict(self) -> dict[str, Any]:
        pages: list[dict[str, Any]] = []
        if self.blueprint is not None:
            key = self.request.artifact_key()
            for page in self.blueprint.pages:
                pages.append(
                    {
                        "index": page.index,
                        "action": page.action,
                        "text": self.page_texts[page.index] if page.index < len(self.page_texts) else None,
                        "image": key.page_path(page.index),
                    }
                )
        return {
            "story_key": self.story_key,
            "request": {
                "topic": self.request.topic,
                "language": self.request.language,
                "level": self.request.level,
                "premise": self.request.premise,
            },
            "halted_at": self.halted_at.value if self.halted_at else None,
            "phases": [result.to_dict() for result in self.phase_results],
            "narrative": self.blueprint.narrative if self.blueprint else None,
            "culture": self.culture.to_dict() if self.culture else None,
            "pages": pages,
            "vocabulary": list(self.vocabulary),
            "audio_directions": list(self.audio_directions),
            "visuals": self.visuals.to_dict() if self.visuals else None,
        }

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), sort_keys=False, allow_unicode=True)


class PipelineOrchestrator:
    """
    High-level coordinator that chains the generation phases of one story.

    Parameters
    ----------
    generate_fn:
        Async ``(model, prompt, **options) -> GenerationResult`` callable. Text and
        image models are both reached through it.
    cache:
        Artifact cache consulted before every phase.
    oracle:
        Source of cultural defaults when the live cultural call fails.
    settings:
        Model chains, batching and timeout configuration.
    engine:
        Frame prompt builder for the visuals phase.
    optimize_image:
        Optional synchronous re-encoder applied to image bytes before saving.
    sleep:
        Awaitable used for the inter-batch cooldown. Mainly useful for testing.
    """

    def __init__(
        self,
        *,
        generate_fn: GenerateCallable,
        cache: ArtifactCache,
        oracle: FallbackOracle | None = None,
        settings: PipelineSettings | None = None,
        engine: ContinuityEngine | None = None,
        optimize_image: ImageOptimizer | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._generate_fn = generate_fn
        self._cache = cache
        self._oracle = oracle or FallbackOracle()
        self._settings = settings or PipelineSettings()
        self._engine = engine or ContinuityEngine()
        self._optimize_image = optimize_image
        self._sleep = sleep

    @property
    def settings(self) -> PipelineSettings:
        return self._settings

    async def run(
        self,
        request: StoryRequest,
        *,
        on_phase: PhaseObserver | None = None,
    ) -> StoryPackage:
        """
        Complete pipeline from a story request to cached pages and enrichment.
        """
        level = get_level_config(request.level)
        package = StoryPackage(
            request=request,
            story_key=generate_story_key(request.language, request.level, request.topic),
        )

        result = await self.run_blueprint(request, level=level, on_phase=on_phase)
        if not self._record(package, result, on_phase):
            return package
        package.blueprint = result.output
        # Text derived from a freshly planned story must not come from older logs.
        refresh = result.source != "cache"

        result = await self.run_cultural_context(request, on_phase=on_phase)
        if not self._record(package, result, on_phase):
            return package
        package.culture = result.output

        result = await self.run_narrative(
            request,
            package.blueprint,
            package.culture,
            level=level,
            refresh=refresh,
            on_phase=on_phase,
        )
        if not self._record(package, result, on_phase):
            return package
        package.page_texts = result.output

        if self._settings.enable_vocabulary:
            result = await self.run_vocabulary(
                request, package.page_texts, refresh=refresh, on_phase=on_phase
            )
            if not self._record(package, result, on_phase):
                return package
            package.vocabulary = result.output
        else:
            package.phase_results.append(self._skip(Phase.VOCABULARY_ENRICHMENT, on_phase))

        result = await self.run_visuals(
            request, package.blueprint, culture=package.culture, on_phase=on_phase
        )
        package.phase_results.append(result)
        package.visuals = result.output

        if self._settings.enable_audio:
            result = await self.run_audio_direction(
                request, package.page_texts, refresh=refresh, on_phase=on_phase
            )
            package.phase_results.append(result)
            if result.ok:
                package.audio_directions = result.output
        else:
            package.phase_results.append(self._skip(Phase.AUDIO_DIRECTION, on_phase))

        return package

    async def run_blueprint(
        self,
        request: StoryRequest,
        *,
        level: LevelConfig | None = None,
        page_count: int | None = None,
        on_phase: PhaseObserver | None = None,
    ) -> PhaseResult:
        """
        Plan the story. A cached plan is reused only if it has the page count
        the caller asked for explicitly.
        """
        level = level or get_level_config(request.level)
        requested = page_count or request.page_count
        prompt = build_blueprint_prompt(
            topic=request.topic,
            language=request.language,
            level=level,
            page_count=requested or level.default_page_count,
            premise=request.premise,
            protagonist_gender=request.protagonist_gender,
        )
        return await self._run_text_phase(
            Phase.BLUEPRINT,
            request,
            prompt=prompt,
            models=self._settings.blueprint_models,
            parse=StoryBlueprint.from_mapping,
            accept_cached=lambda blueprint: requested is None or blueprint.page_count == requested,
            on_phase=on_phase,
        )

    async def run_cultural_context(
        self,
        request: StoryRequest,
        *,
        on_phase: PhaseObserver | None = None,
    ) -> PhaseResult:
        locale = normalize_locale(request.language) or request.language

        def parse(payload: Any) -> CulturalContext:
            if not is_usable_context(payload):
                raise ValueError("Cultural context answer carries no naming or visual guidance.")
            return CulturalContext.from_mapping(locale, payload)

        prompt = build_cultural_prompt(
            topic=request.topic, language=request.language, level=request.level
        )
        result = await self._run_text_phase(
            Phase.CULTURAL_CONTEXT,
            request,
            prompt=prompt,
            models=self._settings.cultural_models,
            parse=parse,
            on_phase=on_phase,
            report_errors=False,
        )
        if result.ok:
            return result

        base = self._oracle.resolve(request.language)
        logger.warning("Cultural context falling back to defaults for '%s'.", base.locale)
        self._notify(
            on_phase,
            Phase.CULTURAL_CONTEXT,
            PhaseStatus.SUCCESS,
            source="fallback",
            locale=base.locale,
            reason=result.error,
        )
        return PhaseResult(
            Phase.CULTURAL_CONTEXT,
            "success",
            source="fallback",
            error=result.error,
            output=base,
        )

    async def run_narrative(
        self,
        request: StoryRequest,
        blueprint: StoryBlueprint,
        culture: CulturalContext,
        *,
        level: LevelConfig | None = None,
        refresh: bool = False,
        on_phase: PhaseObserver | None = None,
    ) -> PhaseResult:
        prompt = build_narrative_prompt(
            blueprint=blueprint,
            culture=culture,
            level=level or get_level_config(request.level),
        )
        return await self._run_text_phase(
            Phase.NARRATIVE_TEXT,
            request,
            prompt=prompt,
            models=self._settings.narrative_models,
            parse=lambda payload: _parse_page_texts(payload, blueprint.page_count),
            use_cache=not refresh,
            on_phase=on_phase,
        )

    async def run_vocabulary(
        self,
        request: StoryRequest,
        page_texts: Sequence[str],
        *,
        refresh: bool = False,
        on_phase: PhaseObserver | None = None,
    ) -> PhaseResult:
        prompt = build_vocabulary_prompt(
            pages=page_texts, language=request.language, level=request.level
        )
        return await self._run_text_phase(
            Phase.VOCABULARY_ENRICHMENT,
            request,
            prompt=prompt,
            models=self._settings.vocabulary_models,
            parse=lambda payload: _parse_records(payload, "vocabulary", required="native"),
            use_cache=not refresh,
            on_phase=on_phase,
        )

    async def run_audio_direction(
        self,
        request: StoryRequest,
        page_texts: Sequence[str],
        *,
        refresh: bool = False,
        on_phase: PhaseObserver | None = None,
    ) -> PhaseResult:
        prompt = build_audio_direction_prompt(pages=page_texts, language=request.language)
        return await self._run_text_phase(
            Phase.AUDIO_DIRECTION,
            request,
            prompt=prompt,
            models=self._settings.audio_models,
            parse=lambda payload: _parse_records(payload, "directions"),
            use_cache=not refresh,
            on_phase=on_phase,
        )

    async def run_visuals(
        self,
        request: StoryRequest,
        blueprint: StoryBlueprint,
        *,
        culture: CulturalContext | None = None,
        on_phase: PhaseObserver | None = None,
    ) -> PhaseResult:
        """
        Illustrate every page, short-circuiting on a complete cached set.
        """
        key = request.artifact_key(ArtifactKind.IMAGES)
        total = blueprint.page_count
        self._notify(on_phase, Phase.VISUALS, PhaseStatus.INFO, total_pages=total)

        cached = await self._cache.try_load(key, total)
        if cached is not None:
            report = VisualsReport(
                succeeded=len(cached),
                from_cache=True,
                images=dict(enumerate(cached)),
            )
            self._notify(
                on_phase,
                Phase.VISUALS,
                PhaseStatus.SUCCESS,
                name="Phase 5: Visuals Repurposed (Cache Hit)",
                total_pages=total,
                source="cache",
            )
            return PhaseResult(Phase.VISUALS, "success", source="cache", output=report)

        report = await self._generate_pages(
            key, blueprint, range(total), culture=culture, on_phase=on_phase
        )
        return self._finish_visuals(report, on_phase)

    async def regenerate_pages(
        self,
        request: StoryRequest,
        blueprint: StoryBlueprint,
        indices: Iterable[int],
        *,
        culture: CulturalContext | None = None,
        on_phase: PhaseObserver | None = None,
    ) -> VisualsReport:
        """
        Re-illustrate selected pages, ignoring the complete-set short-circuit.
        """
        key = request.artifact_key(ArtifactKind.IMAGES)
        wanted = sorted(set(indices))
        valid = [index for index in wanted if 0 <= index < blueprint.page_count]
        self._notify(on_phase, Phase.VISUALS, PhaseStatus.INFO, regenerate=valid)

        report = await self._generate_pages(key, blueprint, valid, culture=culture, on_phase=on_phase)
        for index in wanted:
            if index not in valid:
                report.attempted += 1
                report.failed.append(PageFailure(index, f"Page {index} not found."))
        report.failed.sort(key=lambda item: item.index)
        self._finish_visuals(report, on_phase)
        return report

    async def _generate_pages(
        self,
        key: ArtifactKey,
        blueprint: StoryBlueprint,
        indices: Iterable[int],
        *,
        culture: CulturalContext | None,
        on_phase: PhaseObserver | None,
    ) -> VisualsReport:
        report = VisualsReport()
        pending = list(indices)
        notes = culture.visual_notes() if culture is not None else ()
        reference: list[bytes] = []

        batches: list[list[int]] = []
        if self._settings.anchor_first_frame:
            if 0 in pending and len(pending) > 1:
                pending.remove(0)
                batches.append([0])
            elif 0 not in pending:
                anchor = await self._cache.fetch_single(key, 0)
                if anchor is not None:
                    reference.append(anchor)
        size = self._settings.batch_size
        batches.extend(pending[start:start + size] for start in range(0, len(pending), size))

        for number, batch in enumerate(batches, start=1):
            self._notify(
                on_phase,
                Phase.VISUALS,
                PhaseStatus.INFO,
                name=f"{Phase.VISUALS.title}: Batch {number}/{len(batches)}",
                pages=list(batch),
            )
            outcomes = await asyncio.gather(
                *(
                    self._attempt_page(index, blueprint, notes=notes, reference=tuple(reference))
                    for index in batch
                )
            )
            for index, data, prompt, model, error in outcomes:
                report.attempted += 1
                if error is None:
                    error = await self._persist_page(key, index, data, prompt, model, report)
                if error is None:
                    report.succeeded += 1
                    self._notify(
                        on_phase, Phase.VISUALS, PhaseStatus.SUCCESS,
                        name=f"{Phase.VISUALS.title}: Page {index + 1}", page_index=index,
                    )
                else:
                    report.failed.append(PageFailure(index, error))
                    self._notify(
                        on_phase, Phase.VISUALS, PhaseStatus.ERROR,
                        name=f"{Phase.VISUALS.title}: Page {index + 1}", page_index=index,
                        error=error,
                    )

            if self._settings.anchor_first_frame and batch == [0] and 0 in report.images:
                reference = [report.images[0]]

            if number < len(batches) and self._settings.batch_cooldown > 0:
                await self._sleep(self._settings.batch_cooldown)

        return report

    async def _attempt_page(
        self,
        index: int,
        blueprint: StoryBlueprint,
        *,
        notes: Sequence[str],
        reference: Sequence[bytes],
    ) -> tuple[int, bytes | None, str | None, str | None, str | None]:
        try:
            prompt = self._engine.prompt_for_page(index, blueprint, cultural_notes=notes)
        except LookupError as exc:
            return index, None, None, None, str(exc)

        if blueprint.actor_registry:
            missing = missing_frame_sections(prompt)
            if missing:
                logger.warning("Frame prompt for page %d lacks sections: %s", index, missing)

        options: dict[str, Any] = {}
        if reference:
            options["reference_images"] = list(reference)

        errors: list[str] = []
        for model in self._settings.image_models:
            result = await self._call(model, prompt, **options)
            if result.ok and result.binary_parts:
                return index, result.binary_parts[0], prompt, model, None
            errors.append(f"{model}: {result.error or 'no image data returned'}")
            logger.warning("Image model %s failed for page %d: %s", model, index, errors[-1])
        return index, None, prompt, None, "; ".join(errors) or "No image models configured."

    async def _persist_page(
        self,
        key: ArtifactKey,
        index: int,
        data: bytes,
        prompt: str,
        model: str,
        report: VisualsReport,
    ) -> str | None:
        if self._optimize_image is not None:
            try:
                data = await asyncio.to_thread(self._optimize_image, data)
            except Exception:
                logger.exception("Image optimization failed for page %d; keeping original.", index)

        saved = await self._cache.save(key, index, data)
        if not saved.ok:
            return f"Generated but not persisted: {saved.error}"
        if saved.remote_ok is False:
            report.persist_failures.append(PageFailure(index, saved.error or "remote write failed"))
        report.images[index] = data

        log = await self._cache.save_log(
            key,
            f"page-{index + 1:02d}-prompt",
            {"page_index": index, "model": model, "prompt": prompt},
        )
        if not log.ok:
            logger.warning("Could not store prompt log for page %d: %s", index, log.error)
        return None

    def _finish_visuals(self, report: VisualsReport, on_phase: PhaseObserver | None) -> PhaseResult:
        status = PhaseStatus.SUCCESS if not report.failed else PhaseStatus.ERROR
        self._notify(on_phase, Phase.VISUALS, status, **report.to_dict())
        error = None
        if report.failed:
            error = f"{len(report.failed)} of {report.attempted} pages failed."
        return PhaseResult(Phase.VISUALS, status.value, source="live", error=error, output=report)

    async def _run_text_phase(
        self,
        phase: Phase,
        request: StoryRequest,
        *,
        prompt: StoryPrompt,
        models: Sequence[str],
        parse: Callable[[Any], Any],
        on_phase: PhaseObserver | None,
        report_errors: bool = True,
        use_cache: bool = True,
        accept_cached: Callable[[Any], bool] | None = None,
    ) -> PhaseResult:
        key = request.artifact_key(ArtifactKind.LOGS)
        log_name = _LOG_NAMES[phase]
        self._notify(on_phase, phase, PhaseStatus.INFO)

        cached = await self._cache.load_log(key, log_name) if use_cache else None
        if cached is not None:
            try:
                output = parse(cached)
            except (ValueError, TypeError, KeyError, LookupError):
                logger.warning("Ignoring unusable cached %s log.", log_name)
            else:
                if accept_cached is None or accept_cached(output):
                    self._notify(on_phase, phase, PhaseStatus.SUCCESS, source="cache")
                    return PhaseResult(phase, "success", source="cache", output=output)
                logger.info("Cached %s log does not match the request; regenerating.", log_name)

        errors: list[str] = []
        for model in models:
            result = await self._call(
                model, prompt.user, system=prompt.system, json_mode=True
            )
            if not result.ok:
                errors.append(f"{model}: {result.error}")
                logger.warning("%s failed on %s: %s", phase.title, model, result.error)
                continue
            try:
                payload = extract_json(result.text)
                output = parse(payload)
            except (ValueError, TypeError, KeyError, LookupError) as exc:
                errors.append(f"{model}: {exc}")
                logger.warning("%s got an unusable answer from %s: %s", phase.title, model, exc)
                continue

            saved = await self._cache.save_log(key, log_name, payload)
            if not saved.ok:
                logger.warning("Could not cache %s output: %s", phase.title, saved.error)
            self._notify(on_phase, phase, PhaseStatus.SUCCESS, source="live", model=model)
            return PhaseResult(phase, "success", source="live", model=model, output=output)

        message = "; ".join(errors) or "No models configured."
        if report_errors:
            self._notify(on_phase, phase, PhaseStatus.ERROR, error=message)
        return PhaseResult(phase, "error", error=message)

    async def _call(self, model: str, prompt: str, **options: Any) -> GenerationResult:
        """
        One generation call, retried with exponential backoff while the model
        reports quota or overload errors. The last result is returned as is.
        """

        def log_retry(state: RetryCallState) -> None:
            logger.warning(
                "%s is rate limited (%s); retry %d/%d in %.1fs.",
                model,
                state.outcome.result().error,
                state.attempt_number,
                self._settings.max_retries,
                state.next_action.sleep,
            )

        retrying = AsyncRetrying(
            stop=stop_after_attempt(self._settings.max_retries + 1),
            wait=wait_exponential(multiplier=self._settings.retry_backoff),
            retry=retry_if_result(_is_retryable),
            retry_error_callback=lambda state: state.outcome.result(),
            before_sleep=log_retry,
            sleep=self._sleep,
        )
        return await retrying(self._call_once, model, prompt, **options)

    async def _call_once(self, model: str, prompt: str, **options: Any) -> GenerationResult:
        timeout = self._settings.call_timeout
        try:
            return await asyncio.wait_for(self._generate_fn(model, prompt, **options), timeout)
        except asyncio.TimeoutError:
            return GenerationResult.failure(f"Timed out after {timeout:g}s.")
        except Exception as exc:
            logger.exception("Generation call to %s raised.", model)
            return GenerationResult.failure(f"{type(exc).__name__}: {exc}")

    def _record(
        self,
        package: StoryPackage,
        result: PhaseResult,
        on_phase: PhaseObserver | None,
    ) -> bool:
        package.phase_results.append(result)
        if result.ok:
            return True
        package.halted_at = result.phase
        self._notify(
            on_phase,
            result.phase,
            PhaseStatus.INFO,
            name=f"Pipeline halted at {result.phase.title}",
            halted=True,
        )
        return False

    def _skip(self, phase: Phase, on_phase: PhaseObserver | None) -> PhaseResult:
        self._notify(on_phase, phase, PhaseStatus.INFO, skipped=True)
        return PhaseResult(phase, "skipped")

    @staticmethod
    def _notify(
        callback: PhaseObserver | None,
        phase: Phase,
        status: PhaseStatus,
        *,
        name: str | None = None,
        **payload: Any,
    ) -> None:
        if callback is None:
            return
        event = PhaseEvent(
            name=name or phase.title,
            status=status,
            payload={"phase": phase.value, **payload},
        )
        try:
            callback(event)
        except Exception:
            logger.exception("Phase observer raised for %r; ignoring.", event.name)


def _is_retryable(result: GenerationResult) -> bool:
    if result.ok or not result.error:
        return False
    error = result.error.lower()
    return any(marker in error for marker in _RETRYABLE_MARKERS)


def _parse_page_texts(payload: Any, page_count: int) -> list[str]:
    entries = payload.get("pages") if isinstance(payload, Mapping) else payload
    if not isinstance(entries, list):
        raise ValueError("Narrative answer must contain a 'pages' list.")

    by_number: dict[int, str] = {}
    positional: list[str] = []
    for entry in entries:
        if isinstance(entry, str):
            text, number = entry.strip(), None
        elif isinstance(entry, Mapping):
            text = str(entry.get("text") or "").strip()
            number = entry.get("page")
        else:
            continue
        positional.append(text)
        if isinstance(number, int) and not isinstance(number, bool):
            by_number[number] = text

    texts: list[str] = []
    for index in range(page_count):
        text = by_number.get(index + 1)
        if text is None and index < len(positional):
            text = positional[index]
        if not text:
            raise ValueError(f"Narrative answer has no text for page {index + 1}.")
        texts.append(text)
    return texts


def _parse_records(payload: Any, field_name: str, *, required: str | None = None) -> list[dict[str, Any]]:
    entries = payload.get(field_name) if isinstance(payload, Mapping) else payload
    if not isinstance(entries, list):
        raise ValueError(f"Answer must contain a '{field_name}' list.")
    records = [dict(entry) for entry in entries if isinstance(entry, Mapping)]
    if required is not None:
        records = [record for record in records if str(record.get(required) or "").strip()]
    return records
