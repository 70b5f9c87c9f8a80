"""
CLI to run the complete Taleweaver pipeline end-to-end.

Usage:
    python scripts/run_full_pipeline.py \
        --topic "Helping Grandfather" \
        --language ta \
        --level 2 \
        --pages 4 \
        --output story_package.yaml
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from dataclasses import replace
from pathlib import Path

from tqdm.auto import tqdm

# Ensure project root is on the Python path when running as a script.
PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from taleweaver import (
    ArtifactCache,
    GCSBlobStore,
    GenerationRouter,
    PhaseEvent,
    PipelineOrchestrator,
    PipelineSettings,
    ReplicateImageGenerator,
    StoryRequest,
)
from taleweaver.pipeline import Phase


class ProgressTracker:
    """
    Provides user-friendly command-line progress updates for the Taleweaver pipeline.
    """

    def __init__(self) -> None:
        self._page_bar: tqdm | None = None

    def __call__(self, event: PhaseEvent) -> None:
        payload = event.payload
        match (payload.get("phase"), event.status.value):
            case (Phase.VISUALS.value, "info") if "total_pages" in payload:
                self._write(f"{event.name}: illustrating {payload['total_pages']} pages...")
                self._page_bar = tqdm(total=payload["total_pages"], desc="Illustrated pages", unit="page")
            case (Phase.VISUALS.value, _) if "page_index" in payload:
                if self._page_bar is not None:
                    self._page_bar.update(1)
                if event.status.value == "error":
                    self._write(f"  page {payload['page_index'] + 1} failed: {payload.get('error')}")
            case (Phase.VISUALS.value, "success" | "error") if "attempted" in payload or "source" in payload:
                self.close()
                self._write(f"{event.name}: {_summarize(payload)}")
            case (_, "info") if payload.get("skipped"):
                self._write(f"{event.name}: skipped.")
            case (_, "info") if payload.get("halted"):
                self._write(f"{event.name}.")
            case (_, "info"):
                if len(payload) == 1:
                    self._write(f"{event.name}...")
            case (_, "success"):
                source = payload.get("source", "live")
                self._write(f"{event.name}: done ({source}).")
            case (_, "error"):
                self._write(f"{event.name}: failed. {payload.get('error', '')}")

    def close(self) -> None:
        if self._page_bar is not None:
            self._page_bar.close()
            self._page_bar = None

    @staticmethod
    def _write(message: str) -> None:
        tqdm.write(message)


def _summarize(payload: dict) -> str:
    if payload.get("source") == "cache":
        return "all pages loaded from cache."
    failed = payload.get("failed") or []
    return (
        f"{payload.get('succeeded', 0)}/{payload.get('attempted', 0)} pages generated"
        + (f", {len(failed)} failed." if failed else ".")
    )


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the full Taleweaver generation pipeline.")
    parser.add_argument("--topic", required=True, help="Story topic, e.g. 'Helping Grandfather'.")
    parser.add_argument("--language", default="en", help="Story locale code (default: en).")
    parser.add_argument("--level", type=int, default=1, help="Reading level 1-8 (default: 1).")
    parser.add_argument(
        "--pages",
        type=int,
        default=None,
        help="Optional page count override. Defaults to the reading level preset.",
    )
    parser.add_argument("--premise", default="", help="Optional one-line premise.")
    parser.add_argument("--gender", default=None, help="Optional protagonist gender.")
    parser.add_argument(
        "--output",
        default="story_package.yaml",
        help="Output YAML file to store the story package summary.",
    )
    parser.add_argument(
        "--asset-root",
        default=None,
        help="Override the local artifact cache directory (TALEWEAVER_ASSET_ROOT).",
    )
    parser.add_argument(
        "--bucket",
        default=None,
        help="Google Cloud Storage bucket used as the remote cache tier (TALEWEAVER_GCS_BUCKET).",
    )
    parser.add_argument(
        "--no-audio",
        dest="enable_audio",
        action="store_false",
        default=None,
        help="Skip the audio direction phase.",
    )
    parser.add_argument(
        "--anchor-first-frame",
        dest="anchor_first_frame",
        action="store_true",
        default=None,
        help="Generate page 1 first and reuse it as a reference for later pages.",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logging.")
    return parser.parse_args()


def build_settings(args: argparse.Namespace) -> PipelineSettings:
    settings = PipelineSettings.from_env()
    overrides: dict = {}
    if args.asset_root:
        overrides["asset_root"] = Path(args.asset_root)
    if args.bucket:
        overrides["gcs_bucket"] = args.bucket
    if args.enable_audio is not None:
        overrides["enable_audio"] = args.enable_audio
    if args.anchor_first_frame is not None:
        overrides["anchor_first_frame"] = args.anchor_first_frame
    return replace(settings, **overrides) if overrides else settings


async def run(args: argparse.Namespace) -> int:
    settings = build_settings(args)
    remote = (
        GCSBlobStore(settings.gcs_bucket, prefix=settings.gcs_prefix)
        if settings.gcs_bucket
        else None
    )
    orchestrator = PipelineOrchestrator(
        generate_fn=GenerationRouter(image_fn=ReplicateImageGenerator()),
        cache=ArtifactCache(settings.asset_root, remote=remote),
        settings=settings,
    )
    request = StoryRequest(
        topic=args.topic,
        language=args.language,
        level=args.level,
        page_count=args.pages,
        premise=args.premise,
        protagonist_gender=args.gender,
    )

    tracker = ProgressTracker()
    try:
        package = await orchestrator.run(request, on_phase=tracker)
    finally:
        tracker.close()

    output_path = Path(args.output)
    output_path.write_text(package.to_yaml(), encoding="utf-8")
    print(f"Saved story package to {output_path}")
    if not package.completed:
        print(f"Pipeline halted at {package.halted_at.title}.")
        return 1
    return 0


def main() -> int:
    args = parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return asyncio.run(run(args))


if __name__ == "__main__":
    raise SystemExit(main())
