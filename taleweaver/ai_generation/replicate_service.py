"""
Integration with Replicate for storybook page illustrations.
"""

from __future__ import annotations

import asyncio
import base64
import io
import logging
import os
from collections.abc import Iterable as IterableABC
from typing import Any, BinaryIO, Callable, Sequence

import replicate
import requests

from taleweaver.common import GenerationResult

logger = logging.getLogger(__name__)

MODEL_PREFIX = "replicate/"

NEGATIVE_PROMPT = (
    "identity drift, wardrobe change, extra characters, missing props, inconsistent art style, "
    "harsh shadows, cluttered background, watermark, text, logo"
)


def _build_flux_kontext_input(
    *,
    prompt: str,
    negative_prompt: str,
    image_input: BinaryIO | None,
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "prompt": prompt,
        "negative_prompt": negative_prompt,
        "output_format": "jpg",
        "safety_tolerance": 2,
        "prompt_upsampling": True,
        "aspect_ratio": "1:1",
    }
    if image_input is not None:
        payload["input_image"] = image_input
    return payload


def _build_flux_text_input(
    *,
    prompt: str,
    negative_prompt: str,
    image_input: BinaryIO | None,
) -> dict[str, Any]:
    # Text-only models ignore reference images.
    return {
        "prompt": prompt,
        "output_format": "jpg",
        "aspect_ratio": "1:1",
    }


_MODEL_INPUT_BUILDERS: dict[str, Callable[..., dict[str, Any]]] = {
    "black-forest-labs/flux-kontext-pro": _build_flux_kontext_input,
    "black-forest-labs/flux-1.1-pro": _build_flux_text_input,
    "black-forest-labs/flux-schnell": _build_flux_text_input,
}


def _build_replicate_input_payload(
    *,
    model_identifier: str,
    prompt: str,
    negative_prompt: str,
    image_input: BinaryIO | None,
) -> dict[str, Any]:
    normalized_identifier = model_identifier.strip().lower()
    builder = _MODEL_INPUT_BUILDERS.get(normalized_identifier)
    if builder is None and ":" in normalized_identifier:
        base_identifier = normalized_identifier.split(":", maxsplit=1)[0]
        builder = _MODEL_INPUT_BUILDERS.get(base_identifier)
    if builder is None:
        supported_models = ", ".join(sorted(_MODEL_INPUT_BUILDERS))
        raise ValueError(
            "Model identifier "
            f"'{model_identifier}' is not configured with a default input payload. "
            f"Supported models: {supported_models}."
        )

    return builder(
        prompt=prompt,
        negative_prompt=negative_prompt,
        image_input=image_input,
    )


class ReplicateImageGenerator:
    """
    Async generation callable that renders one page through Replicate.

    Parameters
    ----------
    api_token:
        Replicate API token. Falls back to ``REPLICATE_API_TOKEN`` environment variable.
    client:
        Optional pre-configured :class:`replicate.Client`. Mainly useful for testing.
    negative_prompt:
        Guardrails forwarded to models that accept a negative prompt.
    download_timeout:
        Seconds allowed for fetching a URL output.
    """

    def __init__(
        self,
        *,
        api_token: str | None = None,
        client: replicate.Client | None = None,
        negative_prompt: str = NEGATIVE_PROMPT,
        download_timeout: float = 60.0,
    ) -> None:
        self._api_token = api_token or os.getenv("REPLICATE_API_TOKEN")
        if not self._api_token and not client:
            raise ValueError(
                "Replicate API token is required. Set REPLICATE_API_TOKEN or pass api_token."
            )
        self._client = client or replicate.Client(api_token=self._api_token)
        self._negative_prompt = negative_prompt
        self._download_timeout = download_timeout

    async def __call__(
        self,
        model: str,
        prompt: str,
        *,
        reference_images: Sequence[bytes] | None = None,
        **model_kwargs: Any,
    ) -> GenerationResult:
        """
        Generate one illustration and return its bytes in ``binary_parts``.

        Replicate and network faults are returned as an error result.
        """
        identifier = model[len(MODEL_PREFIX):] if model.startswith(MODEL_PREFIX) else model
        image_input = io.BytesIO(reference_images[0]) if reference_images else None

        try:
            replicate_input = _build_replicate_input_payload(
                model_identifier=identifier,
                prompt=prompt,
                negative_prompt=self._negative_prompt,
                image_input=image_input,
            )
        except ValueError as exc:
            return GenerationResult.failure(str(exc))

        # Allow the caller to tweak model-specific knobs (e.g., guidance_scale, seed).
        replicate_input.update(model_kwargs)

        try:
            raw = await self._client.async_run(identifier, input=replicate_input)
            parts = await asyncio.to_thread(self._collect_bytes, raw)
        except Exception as exc:
            logger.warning("Replicate run of %s failed: %s", identifier, exc)
            return GenerationResult.failure(f"{type(exc).__name__}: {exc}")

        if not parts:
            return GenerationResult.failure("Replicate returned no image data.", raw=raw)
        return GenerationResult(binary_parts=tuple(parts), raw=raw)

    def _collect_bytes(self, raw: Any) -> list[bytes]:
        parts: list[bytes] = []
        for item in normalize_image_outputs(raw):
            if isinstance(item, bytes):
                parts.append(item)
            else:
                parts.append(self._download(item))
        return parts

    def _download(self, source: str) -> bytes:
        if source.startswith("data:"):
            _, _, encoded = source.partition(",")
            return base64.b64decode(encoded)
        response = requests.get(source, timeout=self._download_timeout)
        response.raise_for_status()
        return response.content


def normalize_image_outputs(raw: Any) -> list[bytes | str]:
    """
    Normalize Replicate outputs into a list of raw bytes or URL strings.
    """

    if raw is None:
        return []

    if isinstance(raw, (bytes, bytearray)):
        return [bytes(raw)]

    if isinstance(raw, str):
        return [raw]

    if hasattr(raw, "read"):
        return [raw.read()]

    if isinstance(raw, IterableABC):
        collected = list(raw)
        if all(isinstance(item, str) and len(item) == 1 for item in collected) and collected:
            return ["".join(collected)]

        normalized: list[bytes | str] = []
        for item in collected:
            normalized.extend(normalize_image_outputs(item))
        return normalized

    return [str(raw)]
