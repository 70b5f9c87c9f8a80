"""
Single generation entry point that dispatches to the text or image backend.
"""

from __future__ import annotations

from typing import Any

from taleweaver.common import GenerateCallable, GenerationResult, call_text_generation

from .replicate_service import MODEL_PREFIX

_TEXT_ONLY_OPTIONS = ("system", "json_mode", "temperature", "max_tokens", "api_key")
_IMAGE_ONLY_OPTIONS = ("reference_images",)


class GenerationRouter:
    """
    ``generate(model, prompt, **options)`` over LiteLLM text models and Replicate
    image models. Model ids starting with ``image_prefix`` go to ``image_fn``.
    """

    def __init__(
        self,
        *,
        text_fn: GenerateCallable | None = None,
        image_fn: GenerateCallable | None = None,
        image_prefix: str = MODEL_PREFIX,
    ) -> None:
        self._text_fn = text_fn or call_text_generation
        self._image_fn = image_fn
        self._image_prefix = image_prefix

    def is_image_model(self, model: str) -> bool:
        return model.startswith(self._image_prefix)

    async def __call__(self, model: str, prompt: str, **options: Any) -> GenerationResult:
        if self.is_image_model(model):
            if self._image_fn is None:
                return GenerationResult.failure(f"No image backend configured for '{model}'.")
            for name in _TEXT_ONLY_OPTIONS:
                options.pop(name, None)
            return await self._image_fn(model, prompt, **options)

        for name in _IMAGE_ONLY_OPTIONS:
            options.pop(name, None)
        return await self._text_fn(model, prompt, **options)
