"""Tests for the LiteLLM text helper, the Replicate adapter and the router."""

import base64
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from taleweaver.ai_generation import GenerationRouter, ReplicateImageGenerator, normalize_image_outputs
from taleweaver.common import GenerationResult, call_text_generation, extract_json


# ---------------------------------------------------------------------------
# extract_json
# ---------------------------------------------------------------------------

class TestExtractJson:
    def test_plain_document(self) -> None:
        assert extract_json('{"pages": []}') == {"pages": []}

    def test_fenced_document(self) -> None:
        assert extract_json('```json\n{"pages": [1]}\n```') == {"pages": [1]}

    def test_prose_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            extract_json("Here is your story!")

    def test_missing_text_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            extract_json(None)


# ---------------------------------------------------------------------------
# call_text_generation
# ---------------------------------------------------------------------------

def _completion(content):
    return {"choices": [{"message": {"content": content}}]}


class TestCallTextGeneration:
    @pytest.mark.asyncio
    async def test_happy_path(self) -> None:
        mock_completion = AsyncMock(return_value=_completion("  A story.  "))
        with patch("taleweaver.common.llm.acompletion", mock_completion):
            result = await call_text_generation("gpt-4.1-mini", "Tell a story.", system="Be kind.")

        assert result.ok
        assert result.text == "A story."
        messages = mock_completion.call_args.kwargs["messages"]
        assert messages == [
            {"role": "system", "content": "Be kind."},
            {"role": "user", "content": "Tell a story."},
        ]

    @pytest.mark.asyncio
    async def test_json_mode_sets_response_format(self) -> None:
        mock_completion = AsyncMock(return_value=_completion("{}"))
        with patch("taleweaver.common.llm.acompletion", mock_completion):
            await call_text_generation("gpt-4.1-mini", "x", json_mode=True, temperature=0.2)

        kwargs = mock_completion.call_args.kwargs
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["temperature"] == 0.2

    @pytest.mark.asyncio
    async def test_provider_error_becomes_failure(self) -> None:
        mock_completion = AsyncMock(side_effect=RuntimeError("rate limited"))
        with patch("taleweaver.common.llm.acompletion", mock_completion):
            result = await call_text_generation("gpt-4.1-mini", "x")

        assert not result.ok
        assert result.error == "RuntimeError: rate limited"

    @pytest.mark.asyncio
    async def test_empty_or_malformed_response_is_failure(self) -> None:
        with patch("taleweaver.common.llm.acompletion", AsyncMock(return_value=_completion(""))):
            assert not (await call_text_generation("m", "x")).ok
        with patch("taleweaver.common.llm.acompletion", AsyncMock(return_value={"choices": []})):
            result = await call_text_generation("m", "x")
        assert result.error == "Unexpected LiteLLM response format."


# ---------------------------------------------------------------------------
# ReplicateImageGenerator
# ---------------------------------------------------------------------------

def _client(output) -> MagicMock:
    client = MagicMock()
    client.async_run = AsyncMock(return_value=output)
    return client


class TestReplicateImageGenerator:
    @pytest.mark.asyncio
    async def test_bytes_output(self) -> None:
        client = _client([b"\xff\xd8jpeg"])
        generator = ReplicateImageGenerator(client=client)

        result = await generator("replicate/black-forest-labs/flux-kontext-pro", "A boy and his grandfather.")

        assert result.binary_parts == (b"\xff\xd8jpeg",)
        identifier, = client.async_run.call_args.args
        payload = client.async_run.call_args.kwargs["input"]
        assert identifier == "black-forest-labs/flux-kontext-pro"
        assert payload["prompt"] == "A boy and his grandfather."
        assert "input_image" not in payload

    @pytest.mark.asyncio
    async def test_reference_image_is_forwarded(self) -> None:
        client = _client(b"jpeg")
        generator = ReplicateImageGenerator(client=client)

        await generator(
            "replicate/black-forest-labs/flux-kontext-pro", "page two", reference_images=[b"anchor"]
        )

        payload = client.async_run.call_args.kwargs["input"]
        assert payload["input_image"].read() == b"anchor"

    @pytest.mark.asyncio
    async def test_data_uri_output_is_decoded(self) -> None:
        uri = "data:image/jpeg;base64," + base64.b64encode(b"decoded").decode()
        generator = ReplicateImageGenerator(client=_client(uri))

        result = await generator("replicate/black-forest-labs/flux-schnell", "x")

        assert result.binary_parts == (b"decoded",)

    @pytest.mark.asyncio
    async def test_url_output_is_downloaded(self) -> None:
        response = MagicMock(content=b"downloaded")
        generator = ReplicateImageGenerator(client=_client(["https://replicate.delivery/out.jpg"]))

        with patch("taleweaver.ai_generation.replicate_service.requests.get", return_value=response) as get:
            result = await generator("replicate/black-forest-labs/flux-1.1-pro", "x")

        assert result.binary_parts == (b"downloaded",)
        get.assert_called_once_with("https://replicate.delivery/out.jpg", timeout=60.0)
        response.raise_for_status.assert_called_once()

    @pytest.mark.asyncio
    async def test_unknown_model_is_failure(self) -> None:
        client = _client(b"jpeg")
        result = await ReplicateImageGenerator(client=client)("replicate/acme/mystery", "x")

        assert not result.ok
        assert "not configured" in result.error
        client.async_run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_reference_only_models_are_not_offered(self) -> None:
        client = _client(b"jpeg")
        result = await ReplicateImageGenerator(client=client)("replicate/zsxkib/instant-id", "x")

        assert "not configured" in result.error
        client.async_run.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_replicate_error_is_failure(self) -> None:
        client = MagicMock()
        client.async_run = AsyncMock(side_effect=RuntimeError("prediction failed"))

        result = await ReplicateImageGenerator(client=client)("replicate/black-forest-labs/flux-schnell", "x")

        assert result.error == "RuntimeError: prediction failed"

    def test_token_is_required_without_client(self, monkeypatch) -> None:
        monkeypatch.delenv("REPLICATE_API_TOKEN", raising=False)
        with pytest.raises(ValueError):
            ReplicateImageGenerator()


def test_normalize_image_outputs_flattens_nested_results() -> None:
    assert normalize_image_outputs(None) == []
    assert normalize_image_outputs(["a.jpg", [b"raw"]]) == ["a.jpg", b"raw"]
    assert normalize_image_outputs(iter("https://x")) == ["https://x"]


# ---------------------------------------------------------------------------
# GenerationRouter
# ---------------------------------------------------------------------------

class TestGenerationRouter:
    @pytest.mark.asyncio
    async def test_image_models_go_to_image_backend(self) -> None:
        text_fn = AsyncMock()
        image_fn = AsyncMock(return_value=GenerationResult(binary_parts=(b"jpeg",)))
        router = GenerationRouter(text_fn=text_fn, image_fn=image_fn)

        await router(
            "replicate/black-forest-labs/flux-schnell",
            "prompt",
            system="ignored",
            json_mode=True,
            reference_images=[b"anchor"],
        )

        image_fn.assert_awaited_once_with(
            "replicate/black-forest-labs/flux-schnell", "prompt", reference_images=[b"anchor"]
        )
        text_fn.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_text_models_drop_image_options(self) -> None:
        text_fn = AsyncMock(return_value=GenerationResult(text="{}"))
        router = GenerationRouter(text_fn=text_fn)

        await router("gpt-4.1-mini", "prompt", system="sys", reference_images=[b"anchor"])

        text_fn.assert_awaited_once_with("gpt-4.1-mini", "prompt", system="sys")

    @pytest.mark.asyncio
    async def test_missing_image_backend_is_failure(self) -> None:
        result = await GenerationRouter(text_fn=AsyncMock())("replicate/acme/model", "prompt")
        assert not result.ok
