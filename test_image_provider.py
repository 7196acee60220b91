"""Tests for the Leonardo image provider client."""

import httpx
import pytest
import respx

from image_provider import (
    FAILED,
    LEONARDO_API_BASE,
    LEONARDO_STYLES,
    PENDING,
    READY,
    ImageProviderError,
    LeonardoImageProvider,
    PollResult,
    build_prompt,
)

GENERATIONS_URL = f"{LEONARDO_API_BASE}/v2/generations"
POLL_URL = f"{LEONARDO_API_BASE}/v1/generations/gen-1"
IMAGE_URL = "https://cdn.leonardo.ai/users/abc/generations/gen-1/image.png"


def generation(status: str, images=None) -> dict:
    body = {"status": status}
    if images is not None:
        body["generated_images"] = images
    return {"generations_by_pk": body}


@pytest.fixture
async def provider():
    async with LeonardoImageProvider("test-key", poll_interval=0.0, max_poll_attempts=3) as p:
        yield p


class TestSubmit:
    @pytest.mark.asyncio
    @respx.mock
    async def test_returns_generation_id(self, provider):
        route = respx.post(GENERATIONS_URL).mock(
            return_value=httpx.Response(200, json={"generate": {"generationId": "gen-1"}})
        )

        assert await provider.submit("red apple") == "gen-1"

        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer test-key"
        body = request.read().decode()
        assert "A single red apple" in body
        assert LEONARDO_STYLES["Illustration"] in body

    @pytest.mark.asyncio
    @respx.mock
    async def test_accepts_top_level_generation_id(self, provider):
        respx.post(GENERATIONS_URL).mock(return_value=httpx.Response(200, json={"generationId": "gen-2"}))

        assert await provider.submit("blue star") == "gen-2"

    @pytest.mark.asyncio
    @respx.mock
    async def test_missing_generation_id(self, provider):
        respx.post(GENERATIONS_URL).mock(return_value=httpx.Response(200, json={}))

        with pytest.raises(ImageProviderError, match="No generation ID"):
            await provider.submit("blue star")

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_json_body(self, provider):
        respx.post(GENERATIONS_URL).mock(return_value=httpx.Response(200, content=b"<html>oops</html>"))

        with pytest.raises(ImageProviderError, match="Malformed generation response"):
            await provider.submit("blue star")

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_object_body(self, provider):
        respx.post(GENERATIONS_URL).mock(return_value=httpx.Response(200, json=["gen-1"]))

        with pytest.raises(ImageProviderError, match="Malformed generation response"):
            await provider.submit("blue star")

    @pytest.mark.asyncio
    @respx.mock
    async def test_rate_limited(self, provider):
        respx.post(GENERATIONS_URL).mock(
            return_value=httpx.Response(429, json={"error": {"message": "Too many requests"}})
        )

        with pytest.raises(ImageProviderError) as exc_info:
            await provider.submit("blue star")

        assert exc_info.value.status_code == 429
        assert "Too many requests" in str(exc_info.value)

    @pytest.mark.asyncio
    @respx.mock
    async def test_network_error(self, provider):
        respx.post(GENERATIONS_URL).mock(side_effect=httpx.ConnectError("connection refused"))

        with pytest.raises(ImageProviderError, match="Failed to create generation"):
            await provider.submit("blue star")


class TestPoll:
    @pytest.mark.asyncio
    @respx.mock
    async def test_complete(self, provider):
        respx.get(POLL_URL).mock(return_value=httpx.Response(200, json=generation("COMPLETE", [{"url": IMAGE_URL}])))

        assert await provider.poll("gen-1") == PollResult(READY, IMAGE_URL)

    @pytest.mark.asyncio
    @respx.mock
    async def test_pending(self, provider):
        respx.get(POLL_URL).mock(return_value=httpx.Response(200, json=generation("PENDING")))

        assert (await provider.poll("gen-1")).status == PENDING

    @pytest.mark.asyncio
    @respx.mock
    async def test_complete_without_images_is_pending(self, provider):
        respx.get(POLL_URL).mock(return_value=httpx.Response(200, json=generation("COMPLETE", [])))

        assert (await provider.poll("gen-1")).status == PENDING

    @pytest.mark.asyncio
    @respx.mock
    async def test_failed(self, provider):
        respx.get(POLL_URL).mock(return_value=httpx.Response(200, json=generation("FAILED")))

        assert (await provider.poll("gen-1")).status == FAILED

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_error_is_pending(self, provider):
        respx.get(POLL_URL).mock(return_value=httpx.Response(502))

        assert (await provider.poll("gen-1")).status == PENDING

    @pytest.mark.asyncio
    @respx.mock
    async def test_non_json_body_is_pending(self, provider):
        respx.get(POLL_URL).mock(return_value=httpx.Response(200, content=b"not json"))

        assert (await provider.poll("gen-1")).status == PENDING

    @pytest.mark.asyncio
    @respx.mock
    async def test_image_without_url_is_pending(self, provider):
        respx.get(POLL_URL).mock(return_value=httpx.Response(200, json=generation("COMPLETE", [{"id": "img-1"}])))

        assert (await provider.poll("gen-1")).status == PENDING


class TestGenerateImage:
    @pytest.mark.asyncio
    @respx.mock
    async def test_submit_poll_fetch(self, provider):
        respx.post(GENERATIONS_URL).mock(
            return_value=httpx.Response(200, json={"generate": {"generationId": "gen-1"}})
        )
        poll_route = respx.get(POLL_URL).mock(
            side_effect=[
                httpx.Response(200, json=generation("PENDING")),
                httpx.Response(500),
                httpx.Response(200, json=generation("COMPLETE", [{"url": IMAGE_URL}])),
            ]
        )
        respx.get(IMAGE_URL).mock(return_value=httpx.Response(200, content=b"\x89PNG data"))

        assert await provider.generate_image("red apple") == b"\x89PNG data"
        assert poll_route.call_count == 3

    @pytest.mark.asyncio
    @respx.mock
    async def test_timeout(self, provider):
        respx.post(GENERATIONS_URL).mock(
            return_value=httpx.Response(200, json={"generate": {"generationId": "gen-1"}})
        )
        poll_route = respx.get(POLL_URL).mock(return_value=httpx.Response(200, json=generation("PENDING")))

        with pytest.raises(ImageProviderError, match="timed out"):
            await provider.generate_image("red apple")
        assert poll_route.call_count == 3

    @pytest.mark.asyncio
    @respx.mock
    async def test_generation_failed(self, provider):
        respx.post(GENERATIONS_URL).mock(
            return_value=httpx.Response(200, json={"generate": {"generationId": "gen-1"}})
        )
        respx.get(POLL_URL).mock(return_value=httpx.Response(200, json=generation("FAILED")))

        with pytest.raises(ImageProviderError, match="Image generation failed"):
            await provider.generate_image("red apple")

    @pytest.mark.asyncio
    @respx.mock
    async def test_fetch_error(self, provider):
        respx.get(IMAGE_URL).mock(return_value=httpx.Response(404))

        with pytest.raises(ImageProviderError) as exc_info:
            await provider.fetch(IMAGE_URL)
        assert exc_info.value.status_code == 404


def test_missing_key_rejected():
    with pytest.raises(ImageProviderError, match="API key"):
        LeonardoImageProvider("")


def test_unknown_style_rejected():
    with pytest.raises(ValueError, match="Unknown style"):
        LeonardoImageProvider("key", style="Cubism")


def test_prompt_mentions_single_subject():
    prompt = build_prompt("green frog")
    assert prompt.startswith("A single green frog")
    assert "white background" in prompt
