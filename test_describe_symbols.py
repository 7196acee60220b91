"""Tests for symbol description generation."""

import json

import httpx
import pytest
import respx

from describe_symbols import (
    OPENAI_CHAT_URL,
    DescriptionError,
    build_prompt,
    generate_descriptions,
    load_descriptions,
    parse_descriptions,
    save_descriptions,
)


def chat_reply(content: str) -> httpx.Response:
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


SEVEN = ["red apple", "yellow sun", "blue star", "green frog", "black cat", "pink flower", "orange fish"]


class TestParseDescriptions:
    def test_plain_array(self):
        assert parse_descriptions(json.dumps(SEVEN), 7) == SEVEN

    def test_array_inside_prose(self):
        content = "Here you go:\n" + json.dumps(SEVEN) + "\nEnjoy!"
        assert parse_descriptions(content, 7) == SEVEN

    def test_extra_entries_truncated(self):
        assert parse_descriptions(json.dumps(SEVEN), 3) == SEVEN[:3]

    def test_blank_entries_dropped(self):
        assert parse_descriptions('["  cat ", "", "dog"]', 2) == ["cat", "dog"]

    def test_too_few(self):
        with pytest.raises(DescriptionError, match="Expected 7 descriptions, got 2"):
            parse_descriptions('["cat", "dog"]', 7)

    def test_not_json(self):
        with pytest.raises(DescriptionError, match="JSON"):
            parse_descriptions("cat, dog, bird", 3)

    def test_not_an_array(self):
        with pytest.raises(DescriptionError):
            parse_descriptions('{"symbols": 3}', 3)


def test_prompt_includes_theme_and_count():
    prompt = build_prompt("ocean", 13)
    assert "exactly 13" in prompt
    assert '"ocean"' in prompt
    assert "diverse mix" in build_prompt("", 13)


class TestGenerateDescriptions:
    @pytest.mark.asyncio
    @respx.mock
    async def test_success(self):
        route = respx.post(OPENAI_CHAT_URL).mock(return_value=chat_reply(json.dumps(SEVEN)))

        assert await generate_descriptions("sk-test", theme="pets", count=7) == SEVEN

        request = route.calls.last.request
        assert request.headers["Authorization"] == "Bearer sk-test"
        body = json.loads(request.read())
        assert body["model"] == "gpt-4.1"
        assert "pets" in body["messages"][1]["content"]

    @pytest.mark.asyncio
    @respx.mock
    async def test_authentication_failure(self):
        respx.post(OPENAI_CHAT_URL).mock(return_value=httpx.Response(401, json={"error": {"message": "bad key"}}))

        with pytest.raises(DescriptionError, match="Authentication failed"):
            await generate_descriptions("sk-bad", count=7)

    @pytest.mark.asyncio
    @respx.mock
    async def test_http_error_carries_status(self):
        respx.post(OPENAI_CHAT_URL).mock(
            return_value=httpx.Response(500, json={"error": {"message": "server exploded"}})
        )

        with pytest.raises(DescriptionError, match=r"server exploded \(HTTP 500\)"):
            await generate_descriptions("sk-test", count=7)

    @pytest.mark.asyncio
    @respx.mock
    async def test_short_reply(self):
        respx.post(OPENAI_CHAT_URL).mock(return_value=chat_reply('["cat"]'))

        with pytest.raises(DescriptionError, match="Expected 7"):
            await generate_descriptions("sk-test", count=7)

    @pytest.mark.asyncio
    @respx.mock
    async def test_malformed_body(self):
        respx.post(OPENAI_CHAT_URL).mock(return_value=httpx.Response(200, json={"choices": []}))

        with pytest.raises(DescriptionError, match="Malformed"):
            await generate_descriptions("sk-test", count=7)

    @pytest.mark.asyncio
    @respx.mock
    async def test_network_error(self):
        respx.post(OPENAI_CHAT_URL).mock(side_effect=httpx.ConnectError("unreachable"))

        with pytest.raises(DescriptionError, match="Failed to reach"):
            await generate_descriptions("sk-test", count=7)

    @pytest.mark.asyncio
    async def test_missing_key(self):
        with pytest.raises(DescriptionError, match="API key"):
            await generate_descriptions("", count=7)


def test_save_and_load_round_trip(tmp_path):
    path = tmp_path / "out" / "descriptions.txt"
    save_descriptions(SEVEN, str(path))
    assert load_descriptions(str(path)) == SEVEN
