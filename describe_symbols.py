"""
Symbol description generation through the OpenAI chat completions API.

Produces exactly `count` short, distinct symbol descriptions, optionally
following a theme. Any failure (missing key, authentication, HTTP error,
unparsable or short reply) surfaces as a single DescriptionError.
"""

import argparse
import asyncio
import json
import logging
import os
import re
import sys
from typing import List, Optional

import httpx

logger = logging.getLogger(__name__)

# =========================
# Constants Section
# =========================

OPENAI_CHAT_URL = "https://api.openai.com/v1/chat/completions"
DESCRIPTION_MODEL = "gpt-4.1"
TEMPERATURE = 0.8
MAX_TOKENS = 2000
REQUEST_TIMEOUT_SECONDS = 60.0
DEFAULT_COUNT = 57
DESCRIPTIONS_FILE = "descriptions.txt"

SYSTEM_PROMPT = (
    "You are a helpful assistant that generates creative, distinct symbol ideas "
    "for card games. Always respond with valid JSON."
)
DEFAULT_THEME_PROMPT = "Use a diverse mix of everyday objects, animals, food, nature, and simple shapes."

# =========================
# End of Constants Section
# =========================


class DescriptionError(Exception):
    """Raised when symbol descriptions cannot be produced."""


def build_prompt(theme: str, count: int) -> str:
    theme_prompt = (
        f'The theme is "{theme}". All symbols should relate to this theme.' if theme else DEFAULT_THEME_PROMPT
    )
    return (
        f"Generate exactly {count} unique, simple symbol descriptions for a Spot It card game. "
        "Each description should be:\n"
        "- A simple, recognizable object or symbol (1-4 words)\n"
        "- Visually distinct from others\n"
        "- Easy to identify quickly\n"
        "- Suitable for all ages\n\n"
        f"{theme_prompt}\n\n"
        f"Format: Return ONLY a JSON array of {count} strings, no other text.\n"
        'Example format: ["red apple", "yellow sun", "blue star", ...]'
    )


def parse_descriptions(content: str, count: int) -> List[str]:
    """Pull the JSON array out of a model reply and return its first `count` entries."""
    match = re.search(r"\[[\s\S]*\]", content)
    try:
        descriptions = json.loads(match.group(0) if match else content)
    except ValueError as e:
        raise DescriptionError("Failed to parse AI response as JSON") from e

    if not isinstance(descriptions, list):
        raise DescriptionError("Expected a JSON array of descriptions")
    descriptions = [str(d).strip() for d in descriptions if str(d).strip()]
    if len(descriptions) < count:
        raise DescriptionError(f"Expected {count} descriptions, got {len(descriptions)}")
    return descriptions[:count]


async def generate_descriptions(
    api_key: str,
    theme: str = "",
    count: int = DEFAULT_COUNT,
    client: Optional[httpx.AsyncClient] = None,
) -> List[str]:
    """
    Ask the language model for symbol descriptions.

    Args:
        api_key: OpenAI API key
        theme: Optional theme all symbols should relate to
        count: Number of descriptions required
        client: Optional shared HTTP client

    Returns:
        Exactly `count` descriptions

    Raises:
        DescriptionError: On any failure
    """
    if not api_key:
        raise DescriptionError("OpenAI API key not set")
    if count < 1:
        raise ValueError(f"count must be positive, got {count}")

    payload = {
        "model": DESCRIPTION_MODEL,
        "messages": [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": build_prompt(theme, count)},
        ],
        "temperature": TEMPERATURE,
        "max_tokens": MAX_TOKENS,
    }
    headers = {"Authorization": f"Bearer {api_key}"}

    owns_client = client is None
    client = client or httpx.AsyncClient(timeout=REQUEST_TIMEOUT_SECONDS)
    try:
        response = await client.post(OPENAI_CHAT_URL, json=payload, headers=headers)
    except httpx.RequestError as e:
        raise DescriptionError(f"Failed to reach description provider: {e}") from e
    finally:
        if owns_client:
            await client.aclose()

    if response.status_code == 401:
        raise DescriptionError("Authentication failed: check the OpenAI API key")
    if response.status_code >= 400:
        try:
            message = response.json()["error"]["message"]
        except (ValueError, KeyError, TypeError):
            message = "Failed to generate descriptions"
        raise DescriptionError(f"{message} (HTTP {response.status_code})")

    try:
        content = response.json()["choices"][0]["message"]["content"].strip()
    except (ValueError, KeyError, IndexError, TypeError, AttributeError) as e:
        raise DescriptionError("Malformed response from description provider") from e

    descriptions = parse_descriptions(content, count)
    logger.info("Generated %d symbol descriptions", len(descriptions))
    return descriptions


def load_descriptions(path: str) -> List[str]:
    with open(path, encoding="utf-8") as f:
        return [line.strip() for line in f if line.strip()]


def save_descriptions(descriptions: List[str], path: str) -> None:
    out_dir = os.path.dirname(path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        f.write("\n".join(descriptions) + "\n")


def main() -> int:
    parser = argparse.ArgumentParser(description="Generate Spot It symbol descriptions")
    parser.add_argument("--theme", "-t", default="", help="Optional theme for the symbols")
    parser.add_argument("--count", "-c", type=int, default=DEFAULT_COUNT, help="Number of descriptions (7, 13, 31 or 57)")
    parser.add_argument("--output", "-o", default=DESCRIPTIONS_FILE, help="File to write, one description per line")
    parser.add_argument("--api-key", default=os.environ.get("OPENAI_API_KEY", ""), help="OpenAI API key (default: $OPENAI_API_KEY)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    try:
        from generate_all_cards import order_for_symbol_count

        order_for_symbol_count(args.count)
        print("Generating symbol descriptions...")
        descriptions = asyncio.run(generate_descriptions(args.api_key, args.theme, args.count))
        save_descriptions(descriptions, args.output)
    except (DescriptionError, ValueError, OSError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(f"Saved {len(descriptions)} descriptions to {args.output}")
    return 0


if __name__ == "__main__":
    exit(main())
