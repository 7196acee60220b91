"""
Leonardo.ai image provider.

Generating one symbol image is a three step remote workflow:
submit a generation, poll until it is ready, then fetch the image bytes.
"""

import asyncio
import logging
from typing import Dict, NamedTuple, Optional

import httpx

logger = logging.getLogger(__name__)

# =========================
# Constants Section
# =========================

LEONARDO_API_BASE = "https://cloud.leonardo.ai/api/rest"
LEONARDO_MODEL = "gemini-2.5-flash-image"
IMAGE_WIDTH = 1024
IMAGE_HEIGHT = 1024
REQUEST_TIMEOUT_SECONDS = 30.0

POLL_INTERVAL_SECONDS = 2.0
MAX_POLL_ATTEMPTS = 60

# Style presets for the Nano Banana model
LEONARDO_STYLES: Dict[str, str] = {
    "3D Render": "debdf72a-91a4-467b-bf61-cc02bdeb69c6",
    "Acrylic": "3cbb655a-7ca4-463f-b697-8a03ad67327c",
    "Creative": "6fedbf1f-4a17-45ec-84fb-92fe524a29ef",
    "Dynamic": "111dc692-d470-4eec-b791-3475abac4c46",
    "Fashion": "594c4a08-a522-4e0e-b7ff-e4dac4b6b622",
    "Game Concept": "09d2b5b5-d7c5-4c02-905d-9f84051640f4",
    "Graphic Design 2D": "703d6fe5-7f1c-4a9e-8da0-5331f214d5cf",
    "Graphic Design 3D": "7d7c2bc5-4b12-4ac3-81a9-630057e9e89f",
    "Illustration": "645e4195-f63d-4715-a3f2-3fb1e6eb8c70",
    "None": "556c1ee5-ec38-42e8-955a-1e82dad0ffa1",
    "Portrait": "8e2bc543-6ee2-45f9-bcd9-594b6ce84dcd",
    "Portrait Cinematic": "4edb03c9-8a26-4041-9d01-f85b5d4abd71",
    "Portrait Fashion": "0d34f8e1-46d4-428f-8ddd-4b11811fa7c9",
    "Pro B&W Photography": "22a9a7d2-2166-4d86-80ff-22e2643adbcf",
    "Pro Color Photography": "7c3f932b-a572-47cb-9b9b-f20211e63b5b",
    "Pro Film Photography": "581ba6d6-5aac-4492-bebe-54c424a0d46e",
    "Ray Traced": "b504f83c-3326-4947-82e1-7fe9e839ec0f",
    "Stock Photo": "5bdc3f2a-1be6-4d1c-8e77-992a30824a2c",
    "Watercolor": "1db308ce-c7ad-4d10-96fd-592fa6b75cc4",
}
DEFAULT_STYLE = "Illustration"

PROMPT_TEMPLATE = (
    "A single {description}, just one, not multiple. Centered composition, "
    "completely white background, no text, no duplicates, only one subject in "
    "the image. Clean, icon style suitable for a card game symbol. There should "
    "be no frames or circles, only the subject."
)

# Poll states
PENDING = "pending"
READY = "ready"
FAILED = "failed"

# =========================
# End of Constants Section
# =========================


class ImageProviderError(Exception):
    """Raised when the provider rejects, fails or times out a generation."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class PollResult(NamedTuple):
    status: str
    image_url: Optional[str] = None


def build_prompt(description: str) -> str:
    return PROMPT_TEMPLATE.format(description=description)


def _error_message(response: httpx.Response, default: str) -> str:
    try:
        data = response.json()
    except ValueError:
        return f"{default} (HTTP {response.status_code})"
    error = data.get("error") if isinstance(data, dict) else None
    if isinstance(error, dict) and error.get("message"):
        message = error["message"]
    elif isinstance(error, str):
        message = error
    elif isinstance(data, dict) and data.get("message"):
        message = data["message"]
    else:
        message = default
    return f"{message} (HTTP {response.status_code})"


class LeonardoImageProvider:
    """Async client for the Leonardo generations API."""

    def __init__(
        self,
        api_key: str,
        style: str = DEFAULT_STYLE,
        client: Optional[httpx.AsyncClient] = None,
        poll_interval: float = POLL_INTERVAL_SECONDS,
        max_poll_attempts: int = MAX_POLL_ATTEMPTS,
        api_base: str = LEONARDO_API_BASE,
    ):
        if not api_key:
            raise ImageProviderError("Leonardo API key not set")
        if style not in LEONARDO_STYLES:
            raise ValueError(f"Unknown style {style!r}; choose one of {sorted(LEONARDO_STYLES)}")
        self.api_key = api_key
        self.style = style
        self.poll_interval = poll_interval
        self.max_poll_attempts = max_poll_attempts
        self.api_base = api_base.rstrip("/")
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=REQUEST_TIMEOUT_SECONDS)

    async def __aenter__(self) -> "LeonardoImageProvider":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @property
    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self.api_key}"}

    async def submit(self, description: str) -> str:
        """Create a generation job and return its id."""
        payload = {
            "model": LEONARDO_MODEL,
            "parameters": {
                "width": IMAGE_WIDTH,
                "height": IMAGE_HEIGHT,
                "prompt": build_prompt(description),
                "quantity": 1,
                "style_ids": [LEONARDO_STYLES[self.style]],
                "prompt_enhance": "OFF",
            },
            "public": False,
        }
        try:
            response = await self._client.post(
                f"{self.api_base}/v2/generations", json=payload, headers=self._headers
            )
        except httpx.RequestError as e:
            raise ImageProviderError(f"Failed to create generation: {e}") from e

        if response.status_code >= 400:
            raise ImageProviderError(
                _error_message(response, "Failed to create generation"), response.status_code
            )

        try:
            data = response.json()
            # V2 returns the id inside "generate"
            generation_id = (data.get("generate") or {}).get("generationId") or data.get("generationId")
        except (ValueError, AttributeError) as e:
            raise ImageProviderError("Malformed generation response", response.status_code) from e
        if not generation_id:
            logger.error("Unexpected generation response: %s", data)
            raise ImageProviderError("No generation ID received")
        return generation_id

    async def poll(self, generation_id: str) -> PollResult:
        """Check a generation once. Request errors and malformed bodies count as still pending."""
        try:
            response = await self._client.get(
                f"{self.api_base}/v1/generations/{generation_id}", headers=self._headers
            )
        except httpx.RequestError as e:
            logger.debug("Poll for %s failed: %s", generation_id, e)
            return PollResult(PENDING)

        if response.status_code >= 400:
            return PollResult(PENDING)

        try:
            generation = response.json().get("generations_by_pk") or {}
            status = generation.get("status")
            images = generation.get("generated_images") or generation.get("images") or []
            image_url = images[0]["url"] if images else None
        except (ValueError, AttributeError, LookupError, TypeError) as e:
            logger.debug("Malformed poll response for %s: %s", generation_id, e)
            return PollResult(PENDING)

        if status == "COMPLETE" and image_url:
            return PollResult(READY, image_url)
        if status == "FAILED":
            return PollResult(FAILED)
        return PollResult(PENDING)

    async def fetch(self, image_url: str) -> bytes:
        try:
            response = await self._client.get(image_url)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ImageProviderError(
                f"Failed to fetch image: HTTP {e.response.status_code}", e.response.status_code
            ) from e
        except httpx.RequestError as e:
            raise ImageProviderError(f"Failed to fetch image: {e}") from e
        return response.content

    async def wait_for_image(self, generation_id: str) -> str:
        for _ in range(self.max_poll_attempts):
            await asyncio.sleep(self.poll_interval)
            result = await self.poll(generation_id)
            if result.status == READY:
                return result.image_url
            if result.status == FAILED:
                raise ImageProviderError("Image generation failed")
        raise ImageProviderError("Image generation timed out")

    async def generate_image(self, description: str) -> bytes:
        """Generate one symbol image and return its raw bytes."""
        generation_id = await self.submit(description)
        image_url = await self.wait_for_image(generation_id)
        return await self.fetch(image_url)
