"""
Batch generation of symbol artwork.

Runs one image-provider call per symbol description with:
- a caller-owned gate capping in-flight calls and call starts per sliding window
- per-symbol retries, with longer backoff when the provider signals rate limiting
- cooperative cancellation checked at chunk boundaries and before each dispatch

Work is split into chunks the size of the concurrency cap so progress is
reported batch by batch; one symbol failing never stops the others.
"""

import argparse
import asyncio
import logging
import math
import os
import re
import signal
import sys
import time
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, List, NamedTuple, Optional, Sequence

logger = logging.getLogger(__name__)

# =========================
# Constants Section
# =========================

# Provider limits
DEFAULT_MAX_CONCURRENT = 10
DEFAULT_MAX_PER_WINDOW = 100
RATE_WINDOW_SECONDS = 60.0
GATE_POLL_INTERVAL_SECONDS = 0.5

# Retry policy
DEFAULT_MAX_ATTEMPTS = 3
RATE_LIMIT_BACKOFF_SECONDS = 10.0  # multiplied by the attempt number
ERROR_BACKOFF_SECONDS = 2.0

# Pause between chunks
CHUNK_PAUSE_SECONDS = 1.0

# "rate" as its own token or the head of a rate-limit code (rate_limit_exceeded,
# RateLimitError); never inside words such as "generate"
RATE_LIMIT_PATTERN = re.compile(
    r"(?<![a-z])rate(?:[\s_-]?limit\w*)?(?![a-z])|(?<!\d)429(?!\d)|too many", re.IGNORECASE
)

# =========================
# End of Constants Section
# =========================

Clock = Callable[[], float]
Sleep = Callable[[float], Awaitable[Any]]


class RateLimiter:
    """
    Admission gate shared by every call of one generation session.

    A call may start only while fewer than max_concurrent calls are active and
    fewer than max_per_window calls started within the trailing window.
    Waiters re-check every poll_interval seconds.
    """

    def __init__(
        self,
        max_concurrent: int = DEFAULT_MAX_CONCURRENT,
        max_per_window: int = DEFAULT_MAX_PER_WINDOW,
        window: float = RATE_WINDOW_SECONDS,
        poll_interval: float = GATE_POLL_INTERVAL_SECONDS,
        clock: Clock = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ):
        if max_concurrent < 1 or max_per_window < 1:
            raise ValueError("max_concurrent and max_per_window must be at least 1")
        self.max_concurrent = max_concurrent
        self.max_per_window = max_per_window
        self.window = window
        self.poll_interval = poll_interval
        self.active_count = 0
        self._clock = clock
        self._sleep = sleep
        self._timestamps: Deque[float] = deque()

    def _cleanup_timestamps(self) -> None:
        cutoff = self._clock() - self.window
        while self._timestamps and self._timestamps[0] <= cutoff:
            self._timestamps.popleft()

    def is_rate_limited(self) -> bool:
        self._cleanup_timestamps()
        return len(self._timestamps) >= self.max_per_window

    async def acquire(self) -> None:
        while self.active_count >= self.max_concurrent or self.is_rate_limited():
            await self._sleep(self.poll_interval)
        # No await between the check above and this update
        self.active_count += 1
        self._timestamps.append(self._clock())

    def release(self) -> None:
        if self.active_count <= 0:
            raise RuntimeError("release() called without a matching acquire()")
        self.active_count -= 1

    def status(self) -> Dict[str, int]:
        self._cleanup_timestamps()
        return {"active": self.active_count, "requests_this_window": len(self._timestamps)}


class RetryPolicy(NamedTuple):
    max_attempts: int = DEFAULT_MAX_ATTEMPTS
    rate_limit_backoff: float = RATE_LIMIT_BACKOFF_SECONDS
    error_backoff: float = ERROR_BACKOFF_SECONDS

    def backoff(self, attempt: int, rate_limited: bool) -> float:
        """Seconds to wait after the zero-based attempt failed."""
        if rate_limited:
            return (attempt + 1) * self.rate_limit_backoff
        return self.error_backoff


def is_rate_limit_error(error: BaseException) -> bool:
    if getattr(error, "status_code", None) == 429:
        return True
    return bool(RATE_LIMIT_PATTERN.search(str(error)))


class CancellationToken:
    """Cooperative stop signal; in-flight provider calls are never interrupted."""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled


class GenerationCancelled(Exception):
    """The session was stopped by its caller. Not a failure."""

    def __init__(self, images: List[Optional[bytes]], completed: int):
        super().__init__("Generation cancelled")
        self.images = images
        self.completed = completed


class FailedItem(NamedTuple):
    index: int
    description: str
    error: str


class BatchResult(NamedTuple):
    images: List[Optional[bytes]]
    failed: List[FailedItem]


class _BatchState:
    """Counters owned by a single run."""

    def __init__(self, total: int):
        self.images: List[Optional[bytes]] = [None] * total
        self.completed = 0
        self.failed: List[FailedItem] = []


class GenerationObserver:
    """
    Receives session events. Items complete out of order: always use the
    index argument, never the call order.
    """

    def on_progress(self, completed: int, total: int, status: str) -> None:
        pass

    def on_image_complete(self, index: int, artwork: Optional[bytes], error: Optional[BaseException] = None) -> None:
        pass


class CallbackObserver(GenerationObserver):
    def __init__(
        self,
        on_progress: Optional[Callable[[int, int, str], None]] = None,
        on_image_complete: Optional[Callable[[int, Optional[bytes], Optional[BaseException]], None]] = None,
    ):
        self._on_progress = on_progress
        self._on_image_complete = on_image_complete

    def on_progress(self, completed: int, total: int, status: str) -> None:
        if self._on_progress:
            self._on_progress(completed, total, status)

    def on_image_complete(self, index: int, artwork: Optional[bytes], error: Optional[BaseException] = None) -> None:
        if self._on_image_complete:
            self._on_image_complete(index, artwork, error)


class ArtworkBatchOrchestrator:
    """
    Produces one artwork per description using an image provider.

    The provider is any object with `async generate_image(description) -> bytes`.
    The cache, if given, needs `put(index, artwork)`; write failures are logged
    and ignored.
    """

    def __init__(
        self,
        provider: Any,
        rate_limiter: Optional[RateLimiter] = None,
        retry_policy: Optional[RetryPolicy] = None,
        cache: Any = None,
        chunk_size: Optional[int] = None,
        chunk_pause: float = CHUNK_PAUSE_SECONDS,
        sleep: Sleep = asyncio.sleep,
    ):
        self.provider = provider
        self.rate_limiter = rate_limiter or RateLimiter()
        self.retry_policy = retry_policy or RetryPolicy()
        if self.retry_policy.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.cache = cache
        self.chunk_size = chunk_size or self.rate_limiter.max_concurrent
        self.chunk_pause = chunk_pause
        self._sleep = sleep

    async def generate_with_retry(
        self, description: str, index: int, token: Optional[CancellationToken] = None
    ) -> Optional[bytes]:
        """
        Call the provider for one symbol, retrying per the retry policy.

        Returns None without calling the provider if the token is cancelled
        by the time the gate admits the first attempt. Once dispatched, the
        item retries to success or permanent failure regardless of the token.
        Raises the last provider error once every attempt has failed.
        """
        policy = self.retry_policy
        last_error: Optional[Exception] = None

        for attempt in range(policy.max_attempts):
            await self.rate_limiter.acquire()
            try:
                if attempt == 0 and token is not None and token.cancelled:
                    return None
                return await self.provider.generate_image(description)
            except Exception as e:
                last_error = e
            finally:
                self.rate_limiter.release()

            if attempt >= policy.max_attempts - 1:
                break
            rate_limited = is_rate_limit_error(last_error)
            wait = policy.backoff(attempt, rate_limited)
            if rate_limited:
                logger.warning("Rate limit hit for %r, waiting %.0fs before retry...", description, wait)
            else:
                logger.warning(
                    "Attempt %d/%d failed for symbol %d (%r): %s; retrying in %.0fs",
                    attempt + 1, policy.max_attempts, index, description, last_error, wait,
                )
            await self._sleep(wait)

        raise last_error

    def _cache_artwork(self, index: int, artwork: bytes) -> None:
        if self.cache is None:
            return
        try:
            self.cache.put(index, artwork)
        except Exception as e:
            logger.warning("Could not cache artwork for symbol %d: %s", index, e)

    async def _process_item(
        self,
        index: int,
        description: str,
        batch: "_BatchState",
        observer: GenerationObserver,
        token: CancellationToken,
    ) -> None:
        if token.cancelled:
            return
        total = len(batch.images)

        try:
            artwork = await self.generate_with_retry(description, index, token)
        except Exception as e:
            logger.error("Failed to generate image %d (%r): %s", index, description, e)
            batch.failed.append(FailedItem(index, description, str(e)))
            batch.completed += 1
            observer.on_image_complete(index, None, e)
            observer.on_progress(batch.completed, total, f"Failed: {description} - {e}")
            return

        if artwork is None:
            logger.debug("Symbol %d not dispatched: generation cancelled", index)
            return

        batch.images[index] = artwork
        batch.completed += 1
        self._cache_artwork(index, artwork)
        observer.on_image_complete(index, artwork, None)
        status = self.rate_limiter.status()
        observer.on_progress(
            batch.completed,
            total,
            f"Generated: {description} ({status['active']} active, "
            f"{status['requests_this_window']}/{self.rate_limiter.max_per_window} this minute)",
        )

    async def run_batch(
        self,
        descriptions: Sequence[str],
        observer: Optional[GenerationObserver] = None,
        token: Optional[CancellationToken] = None,
    ) -> BatchResult:
        """
        Generate artwork for every description.

        Args:
            descriptions: One description per symbol index
            observer: Receives progress and per-item completion events
            token: Cancellation token checked before each chunk and dispatch

        Returns:
            BatchResult with artwork aligned with descriptions (None where
            generation failed) and the permanent failures

        Raises:
            GenerationCancelled: If the token was cancelled during the session
        """
        observer = observer or GenerationObserver()
        token = token or CancellationToken()
        total = len(descriptions)
        batch = _BatchState(total)

        batch_count = math.ceil(total / self.chunk_size)
        for batch_number, start in enumerate(range(0, total, self.chunk_size), start=1):
            if token.cancelled:
                raise GenerationCancelled(batch.images, batch.completed)

            end = min(start + self.chunk_size, total)
            status = self.rate_limiter.status()
            observer.on_progress(
                batch.completed,
                total,
                f"Generating batch {batch_number}/{batch_count} "
                f"({status['requests_this_window']}/{self.rate_limiter.max_per_window} requests this minute)...",
            )

            await asyncio.gather(
                *(self._process_item(i, descriptions[i], batch, observer, token) for i in range(start, end))
            )

            if end < total:
                await self._sleep(self.chunk_pause)

        if token.cancelled:
            raise GenerationCancelled(batch.images, batch.completed)

        succeeded = total - len(batch.failed)
        if batch.failed:
            logger.warning(
                "%d/%d images generated; failed: %s",
                succeeded, total, [f.index for f in batch.failed],
            )
        else:
            logger.info("%d/%d images generated", succeeded, total)
        return BatchResult(batch.images, batch.failed)

    async def run(
        self,
        descriptions: Sequence[str],
        observer: Optional[GenerationObserver] = None,
        token: Optional[CancellationToken] = None,
    ) -> List[Optional[bytes]]:
        """Like run_batch, returning only the artwork list."""
        result = await self.run_batch(descriptions, observer, token)
        return result.images


async def generate_all_images(
    descriptions: Sequence[str],
    provider: Any,
    on_progress: Optional[Callable[[int, int, str], None]] = None,
    on_image_complete: Optional[Callable[[int, Optional[bytes], Optional[BaseException]], None]] = None,
    token: Optional[CancellationToken] = None,
    rate_limiter: Optional[RateLimiter] = None,
    retry_policy: Optional[RetryPolicy] = None,
    cache: Any = None,
) -> List[Optional[bytes]]:
    orchestrator = ArtworkBatchOrchestrator(
        provider, rate_limiter=rate_limiter, retry_policy=retry_policy, cache=cache
    )
    return await orchestrator.run(descriptions, CallbackObserver(on_progress, on_image_complete), token)


class ConsoleObserver(GenerationObserver):
    def on_progress(self, completed: int, total: int, status: str) -> None:
        print(f"[{completed}/{total}] {status}")


async def run_session(args: argparse.Namespace, descriptions: List[str]) -> int:
    from artwork_cache import ArtworkCache
    from image_provider import LeonardoImageProvider

    cache = ArtworkCache(args.images)
    token = CancellationToken()
    try:
        asyncio.get_running_loop().add_signal_handler(signal.SIGINT, token.cancel)
    except NotImplementedError:
        logger.debug("Signal handlers unavailable; Ctrl+C will not cancel cooperatively")

    async with LeonardoImageProvider(args.api_key, style=args.style) as provider:
        orchestrator = ArtworkBatchOrchestrator(
            provider,
            rate_limiter=RateLimiter(args.concurrency, args.rate),
            retry_policy=RetryPolicy(max_attempts=args.retries),
            cache=cache,
        )
        try:
            result = await orchestrator.run_batch(descriptions, ConsoleObserver(), token)
        except GenerationCancelled as e:
            print(f"\nGeneration cancelled after {e.completed}/{len(descriptions)} images.")
            return 130

    succeeded = sum(1 for img in result.images if img is not None)
    print(f"\n{succeeded}/{len(result.images)} images generated in {args.images}")
    if result.failed:
        print("Warning: some symbols have no artwork and will be left blank:")
        for item in result.failed:
            print(f"  {item.index + 1}: {item.description} ({item.error})")
    return 0


def main() -> int:
    from artwork_cache import ArtworkCache
    from describe_symbols import DESCRIPTIONS_FILE, load_descriptions
    from generate_all_cards import order_for_symbol_count
    from image_provider import DEFAULT_STYLE, LEONARDO_STYLES

    parser = argparse.ArgumentParser(description="Generate artwork for every Spot It symbol")
    parser.add_argument("--descriptions", "-d", default=DESCRIPTIONS_FILE, help="Symbol descriptions, one per line")
    parser.add_argument("--images", "-i", default="images", help="Artwork output directory")
    parser.add_argument("--style", default=DEFAULT_STYLE, choices=sorted(LEONARDO_STYLES), help="Image style preset")
    parser.add_argument("--concurrency", type=int, default=DEFAULT_MAX_CONCURRENT, help="Maximum in-flight generations")
    parser.add_argument("--rate", type=int, default=DEFAULT_MAX_PER_WINDOW, help="Maximum generations started per minute")
    parser.add_argument("--retries", type=int, default=DEFAULT_MAX_ATTEMPTS, help="Attempts per symbol")
    parser.add_argument("--force", action="store_true", help="Regenerate even if all artwork is cached")
    parser.add_argument("--api-key", default=os.environ.get("LEONARDO_API_KEY", ""), help="Leonardo API key (default: $LEONARDO_API_KEY)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    try:
        descriptions = load_descriptions(args.descriptions)
        order_for_symbol_count(len(descriptions))
        cache = ArtworkCache(args.images)
        if not args.force and cache.has_all(len(descriptions)):
            print(f"All {len(descriptions)} images already cached in {args.images}; use --force to regenerate.")
            return 0
        if args.force:
            cache.clear(len(descriptions))
        return asyncio.run(run_session(args, descriptions))
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    exit(main())
