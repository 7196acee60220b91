"""
Directory-backed store for generated symbol artwork.

Artwork for symbol index i is kept as "<i + 1>.png" so that the cache
directory doubles as the numbered image directory the card renderers read.
"""

import logging
import os
from typing import List, Optional

logger = logging.getLogger(__name__)

DEFAULT_CACHE_DIR = "images"
DEFAULT_SYMBOL_COUNT = 57


class ArtworkCache:
    """Key-value store of raw artwork bytes keyed by symbol index."""

    def __init__(self, cache_dir: str = DEFAULT_CACHE_DIR):
        self.cache_dir = cache_dir

    def path_for(self, index: int) -> str:
        if index < 0:
            raise ValueError(f"Symbol index must not be negative, got {index}")
        return os.path.join(self.cache_dir, f"{index + 1}.png")

    def put(self, index: int, artwork: bytes) -> None:
        """
        Store artwork for a symbol, replacing any earlier copy.

        Raises:
            OSError: If the directory or file cannot be written
        """
        os.makedirs(self.cache_dir, exist_ok=True)
        path = self.path_for(index)
        tmp_path = path + ".tmp"
        with open(tmp_path, "wb") as f:
            f.write(artwork)
        os.replace(tmp_path, path)

    def get(self, index: int) -> Optional[bytes]:
        path = self.path_for(index)
        if not os.path.exists(path):
            return None
        with open(path, "rb") as f:
            return f.read()

    def get_all(self, count: int = DEFAULT_SYMBOL_COUNT) -> List[Optional[bytes]]:
        return [self.get(i) for i in range(count)]

    def has_all(self, count: int = DEFAULT_SYMBOL_COUNT) -> bool:
        return all(os.path.exists(self.path_for(i)) for i in range(count))

    def clear(self, upper_bound: int = DEFAULT_SYMBOL_COUNT) -> int:
        """Remove artwork for indices [0, upper_bound). Returns the number removed."""
        removed = 0
        for i in range(upper_bound):
            path = self.path_for(i)
            if os.path.exists(path):
                os.remove(path)
                removed += 1
        logger.info("Cleared %d cached artworks from %s", removed, self.cache_dir)
        return removed
