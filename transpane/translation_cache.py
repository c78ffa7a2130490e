import asyncio
import logging
import threading
import time
from collections import OrderedDict
from typing import List, Optional

from .exceptions import TranslationError
from .models import TextRegion

logger = logging.getLogger(__name__)

POLICY_LRU = "lru"
POLICY_CLEAR = "clear"


class TranslationCache:
    """Source text -> translated text, bounded by ``capacity``.

    With the ``lru`` policy the least recently used entry is evicted when the
    cache is full. With the ``clear`` policy the whole cache is dropped once an
    insert would exceed capacity. All access goes through the methods below,
    which serialize on an internal lock.
    """

    def __init__(self, capacity: int = 1000, policy: str = POLICY_LRU):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        if policy not in (POLICY_LRU, POLICY_CLEAR):
            raise ValueError(f"Unknown cache policy: {policy}")
        self.capacity = capacity
        self.policy = policy
        self._entries = OrderedDict()
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[str]:
        with self._lock:
            value = self._entries.get(key)
            if value is not None and self.policy == POLICY_LRU:
                # Move to end to mark as recently used
                self._entries.move_to_end(key)
            return value

    def set(self, key: str, value: str):
        with self._lock:
            if key in self._entries:
                self._entries[key] = value
                self._entries.move_to_end(key)
                return

            if len(self._entries) >= self.capacity:
                if self.policy == POLICY_CLEAR:
                    logger.debug("Translation cache full (%d); clearing", len(self._entries))
                    self._entries.clear()
                else:
                    evicted_key, _ = self._entries.popitem(last=False)
                    logger.debug("Translation cache evicted key=%s; max=%d", evicted_key, self.capacity)

            self._entries[key] = value

    def clear(self):
        with self._lock:
            self._entries.clear()

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class TranslationBatcher:
    """Fills region translations from the cache, batching the misses.

    All uncached texts of one call go to the translator as a single batch.
    A failed batch fails the whole call; nothing is partially applied.
    """

    def __init__(self, cache: TranslationCache = None):
        self.cache = cache if cache is not None else TranslationCache()
        self.batch_calls = 0

    async def translate(self, regions: List[TextRegion], translator) -> List[TextRegion]:
        if not regions:
            return []

        results: List[Optional[TextRegion]] = []
        pending = OrderedDict()  # source text -> indices waiting on it

        for i, region in enumerate(regions):
            key = region.stripped_text
            cached_value = self.cache.get(key)
            if cached_value is not None:
                logger.debug(f"Cache hit for: {key[:30]}")
                results.append(region.with_translation(cached_value))
            else:
                logger.debug(f"Cache miss for: {key[:30]}")
                pending.setdefault(key, []).append(i)
                results.append(None)

        if pending:
            texts = list(pending.keys())
            translations = await self._translate_batch(texts, translator)

            for text, translated_text in zip(texts, translations):
                self.cache.set(text, translated_text)
                for idx in pending[text]:
                    results[idx] = regions[idx].with_translation(translated_text)

        return results

    async def _translate_batch(self, texts: List[str], translator) -> List[str]:
        logger.info(f"Translating batch of {len(texts)} items...")
        batch_start = time.time()
        self.batch_calls += 1

        loop = asyncio.get_running_loop()
        try:
            translations = await loop.run_in_executor(None, translator.translate_batch, texts)
        except TranslationError:
            raise
        except Exception as e:
            raise TranslationError(str(e)) from e

        translations = list(translations)
        if len(translations) != len(texts):
            raise TranslationError(
                f"Translator returned {len(translations)} results for {len(texts)} inputs"
            )

        logger.info(f"Batch translation completed in {time.time() - batch_start:.2f}s")
        return translations
