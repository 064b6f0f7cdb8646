"""
Dish image cache and generator.

Each (dish name, description) pair maps to one cache entry that moves from
pending to ready or failed. While an entry is pending, every caller awaits
the same generation task, so at most one upstream call per key is in flight
in this process. Ready entries live for the positive TTL and failed ones
for the shorter negative TTL; expired entries are dropped when next looked
up. Generation tasks belong to the cache, not to the request that started
them, and are shielded from requester cancellation.

An optional shared store (Redis) lets several processes reuse terminal
entries. Store problems only cost the sharing, never the request.
"""

import asyncio
import hashlib
import logging
import time
import unicodedata
from collections import OrderedDict
from typing import Any, Awaitable, Callable, Dict, Optional

from menuscan.config.settings import DishImageCacheSettings
from menuscan.core.cache_client import CacheClient
from menuscan.core.exceptions import CacheGenerationFailure, MenuScanException, MissingFieldError
from menuscan.models.internal_models import CacheStats, CacheStatus, DishImageCacheEntry
from menuscan.services.model_client import ModelApiClient
from menuscan.services.prompt_builder import build_dish_image_prompt

logger = logging.getLogger(__name__)

KEY_PREFIX = "dish_image:"


def normalize_dish_text(value: Optional[str]) -> str:
    if not value:
        return ""
    return " ".join(unicodedata.normalize("NFKC", value).split()).casefold()


def dish_image_cache_key(dish_name: str, description: Optional[str] = None) -> str:
    """Deterministic key; case, spacing and Unicode width do not matter"""
    material = normalize_dish_text(dish_name) + "\x1f" + normalize_dish_text(description)
    return KEY_PREFIX + hashlib.sha256(material.encode("utf-8")).hexdigest()


class DishImageCache:
    """
    Single-flight cache of generated image URLs.

    ``clock`` returns wall-clock seconds and can be replaced in tests.
    """

    def __init__(
        self,
        config: DishImageCacheSettings,
        store: Optional[CacheClient] = None,
        clock: Callable[[], float] = time.time
    ):
        self.config = config
        self.store = store
        self._clock = clock
        self._lock = asyncio.Lock()
        self._entries: "OrderedDict[str, DishImageCacheEntry]" = OrderedDict()
        self._tasks: Dict[str, asyncio.Task] = {}
        self.stats = CacheStats()

    async def get_or_create(
        self,
        key: str,
        factory: Callable[[], Awaitable[str]],
        request_id: Optional[str] = None
    ) -> str:
        """
        Return the URL for ``key``, generating it with ``factory`` on a miss.

        Raises:
            CacheGenerationFailure: If generation failed now or within the
                negative-cache window
        """
        async with self._lock:
            now = self._clock()
            entry = self._entries.get(key)

            if entry is not None and entry.is_terminal and entry.is_expired(now):
                del self._entries[key]
                self.stats.expirations += 1
                entry = None

            if entry is None:
                self.stats.misses += 1
                self._entries[key] = DishImageCacheEntry(
                    key=key,
                    status=CacheStatus.PENDING,
                    created_at=now,
                    last_accessed_at=now,
                )
                task = asyncio.create_task(self._generate(key, factory, request_id))
                task.add_done_callback(self._retrieve_task_exception)
                self._tasks[key] = task
                self._evict_if_needed()
            else:
                entry.last_accessed_at = now
                self._entries.move_to_end(key)
                if entry.status == CacheStatus.READY:
                    self.stats.hits += 1
                    return entry.url
                if entry.status == CacheStatus.FAILED:
                    self.stats.negative_hits += 1
                    raise CacheGenerationFailure(key, entry.error or "generation failed", cached=True)
                self.stats.coalesced += 1
                task = self._tasks[key]

        # the shared task keeps running if this caller goes away
        return await asyncio.shield(task)

    async def _generate(
        self,
        key: str,
        factory: Callable[[], Awaitable[str]],
        request_id: Optional[str]
    ) -> str:
        settled = False
        try:
            stored = await self._load_from_store(key)
            if stored is not None:
                await self._settle(stored)
                settled = True
                if stored.status == CacheStatus.READY:
                    return stored.url
                raise CacheGenerationFailure(key, stored.error or "generation failed", cached=True)

            self.stats.generations += 1
            try:
                url = await factory()
            except Exception as e:
                if isinstance(e, MenuScanException):
                    reason = getattr(e, "reason", None) or e.message
                else:
                    reason = f"{type(e).__name__}: {e}"
                self.stats.failures += 1
                logger.warning(
                    f"Dish image generation failed: {reason}",
                    extra={'request_id': request_id, 'cache_key': key},
                    exc_info=not isinstance(e, MenuScanException)
                )
                entry = self._terminal_entry(key, CacheStatus.FAILED, error=reason)
                await self._settle(entry)
                settled = True
                await self._save_to_store(entry)
                raise CacheGenerationFailure(key, reason) from e

            entry = self._terminal_entry(key, CacheStatus.READY, url=url)
            await self._settle(entry)
            settled = True
            await self._save_to_store(entry)
            logger.info(
                "Dish image generated",
                extra={'request_id': request_id, 'cache_key': key}
            )
            return url
        finally:
            if not settled:
                # cancelled before reaching a terminal state: revert to absent
                self._entries.pop(key, None)
                self._tasks.pop(key, None)

    def _terminal_entry(
        self,
        key: str,
        status: CacheStatus,
        url: Optional[str] = None,
        error: Optional[str] = None
    ) -> DishImageCacheEntry:
        now = self._clock()
        ttl = self.config.success_ttl_seconds if status == CacheStatus.READY else self.config.failure_ttl_seconds
        pending = self._entries.get(key)
        return DishImageCacheEntry(
            key=key,
            status=status,
            created_at=pending.created_at if pending else now,
            last_accessed_at=now,
            url=url,
            error=error,
            expires_at=now + ttl,
        )

    async def _settle(self, entry: DishImageCacheEntry) -> None:
        async with self._lock:
            self._entries[entry.key] = entry
            self._entries.move_to_end(entry.key)
            self._tasks.pop(entry.key, None)
            self._evict_if_needed()

    def _evict_if_needed(self) -> None:
        """Drop least recently used terminal entries beyond capacity."""
        while len(self._entries) > self.config.max_entries:
            victim = next(
                (key for key, entry in self._entries.items() if entry.is_terminal),
                None
            )
            if victim is None:
                # only pending entries left; they are never evicted
                return
            del self._entries[victim]
            self.stats.evictions += 1

    async def _load_from_store(self, key: str) -> Optional[DishImageCacheEntry]:
        if self.store is None:
            return None
        raw = await self.store.get(key)
        if not raw:
            return None
        now = self._clock()
        entry = DishImageCacheEntry.from_json(key, raw, now)
        if entry is None or entry.is_expired(now):
            return None
        self.stats.store_hits += 1
        return entry

    async def _save_to_store(self, entry: DishImageCacheEntry) -> None:
        if self.store is None:
            return
        ttl = self.config.success_ttl_seconds if entry.status == CacheStatus.READY else self.config.failure_ttl_seconds
        stored = await self.store.set(entry.key, entry.to_json(), ttl_seconds=ttl)
        if not stored:
            logger.debug("Dish image entry kept in memory only", extra={'cache_key': entry.key})

    @staticmethod
    def _retrieve_task_exception(task: asyncio.Task) -> None:
        # waiters may all have gone away; mark the exception as seen
        if not task.cancelled():
            task.exception()

    def peek(self, key: str) -> Optional[DishImageCacheEntry]:
        """Current entry for ``key`` without touching access order."""
        return self._entries.get(key)

    def get_stats(self) -> Dict[str, Any]:
        stats = self.stats.as_dict()
        stats.update({
            "entries": len(self._entries),
            "pending": len(self._tasks),
            "max_entries": self.config.max_entries,
            "shared_store": self.store is not None,
        })
        return stats

    async def shutdown(self) -> None:
        """Cancel in-flight generations; their entries revert to absent."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)


class DishImageService:
    """Validates dish image requests and serves them through the cache"""

    def __init__(self, api_client: ModelApiClient, cache: DishImageCache):
        self.api_client = api_client
        self.cache = cache

    async def get_image_url(
        self,
        dish_name: Optional[str],
        description: Optional[str] = None,
        request_id: Optional[str] = None
    ) -> str:
        """
        Raises:
            MissingFieldError: If the dish name is blank
            CacheGenerationFailure: If no image could be produced
        """
        if not dish_name or not dish_name.strip():
            raise MissingFieldError("Please provide a dish name", "dishName")

        key = dish_image_cache_key(dish_name, description)
        prompt = build_dish_image_prompt(dish_name, description)
        return await self.cache.get_or_create(
            key,
            lambda: self.api_client.generate_image(prompt, request_id=request_id),
            request_id=request_id,
        )
