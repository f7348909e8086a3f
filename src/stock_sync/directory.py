"""
Store directory: the processed payloads served by the API.

Each listing is built from the cached sheets and then cached itself, so a
repeat request within the ttl does no aggregation work.
"""

import logging
import time
from typing import Any

from .cache import MISS, TTLCache
from .config import SheetsConfig
from .inventory import AggregateOptions, aggregate, list_models, parse_agents
from .sheets import SheetDataSource

logger = logging.getLogger(__name__)

STORES_CACHE_PREFIX = "processed_stores_data_"
MODELS_CACHE_KEY = "processed_models_data"
AGENTS_CACHE_KEY = "processed_agents_data"


class StoreDirectory:
    """Builds and caches the store, model and agent listings."""

    def __init__(self, source: SheetDataSource, cache: TTLCache, sheets: SheetsConfig):
        self.source = source
        self.cache = cache
        self.sheets = sheets

    async def get_stores(self, include_shipped: bool = True) -> list[dict[str, Any]]:
        """Active stores with inventory; recently shipped units dropped unless ``include_shipped``."""
        key = f"{STORES_CACHE_PREFIX}{str(include_shipped).lower()}"
        cached = self.cache.get(key)
        if cached is not MISS:
            return cached

        started = time.monotonic()
        inventory_rows = await self.source.get_table(self.sheets.inventory_sheet)
        store_rows = await self.source.get_table(self.sheets.store_sheet)

        result = aggregate(
            inventory_rows,
            store_rows,
            AggregateOptions(exclude_recently_shipped=not include_shipped),
        )
        stores = [store.to_dict() for store in result.stores]

        logger.info(
            f"Processed {len(stores)} stores in {time.monotonic() - started:.2f}s "
            f"(include_shipped={include_shipped})"
        )
        self.cache.set(key, stores)
        return stores

    async def get_models(self) -> dict[str, list[str]]:
        cached = self.cache.get(MODELS_CACHE_KEY)
        if cached is not MISS:
            return cached

        inventory_rows = await self.source.get_table(self.sheets.inventory_sheet)
        models = list_models(inventory_rows)
        self.cache.set(MODELS_CACHE_KEY, models)
        return models

    async def get_agents(self) -> list[dict[str, str]]:
        cached = self.cache.get(AGENTS_CACHE_KEY)
        if cached is not MISS:
            return cached

        agent_rows = await self.source.get_table(self.sheets.agent_sheet)
        agents = [agent.to_dict() for agent in parse_agents(agent_rows)]
        self.cache.set(AGENTS_CACHE_KEY, agents)
        return agents

    def invalidate_stores(self) -> None:
        """Drop processed store listings, e.g. after coordinates were rewritten."""
        removed = self.cache.delete_prefix(STORES_CACHE_PREFIX)
        if removed:
            logger.debug(f"Dropped {removed} processed store listing(s)")

    def refresh(self, sheet: str | None = None) -> str:
        """
        Force a refresh.

        With ``sheet``, drop that sheet's cached table. Without, sweep expired
        entries now. Returns a message for the caller.
        """
        if sheet:
            self.source.invalidate(sheet)
            logger.info(f"Cache refreshed for sheet {sheet}")
            return f"캐시 새로고침 완료: {sheet}"

        removed = self.source.invalidate_all()
        logger.info(f"Full cache refresh: {removed} expired entries removed")
        return "전체 캐시 새로고침 완료"

    def cache_status(self) -> dict[str, int]:
        return self.cache.status()
