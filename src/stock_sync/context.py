"""
Application context for stock-sync.

One ``AppContext`` is built at startup and handed to everything that needs
the cache, the sheet data source or the reconciler. Tests build their own
with fake collaborators.
"""

import asyncio
import contextlib
import logging
from dataclasses import dataclass, field

from .cache import TTLCache
from .config import SyncConfig
from .directory import StoreDirectory
from .geocoder import KakaoGeocoder
from .identity import IdentityResolver
from .reconciler import Geocoder, Reconciler
from .sheets import SheetDataSource, SheetsClient

logger = logging.getLogger(__name__)


@dataclass
class AppContext:
    """Process-wide collaborators, wired once."""

    config: SyncConfig
    cache: TTLCache
    source: SheetDataSource
    directory: StoreDirectory
    identity: IdentityResolver
    reconciler: Reconciler
    _tasks: list[asyncio.Task] = field(default_factory=list, repr=False)

    @classmethod
    def build(
        cls,
        config: SyncConfig,
        sheets_client: SheetsClient,
        geocoder: Geocoder,
        cache: TTLCache | None = None,
        **reconciler_kwargs,
    ) -> "AppContext":
        """Wire a context around the given clients."""
        cache = cache or TTLCache(
            default_ttl=config.cache.ttl_seconds,
            max_entries=config.cache.max_entries,
        )
        source = SheetDataSource(sheets_client, cache)
        directory = StoreDirectory(source, cache, config.sheets)
        identity = IdentityResolver(
            source,
            agent_sheet=config.sheets.agent_sheet,
            store_sheet=config.sheets.store_sheet,
            login=config.login,
        )
        reconciler_kwargs.setdefault("delay_seconds", config.geocoder.delay_seconds)
        reconciler = Reconciler(
            source,
            geocoder,
            store_sheet=config.sheets.store_sheet,
            on_written=directory.invalidate_stores,
            **reconciler_kwargs,
        )
        return cls(
            config=config,
            cache=cache,
            source=source,
            directory=directory,
            identity=identity,
            reconciler=reconciler,
        )

    @classmethod
    def from_config(cls, config: SyncConfig) -> "AppContext":
        """Wire a context talking to Google Sheets and Kakao."""
        return cls.build(
            config,
            sheets_client=SheetsClient.from_config(config.sheets),
            geocoder=KakaoGeocoder.from_config(config.geocoder),
        )

    @property
    def started(self) -> bool:
        return bool(self._tasks)

    async def _cleanup_loop(self) -> None:
        interval = self.config.cache.cleanup_interval_seconds
        while True:
            await asyncio.sleep(interval)
            self.cache.cleanup()

    async def _reconcile_loop(self) -> None:
        settings = self.config.reconcile
        if not settings.run_on_startup:
            await asyncio.sleep(settings.interval_seconds)

        while True:
            try:
                await self.reconciler.run_pass()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"Reconciliation pass failed: {e}")

            await asyncio.sleep(settings.interval_seconds)

    def start(self) -> None:
        """Start background cache cleanup and, if enabled, scheduled reconciliation."""
        if self.started:
            return

        self._tasks.append(asyncio.create_task(self._cleanup_loop(), name="cache-cleanup"))
        if self.config.reconcile.enabled:
            self._tasks.append(asyncio.create_task(self._reconcile_loop(), name="reconcile"))
            logger.info(
                f"Reconciliation scheduled every {self.config.reconcile.interval_seconds:.0f}s"
            )

    async def stop(self) -> None:
        """Stop background tasks; an in-flight pass is abandoned before its write."""
        self.reconciler.stop()
        tasks, self._tasks = self._tasks, []
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        logger.info("Background tasks stopped")
