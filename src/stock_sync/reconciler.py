"""
Store coordinate reconciliation.

A pass reads the store sheet, geocodes the address of every active store and
writes all coordinate changes back in a single batched call. Rows that are
inactive, have no address, or cannot be located get their coordinates
cleared, so a store is never left pinned to a stale location.

Updates are addressed by row position in the snapshot read at the start of
the pass; that read always bypasses the cache. If the sheet is reordered, or
rows are inserted or removed, while a pass is running, the write can land on
the wrong rows. The sheet offers no stable row ids to address by instead.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Protocol

from .errors import ExternalServiceError
from .inventory import STORE_HEADER_ROWS
from .models import (
    ACTIVE_STATUS,
    STORE_ADDRESS_COL,
    STORE_STATUS_COL,
    CoordinateUpdate,
    GeocodeFound,
    GeocodeResult,
    ReconcileReport,
    cell,
)
from .sheets import SheetDataSource

logger = logging.getLogger(__name__)

DEFAULT_DELAY_SECONDS = 1.0


class Geocoder(Protocol):
    async def geocode(self, address: str) -> GeocodeResult: ...


class Reconciler:
    """Keeps the store sheet's coordinate columns in step with its addresses."""

    def __init__(
        self,
        source: SheetDataSource,
        geocoder: Geocoder,
        store_sheet: str,
        delay_seconds: float = DEFAULT_DELAY_SECONDS,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        on_written: Callable[[], None] | None = None,
    ):
        """
        Initialize the reconciler.

        Args:
            source: Data source for the store sheet read and batched write
            geocoder: Address geocoder
            store_sheet: Name of the store sheet
            delay_seconds: Pause after each active store (geocoder rate limit)
            sleep: Coroutine used for the pause
            on_written: Called after a successful write, to drop derived caches
        """
        self.source = source
        self.geocoder = geocoder
        self.store_sheet = store_sheet
        self.delay_seconds = delay_seconds
        self._sleep = sleep
        self._on_written = on_written
        self._lock = asyncio.Lock()
        self.stop_event = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    def stop(self) -> None:
        """Ask any in-flight pass to stop before its next row."""
        self.stop_event.set()

    def _check_stopped(self) -> None:
        if self.stop_event.is_set():
            logger.info("Reconciliation pass stopped before write")
            raise asyncio.CancelledError("reconciliation stopped")

    async def _locate(self, row_number: int, address: str, report: ReconcileReport) -> CoordinateUpdate:
        """Geocode one active store's address; any failure becomes a clear."""
        if not address:
            logger.debug(f"Row {row_number}: active store without address, clearing")
            return CoordinateUpdate(row_number)

        try:
            result = await self.geocoder.geocode(address)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.warning(f"Row {row_number}: geocoding failed for {address!r}: {e}")
            report.geocode_failures += 1
            return CoordinateUpdate(row_number)

        if isinstance(result, GeocodeFound):
            logger.debug(
                f"Row {row_number}: {address!r} -> {result.latitude}, {result.longitude}"
            )
            return CoordinateUpdate(row_number, result.latitude, result.longitude)

        logger.info(f"Row {row_number}: no geocoding result for {address!r}, clearing")
        return CoordinateUpdate(row_number)

    async def run_pass(self, dry_run: bool = False) -> ReconcileReport:
        """
        Run one full reconciliation pass.

        Passes never overlap; a second caller waits for the running pass to
        finish and then runs its own.

        Args:
            dry_run: Collect updates without writing them

        Returns:
            ReconcileReport describing the pass

        Raises:
            ExternalServiceError: the store sheet read or the batched write failed
            asyncio.CancelledError: the pass was stopped; nothing was written
        """
        async with self._lock:
            self._check_stopped()
            logger.info("Starting coordinate reconciliation pass")

            # Row positions must come from a fresh read, not a cached snapshot
            self.source.invalidate(self.store_sheet)
            rows = await self.source.get_table(self.store_sheet)
            report = ReconcileReport(dry_run=dry_run)

            for index, row in enumerate(rows[STORE_HEADER_ROWS:]):
                self._check_stopped()
                row_number = index + STORE_HEADER_ROWS + 1
                report.rows_seen += 1

                active = cell(row, STORE_STATUS_COL) == ACTIVE_STATUS
                if active:
                    update = await self._locate(row_number, cell(row, STORE_ADDRESS_COL), report)
                else:
                    update = CoordinateUpdate(row_number)

                report.updates.append(update)
                if update.is_clear:
                    report.cleared += 1
                else:
                    report.geocoded += 1

                if active:
                    await self._sleep(self.delay_seconds)

            self._check_stopped()

            if not report.updates:
                logger.info("No coordinates to update")
                return report

            if dry_run:
                logger.info(f"Dry run: would write {len(report.updates)} coordinate update(s)")
                return report

            data = [update.to_value_range(self.store_sheet) for update in report.updates]
            try:
                await self.source.batch_update(data)
            except ExternalServiceError:
                logger.error(
                    f"Coordinate write of {len(data)} row(s) failed; "
                    "coordinates unchanged until the next pass"
                )
                raise

            report.written = True
            self.source.invalidate(self.store_sheet)
            if self._on_written is not None:
                self._on_written()

            logger.info(
                f"Updated coordinates for {len(report.updates)} row(s): "
                f"{report.geocoded} located, {report.cleared} cleared, "
                f"{report.geocode_failures} geocoder failure(s)"
            )
            return report
