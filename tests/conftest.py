"""Shared pytest fixtures for stock-sync tests."""

import pytest
from datasette.app import Datasette

from datasette_stock_map.plugin import set_context
from stock_sync.cache import TTLCache
from stock_sync.config import SyncConfig
from stock_sync.context import AppContext
from stock_sync.errors import ExternalServiceError
from stock_sync.models import GeocodeNotFound


class FakeSheetsClient:
    """In-memory stand-in for SheetsClient."""

    def __init__(self, tables: dict | None = None):
        self.tables = tables or {}
        self.reads: list[str] = []
        self.batches: list[list[dict]] = []
        self.fail_reads = False
        self.fail_writes = False

    async def get_values(self, range_name: str):
        self.reads.append(range_name)
        if self.fail_reads:
            raise ExternalServiceError("sheets", f"read of {range_name} failed")
        return self.tables.get(range_name, [])

    async def batch_update(self, data):
        if self.fail_writes:
            raise ExternalServiceError("sheets", "batch update failed")
        self.batches.append(data)
        return {"totalUpdatedRanges": len(data)}


class FakeGeocoder:
    """Geocoder answering from a dict; Exception values are raised."""

    def __init__(self, results: dict | None = None):
        self.results = results or {}
        self.calls: list[str] = []

    async def geocode(self, address: str):
        self.calls.append(address)
        result = self.results.get(address, GeocodeNotFound())
        if isinstance(result, Exception):
            raise result
        return result


class SleepRecorder:
    """Records requested pauses instead of sleeping."""

    def __init__(self):
        self.calls: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def sheets_client():
    return FakeSheetsClient()


@pytest.fixture
def geocoder():
    return FakeGeocoder()


@pytest.fixture
def sleep():
    return SleepRecorder()


@pytest.fixture
def config():
    """Config with background tasks off so tests never start timers."""
    return SyncConfig.from_dict({"background_tasks": False})


@pytest.fixture
def context(config, sheets_client, geocoder, sleep):
    """A fresh AppContext wired to fake collaborators."""
    return AppContext.build(
        config,
        sheets_client=sheets_client,
        geocoder=geocoder,
        cache=TTLCache(),
        sleep=sleep,
    )


@pytest.fixture
def datasette(context):
    """A Datasette instance with the plugin using the fake context.

    Uses config= (not metadata=) for Datasette v1 compatibility.
    """
    ds = Datasette(
        memory=True,
        config={"plugins": {"datasette-stock-map": {"background_tasks": False}}},
    )
    set_context(ds, context)
    return ds
