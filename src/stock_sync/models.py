"""
Data models for stock-sync.

Rows arrive from the spreadsheet as lists of strings; the column layout of
each sheet is fixed and described by the ``*_COL`` constants below.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

# Store status value meaning "currently in service"
ACTIVE_STATUS = "사용"

# Store sheet columns (0-based)
STORE_LAT_COL = 0  # A
STORE_LNG_COL = 1  # B
STORE_ADDRESS_COL = 3
STORE_STATUS_COL = 4
STORE_NAME_COL = 6
STORE_ID_COL = 7
STORE_PHONE_COL = 9
STORE_MANAGER_COL = 13

# Agent sheet columns
AGENT_TARGET_COL = 0
AGENT_QUALIFICATION_COL = 1
AGENT_CONTACT_ID_COL = 2


def cell(row: list[str], index: int) -> str:
    """Return a trimmed cell value, or "" when the row is too short."""
    if index < len(row) and row[index] is not None:
        return str(row[index]).strip()
    return ""


def raw_cell(row: list[str], index: int) -> str:
    """Return a cell value untrimmed, or "" when the row is too short."""
    if index < len(row) and row[index] is not None:
        return str(row[index])
    return ""


def parse_coordinates(lat_cell: str, lng_cell: str) -> tuple[float, float] | None:
    """Parse a latitude/longitude cell pair; both must be valid or neither is used."""
    try:
        latitude = float(lat_cell)
        longitude = float(lng_cell)
    except (TypeError, ValueError):
        return None
    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        return None
    return latitude, longitude


class Category(str, Enum):
    """Inventory categories. The set is closed."""

    PHONES = "phones"
    SIMS = "sims"
    WEARABLES = "wearables"
    SMART_DEVICES = "smartDevices"


class IdentityKind(str, Enum):
    """Session role an identifier resolves to."""

    INVENTORY = "inventory"
    AGENT = "agent"
    STORE = "store"


@dataclass
class StoreRecord:
    """A store row from the store sheet."""

    id: str
    name: str
    address: str = ""
    phone: str = ""
    manager: str = ""
    latitude: float | None = None
    longitude: float | None = None
    status: str = ""
    inventory: dict[str, Any] | None = None

    @property
    def unique_id(self) -> str:
        return f"{self.id}_{self.name}"

    @property
    def is_active(self) -> bool:
        return self.status == ACTIVE_STATUS

    @classmethod
    def from_row(cls, row: list[str]) -> "StoreRecord":
        """Build a store record from a raw store-sheet row."""
        coords = parse_coordinates(cell(row, STORE_LAT_COL), cell(row, STORE_LNG_COL))
        latitude, longitude = coords if coords else (None, None)
        return cls(
            id=cell(row, STORE_ID_COL),
            name=cell(row, STORE_NAME_COL),
            address=cell(row, STORE_ADDRESS_COL),
            phone=cell(row, STORE_PHONE_COL),
            manager=cell(row, STORE_MANAGER_COL),
            latitude=latitude,
            longitude=longitude,
            status=cell(row, STORE_STATUS_COL),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: dict[str, Any] = {
            "id": self.id,
            "name": self.name,
            "address": self.address,
            "phone": self.phone,
            "manager": self.manager,
            "latitude": self.latitude,
            "longitude": self.longitude,
            "uniqueId": self.unique_id,
        }
        if self.inventory is not None:
            result["inventory"] = self.inventory
        return result


@dataclass
class AgentRecord:
    """An agent (dealer manager) row from the agent sheet."""

    target: str
    qualification: str
    contact_id: str

    @classmethod
    def from_row(cls, row: list[str]) -> "AgentRecord":
        return cls(
            target=cell(row, AGENT_TARGET_COL),
            qualification=cell(row, AGENT_QUALIFICATION_COL),
            contact_id=cell(row, AGENT_CONTACT_ID_COL),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "target": self.target,
            "qualification": self.qualification,
            "contactId": self.contact_id,
        }


@dataclass
class InventoryIdentity:
    """A reserved inventory-only login."""

    identifier: str
    latitude: float
    longitude: float
    kind: IdentityKind = field(default=IdentityKind.INVENTORY, init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "isAgent": False,
            "isInventory": True,
            "storeInfo": {
                "id": self.identifier,
                "name": "재고관리 모드",
                "manager": "재고관리자",
                "address": "",
                "latitude": self.latitude,
                "longitude": self.longitude,
                "phone": "",
            },
        }


@dataclass
class AgentIdentity:
    """A login matched in the agent sheet."""

    agent: AgentRecord
    kind: IdentityKind = field(default=IdentityKind.AGENT, init=False)

    def to_dict(self) -> dict[str, Any]:
        return {
            "success": True,
            "isAgent": True,
            "agentInfo": self.agent.to_dict(),
        }


@dataclass
class StoreIdentity:
    """A login matched in the store sheet."""

    store: StoreRecord
    kind: IdentityKind = field(default=IdentityKind.STORE, init=False)

    def to_dict(self) -> dict[str, Any]:
        store = self.store
        return {
            "success": True,
            "isAgent": False,
            "storeInfo": {
                "id": store.id,
                "name": store.name,
                "manager": store.manager,
                "address": store.address,
                "latitude": store.latitude,
                "longitude": store.longitude,
                "phone": store.phone,
            },
        }


Identity = InventoryIdentity | AgentIdentity | StoreIdentity


@dataclass(frozen=True)
class GeocodeFound:
    """The geocoder located the address."""

    latitude: float
    longitude: float


@dataclass(frozen=True)
class GeocodeNotFound:
    """The geocoder returned no match for the address."""


GeocodeResult = GeocodeFound | GeocodeNotFound


@dataclass(frozen=True)
class CoordinateUpdate:
    """
    A pending write of one store row's coordinate cells.

    ``row_number`` is the 1-based sheet row. Both coordinates are None for a
    clear.
    """

    row_number: int
    latitude: float | None = None
    longitude: float | None = None

    @property
    def is_clear(self) -> bool:
        return self.latitude is None or self.longitude is None

    @property
    def values(self) -> list[list[Any]]:
        if self.is_clear:
            return [["", ""]]
        return [[self.latitude, self.longitude]]

    def range_for(self, sheet_name: str) -> str:
        """A1 range of the coordinate cells in the given sheet."""
        return f"{sheet_name}!A{self.row_number}:B{self.row_number}"

    def to_value_range(self, sheet_name: str) -> dict[str, Any]:
        """Render as a Sheets API ValueRange."""
        return {"range": self.range_for(sheet_name), "values": self.values}


@dataclass
class ReconcileReport:
    """Outcome of one reconciliation pass."""

    rows_seen: int = 0
    geocoded: int = 0
    cleared: int = 0
    geocode_failures: int = 0
    written: bool = False
    dry_run: bool = False
    updates: list[CoordinateUpdate] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows_seen": self.rows_seen,
            "geocoded": self.geocoded,
            "cleared": self.cleared,
            "geocode_failures": self.geocode_failures,
            "written": self.written,
            "dry_run": self.dry_run,
            "update_count": len(self.updates),
        }
