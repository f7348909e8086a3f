"""
Inventory aggregation for stock-sync.

Turns raw inventory-sheet rows into per-store counts and joins them onto the
active stores from the store sheet. Everything here is pure: no I/O, no
cache access.
"""

import logging
import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any

from .models import (
    ACTIVE_STATUS,
    STORE_ID_COL,
    STORE_NAME_COL,
    STORE_STATUS_COL,
    AgentRecord,
    Category,
    StoreRecord,
    cell,
)

logger = logging.getLogger(__name__)

INVENTORY_HEADER_ROWS = 3
STORE_HEADER_ROWS = 1
AGENT_HEADER_ROWS = 1

# A row must reach the shipping-date column to be counted
MIN_INVENTORY_COLUMNS = 15
MIN_MODEL_COLUMNS = 8

# Inventory sheet columns (0-based)
INV_TYPE_COL = 4  # E
INV_MODEL_COL = 5  # F
INV_COLOR_COL = 6  # G
INV_STATUS_COL = 7  # H
INV_STORE_COL = 13  # N
INV_SHIPPED_COL = 14  # O

RECENT_SHIPPING_DAYS = 3
NORMAL_STATUS = "정상"

TYPE_CATEGORIES = {
    "유심": Category.SIMS,
    "웨어러블": Category.WEARABLES,
    "스마트기기": Category.SMART_DEVICES,
}

_DATE_PATTERN = re.compile(r"^\s*(\d{4})\s*[-./]\s*(\d{1,2})\s*[-./]\s*(\d{1,2})")

InventoryTree = dict[str, dict[str, Any]]


@dataclass
class AggregateOptions:
    """Options for ``aggregate``."""

    exclude_recently_shipped: bool = False
    today: date | None = None  # Defaults to the current local date

    def resolve_today(self) -> date:
        return self.today or date.today()


@dataclass
class AggregateResult:
    """Stores with attached inventory, plus row accounting for logs."""

    stores: list[StoreRecord] = field(default_factory=list)
    inventory: InventoryTree = field(default_factory=dict)
    rows_counted: int = 0
    rows_skipped: int = 0
    rows_recently_shipped: int = 0


def category_for_type(type_cell: str) -> Category:
    """Map an inventory type cell to its category (phones by default)."""
    return TYPE_CATEGORIES.get(type_cell, Category.PHONES)


def parse_sheet_date(value: str) -> date | None:
    """
    Parse a date cell.

    Accepts ``2024-05-01``, ``2024/05/01``, ``2024.05.01`` and the Korean
    spreadsheet form ``2024. 5. 1``, optionally followed by a time.
    Returns None for blank or unrecognised values.
    """
    if not value:
        return None
    match = _DATE_PATTERN.match(value)
    if not match:
        return None
    year, month, day = (int(part) for part in match.groups())
    try:
        return date(year, month, day)
    except ValueError:
        return None


def is_recently_shipped(shipped: date | None, today: date) -> bool:
    """True if ``shipped`` falls within the last RECENT_SHIPPING_DAYS days, inclusive."""
    if shipped is None:
        return False
    return shipped >= today - timedelta(days=RECENT_SHIPPING_DAYS)


def empty_store_inventory() -> dict[str, dict]:
    return {category.value: {} for category in Category}


def build_inventory(
    inventory_rows: list[list[str]],
    options: AggregateOptions | None = None,
    result: AggregateResult | None = None,
) -> InventoryTree:
    """
    Count inventory rows per store/category/model/status/color.

    Each qualifying row adds one; quantities in the sheet are not read.
    """
    options = options or AggregateOptions()
    result = result if result is not None else AggregateResult()
    today = options.resolve_today()
    tree: InventoryTree = {}

    for row in inventory_rows[INVENTORY_HEADER_ROWS:]:
        if not row or len(row) < MIN_INVENTORY_COLUMNS:
            result.rows_skipped += 1
            continue

        store_name = cell(row, INV_STORE_COL)
        model = cell(row, INV_MODEL_COL)
        color = cell(row, INV_COLOR_COL)
        status = cell(row, INV_STATUS_COL)
        category = category_for_type(cell(row, INV_TYPE_COL))

        if not store_name or not model or not color:
            result.rows_skipped += 1
            continue

        if options.exclude_recently_shipped:
            shipped = parse_sheet_date(cell(row, INV_SHIPPED_COL))
            if is_recently_shipped(shipped, today):
                result.rows_recently_shipped += 1
                continue

        store = tree.setdefault(store_name, empty_store_inventory())
        colors = store[category.value].setdefault(model, {}).setdefault(status, {})
        colors[color] = colors.get(color, 0) + 1
        result.rows_counted += 1

    return tree


def aggregate(
    inventory_rows: list[list[str]],
    store_rows: list[list[str]],
    options: AggregateOptions | None = None,
) -> AggregateResult:
    """
    Build the store list with per-store inventory attached.

    Only stores whose status is the active marker and that have both a name
    and a store id are returned. A store with no inventory rows gets an
    empty mapping.
    """
    result = AggregateResult()
    result.inventory = build_inventory(inventory_rows, options, result)

    for row in store_rows[STORE_HEADER_ROWS:]:
        if cell(row, STORE_STATUS_COL) != ACTIVE_STATUS:
            continue
        if not cell(row, STORE_NAME_COL) or not cell(row, STORE_ID_COL):
            continue

        store = StoreRecord.from_row(row)
        store.inventory = result.inventory.get(store.name, {})
        result.stores.append(store)

    logger.debug(
        f"Aggregated {result.rows_counted} inventory rows into {len(result.stores)} stores "
        f"({result.rows_skipped} skipped, {result.rows_recently_shipped} recently shipped)"
    )
    return result


def list_models(inventory_rows: list[list[str]]) -> dict[str, list[str]]:
    """Map each model to its sorted colors, over rows in normal condition."""
    colors_by_model: dict[str, set[str]] = {}

    for row in inventory_rows[INVENTORY_HEADER_ROWS:]:
        if len(row) < MIN_MODEL_COLUMNS:
            continue

        model = cell(row, INV_MODEL_COL)
        color = cell(row, INV_COLOR_COL)
        if not model or not color:
            continue
        if cell(row, INV_STATUS_COL) != NORMAL_STATUS:
            continue

        colors_by_model.setdefault(model, set()).add(color)

    return {model: sorted(colors) for model, colors in colors_by_model.items()}


def parse_agents(agent_rows: list[list[str]]) -> list[AgentRecord]:
    """Agent records from the agent sheet, skipping rows without a contact id."""
    agents = [AgentRecord.from_row(row) for row in agent_rows[AGENT_HEADER_ROWS:]]
    return [agent for agent in agents if agent.contact_id]
