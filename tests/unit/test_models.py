"""Tests for stock-sync data models."""

import pytest

from stock_sync.models import (
    CoordinateUpdate,
    ReconcileReport,
    StoreRecord,
    cell,
    parse_coordinates,
    raw_cell,
)


class TestCells:
    def test_cell_trims_and_pads(self):
        row = [" a ", None]

        assert cell(row, 0) == "a"
        assert cell(row, 1) == ""
        assert cell(row, 5) == ""

    def test_raw_cell_keeps_whitespace(self):
        assert raw_cell([" a "], 0) == " a "
        assert raw_cell([], 0) == ""


class TestParseCoordinates:
    @pytest.mark.parametrize(
        "lat,lng",
        [("", ""), ("37.5", ""), ("", "127"), ("abc", "127"), ("nan", "127"), ("37.5", "inf")],
    )
    def test_invalid_pairs(self, lat, lng):
        assert parse_coordinates(lat, lng) is None

    def test_valid_pair(self):
        assert parse_coordinates("37.5665", "126.978") == (37.5665, 126.978)


class TestStoreRecord:
    def test_from_row(self):
        row = ["37.5", "127.0", "", " 서울 ", "사용", "", "Main", "S1", "", "010", "", "", "", "Lee"]

        store = StoreRecord.from_row(row)

        assert store.address == "서울"
        assert store.is_active
        assert (store.latitude, store.longitude) == (37.5, 127.0)
        assert store.unique_id == "S1_Main"

    def test_half_coordinates_dropped(self):
        row = ["37.5", "", "", "", "사용", "", "Main", "S1"]

        store = StoreRecord.from_row(row)

        assert store.latitude is None
        assert store.longitude is None

    def test_to_dict_without_inventory(self):
        data = StoreRecord(id="S1", name="Main").to_dict()

        assert "inventory" not in data
        assert data["uniqueId"] == "S1_Main"


class TestCoordinateUpdate:
    def test_set(self):
        update = CoordinateUpdate(5, 37.5, 127.0)

        assert not update.is_clear
        assert update.to_value_range("Stores") == {
            "range": "Stores!A5:B5",
            "values": [[37.5, 127.0]],
        }

    def test_clear(self):
        update = CoordinateUpdate(2)

        assert update.is_clear
        assert update.values == [["", ""]]
        assert update.range_for("폰클출고처데이터") == "폰클출고처데이터!A2:B2"


def test_report_to_dict_counts_updates():
    report = ReconcileReport(updates=[CoordinateUpdate(2), CoordinateUpdate(3, 1.0, 2.0)])

    data = report.to_dict()

    assert data["update_count"] == 2
    assert data["written"] is False
