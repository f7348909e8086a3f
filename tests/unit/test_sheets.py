"""Unit tests for the Google Sheets client and cached data source."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from stock_sync.cache import TTLCache
from stock_sync.config import SheetsConfig
from stock_sync.errors import ExternalServiceError
from stock_sync.sheets import SheetDataSource, SheetsClient, table_cache_key


def json_response(data: dict) -> MagicMock:
    response = MagicMock()
    response.status_code = 200
    response.json.return_value = data
    response.raise_for_status = MagicMock()
    return response


def token_response() -> MagicMock:
    return json_response({"access_token": "fake_token", "expires_in": 3600})


class TestSheetsClient:
    """Tests for the SheetsClient class."""

    @pytest.fixture
    def client(self):
        client = SheetsClient(
            spreadsheet_id="sheet123",
            service_account_email="svc@example.iam.gserviceaccount.com",
            private_key="unused",
            api_base="https://sheets.example.com/",
            token_uri="https://oauth.example.com/token",
        )
        with patch.object(SheetsClient, "_build_assertion", return_value="signed.jwt"):
            yield client

    async def test_get_values(self, client):
        """Reads a range and returns rows of strings."""
        values_response = json_response({"values": [["a", 1], ["b", 2.5]]})

        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_client.return_value.__aenter__.return_value = mock_instance
            mock_instance.post.return_value = token_response()
            mock_instance.get.return_value = values_response

            rows = await client.get_values("Stores")

        assert rows == [["a", "1"], ["b", "2.5"]]
        url = mock_instance.get.call_args.args[0]
        assert url == "https://sheets.example.com/v4/spreadsheets/sheet123/values/Stores"
        headers = mock_instance.get.call_args.kwargs["headers"]
        assert headers["Authorization"] == "Bearer fake_token"

    async def test_get_values_without_values_key(self, client):
        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_client.return_value.__aenter__.return_value = mock_instance
            mock_instance.post.return_value = token_response()
            mock_instance.get.return_value = json_response({"range": "Stores!A1:Z1000"})

            assert await client.get_values("Stores") == []

    async def test_read_error_is_wrapped(self, client):
        """HTTP failures surface as ExternalServiceError."""
        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_client.return_value.__aenter__.return_value = mock_instance
            mock_instance.post.return_value = token_response()
            mock_instance.get.side_effect = httpx.ConnectError("connection refused")

            with pytest.raises(ExternalServiceError) as exc_info:
                await client.get_values("Stores")

        assert exc_info.value.service == "sheets"

    async def test_status_error_is_wrapped(self, client):
        failing = MagicMock()
        failing.raise_for_status.side_effect = httpx.HTTPStatusError(
            "403 Forbidden", request=MagicMock(), response=MagicMock()
        )

        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_client.return_value.__aenter__.return_value = mock_instance
            mock_instance.post.return_value = token_response()
            mock_instance.get.return_value = failing

            with pytest.raises(ExternalServiceError):
                await client.get_values("Stores")

    async def test_batch_update(self, client):
        """Sends every range in one call with user-entered values."""
        data = [
            {"range": "Stores!A2:B2", "values": [[37.5, 127.0]]},
            {"range": "Stores!A3:B3", "values": [["", ""]]},
        ]

        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_client.return_value.__aenter__.return_value = mock_instance
            mock_instance.post.side_effect = [
                token_response(),
                json_response({"totalUpdatedRanges": 2}),
            ]

            result = await client.batch_update(data)

        assert result == {"totalUpdatedRanges": 2}
        write_call = mock_instance.post.call_args_list[1]
        assert write_call.args[0] == (
            "https://sheets.example.com/v4/spreadsheets/sheet123/values:batchUpdate"
        )
        assert write_call.kwargs["json"] == {"valueInputOption": "USER_ENTERED", "data": data}

    async def test_token_is_cached(self, client):
        """The access token is fetched once and reused."""
        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_client.return_value.__aenter__.return_value = mock_instance
            mock_instance.post.return_value = token_response()

            token1 = await client._get_token()
            token2 = await client._get_token()

        assert token1 == token2 == "fake_token"
        assert mock_instance.post.call_count == 1
        token_call = mock_instance.post.call_args
        assert token_call.kwargs["data"]["assertion"] == "signed.jwt"

    async def test_token_failure_is_wrapped(self, client):
        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_client.return_value.__aenter__.return_value = mock_instance
            mock_instance.post.side_effect = httpx.ConnectError("no route")

            with pytest.raises(ExternalServiceError):
                await client.get_values("Stores")

            mock_instance.get.assert_not_called()

    async def test_token_reply_without_access_token(self, client):
        """A 200 token reply with no access_token is a service failure."""
        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_client.return_value.__aenter__.return_value = mock_instance
            mock_instance.post.return_value = json_response({"token_type": "Bearer"})

            with pytest.raises(ExternalServiceError) as exc_info:
                await client.get_values("Stores")

            mock_instance.get.assert_not_called()

        assert exc_info.value.service == "sheets"
        assert client._token is None

    async def test_non_json_read_is_wrapped(self, client):
        """A 200 read whose body is not JSON (e.g. a proxy error page)."""
        html_page = MagicMock()
        html_page.raise_for_status = MagicMock()
        html_page.json.side_effect = ValueError("Expecting value: line 1 column 1 (char 0)")

        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_client.return_value.__aenter__.return_value = mock_instance
            mock_instance.post.return_value = token_response()
            mock_instance.get.return_value = html_page

            with pytest.raises(ExternalServiceError) as exc_info:
                await client.get_values("Stores")

        assert exc_info.value.service == "sheets"

    async def test_non_json_batch_reply_is_wrapped(self, client):
        html_page = MagicMock()
        html_page.raise_for_status = MagicMock()
        html_page.json.side_effect = ValueError("Expecting value")

        with patch("httpx.AsyncClient") as mock_client:
            mock_instance = AsyncMock()
            mock_client.return_value.__aenter__.return_value = mock_instance
            mock_instance.post.side_effect = [token_response(), html_page]

            with pytest.raises(ExternalServiceError):
                await client.batch_update([{"range": "Stores!A2:B2", "values": [["", ""]]}])


class TestSheetsClientConfiguration:
    async def test_missing_spreadsheet_id(self):
        client = SheetsClient(None, "svc@example.com", "key")

        with pytest.raises(ExternalServiceError):
            await client.get_values("Stores")

    async def test_missing_credentials(self):
        client = SheetsClient("sheet123", None, None)

        with pytest.raises(ExternalServiceError):
            await client.get_values("Stores")

    async def test_invalid_private_key(self):
        client = SheetsClient("sheet123", "svc@example.com", "not a pem key")

        with pytest.raises(ExternalServiceError):
            await client.get_values("Stores")

    def test_from_config(self, monkeypatch):
        monkeypatch.setenv("SHEET_ID", "from-env")
        monkeypatch.setenv("GOOGLE_SERVICE_ACCOUNT_EMAIL", "svc@example.com")
        monkeypatch.setenv("GOOGLE_PRIVATE_KEY", "line1\\nline2")

        client = SheetsClient.from_config(SheetsConfig(api_base="https://sheets.example.com/"))

        assert client.spreadsheet_id == "from-env"
        assert client.private_key == "line1\nline2"
        assert client.api_base == "https://sheets.example.com"


class TestSheetDataSource:
    """Tests for cached table reads."""

    @pytest.fixture
    def client(self, sheets_client):
        sheets_client.tables = {"Stores": [["header"], ["row"]]}
        return sheets_client

    async def test_first_read_hits_api_then_cache(self, client):
        source = SheetDataSource(client, TTLCache())

        first = await source.get_table("Stores")
        second = await source.get_table("Stores")

        assert first == second == [["header"], ["row"]]
        assert client.reads == ["Stores"]

    async def test_invalidate_forces_reread(self, client):
        cache = TTLCache()
        source = SheetDataSource(client, cache)
        await source.get_table("Stores")

        source.invalidate("Stores")
        await source.get_table("Stores")

        assert client.reads == ["Stores", "Stores"]

    async def test_failed_read_is_not_cached(self, client):
        cache = TTLCache()
        source = SheetDataSource(client, cache)
        client.fail_reads = True

        with pytest.raises(ExternalServiceError):
            await source.get_table("Stores")

        assert table_cache_key("Stores") not in cache

    async def test_batch_update_forwarded(self, client):
        source = SheetDataSource(client, TTLCache())
        data = [{"range": "Stores!A2:B2", "values": [["", ""]]}]

        await source.batch_update(data)

        assert client.batches == [data]
