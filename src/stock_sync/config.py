"""
Configuration for stock-sync.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

PLUGIN_NAME = "datasette-stock-map"

DEFAULT_INVENTORY_IDS = [
    "JEGO306891",
    "JEGO315835",
    "JEGO314942",
    "JEGO316558",
    "JEGO316254",
]


def _from_env(value: str | None, env_name: str | None) -> str | None:
    """Return ``value`` if set, else the named environment variable."""
    if value:
        return value
    if env_name:
        return os.environ.get(env_name)
    return None


@dataclass
class SheetsConfig:
    """Google Sheets document and service account configuration."""

    spreadsheet_id: str | None = None
    spreadsheet_id_env: str | None = "SHEET_ID"
    service_account_email: str | None = None
    service_account_email_env: str | None = "GOOGLE_SERVICE_ACCOUNT_EMAIL"
    private_key: str | None = None
    private_key_env: str | None = "GOOGLE_PRIVATE_KEY"
    inventory_sheet: str = "폰클재고데이터"
    store_sheet: str = "폰클출고처데이터"
    agent_sheet: str = "대리점아이디관리"
    api_base: str = "https://sheets.googleapis.com"
    token_uri: str = "https://oauth2.googleapis.com/token"
    timeout_seconds: float = 30.0

    def get_spreadsheet_id(self) -> str | None:
        return _from_env(self.spreadsheet_id, self.spreadsheet_id_env)

    def get_service_account_email(self) -> str | None:
        return _from_env(self.service_account_email, self.service_account_email_env)

    def get_private_key(self) -> str | None:
        """Get the PEM private key, unescaping literal ``\\n`` sequences."""
        key = _from_env(self.private_key, self.private_key_env)
        if key and "\\n" in key:
            key = key.replace("\\n", "\n")
        return key


@dataclass
class GeocoderConfig:
    """Kakao local search (address geocoding) configuration."""

    api_base: str = "https://dapi.kakao.com"
    api_key: str | None = None
    api_key_env: str | None = "KAKAO_API_KEY"
    timeout_seconds: float = 10.0
    delay_seconds: float = 1.0  # Pause after each active store to respect rate limits

    def get_api_key(self) -> str | None:
        """Get API key from config or environment."""
        return _from_env(self.api_key, self.api_key_env)


@dataclass
class CacheConfig:
    """Sheet cache configuration."""

    ttl_seconds: float = 300.0
    max_entries: int = 100
    cleanup_interval_seconds: float = 300.0


@dataclass
class ReconcileConfig:
    """Coordinate reconciliation schedule."""

    enabled: bool = True
    run_on_startup: bool = True
    interval_seconds: float = 3600.0


@dataclass
class LoginConfig:
    """Identity resolution settings."""

    inventory_ids: list[str] = field(default_factory=lambda: list(DEFAULT_INVENTORY_IDS))
    default_latitude: float = 37.5665
    default_longitude: float = 126.9780


@dataclass
class SyncConfig:
    """Complete stock-sync configuration."""

    background_tasks: bool = True

    sheets: SheetsConfig = field(default_factory=SheetsConfig)
    geocoder: GeocoderConfig = field(default_factory=GeocoderConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)
    reconcile: ReconcileConfig = field(default_factory=ReconcileConfig)
    login: LoginConfig = field(default_factory=LoginConfig)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SyncConfig":
        """Create config from a dictionary (e.g., from YAML)."""
        config = cls()

        if "background_tasks" in data:
            config.background_tasks = data["background_tasks"]

        if "sheets" in data:
            sheets = data["sheets"]
            defaults = SheetsConfig()
            config.sheets = SheetsConfig(
                spreadsheet_id=sheets.get("spreadsheet_id"),
                spreadsheet_id_env=sheets.get("spreadsheet_id_env", defaults.spreadsheet_id_env),
                service_account_email=sheets.get("service_account_email"),
                service_account_email_env=sheets.get(
                    "service_account_email_env", defaults.service_account_email_env
                ),
                private_key=sheets.get("private_key"),
                private_key_env=sheets.get("private_key_env", defaults.private_key_env),
                inventory_sheet=sheets.get("inventory_sheet", defaults.inventory_sheet),
                store_sheet=sheets.get("store_sheet", defaults.store_sheet),
                agent_sheet=sheets.get("agent_sheet", defaults.agent_sheet),
                api_base=sheets.get("api_base", defaults.api_base),
                token_uri=sheets.get("token_uri", defaults.token_uri),
                timeout_seconds=sheets.get("timeout_seconds", defaults.timeout_seconds),
            )

        if "geocoder" in data:
            geo = data["geocoder"]
            config.geocoder = GeocoderConfig(
                api_base=geo.get("api_base", "https://dapi.kakao.com"),
                api_key=geo.get("api_key"),
                api_key_env=geo.get("api_key_env", "KAKAO_API_KEY"),
                timeout_seconds=geo.get("timeout_seconds", 10.0),
                delay_seconds=geo.get("delay_seconds", 1.0),
            )

        if "cache" in data:
            cache = data["cache"]
            config.cache = CacheConfig(
                ttl_seconds=cache.get("ttl_seconds", 300.0),
                max_entries=cache.get("max_entries", 100),
                cleanup_interval_seconds=cache.get("cleanup_interval_seconds", 300.0),
            )

        if "reconcile" in data:
            rec = data["reconcile"]
            config.reconcile = ReconcileConfig(
                enabled=rec.get("enabled", True),
                run_on_startup=rec.get("run_on_startup", True),
                interval_seconds=rec.get("interval_seconds", 3600.0),
            )

        if "login" in data:
            login = data["login"]
            config.login = LoginConfig(
                inventory_ids=list(login.get("inventory_ids", DEFAULT_INVENTORY_IDS)),
                default_latitude=login.get("default_latitude", 37.5665),
                default_longitude=login.get("default_longitude", 126.9780),
            )

        return config

    @classmethod
    def from_yaml(cls, path: Path) -> "SyncConfig":
        """Load config from a YAML file (datasette.yaml format)."""
        if not path.exists():
            return cls()

        with open(path) as f:
            data = yaml.safe_load(f) or {}

        # Look for config under plugins.datasette-stock-map
        plugin_config = data.get("plugins", {}).get(PLUGIN_NAME, {})
        return cls.from_dict(plugin_config)

    def to_dict(self) -> dict[str, Any]:
        """Convert config to dictionary for logging. Secrets are left out."""
        return {
            "background_tasks": self.background_tasks,
            "sheets": {
                "spreadsheet_id_set": bool(self.sheets.get_spreadsheet_id()),
                "service_account_email_set": bool(self.sheets.get_service_account_email()),
                "private_key_set": bool(self.sheets.get_private_key()),
                "inventory_sheet": self.sheets.inventory_sheet,
                "store_sheet": self.sheets.store_sheet,
                "agent_sheet": self.sheets.agent_sheet,
            },
            "geocoder": {
                "api_base": self.geocoder.api_base,
                "api_key_set": bool(self.geocoder.get_api_key()),
                "delay_seconds": self.geocoder.delay_seconds,
            },
            "cache": {
                "ttl_seconds": self.cache.ttl_seconds,
                "max_entries": self.cache.max_entries,
                "cleanup_interval_seconds": self.cache.cleanup_interval_seconds,
            },
            "reconcile": {
                "enabled": self.reconcile.enabled,
                "run_on_startup": self.reconcile.run_on_startup,
                "interval_seconds": self.reconcile.interval_seconds,
            },
        }

    def credential_status(self) -> dict[str, str]:
        """SET / NOT SET for each credential, keyed by its default environment variable name."""

        def status(value: str | None) -> str:
            return "SET" if value else "NOT SET"

        return {
            "SHEET_ID": status(self.sheets.get_spreadsheet_id()),
            "GOOGLE_SERVICE_ACCOUNT_EMAIL": status(self.sheets.get_service_account_email()),
            "GOOGLE_PRIVATE_KEY": status(self.sheets.get_private_key()),
            "KAKAO_API_KEY": status(self.geocoder.get_api_key()),
        }
