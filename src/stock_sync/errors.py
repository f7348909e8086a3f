"""
Error types raised by stock-sync.

Cache lookups never raise; a miss is reported with ``cache.MISS``.
"""


class StockSyncError(Exception):
    """Base class for stock-sync errors."""


class ExternalServiceError(StockSyncError):
    """A table read, geocoder call, or batched write failed."""

    def __init__(self, service: str, message: str):
        super().__init__(f"{service}: {message}")
        self.service = service
        self.message = message


class NotFoundError(StockSyncError):
    """An identifier did not match any reserved id, agent, or store."""

    def __init__(self, identifier: str):
        super().__init__(f"Identifier not found: {identifier}")
        self.identifier = identifier


class ValidationError(StockSyncError):
    """Malformed input at the API boundary."""
