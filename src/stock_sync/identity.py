"""
Login identifier resolution.

An identifier is checked, in order, against the reserved inventory-mode ids,
the agent sheet and the store sheet. The first match wins; duplicates within
or across sheets are not reconciled. Matching is exact; cells are compared
untrimmed.
"""

import logging

from .config import LoginConfig
from .errors import NotFoundError, ValidationError
from .inventory import AGENT_HEADER_ROWS, STORE_HEADER_ROWS
from .models import (
    AGENT_CONTACT_ID_COL,
    STORE_ID_COL,
    AgentIdentity,
    AgentRecord,
    Identity,
    InventoryIdentity,
    StoreIdentity,
    StoreRecord,
    raw_cell,
)
from .sheets import SheetDataSource

logger = logging.getLogger(__name__)


class IdentityResolver:
    """Map a submitted login identifier to a session role."""

    def __init__(
        self,
        source: SheetDataSource,
        agent_sheet: str,
        store_sheet: str,
        login: LoginConfig | None = None,
    ):
        self.source = source
        self.agent_sheet = agent_sheet
        self.store_sheet = store_sheet
        self.login = login or LoginConfig()

    async def resolve(self, identifier: str) -> Identity:
        """
        Resolve ``identifier``.

        Raises:
            ValidationError: blank identifier
            NotFoundError: no reserved id, agent or store matches
            ExternalServiceError: a sheet read failed
        """
        if not identifier or not identifier.strip():
            raise ValidationError("Store ID is required")

        if identifier in self.login.inventory_ids:
            logger.info(f"Inventory-mode login: {identifier}")
            return InventoryIdentity(
                identifier=identifier,
                latitude=self.login.default_latitude,
                longitude=self.login.default_longitude,
            )

        agent_rows = await self.source.get_table(self.agent_sheet)
        for row in agent_rows[AGENT_HEADER_ROWS:]:
            if raw_cell(row, AGENT_CONTACT_ID_COL) == identifier:
                logger.info(f"Agent login: {identifier}")
                return AgentIdentity(agent=AgentRecord.from_row(row))

        store_rows = await self.source.get_table(self.store_sheet)
        for row in store_rows[STORE_HEADER_ROWS:]:
            if raw_cell(row, STORE_ID_COL) == identifier:
                logger.info(f"Store login: {identifier}")
                return StoreIdentity(store=StoreRecord.from_row(row))

        logger.info(f"Login identifier not found: {identifier}")
        raise NotFoundError(identifier)
