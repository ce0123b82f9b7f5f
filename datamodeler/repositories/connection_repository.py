from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from datamodeler.connectors.config import DatabricksConnectionConfig
from datamodeler.db.data_model import WarehouseConnection, new_id
from .base import AsyncBaseRepository


class ConnectionRepository(AsyncBaseRepository[WarehouseConnection]):
    """Data access helper for warehouse connection records."""

    def __init__(self, session: AsyncSession):
        super().__init__(session, WarehouseConnection)

    async def get_connection(self, connection_id: str) -> Optional[DatabricksConnectionConfig]:
        entry = await self.get_by_id(connection_id)
        if entry is None:
            return None
        return DatabricksConnectionConfig.model_validate(entry)

    async def save_connection(self, config: DatabricksConnectionConfig) -> DatabricksConnectionConfig:
        entry = await self.get_by_id(config.id) if config.id else None
        if entry is None:
            entry = self.add(WarehouseConnection(id=config.id or new_id()))
        entry.name = config.name or config.host
        entry.host = config.host
        entry.http_path = config.http_path
        entry.token = config.token
        await self.flush()
        return DatabricksConnectionConfig.model_validate(entry)
