import uuid
from typing import List

from datapusher.models.account import DestinationSchema
from datapusher.services.storage_service import StorageService


class DestinationCatalog:
    def __init__(self, storage: StorageService):
        self._storage = storage

    async def list_by_tenant(self, tenant_id: uuid.UUID) -> List[DestinationSchema]:
        """All destinations currently configured for the tenant, in no particular order."""
        return list(await self._storage.list_destinations(tenant_id))
