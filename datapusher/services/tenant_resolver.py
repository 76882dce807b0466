import logging

from datapusher.models.account import Tenant
from datapusher.services.storage_service import StorageService

logger = logging.getLogger("datapusher.tenant")


class TenantResolver:
    """Maps an inbound secret token onto the account that owns it."""

    def __init__(self, storage: StorageService):
        self._storage = storage

    async def resolve(self, token: str | None) -> Tenant | None:
        # Exact match only; no trimming or case folding
        if not token:
            return None

        tenant = await self._storage.get_account_by_token(token)
        if tenant is None:
            logger.warning(f"Unknown token presented (prefix '{token[:4]}...')")
            return None

        logger.debug(f"Token resolved to account {tenant.id}")
        return tenant
