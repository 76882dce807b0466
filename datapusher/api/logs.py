import logging
from typing import List

from fastapi import APIRouter, Depends, Header, Query
from fastapi.responses import JSONResponse

from datapusher.api.ingest import get_storage_service
from datapusher.config import TOKEN_HEADER
from datapusher.models.account import DeliveryLogSchema
from datapusher.services.storage_service import StorageService
from datapusher.services.tenant_resolver import TenantResolver

logger = logging.getLogger("datapusher.api.logs")

router = APIRouter(tags=["Logs"])


@router.get("/logs", response_model=List[DeliveryLogSchema])
async def list_logs(
    token: str | None = Header(default=None, alias=TOKEN_HEADER),
    event_id: str | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=1000),
    storage: StorageService = Depends(get_storage_service),
):
    """Delivery records of the account owning the token, newest first."""
    if not token:
        return JSONResponse(
            status_code=400, content={"success": False, "message": "Missing headers"}
        )

    try:
        tenant = await TenantResolver(storage).resolve(token)
        if tenant is None:
            return JSONResponse(
                status_code=401, content={"success": False, "message": "Invalid token"}
            )
        return await storage.list_delivery_logs(tenant.id, event_id=event_id, limit=limit)
    except Exception as e:
        logger.error(f"Failed listing delivery logs: {e}")
        return JSONResponse(
            status_code=500, content={"success": False, "message": str(e)}
        )
