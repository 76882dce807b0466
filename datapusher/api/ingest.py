import json
import logging

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse

from datapusher.config import EVENT_ID_HEADER, TOKEN_HEADER, settings
from datapusher.core.ratelimit import enforce_rate_limit
from datapusher.models.ingestion import InboundEvent, IngestionResponse
from datapusher.services.destination_catalog import DestinationCatalog
from datapusher.services.dispatcher import DispatchError, FanoutDispatcher
from datapusher.services.storage_service import StorageService
from datapusher.services.tenant_resolver import TenantResolver

logger = logging.getLogger("datapusher.api.ingest")

router = APIRouter(tags=["Ingestion"])


def get_storage_service() -> StorageService:
    return StorageService()


def _reply(status_code: int, success: bool, message: str) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=IngestionResponse(success=success, message=message).model_dump(),
    )


def _reject_constant(name: str):
    # NaN and Infinity are not JSON and cannot be stored as JSONB
    raise ValueError(f"Invalid JSON constant {name}")


async def _read_capped_body(request: Request, limit: int) -> bytes | None:
    """Body bytes, or None once the declared or streamed size passes ``limit``."""
    declared = request.headers.get("content-length")
    if declared and declared.isdigit() and int(declared) > limit:
        return None

    chunks = []
    received = 0
    async for chunk in request.stream():
        received += len(chunk)
        if received > limit:
            return None
        chunks.append(chunk)
    return b"".join(chunks)


@router.post(
    "/incoming_data",
    response_model=IngestionResponse,
    dependencies=[Depends(enforce_rate_limit)],
)
async def incoming_data(
    request: Request,
    token: str | None = Header(default=None, alias=TOKEN_HEADER),
    event_id: str | None = Header(default=None, alias=EVENT_ID_HEADER),
    storage: StorageService = Depends(get_storage_service),
):
    """
    Receive a JSON payload for the account owning the secret token and
    record one delivery per configured destination.
    """
    if not token or not event_id:
        return _reply(400, False, "Missing headers")

    body = await _read_capped_body(request, settings.max_payload_bytes)
    if body is None:
        logger.warning(f"Rejected event={event_id}: body over {settings.max_payload_bytes} bytes")
        return _reply(413, False, "Payload too large")
    try:
        payload = json.loads(body, parse_constant=_reject_constant) if body.strip() else {}
    except ValueError:
        return _reply(400, False, "Invalid JSON body")

    event = InboundEvent(event_id=event_id, token=token, payload=payload)

    try:
        tenant = await TenantResolver(storage).resolve(event.token)
        if tenant is None:
            return _reply(401, False, "Invalid token")

        destinations = await DestinationCatalog(storage).list_by_tenant(tenant.id)
        if not destinations:
            logger.info(f"event={event.event_id} account={tenant.id} has no destinations")
            return _reply(200, True, "No destinations")

        result = await FanoutDispatcher(storage).dispatch(event, tenant, destinations)
        if not result.ok:
            raise DispatchError(result)
    except Exception as e:
        logger.error(f"Ingestion failed for event={event.event_id}: {e}")
        return _reply(500, False, str(e))

    return _reply(200, True, "Data Received")
