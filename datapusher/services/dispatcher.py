import logging
import uuid
from dataclasses import dataclass, field
from typing import List, Sequence

from datapusher.models.account import DeliveryLogCreate, DestinationSchema, Tenant
from datapusher.models.ingestion import InboundEvent
from datapusher.services.storage_service import StorageService

logger = logging.getLogger("datapusher.dispatch")


@dataclass(frozen=True)
class DeliveryFailure:
    destination_id: uuid.UUID
    error: str


@dataclass
class DispatchResult:
    attempted: int = 0
    created: int = 0
    failures: List[DeliveryFailure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


class DispatchError(Exception):
    """Raised when a dispatch finished with at least one failed record."""

    def __init__(self, result: DispatchResult):
        self.result = result
        super().__init__(
            f"Failed to record {len(result.failures)} of {result.attempted} deliveries: {result.failures[0].error}"
        )


class FanoutDispatcher:
    """
    Creates one delivery record per destination for a single inbound event.

    Best-effort: a failed insert is logged and collected, and the remaining
    destinations are still attempted. Records that were created stay in
    place; nothing is rolled back. No outbound request is made to the
    destination URL, the record status is always ``success``.
    """

    def __init__(self, storage: StorageService):
        self._storage = storage

    async def dispatch(
        self,
        event: InboundEvent,
        tenant: Tenant,
        destinations: Sequence[DestinationSchema],
    ) -> DispatchResult:
        result = DispatchResult()

        for destination in destinations:
            result.attempted += 1
            record = DeliveryLogCreate(
                event_id=event.event_id,
                account_id=tenant.id,
                destination_id=destination.id,
                received_data=event.payload,
                status="success",
            )
            try:
                await self._storage.insert_delivery_log(record)
            except Exception as e:
                logger.error(
                    f"Delivery record failed event={event.event_id} destination={destination.id}: {e}"
                )
                result.failures.append(
                    DeliveryFailure(destination_id=destination.id, error=str(e))
                )
                continue
            result.created += 1

        logger.info(
            f"Dispatched event={event.event_id} account={tenant.id} created={result.created}/{result.attempted}"
        )
        return result
