import logging
import uuid
from typing import List

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from datapusher.core import database
from datapusher.core.database import StorageUnavailableError
from datapusher.models.account import (
    Account,
    DeliveryLog,
    DeliveryLogCreate,
    DeliveryLogSchema,
    Destination,
    DestinationSchema,
    Tenant,
)

logger = logging.getLogger("datapusher.storage")


class StorageService:
    """
    Gateway over the account, destination and delivery-log tables.

    Every call opens its own session so concurrent requests never share one,
    and each delivery-log insert commits as an independent unit. Database
    errors are logged and re-raised for the caller to map onto a response.
    """

    def _session(self):
        if not database.async_session_maker:
            raise StorageUnavailableError("Database engine not initialized.")
        return database.async_session_maker()

    async def get_account_by_token(self, token: str) -> Tenant | None:
        stmt = select(Account).where(Account.app_secret_token == token)
        try:
            async with self._session() as session:
                result = await session.execute(stmt)
                account = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Failed resolving account by token: {e}")
            raise

        return Tenant.model_validate(account) if account else None

    async def list_destinations(self, account_id: uuid.UUID) -> List[DestinationSchema]:
        stmt = select(Destination).where(Destination.account_id == account_id)
        try:
            async with self._session() as session:
                result = await session.execute(stmt)
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"Failed listing destinations for account {account_id}: {e}")
            raise

        return [DestinationSchema.model_validate(r) for r in rows]

    async def insert_delivery_log(self, record: DeliveryLogCreate) -> DeliveryLogSchema:
        row = DeliveryLog(**record.model_dump())
        try:
            async with self._session() as session:
                session.add(row)
                await session.commit()
                await session.refresh(row)
        except SQLAlchemyError as e:
            logger.error(
                f"Failed inserting delivery log event={record.event_id} destination={record.destination_id}: {e}"
            )
            raise

        return DeliveryLogSchema.model_validate(row)

    async def list_delivery_logs(
        self,
        account_id: uuid.UUID,
        event_id: str | None = None,
        limit: int = 100,
    ) -> List[DeliveryLogSchema]:
        """Newest-first delivery records for one account, optionally narrowed to an event."""
        stmt = select(DeliveryLog).where(DeliveryLog.account_id == account_id)
        if event_id:
            stmt = stmt.where(DeliveryLog.event_id == event_id)
        stmt = stmt.order_by(DeliveryLog.received_timestamp.desc()).limit(limit)

        try:
            async with self._session() as session:
                result = await session.execute(stmt)
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            logger.error(f"Failed listing delivery logs for account {account_id}: {e}")
            raise

        return [DeliveryLogSchema.model_validate(r) for r in rows]
