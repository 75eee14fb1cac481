"""
Repository for the local snapshot store of accounts, holdings, positions and margins.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import delete, insert, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from core.database.connection import DatabaseManager
from core.database.models import Account
from core.logging import get_database_logger_safe
from .models import AccountRecord

logger = get_database_logger_safe("services.broker_sync.repository")


class SyncRepository:
    """
    Persistence contract used by the sync service.

    Every public method runs in its own session and commits before returning.
    `replace_for_account` deletes and inserts inside one transaction, so a
    failure leaves the previous snapshot in place.
    """

    def __init__(self, db_manager: DatabaseManager):
        self.db_manager = db_manager

    @staticmethod
    async def _delete_rows(session: AsyncSession, model, account_id: int) -> int:
        result = await session.execute(delete(model).where(model.account_id == account_id))
        return result.rowcount or 0

    @staticmethod
    async def _insert_rows(session: AsyncSession, model, rows: Sequence[Dict[str, Any]]) -> None:
        if rows:
            await session.execute(insert(model), list(rows))

    async def delete_all_for_account(self, model, account_id: int) -> int:
        """Delete every row of `model` owned by the account; returns rows removed."""
        async with self.db_manager.get_session() as session:
            try:
                deleted = await self._delete_rows(session, model, account_id)
                await session.commit()
            except SQLAlchemyError as e:
                logger.error("Failed to delete account rows", table=model.__tablename__,
                             account_id=account_id, error=str(e))
                raise
        return deleted

    async def bulk_insert(self, model, rows: Sequence[Dict[str, Any]]) -> None:
        """Insert rows in one statement. An empty list is a no-op."""
        if not rows:
            return
        async with self.db_manager.get_session() as session:
            try:
                await self._insert_rows(session, model, rows)
                await session.commit()
            except SQLAlchemyError as e:
                logger.error("Failed to bulk insert rows", table=model.__tablename__,
                             rows=len(rows), error=str(e))
                raise

    async def replace_for_account(self, model, account_id: int, rows: Sequence[Dict[str, Any]]) -> None:
        """Replace the account's rows with `rows` atomically."""
        async with self.db_manager.get_session() as session:
            try:
                deleted = await self._delete_rows(session, model, account_id)
                await self._insert_rows(session, model, rows)
                await session.commit()
            except SQLAlchemyError as e:
                logger.error("Failed to replace account rows", table=model.__tablename__,
                             account_id=account_id, error=str(e))
                raise

        logger.info("Replaced account rows", table=model.__tablename__,
                    account_id=account_id, deleted=deleted, inserted=len(rows))

    async def upsert_singleton(self, model, account_id: int, row: Dict[str, Any]) -> None:
        """Insert or update the single row keyed by account_id."""
        values = {**row, "account_id": account_id}
        stmt = pg_insert(model).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[model.account_id],
            set_={key: stmt.excluded[key] for key in values if key != "account_id"},
        )
        async with self.db_manager.get_session() as session:
            try:
                await session.execute(stmt)
                await session.commit()
            except SQLAlchemyError as e:
                logger.error("Failed to upsert account row", table=model.__tablename__,
                             account_id=account_id, error=str(e))
                raise

    async def touch_last_sync(self, account_id: int, when: Optional[datetime] = None) -> None:
        stamp = when or datetime.now(timezone.utc)
        async with self.db_manager.get_session() as session:
            try:
                await session.execute(update(Account).where(Account.id == account_id).values(last_sync=stamp))
                await session.commit()
            except SQLAlchemyError as e:
                logger.error("Failed to update last sync time", account_id=account_id, error=str(e))
                raise

    async def update_request_token(self, account_id: int, request_token: str) -> None:
        async with self.db_manager.get_session() as session:
            try:
                await session.execute(
                    update(Account).where(Account.id == account_id).values(request_token=request_token)
                )
                await session.commit()
            except SQLAlchemyError as e:
                logger.error("Failed to store request token", account_id=account_id, error=str(e))
                raise
        logger.info("Stored fresh request token", account_id=account_id)

    async def get_account(self, account_id: int) -> Optional[AccountRecord]:
        async with self.db_manager.get_session() as session:
            result = await session.execute(select(Account).where(Account.id == account_id))
            account = result.scalar_one_or_none()
            return AccountRecord.model_validate(account) if account else None

    async def list_active_accounts(self) -> List[AccountRecord]:
        """Active accounts in id order."""
        async with self.db_manager.get_session() as session:
            result = await session.execute(
                select(Account).where(Account.is_active.is_(True)).order_by(Account.id)
            )
            return [AccountRecord.model_validate(a) for a in result.scalars().all()]
