from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy.exc import SQLAlchemyError

from core.database.models import Holding, Margin
from services.broker_sync.repository import SyncRepository


@pytest.fixture
def db_session():
    session = AsyncMock()
    session.execute.return_value = MagicMock(rowcount=3)
    return session


@pytest.fixture
def repository(db_session):
    db_manager = MagicMock()
    db_manager.get_session.return_value.__aenter__.return_value = db_session
    db_manager.get_session.return_value.__aexit__.return_value = False
    return SyncRepository(db_manager)


def _statement_sql(call) -> str:
    return str(call.args[0]).upper()


@pytest.mark.asyncio
async def test_replace_deletes_and_inserts_in_one_transaction(repository, db_session):
    rows = [{"account_id": 1, "trading_symbol": "INFY"}, {"account_id": 1, "trading_symbol": "TCS"}]

    await repository.replace_for_account(Holding, 1, rows)

    assert db_session.execute.await_count == 2
    delete_call, insert_call = db_session.execute.await_args_list
    assert _statement_sql(delete_call).startswith("DELETE FROM HOLDINGS")
    assert _statement_sql(insert_call).startswith("INSERT INTO HOLDINGS")
    assert insert_call.args[1] == rows
    db_session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_replace_with_no_rows_only_deletes(repository, db_session):
    await repository.replace_for_account(Holding, 1, [])

    assert db_session.execute.await_count == 1
    db_session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_replace_failure_does_not_commit(repository, db_session):
    db_session.execute.side_effect = [MagicMock(rowcount=2), SQLAlchemyError("insert failed")]

    with pytest.raises(SQLAlchemyError):
        await repository.replace_for_account(Holding, 1, [{"account_id": 1}])

    db_session.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_delete_all_returns_row_count(repository, db_session):
    assert await repository.delete_all_for_account(Holding, 1) == 3
    db_session.commit.assert_awaited_once()


@pytest.mark.asyncio
async def test_bulk_insert_empty_is_noop(repository, db_session):
    await repository.bulk_insert(Holding, [])

    db_session.execute.assert_not_awaited()


@pytest.mark.asyncio
async def test_upsert_singleton_conflicts_on_account(repository, db_session):
    await repository.upsert_singleton(Margin, 5, {"segment": "EQUITY", "net": 100.0})

    sql = _statement_sql(db_session.execute.await_args)
    assert sql.startswith("INSERT INTO MARGINS")
    assert "ON CONFLICT (ACCOUNT_ID) DO UPDATE" in sql
    db_session.commit.assert_awaited_once()


@pytest.mark.asyncio
@pytest.mark.parametrize("call", [
    lambda repo: repo.touch_last_sync(1),
    lambda repo: repo.update_request_token(1, "fresh-token"),
])
async def test_account_updates_log_and_reraise_failures(repository, db_session, monkeypatch, call):
    logger = MagicMock()
    monkeypatch.setattr("services.broker_sync.repository.logger", logger)
    db_session.execute.side_effect = SQLAlchemyError("connection lost")

    with pytest.raises(SQLAlchemyError):
        await call(repository)

    db_session.commit.assert_not_awaited()
    logger.error.assert_called_once()
    assert logger.error.call_args.kwargs["account_id"] == 1
