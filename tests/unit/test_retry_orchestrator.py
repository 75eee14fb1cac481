from unittest.mock import AsyncMock, patch

import pytest

from services.auth.exceptions import (
    BrokerAPIError,
    BrokerAuthenticationError,
    SessionNotInitializedError,
    TokenExpiredError,
)
from services.broker_sync.retry import RetryOrchestrator


@pytest.fixture
def sleep():
    return AsyncMock()


@pytest.fixture
def orchestrator(test_settings, session_manager, sleep):
    return RetryOrchestrator(test_settings, session_manager, sleep=sleep)


@pytest.mark.asyncio
async def test_success_on_first_attempt(orchestrator, credentials, client_factory, sleep):
    operation = AsyncMock(return_value="ok")

    assert await orchestrator.run_with_retry(operation, credentials) == "ok"

    operation.assert_awaited_once_with(client_factory.clients[0])
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_authentication_error_retries_once_after_reset(orchestrator, session_manager, credentials,
                                                             client_factory, sleep):
    operation = AsyncMock(side_effect=[BrokerAuthenticationError("Invalid access_token"), "ok"])

    with patch.object(session_manager, "reset_session", wraps=session_manager.reset_session) as reset:
        result = await orchestrator.run_with_retry(operation, credentials)

    assert result == "ok"
    assert operation.await_count == 2
    reset.assert_called_once()
    sleep.assert_awaited_once_with(1.0)
    # The retry ran against a freshly exchanged session
    assert client_factory.exchanges == 2
    assert operation.await_args_list[1].args[0] is client_factory.clients[1]


@pytest.mark.asyncio
async def test_token_expiry_propagates_without_retry(orchestrator, session_manager, credentials, sleep):
    operation = AsyncMock(side_effect=TokenExpiredError("Token is invalid or has expired."))

    with patch.object(session_manager, "reset_session", wraps=session_manager.reset_session) as reset:
        with pytest.raises(TokenExpiredError):
            await orchestrator.run_with_retry(operation, credentials)

    operation.assert_awaited_once()
    sleep.assert_not_awaited()
    reset.assert_not_called()


@pytest.mark.asyncio
async def test_generic_error_propagates_without_reset(orchestrator, session_manager, credentials, sleep):
    operation = AsyncMock(side_effect=BrokerAPIError("Gateway timed out"))

    with patch.object(session_manager, "reset_session", wraps=session_manager.reset_session) as reset:
        with pytest.raises(BrokerAPIError):
            await orchestrator.run_with_retry(operation, credentials)

    operation.assert_awaited_once()
    reset.assert_not_called()
    sleep.assert_not_awaited()
    assert session_manager.is_authenticated() is True


@pytest.mark.asyncio
async def test_non_broker_exception_is_not_retried(orchestrator, credentials, sleep):
    operation = AsyncMock(side_effect=KeyError("net"))

    with pytest.raises(KeyError):
        await orchestrator.run_with_retry(operation, credentials)

    operation.assert_awaited_once()
    sleep.assert_not_awaited()


@pytest.mark.asyncio
async def test_authentication_error_on_last_attempt_propagates(orchestrator, credentials, sleep):
    operation = AsyncMock(side_effect=SessionNotInitializedError("Kite session not initialized"))

    with pytest.raises(SessionNotInitializedError):
        await orchestrator.run_with_retry(operation, credentials)

    assert operation.await_count == 2
    sleep.assert_awaited_once_with(1.0)


@pytest.mark.asyncio
async def test_backoff_is_linear_in_attempt(orchestrator, credentials, sleep):
    operation = AsyncMock(side_effect=[
        BrokerAuthenticationError("Invalid api_key"),
        BrokerAuthenticationError("Invalid api_key"),
        "ok",
    ])

    assert await orchestrator.run_with_retry(operation, credentials, max_attempts=3) == "ok"
    assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]


@pytest.mark.asyncio
async def test_session_failure_is_classified_like_operation_failure(orchestrator, credentials,
                                                                    client_factory, sleep):
    client_factory.exchange_error = TokenExpiredError("Token is invalid or has expired.")
    operation = AsyncMock()

    with pytest.raises(TokenExpiredError):
        await orchestrator.run_with_retry(operation, credentials)

    operation.assert_not_awaited()
    sleep.assert_not_awaited()
    assert client_factory.exchanges == 1


@pytest.mark.asyncio
async def test_max_attempts_must_be_positive(orchestrator, credentials):
    with pytest.raises(ValueError):
        await orchestrator.run_with_retry(AsyncMock(), credentials, max_attempts=0)
