"""
Tests for single-flight credential renewal.
"""

import asyncio

import pytest

from hostel_shared.exceptions import (
    AuthRejectedError, RenewalTimeoutError, TransportError, ErrorCode
)
from hostel_shared.models import Credential, RenewalState
from hostel_client.auth.coordinator import RenewalCoordinator
from hostel_client.auth.credential_store import CredentialStore
from hostel_client.auth.session import SessionInvalidator
from hostel_client.auth.token_storage import MemoryTokenStorage


@pytest.mark.asyncio
async def test_concurrent_callers_share_one_provider_call(coordinator, provider, credential_store):
    results = await asyncio.gather(*(coordinator.await_renewal() for _ in range(10)))

    assert provider.calls == 1
    assert coordinator.renewal_count == 1
    assert all(result is results[0] for result in results)
    assert results[0].token == "A2"
    assert credential_store.get() is results[0]
    assert coordinator.state is RenewalState.IDLE
    assert coordinator.pending_waiters == 0


@pytest.mark.asyncio
async def test_state_is_in_flight_until_provider_completes(coordinator, provider):
    provider.gate = asyncio.Event()

    first = asyncio.create_task(coordinator.await_renewal())
    await asyncio.sleep(0)
    assert coordinator.state is RenewalState.IN_FLIGHT

    second = asyncio.create_task(coordinator.await_renewal())
    await asyncio.sleep(0)
    assert coordinator.pending_waiters == 2
    assert provider.calls == 1

    provider.gate.set()
    assert (await first) is (await second)
    assert coordinator.state is RenewalState.IDLE


@pytest.mark.asyncio
async def test_failure_rejects_every_caller_with_same_error(provider, coordinator, credential_store, invalidator, navigator):
    error = AuthRejectedError("Invalid or expired refresh token", status=403)
    provider.error = error
    credential_store.set(Credential(token="A1"))

    results = await asyncio.gather(*(coordinator.await_renewal() for _ in range(5)), return_exceptions=True)

    assert provider.calls == 1
    assert all(result is error for result in results)
    assert credential_store.get() is None
    assert invalidator.invalidation_count == 1
    assert len(navigator.redirects) == 1
    assert coordinator.state is RenewalState.IDLE


@pytest.mark.asyncio
async def test_transport_failure_during_renewal_is_propagated(provider, coordinator, invalidator):
    provider.error = TransportError("connection refused")

    with pytest.raises(TransportError):
        await coordinator.await_renewal()

    assert invalidator.invalidation_count == 1


@pytest.mark.asyncio
async def test_unexpected_provider_error_is_wrapped(provider, coordinator):
    provider.error = KeyError("accessToken")

    with pytest.raises(AuthRejectedError) as exc_info:
        await coordinator.await_renewal()

    assert exc_info.value.error_code == ErrorCode.AUTH_RENEWAL_FAILED
    assert isinstance(exc_info.value.cause, KeyError)


@pytest.mark.asyncio
async def test_provider_returning_nothing_is_a_failure(provider, coordinator, invalidator):
    provider.token = None

    with pytest.raises(AuthRejectedError, match="No access token"):
        await coordinator.await_renewal()

    assert invalidator.invalidation_count == 1


@pytest.mark.asyncio
async def test_hung_provider_times_out_for_all_waiters(provider, credential_store, invalidator):
    provider.gate = asyncio.Event()
    coordinator = RenewalCoordinator(provider, credential_store, invalidator, renewal_timeout=0.05)
    credential_store.set(Credential(token="A1"))

    results = await asyncio.gather(*(coordinator.await_renewal() for _ in range(3)), return_exceptions=True)

    assert all(isinstance(result, RenewalTimeoutError) for result in results)
    assert all(result is results[0] for result in results)
    assert results[0].timeout == 0.05
    assert credential_store.get() is None
    assert invalidator.invalidation_count == 1
    assert coordinator.state is RenewalState.IDLE


@pytest.mark.asyncio
async def test_cancelled_waiter_does_not_affect_others(coordinator, provider):
    provider.gate = asyncio.Event()

    first = asyncio.create_task(coordinator.await_renewal())
    second = asyncio.create_task(coordinator.await_renewal())
    third = asyncio.create_task(coordinator.await_renewal())
    await asyncio.sleep(0)

    second.cancel()
    with pytest.raises(asyncio.CancelledError):
        await second
    assert coordinator.pending_waiters == 2

    provider.gate.set()
    assert (await first).token == "A2"
    assert (await third).token == "A2"
    assert provider.calls == 1


@pytest.mark.asyncio
async def test_triggering_caller_cancelled_renewal_still_completes(coordinator, provider, credential_store):
    provider.gate = asyncio.Event()

    trigger = asyncio.create_task(coordinator.await_renewal())
    await asyncio.sleep(0)
    follower = asyncio.create_task(coordinator.await_renewal())
    await asyncio.sleep(0)

    trigger.cancel()
    provider.gate.set()

    assert (await follower).token == "A2"
    assert credential_store.token == "A2"


@pytest.mark.asyncio
async def test_new_cycle_starts_after_previous_completes(coordinator, provider):
    await coordinator.await_renewal()
    await coordinator.await_renewal()

    assert provider.calls == 2
    assert coordinator.renewal_count == 2


@pytest.mark.asyncio
async def test_renewed_credential_keeps_user_profile(coordinator, credential_store):
    credential_store.set(Credential(token="A1", user={'id': 'u1', 'name': 'Asha', 'role': 'STUDENT'}))

    renewed = await coordinator.await_renewal()

    assert renewed.token == "A2"
    assert renewed.user == {'id': 'u1', 'name': 'Asha', 'role': 'STUDENT'}


@pytest.mark.asyncio
async def test_close_rejects_waiters_without_invalidating(coordinator, provider, invalidator):
    provider.gate = asyncio.Event()

    waiter = asyncio.create_task(coordinator.await_renewal())
    await asyncio.sleep(0)
    await coordinator.close()

    with pytest.raises(AuthRejectedError) as exc_info:
        await waiter
    assert exc_info.value.error_code == ErrorCode.AUTH_RENEWAL_CANCELLED
    assert invalidator.invalidation_count == 0
    assert coordinator.state is RenewalState.IDLE


def test_rejects_non_positive_timeout(provider, credential_store, invalidator):
    with pytest.raises(ValueError):
        RenewalCoordinator(provider, credential_store, invalidator, renewal_timeout=0)


class BrokenStorage(MemoryTokenStorage):
    def save(self, credential):
        raise OSError("disk full")

    def erase(self):
        raise OSError("disk full")


@pytest.fixture
def broken_coordinator(provider, navigator):
    store = CredentialStore(BrokenStorage())
    invalidator = SessionInvalidator(store, navigator=navigator)
    return RenewalCoordinator(provider, store, invalidator, renewal_timeout=1.0)


@pytest.mark.asyncio
async def test_storage_failure_after_success_still_resolves_waiters(broken_coordinator, provider):
    results = await asyncio.wait_for(
        asyncio.gather(*(broken_coordinator.await_renewal() for _ in range(3))),
        timeout=1.0
    )

    assert all(result.token == "A2" for result in results)
    assert broken_coordinator.credential_store.token == "A2"
    assert broken_coordinator.state is RenewalState.IDLE
    assert provider.calls == 1


@pytest.mark.asyncio
async def test_storage_failure_after_rejection_still_rejects_waiters(broken_coordinator, provider, navigator):
    error = AuthRejectedError("Invalid or expired refresh token", status=403)
    provider.error = error

    results = await asyncio.wait_for(
        asyncio.gather(*(broken_coordinator.await_renewal() for _ in range(3)), return_exceptions=True),
        timeout=1.0
    )

    assert all(result is error for result in results)
    assert broken_coordinator.credential_store.get() is None
    assert broken_coordinator.invalidator.invalidation_count == 1
    assert len(navigator.redirects) == 1
    assert broken_coordinator.state is RenewalState.IDLE
