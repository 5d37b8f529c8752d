"""
Tests for the credential store and its durable mirror.
"""

from datetime import datetime, timedelta
from unittest.mock import Mock

import pytest

from hostel_shared.exceptions import TokenStorageError
from hostel_shared.models import Credential
from hostel_client.auth.credential_store import CredentialStore
from hostel_client.auth.token_storage import MemoryTokenStorage


def test_empty_store(credential_store):
    assert credential_store.get() is None
    assert credential_store.token is None
    assert credential_store.user is None
    assert not credential_store.is_authenticated()


def test_set_replaces_and_persists(credential_store, storage):
    first = Credential(token="A1")
    second = Credential(token="A2", user={'id': 'u1'})

    credential_store.set(first)
    credential_store.set(second)

    assert credential_store.get() is second
    assert credential_store.user == {'id': 'u1'}
    assert storage.load() is second
    assert storage.save_count == 2


def test_clear_erases_durable_copy(credential_store, storage):
    credential_store.set(Credential(token="A1"))

    credential_store.clear()

    assert credential_store.get() is None
    assert storage.load() is None
    assert storage.erase_count == 1


def test_load_restores_persisted_credential():
    stored = Credential(token="A1", expires_at=datetime.now() + timedelta(minutes=15))
    store = CredentialStore(MemoryTokenStorage(stored))

    assert store.load() is stored
    assert store.token == "A1"


def test_load_discards_expired_credential():
    storage = MemoryTokenStorage(Credential(token="A1", expires_at=datetime.now() - timedelta(seconds=1)))
    store = CredentialStore(storage)

    assert store.load() is None
    assert store.get() is None
    assert storage.load() is None


def test_load_with_nothing_stored(credential_store):
    assert credential_store.load() is None


def test_defaults_to_memory_storage():
    store = CredentialStore()

    store.set(Credential(token="A1"))

    assert isinstance(store.storage, MemoryTokenStorage)
    assert store.storage.load().token == "A1"


def test_storage_failures_are_wrapped():
    storage = Mock()
    storage.save.side_effect = OSError("disk full")
    storage.erase.side_effect = OSError("disk full")
    store = CredentialStore(storage)

    with pytest.raises(TokenStorageError) as exc_info:
        store.set(Credential(token="A1"))
    assert isinstance(exc_info.value.cause, OSError)
    assert store.token == "A1"

    with pytest.raises(TokenStorageError):
        store.clear()
    assert store.get() is None
