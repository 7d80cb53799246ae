"""Storage selector and auth provider tests"""

from datetime import timedelta

import pytest
from unittest.mock import MagicMock

from diagramsync.services.auth_service import AuthProvider, AuthUser, user_from_claims, user_from_token
from diagramsync.storage.local import LocalStorage
from diagramsync.storage.remote import RemoteStorage
from diagramsync.storage.selector import StorageKind, StorageProvider, StorageSelector, choose_storage_kind
from diagramsync.utils.security import create_access_token


@pytest.fixture
def session_factory():
    """Selector factory'yi sadece RemoteStorage'a iletir, cagirmaz."""
    return MagicMock(name="session_factory")


@pytest.fixture
def selector(session_factory, local_storage: LocalStorage) -> StorageSelector:
    return StorageSelector(session_factory, local_storage, remote_enabled=True)


class TestChooseStorageKind:

    @pytest.mark.parametrize(
        "remote_enabled, has_user, expected",
        [
            (True, True, StorageKind.REMOTE),
            (True, False, StorageKind.LOCAL),
            (False, True, StorageKind.LOCAL),
            (False, False, StorageKind.LOCAL),
        ],
    )
    def test_truth_table(self, remote_enabled: bool, has_user: bool, expected: StorageKind, alice: AuthUser):
        user = alice if has_user else None
        assert choose_storage_kind(remote_enabled, user) is expected


class TestStorageSelector:

    def test_signed_in_user_gets_scoped_remote_store(self, selector: StorageSelector, alice: AuthUser):
        # Act
        storage = selector.select(alice)

        # Assert
        assert isinstance(storage, RemoteStorage)
        assert storage.user_id == "user-alice"

    def test_remote_store_is_rebuilt_per_selection(self, selector: StorageSelector, alice: AuthUser):
        assert selector.select(alice) is not selector.select(alice)

    def test_anonymous_user_shares_local_store(self, selector: StorageSelector, local_storage: LocalStorage):
        assert selector.select(None) is local_storage
        assert selector.select(None) is selector.select(None)

    def test_remote_disabled_falls_back_to_local(self, session_factory, local_storage: LocalStorage, alice: AuthUser):
        selector = StorageSelector(session_factory, local_storage, remote_enabled=False)
        assert selector.select(alice) is local_storage

    def test_missing_session_factory_disables_remote(self, local_storage: LocalStorage, alice: AuthUser):
        selector = StorageSelector(None, local_storage)
        assert selector.remote_enabled is False
        assert selector.select(alice) is local_storage


class TestStorageProvider:
    """Auth lifecycle event'lerinde yeniden secim"""

    def test_switches_on_sign_in_and_sign_out(self, selector: StorageSelector, alice: AuthUser, local_storage: LocalStorage):
        # Arrange
        auth = AuthProvider()
        provider = StorageProvider(selector, auth)
        assert provider.kind is StorageKind.LOCAL

        # Act
        auth.sign_in(alice)
        signed_in = provider.storage
        auth.sign_out()

        # Assert
        assert isinstance(signed_in, RemoteStorage)
        assert signed_in.user_id == alice.id
        assert provider.storage is local_storage
        assert provider.kind is StorageKind.LOCAL

    def test_switching_users_rebuilds_remote(self, selector: StorageSelector, alice: AuthUser, bob: AuthUser):
        # Arrange
        auth = AuthProvider(alice)
        provider = StorageProvider(selector, auth)

        # Act
        auth.sign_in(bob)

        # Assert
        assert provider.storage.user_id == bob.id

    def test_close_stops_following_auth(self, selector: StorageSelector, alice: AuthUser, local_storage: LocalStorage):
        # Arrange
        auth = AuthProvider()
        provider = StorageProvider(selector, auth)

        # Act
        provider.close()
        provider.close()
        auth.sign_in(alice)

        # Assert
        assert provider.storage is local_storage


class TestAuthProvider:

    def test_listener_unsubscribe(self, alice: AuthUser):
        # Arrange
        auth = AuthProvider()
        seen = []
        unsubscribe = auth.on_change(seen.append)

        # Act
        auth.sign_in(alice)
        unsubscribe()
        auth.sign_out()

        # Assert
        assert seen == [alice]
        assert auth.user is None


class TestTokens:

    def test_user_from_valid_token(self, alice: AuthUser, token_factory):
        user = user_from_token(token_factory(alice))
        assert user == alice

    def test_invalid_or_missing_token_is_anonymous(self):
        assert user_from_token(None) is None
        assert user_from_token("") is None
        assert user_from_token("not-a-jwt") is None

    def test_expired_token_is_anonymous(self):
        token = create_access_token({"sub": "user-x"}, expires_delta=timedelta(seconds=-10))
        assert user_from_token(token) is None

    def test_claims_without_subject(self):
        assert user_from_claims({"email": "x@example.com"}) is None

    def test_name_falls_back_to_metadata_name(self):
        user = user_from_claims({"sub": "u", "user_metadata": {"name": "Grace"}})
        assert user.name == "Grace"
