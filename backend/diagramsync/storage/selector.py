"""
Storage Selector

Aktif backend'i auth state'inden secer: remote backend acik VE oturum acmis
kullanici varsa RemoteStorage, aksi halde paylasilan LocalStorage.
Gecis oldugunda backend butunuyle yeniden olusturulur; state tasinmaz.
"""

from enum import Enum
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from diagramsync.services.auth_service import AuthProvider, AuthUser
from diagramsync.storage.base import StorageBackend
from diagramsync.storage.local import LocalStorage
from diagramsync.storage.remote import RemoteStorage
from diagramsync.utils.logging_config import storage_logger


class StorageKind(str, Enum):
    REMOTE = "remote"
    LOCAL = "local"


def choose_storage_kind(remote_enabled: bool, user: Optional[AuthUser]) -> StorageKind:
    if remote_enabled and user is not None:
        return StorageKind.REMOTE
    return StorageKind.LOCAL


class StorageSelector:
    def __init__(
        self,
        session_factory: Optional[async_sessionmaker[AsyncSession]],
        local: LocalStorage,
        remote_enabled: bool = True,
    ):
        self.session_factory = session_factory
        self.local = local
        self.remote_enabled = remote_enabled and session_factory is not None

    def kind_for(self, user: Optional[AuthUser]) -> StorageKind:
        return choose_storage_kind(self.remote_enabled, user)

    def select(self, user: Optional[AuthUser]) -> StorageBackend:
        if self.kind_for(user) is StorageKind.REMOTE:
            return RemoteStorage(self.session_factory, user.id)
        return self.local


class StorageProvider:
    """
    Selector'i bir AuthProvider'a baglar.
    Her sign-in / sign-out event'inde `storage` yeniden secilir.
    """

    def __init__(self, selector: StorageSelector, auth: AuthProvider):
        self.selector = selector
        self.auth = auth
        self.storage: StorageBackend = selector.select(auth.user)
        self.kind = selector.kind_for(auth.user)
        self._unsubscribe: Optional[Callable[[], None]] = auth.on_change(self._on_auth_change)

    def _on_auth_change(self, user: Optional[AuthUser]) -> None:
        self.storage = self.selector.select(user)
        self.kind = self.selector.kind_for(user)
        storage_logger.info(f"Active storage switched to {self.kind.value}")

    def close(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None


_selector: Optional[StorageSelector] = None


def get_storage_selector() -> StorageSelector:
    """Uygulama geneli selector singleton'i (settings'ten kurulur)."""
    global _selector
    if _selector is None:
        from diagramsync.config import settings
        from diagramsync.database import async_session

        _selector = StorageSelector(
            async_session,
            LocalStorage(settings.LOCAL_STORE_PATH or None),
            remote_enabled=settings.remote_storage_enabled,
        )
    return _selector


def reset_storage_selector() -> None:
    global _selector
    _selector = None
