from diagramsync.storage.base import (
    StorageBackend,
    EntityKind,
    ENTITY_KINDS,
    TABLES,
    RELATIONSHIPS,
    DEPENDENCIES,
    AREAS,
    CUSTOM_TYPES,
)
from diagramsync.storage.local import LocalStorage
from diagramsync.storage.remote import RemoteStorage
from diagramsync.storage.selector import (
    StorageKind,
    StorageSelector,
    StorageProvider,
    choose_storage_kind,
    get_storage_selector,
)

__all__ = [
    "StorageBackend", "EntityKind", "ENTITY_KINDS",
    "TABLES", "RELATIONSHIPS", "DEPENDENCIES", "AREAS", "CUSTOM_TYPES",
    "LocalStorage", "RemoteStorage",
    "StorageKind", "StorageSelector", "StorageProvider", "choose_storage_kind", "get_storage_selector",
]
