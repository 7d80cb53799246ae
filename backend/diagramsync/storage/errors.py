from sqlalchemy import exc as sa_exc

from diagramsync.exceptions import (
    AlreadyExistsException,
    StorageException,
    StorageUnavailableException,
)
from diagramsync.utils.logging_config import storage_logger


def backend_message(error: BaseException) -> str:
    """DBAPI hatasinin orijinal mesajini cikar (SQLAlchemy wrapper'i olmadan)."""
    original = getattr(error, "orig", None)
    return str(original or error)


def translate_error(error: BaseException, action: str) -> StorageException:
    """
    Backend hatasini storage exception'ina cevir.

    IntegrityError -> AlreadyExists, baglanti hatalari -> Unavailable,
    geri kalan her sey -> StorageException (Unknown).
    """
    message = backend_message(error)
    storage_logger.error(f"[RemoteStorage] {action} failed: {message}")

    if isinstance(error, sa_exc.IntegrityError):
        return AlreadyExistsException(message, action)
    if isinstance(error, (sa_exc.OperationalError, sa_exc.InterfaceError, sa_exc.TimeoutError, OSError)):
        return StorageUnavailableException(message, action)
    return StorageException(message, action)
