"""
Custom Exception Classes for DiagramSync

Bu modul, tum uygulama uzerinde kullanilacak custom exception siniflarini icerir.
Storage katmani hatalari backend mesajini tasir; point lookup'lar hata yerine None doner.
"""

from typing import Any, Optional
from enum import Enum


class ErrorCode(str, Enum):
    """Standart hata kodlari - tutarli error response'lar icin"""

    # Authentication & Authorization (AUTH_xxx)
    INVALID_TOKEN = "AUTH_001"
    TOKEN_EXPIRED = "AUTH_002"
    PERMISSION_DENIED = "AUTH_009"

    # Diagram content (DIAG_xxx)
    DIAGRAM_NOT_FOUND = "DIAG_001"
    ENTITY_NOT_FOUND = "DIAG_002"
    DIAGRAM_FILTER_NOT_FOUND = "DIAG_003"

    # Storage (STORE_xxx)
    STORAGE_ERROR = "STORE_001"
    STORAGE_UNAVAILABLE = "STORE_002"
    ALREADY_EXISTS = "STORE_003"
    CONFLICT = "STORE_004"

    # Realtime (RT_xxx)
    REALTIME_UNAVAILABLE = "RT_001"
    WS_UNAUTHORIZED = "RT_002"
    WS_INVALID_MESSAGE = "RT_003"

    # Validation (VAL_xxx)
    VALIDATION_ERROR = "VAL_001"

    # General (GEN_xxx)
    NOT_FOUND = "GEN_004"
    INTERNAL_SERVER_ERROR = "GEN_001"
    SERVICE_UNAVAILABLE = "GEN_002"


class AppException(Exception):
    """
    Base exception class for all application errors.

    Attributes:
        message: Kullaniciya gosterilecek hata mesaji
        code: Hata kodu (ErrorCode enum)
        status_code: HTTP status code
        details: Ek hata detaylari (opsiyonel)
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.INTERNAL_SERVER_ERROR,
        status_code: int = 500,
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.code = code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Exception'i dict formatina donusturur (API response icin)"""
        result = {
            "error": self.code.value,
            "message": self.message,
            "status_code": self.status_code,
        }
        if self.details:
            result["details"] = self.details
        return result


# ==================== Authentication Exceptions ====================

class AuthenticationException(AppException):
    """Genel authentication hatasi"""

    def __init__(
        self,
        message: str = "Kimlik dogrulama hatasi",
        code: ErrorCode = ErrorCode.INVALID_TOKEN,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, code, 401, details)


class TokenExpiredException(AuthenticationException):
    """Token'in suresi doldu"""

    def __init__(self, message: str = "Oturum suresi doldu, lutfen tekrar giris yapin"):
        super().__init__(message, ErrorCode.TOKEN_EXPIRED)


# ==================== Diagram Exceptions ====================

class DiagramException(AppException):
    """Genel diagram hatasi"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.DIAGRAM_NOT_FOUND,
        status_code: int = 404,
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, code, status_code, details)


class DiagramNotFoundException(DiagramException):
    """Diagram bulunamadi"""

    def __init__(self, diagram_id: str | None = None):
        details = {"diagram_id": diagram_id} if diagram_id else None
        super().__init__("Diagram bulunamadi", ErrorCode.DIAGRAM_NOT_FOUND, 404, details)


class EntityNotFoundException(DiagramException):
    """Diagram icerigi (tablo, iliski, alan...) bulunamadi"""

    def __init__(self, kind: str, entity_id: str):
        super().__init__(
            f"{kind} bulunamadi: {entity_id}",
            ErrorCode.ENTITY_NOT_FOUND,
            404,
            {"kind": kind, "id": entity_id},
        )


class DiagramFilterNotFoundException(DiagramException):
    """Diagram filtresi bulunamadi"""

    def __init__(self, diagram_id: str):
        super().__init__(
            "Diagram filtresi bulunamadi",
            ErrorCode.DIAGRAM_FILTER_NOT_FOUND,
            404,
            {"diagram_id": diagram_id},
        )


# ==================== Storage Exceptions ====================

class StorageException(AppException):
    """
    Storage backend hatasi.

    Backend'in orijinal mesajini ve basarisiz olan islemi tasir.
    Bu katmanda retry yapilmaz; karar caller'a aittir.
    """

    def __init__(
        self,
        message: str,
        action: str | None = None,
        code: ErrorCode = ErrorCode.STORAGE_ERROR,
        status_code: int = 500,
    ):
        self.action = action
        super().__init__(message, code, status_code, {"action": action} if action else None)


class StorageUnavailableException(StorageException):
    """Backend'e ulasilamiyor (network / connection hatasi)"""

    def __init__(self, message: str, action: str | None = None):
        super().__init__(message, action, ErrorCode.STORAGE_UNAVAILABLE, 503)


class AlreadyExistsException(StorageException):
    """Ayni id ile kayit zaten mevcut"""

    def __init__(self, message: str, action: str | None = None):
        super().__init__(message, action, ErrorCode.ALREADY_EXISTS, 409)


class ConflictException(StorageException):
    """Kayit baska bir yazar tarafindan degistirildi (optimistic version mismatch)"""

    def __init__(self, kind: str, entity_id: str, expected: int | None = None, actual: int | None = None):
        super().__init__(
            f"{kind} {entity_id} was modified concurrently",
            f"update {kind}",
            ErrorCode.CONFLICT,
            409,
        )
        self.details.update({"id": entity_id, "expected_version": expected, "actual_version": actual})


# ==================== Realtime Exceptions ====================

class RealtimeException(AppException):
    """Realtime kanal hatasi"""

    def __init__(self, message: str = "Realtime servisi kullanilamiyor", details: Optional[dict[str, Any]] = None):
        super().__init__(message, ErrorCode.REALTIME_UNAVAILABLE, 503, details)


# ==================== Validation Exceptions ====================

class ValidationException(AppException):
    """Genel dogrulama hatasi"""

    def __init__(
        self,
        message: str = "Dogrulama hatasi",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(message, ErrorCode.VALIDATION_ERROR, 400, details)
