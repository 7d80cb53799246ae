"""
Centralized Error Handlers for DiagramSync

Bu modul, FastAPI uygulamasinda tum exception'lari yakalayan ve
tutarli hata response'lari donen global error handler'lari icerir.
"""

from traceback import format_exc
from typing import Any, Union

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
from pydantic import ValidationError

from diagramsync.config import settings
from diagramsync.exceptions import AppException, ErrorCode
from diagramsync.utils.logging_config import get_logger, websocket_logger


logger = get_logger(__name__)


class ErrorResponse:
    """
    Standart hata response formati.

    Tum API error'lari bu format kullanir:
    {
        "success": false,
        "error": "ERROR_CODE",
        "message": "Kullaniciya gosterilecek mesaj",
        "details": {...},  // Opsiyonel
        "status_code": 400
    }
    """

    @staticmethod
    def create(
        error_code: Union[ErrorCode, str],
        message: str,
        status_code: int,
        details: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Standart error response olustur"""
        response: dict[str, Any] = {
            "success": False,
            "error": error_code.value if isinstance(error_code, ErrorCode) else error_code,
            "message": message,
            "status_code": status_code,
        }
        if details:
            response["details"] = details
        return response


def log_error(
    error: Exception,
    request: Request | None = None,
    level: str = "ERROR",
    extra: dict[str, Any] | None = None,
) -> None:
    """
    Hatalari tutarli sekilde logla.

    Args:
        error: Exception objesi
        request: FastAPI Request objesi (opsiyonel)
        level: Log seviyesi (ERROR, WARNING, INFO)
        extra: Ek log bilgileri
    """
    log_data: dict[str, Any] = {
        "error_type": type(error).__name__,
        "error_message": str(error),
    }

    if request:
        client_host: str | None = None
        if request.client is not None:
            client_host = request.client.host
        log_data.update({
            "method": request.method,
            "url": str(request.url),
            "client": client_host,
        })

    if extra:
        log_data.update(extra)

    logger.log(level.upper(), "Error occurred: " + log_data["error_type"], extra=log_data)

    # Debug modunda stack trace logla
    if settings.DEBUG and level.upper() == "ERROR":
        logger.opt(exception=error).debug("Stack trace")


def register_exception_handlers(app: FastAPI) -> None:
    """
    FastAPI uygulamasina tum exception handler'lari kaydet.

    Bu fonksiyon main.py'de cagrilmalidir.
    """

    @app.exception_handler(AppException)
    async def app_exception_handler(
        request: Request, exc: AppException
    ) -> JSONResponse:
        """
        Custom AppException handler.

        Storage, diagram ve auth hatalari burada yakalanir ve
        tutarli formatta response doner.
        """
        log_error(exc, request, level="WARNING" if exc.status_code < 500 else "ERROR")

        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse.create(
                error_code=exc.code,
                message=exc.message,
                status_code=exc.status_code,
                details=exc.details if exc.details else None,
            ),
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(
        request: Request, exc: StarletteHTTPException
    ) -> JSONResponse:
        """FastAPI'in HTTPException'lari icin."""
        # Error code map - status code'a gore uygun error code sec
        error_code_map = {
            400: ErrorCode.VALIDATION_ERROR,
            401: ErrorCode.INVALID_TOKEN,
            403: ErrorCode.PERMISSION_DENIED,
            404: ErrorCode.NOT_FOUND,
            409: ErrorCode.CONFLICT,
            422: ErrorCode.VALIDATION_ERROR,
            500: ErrorCode.INTERNAL_SERVER_ERROR,
            503: ErrorCode.SERVICE_UNAVAILABLE,
        }
        error_code = error_code_map.get(exc.status_code, ErrorCode.INTERNAL_SERVER_ERROR)

        log_error(exc, request, level="WARNING")

        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse.create(
                error_code=error_code,
                message=str(exc.detail) if exc.detail else "HTTP hatasi",
                status_code=exc.status_code,
            ),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        """Request body / query validation hatasinda tutarli response doner."""
        errors = []
        for error in exc.errors():
            field = ".".join(str(loc) for loc in error["loc"][1:])  # 'body' skip et
            errors.append({
                "field": field,
                "message": error["msg"],
                "type": error["type"],
            })

        log_error(
            exc,
            request,
            level="WARNING",
            extra={"validation_errors": errors},
        )

        return JSONResponse(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            content=ErrorResponse.create(
                error_code=ErrorCode.VALIDATION_ERROR,
                message="Gecerlilik hatasi - Lutfen girdilerinizi kontrol edin",
                status_code=422,
                details={"validation_errors": errors},
            ),
        )

    @app.exception_handler(ValidationError)
    async def pydantic_validation_exception_handler(
        request: Request, exc: ValidationError
    ) -> JSONResponse:
        """
        Storage'dan gelen patch'ler (DiagramUpdate, entity snapshot) burada dogrulanir;
        malformed patch 400 doner.
        """
        errors = [
            {
                "field": ".".join(str(loc) for loc in error["loc"]),
                "message": error["msg"],
                "type": error["type"],
            }
            for error in exc.errors()
        ]

        log_error(
            exc,
            request,
            level="WARNING",
            extra={"validation_errors": errors},
        )

        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content=ErrorResponse.create(
                error_code=ErrorCode.VALIDATION_ERROR,
                message="Gecersiz veri",
                status_code=400,
                details={"validation_errors": errors},
            ),
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """
        Tum yakalanmamayan exception'lar burada yakalanir.
        Production'da detayli hata bilgisi gosterilmez.
        """
        log_error(exc, request, level="ERROR")

        if settings.DEBUG:
            message = f"{type(exc).__name__}: {str(exc)}"
            details = {"traceback": format_exc()}
        else:
            message = "Beklenmeyen bir hata olustu. Lutfen daha sonra tekrar deneyin."
            details = None

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=ErrorResponse.create(
                error_code=ErrorCode.INTERNAL_SERVER_ERROR,
                message=message,
                status_code=500,
                details=details,
            ),
        )


# ==================== WebSocket Error Handling ====================

class WebSocketErrorHandler:
    """
    WebSocket icin error handling utility.

    WebSocket connection'larda olusan hatalari loglamak
    ve uygun close code ile baglantiyi kapatmak icin kullanilir.
    """

    @staticmethod
    async def handle_connection_error(
        websocket,
        error: Exception,
        reason: str = "Connection error",
        close_code: int = 1011,
    ) -> None:
        """
        WebSocket connection hatasini handle et.

        Args:
            websocket: WebSocket connection objesi
            error: Exception objesi
            reason: Kapatma sebebi
            close_code: WebSocket close code
        """
        log_error(
            error,
            level="WARNING",
            extra={"websocket_close_reason": reason, "close_code": close_code},
        )

        try:
            await websocket.close(code=close_code, reason=reason[:123])
        except RuntimeError as close_error:
            # Baglanti zaten kapanmis
            websocket_logger.debug(f"Failed to close websocket: {close_error}")

    @staticmethod
    async def send_error_message(
        websocket,
        message: str,
        error_code: str = "ERROR",
        details: dict[str, Any] | None = None,
    ) -> bool:
        """
        WebSocket'e error mesaji gonder.

        Returns:
            bool: Mesaj basariyla gonderildiyse True
        """
        try:
            await websocket.send_json({
                "type": "error",
                "error": error_code,
                "message": message,
                **({"details": details} if details else {}),
            })
            return True
        except (RuntimeError, OSError) as e:
            log_error(e, level="WARNING", extra={"failed_message": message})
            return False

    @staticmethod
    def log_websocket_error(
        error: Exception,
        diagram_id: str | None = None,
        session_id: str | None = None,
        message_type: str | None = None,
    ) -> None:
        """WebSocket error loglarini tutarli formatta yaz."""
        log_data: dict[str, Any] = {
            "error_type": type(error).__name__,
            "error_message": str(error),
        }

        if diagram_id:
            log_data["diagram_id"] = diagram_id
        if session_id:
            log_data["session_id"] = session_id
        if message_type:
            log_data["message_type"] = message_type

        websocket_logger.warning("WebSocket error occurred", extra=log_data)
