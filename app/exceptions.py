"""
Problem Details (RFC 7807) errors for the inventory API.

Services raise the typed errors below. Each one carries its HTTP status and
a stable machine code; ``register_exception_handlers`` renders them, plain
HTTP errors and request validation failures as ``application/problem+json``:

    {"type": ".../inv-001", "title": "Bad Request", "status": 400,
     "detail": "Stock insuficiente para ...", "instance": "/api/v2/...",
     "code": "INV_001", "timestamp": "...", "trace_id": "<X-Request-ID>"}

See: https://datatracker.ietf.org/doc/html/rfc7807
"""

from typing import Optional, Dict, Any, List
from enum import Enum
from pydantic import BaseModel
from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException
import logging
import uuid
from datetime import datetime, timezone

from app.middleware.correlation import get_request_id

logger = logging.getLogger(__name__)

PROBLEM_TYPE_BASE = "https://api.fieldops.local/problems"

STATUS_TITLES = {
    400: "Bad Request",
    401: "Unauthorized",
    403: "Forbidden",
    404: "Not Found",
    405: "Method Not Allowed",
    409: "Conflict",
    500: "Internal Server Error",
    503: "Service Unavailable",
}


class ErrorCode(str, Enum):
    UNAUTHORIZED = "AUTH_001"
    FORBIDDEN = "AUTH_002"

    VALIDATION_ERROR = "VAL_001"

    NOT_FOUND = "RES_001"
    ALREADY_EXISTS = "RES_002"
    CONFLICT = "RES_003"

    INSUFFICIENT_STOCK = "INV_001"
    INVALID_ITEM_TYPE = "INV_002"
    INVALID_TRANSITION = "INV_003"
    DERIVED_STOCK = "INV_005"

    INTERNAL_ERROR = "SRV_001"
    SERVICE_UNAVAILABLE = "SRV_002"
    CONFIGURATION_ERROR = "SRV_004"

    @property
    def problem_type(self) -> str:
        return f"{PROBLEM_TYPE_BASE}/{self.value.lower().replace('_', '-')}"


# Fallback codes for errors raised as bare HTTPException (unknown routes, 405s)
STATUS_CODES = {
    400: ErrorCode.VALIDATION_ERROR,
    401: ErrorCode.UNAUTHORIZED,
    403: ErrorCode.FORBIDDEN,
    404: ErrorCode.NOT_FOUND,
    409: ErrorCode.CONFLICT,
    503: ErrorCode.SERVICE_UNAVAILABLE,
}


def current_trace_id() -> str:
    """The request id of the request being served, or a fresh short id."""
    request_id = get_request_id()
    if request_id and request_id != "unknown":
        return request_id
    return uuid.uuid4().hex[:12]


class ProblemDetail(BaseModel):
    type: str = "about:blank"
    title: str
    status: int
    detail: str
    instance: Optional[str] = None
    code: str
    timestamp: str
    trace_id: str
    errors: Optional[List[Dict[str, Any]]] = None

    @classmethod
    def build(
        cls,
        status: int,
        code: ErrorCode,
        detail: str,
        instance: Optional[str] = None,
        errors: Optional[List[Dict[str, Any]]] = None,
        trace_id: Optional[str] = None,
    ) -> "ProblemDetail":
        return cls(
            type=code.problem_type,
            title=STATUS_TITLES.get(status, "Error"),
            status=status,
            detail=detail,
            instance=instance,
            code=code.value,
            timestamp=datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
            trace_id=trace_id or current_trace_id(),
            errors=errors,
        )

    def to_response(self, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
        return JSONResponse(
            status_code=self.status,
            content=self.model_dump(exclude_none=True),
            media_type="application/problem+json",
            headers=headers,
        )


class APIException(HTTPException):
    """Base for typed API errors. Subclasses set ``http_status`` and ``code``."""

    http_status: int = 500
    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        detail: str,
        errors: Optional[List[Dict[str, Any]]] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        self.errors = errors
        self.trace_id = current_trace_id()
        super().__init__(status_code=self.http_status, detail=detail, headers=headers)

    def __str__(self) -> str:
        return self.detail

    def to_problem_detail(self, instance: Optional[str] = None) -> ProblemDetail:
        return ProblemDetail.build(
            self.status_code,
            self.code,
            self.detail,
            instance=instance,
            errors=self.errors,
            trace_id=self.trace_id,
        )


class ValidationError(APIException):
    """Missing or malformed input."""

    http_status = 400
    code = ErrorCode.VALIDATION_ERROR


class AuthenticationError(APIException):
    http_status = 401
    code = ErrorCode.UNAUTHORIZED

    def __init__(self, detail: str = "No se pudieron validar las credenciales"):
        super().__init__(detail, headers={"WWW-Authenticate": "Bearer"})


class PermissionDeniedError(APIException):
    http_status = 403
    code = ErrorCode.FORBIDDEN


class NotFoundError(APIException):
    http_status = 404
    code = ErrorCode.NOT_FOUND

    def __init__(self, resource: str, resource_id: str):
        self.resource = resource
        self.resource_id = resource_id
        super().__init__(f"{resource} no encontrado: {resource_id}")


class DuplicateError(APIException):
    """A code, unique id, bobbin code or crew name is already taken."""

    http_status = 409
    code = ErrorCode.ALREADY_EXISTS


class ConflictError(APIException):
    """The resource is referenced elsewhere and cannot change this way."""

    http_status = 409
    code = ErrorCode.CONFLICT


def _fmt_qty(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else f"{value:g}"


class InsufficientStockError(APIException):
    http_status = 400
    code = ErrorCode.INSUFFICIENT_STOCK

    def __init__(self, description: str, available: float, requested: float):
        self.available = available
        self.requested = requested
        super().__init__(
            f"Stock insuficiente para {description}. "
            f"Disponible: {_fmt_qty(available)}, Solicitado: {_fmt_qty(requested)}"
        )


class InvalidItemTypeError(APIException):
    """Operation not valid for this kind of item (material vs equipment vs cable)."""

    http_status = 400
    code = ErrorCode.INVALID_ITEM_TYPE


class InvalidTransitionError(APIException):
    http_status = 409
    code = ErrorCode.INVALID_TRANSITION

    def __init__(self, unique_id: str, current: str, target: str, detail: Optional[str] = None):
        self.unique_id = unique_id
        self.current = current
        self.target = target
        super().__init__(
            detail or f"La instancia {unique_id} no puede pasar de '{current}' a '{target}'"
        )


class DerivedStockError(APIException):
    """Equipment stock is counted from instances and cannot be written."""

    http_status = 400
    code = ErrorCode.DERIVED_STOCK

    def __init__(self, description: str):
        super().__init__(
            f"El stock de '{description}' se calcula a partir de sus instancias "
            f"y no puede modificarse directamente"
        )


class ConfigurationError(APIException):
    http_status = 500
    code = ErrorCode.CONFIGURATION_ERROR

    def __init__(self, setting: str):
        self.setting = setting
        super().__init__("Configuración de servidor incorrecta")


async def handle_api_exception(request: Request, exc: APIException) -> JSONResponse:
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"{exc.code.value} {request.method} {request.url.path}: {exc.detail}",
        extra={"trace_id": exc.trace_id, "status_code": exc.status_code},
    )
    return exc.to_problem_detail(instance=request.url.path).to_response(exc.headers)


async def handle_http_exception(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    code = STATUS_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    problem = ProblemDetail.build(exc.status_code, code, str(exc.detail), instance=request.url.path)
    return problem.to_response(getattr(exc, "headers", None))


async def handle_validation_exception(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Request bodies and query strings that fail schema validation are 400s."""
    errors = [
        {
            "field": ".".join(str(part) for part in error["loc"]),
            "message": error["msg"],
            "type": error["type"],
        }
        for error in exc.errors()
    ]
    problem = ProblemDetail.build(
        400,
        ErrorCode.VALIDATION_ERROR,
        "Datos de la solicitud inválidos",
        instance=request.url.path,
        errors=errors,
    )
    return problem.to_response()


async def handle_unexpected_exception(request: Request, exc: Exception) -> JSONResponse:
    from app.config import settings

    trace_id = current_trace_id()
    logger.exception(
        f"Unhandled error on {request.method} {request.url.path}",
        extra={"trace_id": trace_id},
    )
    detail = str(exc) if settings.DEBUG else "Ocurrió un error inesperado"
    problem = ProblemDetail.build(
        500, ErrorCode.INTERNAL_ERROR, detail, instance=request.url.path, trace_id=trace_id
    )
    return problem.to_response()


def register_exception_handlers(app) -> None:
    app.add_exception_handler(APIException, handle_api_exception)
    app.add_exception_handler(StarletteHTTPException, handle_http_exception)
    app.add_exception_handler(RequestValidationError, handle_validation_exception)
    app.add_exception_handler(Exception, handle_unexpected_exception)
