from __future__ import annotations

import logging
from dataclasses import asdict, dataclass
from typing import Any

from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from starlette.requests import Request

from annonest.context import get_correlation_id
from annonest.core.errors import AppError


logger = logging.getLogger("annonest.errors")


@dataclass
class ErrorEnvelope:
    code: str
    message: str
    details: Any
    correlation_id: str | None


def error_response(
    request: Request,
    *,
    status_code: int,
    code: str,
    message: str,
    details: Any = None,
) -> JSONResponse:
    correlation_id = get_correlation_id() or getattr(request.state, "correlation_id", None)
    payload = ErrorEnvelope(code=code, message=message, details=details, correlation_id=correlation_id)
    return JSONResponse(status_code=status_code, content=jsonable_encoder(asdict(payload)))


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    logger.info(
        "request.rejected",
        extra={"path": request.url.path, "status_code": exc.status_code, "error": exc.message, "outcome": exc.code},
    )
    return error_response(
        request,
        status_code=exc.status_code,
        code=exc.code,
        message=exc.message,
        details=exc.details,
    )
