from fastapi import APIRouter, Depends
from fastapi.responses import Response

from annonest.access.api import router as access_router
from annonest.annotate.api import router as annotate_router
from annonest.core.auth import get_auth_context
from annonest.core.config import get_settings
from annonest.core.errors import AuthorizationError, NotFoundError
from annonest.datanest.api import router as datanest_router
from annonest.identity.api import router as users_router
from annonest.locks.api import router as locks_router
from annonest.metrics import generate_metrics_payload, metrics_content_type
from annonest.platform.security.context import AuthContext

router = APIRouter()
router.include_router(access_router)
router.include_router(users_router)
router.include_router(annotate_router)
router.include_router(datanest_router)
router.include_router(locks_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/metrics", tags=["system"])
def metrics(ctx: AuthContext = Depends(get_auth_context)) -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise NotFoundError("not found")
    if not ctx.is_manager:
        raise AuthorizationError("metrics are restricted to managers")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
