from __future__ import annotations

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import JSONResponse, Response

from bulkimport.core.config import settings
from bulkimport.services.admission import get_admission_controller
from bulkimport.services.error_codes import ErrorCode
from bulkimport.services.exceptions import DependencyError

logger = structlog.get_logger(__name__)


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Gate the expensive routes listed in settings.rate_limit_routes."""

    async def dispatch(self, request: Request, call_next) -> Response:
        if not settings.rate_limit_enabled:
            return await call_next(request)

        # Don’t rate-limit CORS preflight
        if request.method == "OPTIONS":
            return await call_next(request)

        route_key = settings.rate_limit_routes.get(request.url.path)
        if route_key is None:
            return await call_next(request)

        user_id = request.headers.get(settings.rate_limit_user_header) or None
        client_ip = request.client.host if request.client else None

        try:
            decision = get_admission_controller().evaluate(
                user_id=user_id,
                ip=client_ip,
                route_key=route_key,
            )
        except DependencyError as err:
            if settings.rate_limit_fail_open:
                logger.warning("rate_limit_fail_open", route_key=route_key, code=err.code)
                return await call_next(request)
            return JSONResponse(
                status_code=503,
                content={"detail": {"code": err.code, "message": err.message}},
            )

        if not decision.allowed:
            return JSONResponse(
                status_code=429,
                content={
                    "detail": {
                        "code": ErrorCode.RATE_LIMITED.value,
                        "message": "rate limit exceeded",
                        "tier": decision.denied_tier,
                        "retry_after": decision.retry_after,
                    }
                },
                headers=decision.headers(),
            )

        response = await call_next(request)
        for name, value in decision.headers().items():
            response.headers.setdefault(name, value)
        return response
