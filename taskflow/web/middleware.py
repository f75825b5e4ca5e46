"""
Authentication and request rate limiting middleware
"""

from typing import Iterable
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from taskflow.services.auth import extract_token
from taskflow.utils.logger import logger


PUBLIC_PATHS = ("/", "/api/health", "/api/queue", "/docs", "/openapi.json")


class AuthRateLimitMiddleware(BaseHTTPMiddleware):
    """Rejects unauthenticated requests to protected paths and bounds per-user request rate"""

    def __init__(self, app, public_paths: Iterable[str] = PUBLIC_PATHS):
        super().__init__(app)
        self.public_paths = frozenset(public_paths)
        self.logger = logger

    async def dispatch(self, request: Request, call_next):
        if request.url.path in self.public_paths:
            return await call_next(request)

        container = request.app.state.container
        user = container.token_verifier.verify(extract_token(request))
        if user is None:
            return JSONResponse({"message": "Not authenticated"}, status_code=401)

        result = await container.request_limiter.limit(user.id)
        if not result.success:
            self.logger.info(f"[Middleware] Request limit exceeded for {user.id}")
            return JSONResponse(
                {"message": "Too Many Requests"},
                status_code=429,
                headers={
                    "X-RateLimit-Limit": str(result.limit),
                    "X-RateLimit-Remaining": str(result.remaining),
                    "X-RateLimit-Reset": str(result.reset_at_ms),
                },
            )

        request.state.user = user
        response = await call_next(request)
        response.headers["X-RateLimit-Limit"] = str(result.limit)
        response.headers["X-RateLimit-Remaining"] = str(result.remaining)
        return response
