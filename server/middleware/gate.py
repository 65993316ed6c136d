"""Request gate: security headers, rate limiting, auth and CORS for every request."""

import uuid
from typing import Any, Dict, Optional
from urllib.parse import urlencode

from fastapi import Request
from fastapi.responses import JSONResponse, RedirectResponse, Response
from starlette.middleware.base import BaseHTTPMiddleware

from constants import (
    API_PREFIX,
    AUTH_PAGES,
    CORS_ALLOW_HEADERS,
    CORS_ALLOW_METHODS,
    PROTECTED_PREFIXES,
    SECURITY_HEADERS,
    SIGNIN_PATH,
)
from core.container import container
from core.exceptions import AuthenticationFailed
from core.logging import bind_request_context, get_logger
from models.cache import RateLimitResult

logger = get_logger(__name__)


def client_address(request: Request) -> str:
    """Client address as reported by the trusted proxy, else "unknown"."""
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip() or "unknown"
    return request.headers.get("x-real-ip") or "unknown"


def rate_limited_response(result: RateLimitResult) -> JSONResponse:
    """429 body and headers shared by the gate and the flight search quota."""
    return JSONResponse(
        status_code=429,
        content={
            "error": "Too many requests",
            "code": "RATE_LIMIT_EXCEEDED",
            "message": "Please try again later",
        },
        headers={"Retry-After": str(result.retry_after), **result.headers()},
    )


def current_user_email(request: Request) -> str:
    """Identity the gate attached to the request; 401 when there is none."""
    email = getattr(request.state, "user_email", None)
    if not email:
        raise AuthenticationFailed("Authentication required")
    return email


def _is_protected(path: str) -> bool:
    return any(path.startswith(prefix) for prefix in PROTECTED_PREFIXES)


def _safe_callback(url: Optional[str]) -> str:
    # Only same-site relative paths; anything else would be an open redirect
    if url and url.startswith("/") and not url.startswith("//"):
        return url
    return "/"


class RequestGate(BaseHTTPMiddleware):
    """Runs in front of every route.

    Order: request id, rate limit (API paths), CORS preflight, auth gate,
    reverse auth gate for sign-in pages. Security headers and the request id
    go on every response, gate rejections included.
    """

    async def dispatch(self, request: Request, call_next):
        request_id = str(uuid.uuid4())
        path = request.url.path
        bind_request_context(request_id=request_id, method=request.method, path=path)

        rate_limit = None
        response = None
        is_api = path.startswith(API_PREFIX)

        if is_api:
            rate_limit = await self._check_rate_limit(request, path)
            if rate_limit and not rate_limit.allowed:
                logger.warning("Request rate limited", client=client_address(request))
                response = rate_limited_response(rate_limit)

        if response is None and is_api and request.method == "OPTIONS":
            response = Response(status_code=200)

        if response is None:
            response = await self._authorize(request, path, is_api)

        if response is None:
            response = await call_next(request)

        self._decorate(response, request_id, is_api, rate_limit)
        logger.debug("Request handled", status=response.status_code)
        return response

    async def _check_rate_limit(self, request: Request, path: str) -> Optional[RateLimitResult]:
        settings = container.settings()
        if not settings.rate_limit_enabled:
            return None
        limit, window = container.rate_limit_policy().resolve(path)
        key = f"{client_address(request)}:{path}"
        return await container.rate_limiter().hit(key, limit, window)

    async def _authorize(self, request: Request, path: str, is_api: bool) -> Optional[Response]:
        protected = _is_protected(path)
        auth_page = path in AUTH_PAGES
        if not protected and not auth_page and not self._has_token(request):
            return None

        payload = self._session(request)
        if payload:
            request.state.user_id = payload.get("sub")
            request.state.user_email = payload.get("email")

        if protected and not payload:
            if is_api:
                return JSONResponse(
                    status_code=401,
                    content={"error": "Authentication required", "code": "UNAUTHORIZED"},
                )
            signin_url = request.url.replace(path=SIGNIN_PATH, query=urlencode({"callbackUrl": path}))
            return RedirectResponse(str(signin_url), status_code=307)

        if auth_page and payload:
            target = _safe_callback(request.query_params.get("callbackUrl"))
            return RedirectResponse(target, status_code=307)

        return None

    @staticmethod
    def _token(request: Request) -> Optional[str]:
        settings = container.settings()
        token = request.cookies.get(settings.jwt_cookie_name)
        if token:
            return token
        authorization = request.headers.get("authorization", "")
        scheme, _, credentials = authorization.partition(" ")
        if scheme.lower() == "bearer" and credentials:
            return credentials.strip()
        return None

    def _has_token(self, request: Request) -> bool:
        return self._token(request) is not None

    def _session(self, request: Request) -> Optional[Dict[str, Any]]:
        token = self._token(request)
        if not token:
            return None
        return container.user_auth_service().verify_token(token)

    @staticmethod
    def _decorate(response: Response, request_id: str, is_api: bool,
                  rate_limit: Optional[RateLimitResult]) -> None:
        for name, value in SECURITY_HEADERS.items():
            response.headers[name] = value
        response.headers["X-Request-ID"] = request_id

        if is_api:
            settings = container.settings()
            response.headers["Access-Control-Allow-Origin"] = settings.cors_origin
            response.headers["Access-Control-Allow-Methods"] = CORS_ALLOW_METHODS
            response.headers["Access-Control-Allow-Headers"] = CORS_ALLOW_HEADERS
            if rate_limit and rate_limit.allowed:
                for name, value in rate_limit.headers().items():
                    response.headers.setdefault(name, value)
