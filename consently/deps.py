"""FastAPI dependency injection providers.

Usage in routers:
    async def endpoint(db: DB, user: CurrentUser):
        ...
"""

from __future__ import annotations

from collections.abc import AsyncGenerator, Callable
from typing import Annotated

import redis.asyncio as aioredis
import structlog
from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt
from sqlalchemy.ext.asyncio import AsyncSession

from consently.config import settings
from consently.db.session import async_session_factory
from consently.exceptions import AuthError
from consently.models.tenant import Tenant
from consently.services import rate_limiter
from consently.services.mailer import ResendMailer
from consently.services.visitor import ClientContext

logger = structlog.get_logger()

# --- Database ---

async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """Provide an async database session."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


# --- Redis ---

_redis_pool: aioredis.Redis | None = None


async def get_redis() -> aioredis.Redis:
    """Provide a Redis connection from the pool."""
    global _redis_pool
    if _redis_pool is None:
        _redis_pool = aioredis.from_url(settings.REDIS_URL, decode_responses=True)
    return _redis_pool


# --- Auth ---

security = HTTPBearer(auto_error=False)

ALGORITHM = "HS256"


def _decode_token(token: str) -> dict:
    """Decode and validate an auth provider session token."""
    if not settings.AUTH_JWT_SECRET:
        raise AuthError("Authentication is not configured")
    try:
        return jwt.decode(
            token,
            settings.AUTH_JWT_SECRET,
            algorithms=[ALGORITHM],
            audience=settings.AUTH_JWT_AUDIENCE,
        )
    except JWTError as e:
        raise AuthError(f"Invalid token: {e}") from e


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
) -> dict:
    """The signed-in tenant.

    Returns:
        dict with ``id`` (the provider's user id, also the tenant id) and ``email``.
    """
    if credentials is None:
        raise AuthError("Unauthorized")
    payload = _decode_token(credentials.credentials)
    if not payload.get("sub"):
        raise AuthError("Invalid token: missing subject")
    return {"id": payload["sub"], "email": payload.get("email")}


async def get_current_tenant(
    user: dict = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
) -> Tenant:
    """Tenant row for the signed-in user, created on first use."""
    tenant = await db.get(Tenant, user["id"])
    if tenant is None:
        tenant = Tenant(id=user["id"], email=user.get("email") or f"{user['id']}@users.invalid")
        db.add(tenant)
        await db.flush()
        logger.info("tenant_created", tenant_id=tenant.id)
    return tenant


# --- Request context ---

def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    for header in ("x-real-ip", "cf-connecting-ip"):
        value = request.headers.get(header)
        if value:
            return value.strip()
    return request.client.host if request.client else "unknown"


def get_client_context(request: Request) -> ClientContext:
    return ClientContext(
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent", ""),
        accept_language=request.headers.get("accept-language"),
        referrer=request.headers.get("referer"),
    )


def rate_limit(scope: str, limit: int, window_seconds: int) -> Callable:
    """Dependency counting the caller's IP against a fixed window."""

    async def dependency(request: Request, redis: aioredis.Redis = Depends(get_redis)) -> None:
        await rate_limiter.enforce(redis, scope, client_ip(request), limit, window_seconds)

    return dependency


# --- Email ---

def get_mailer() -> ResendMailer:
    return ResendMailer(settings.RESEND_API_KEY, settings.EMAIL_FROM)


# Type aliases for cleaner router signatures
DB = Annotated[AsyncSession, Depends(get_db)]
Redis = Annotated[aioredis.Redis, Depends(get_redis)]
CurrentUser = Annotated[dict, Depends(get_current_user)]
CurrentTenant = Annotated[Tenant, Depends(get_current_tenant)]
Client = Annotated[ClientContext, Depends(get_client_context)]
Mailer = Annotated[ResendMailer, Depends(get_mailer)]
