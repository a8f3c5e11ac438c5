# module renewals.utils.rate_limit
from typing import Any, Dict
from urllib.parse import urlparse
import logging
import os
import time

from fastapi import HTTPException, Request, Response
from fastapi_limiter import FastAPILimiter
from fastapi_limiter.depends import RateLimiter

logger = logging.getLogger(__name__)


def client_key(request: Request) -> str:
    """Limits apply per client address and per path."""
    ip = request.client.host if request.client else "local"
    return f"ip:{ip}:{request.url.path}"


async def _identifier(request: Request) -> str:
    return client_key(request)


def optional_rate_limit(times: int, seconds: int):
    """
    Dependency limiting a route to `times` requests per `seconds`.
    - LOCAL_RATE_LIMIT_FALLBACK=1: in-memory window kept on app.state.
    - Otherwise fastapi-limiter (Redis), unless the lifespan disabled it.
    """
    async def _dep(request: Request, response: Response):
        if os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1":
            now = time.time()
            key = client_key(request)
            store = getattr(request.app.state, "_rl_store", {})
            hits = [t for t in store.get(key, []) if now - t < seconds]
            if len(hits) >= times:
                raise HTTPException(status_code=429, detail="Too Many Requests")
            hits.append(now)
            store[key] = hits
            request.app.state._rl_store = store
            return

        if getattr(request.app.state, "rate_limit_enabled", None) is not True:
            return

        try:
            await RateLimiter(times=times, seconds=seconds, identifier=_identifier)(request, response)
        except HTTPException:
            raise
        except Exception as e:
            # Redis gone after startup: serve rather than refuse payments
            logger.warning("rate limiter unavailable path=%s: %s", request.url.path, e)
    return _dep


def rate_limit_health_info(request: Request) -> Dict[str, Any]:
    enabled = getattr(request.app.state, "rate_limit_enabled", None)
    ready = getattr(FastAPILimiter, "redis", None) is not None
    info: Dict[str, Any] = {
        "enabled": (bool(enabled) if enabled is not None else None),
        "ready": ready,
        "backend": "redis" if ready else None,
    }
    if os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1":
        info["backend"] = "memory"
    redis_url = os.getenv("RATE_LIMIT_REDIS_URL")
    if ready and redis_url:
        p = urlparse(redis_url)
        info["redis"] = {"scheme": p.scheme, "host": p.hostname, "port": p.port}
    return info
