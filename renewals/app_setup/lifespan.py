"""
FastAPI lifespan: shared resources set up at startup.
- Initializes FastAPILimiter (Redis) for the /checkout rate limit.
- Environment variables:
  - DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS=1: no limiter at all (tests)
  - USE_FAKE_REDIS_FOR_TESTS=1: fakeredis instead of Redis (tests)
  - LOCAL_RATE_LIMIT_FALLBACK=1: in-memory limiter when Redis cannot be reached
"""
import os
import logging
import redis.asyncio as aioredis
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi_limiter import FastAPILimiter
from redis.exceptions import RedisError

logger = logging.getLogger("uvicorn.error")


def _redis_connection():
    if os.getenv("USE_FAKE_REDIS_FOR_TESTS") == "1":
        from fakeredis.aioredis import FakeRedis
        return FakeRedis(decode_responses=True)
    redis_url = os.getenv("RATE_LIMIT_REDIS_URL", "redis://127.0.0.1:6379/0")
    return aioredis.from_url(redis_url, encoding="utf-8", decode_responses=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Sets up rate limiting, with fallbacks.
    - If Redis fails and there is no local fallback, rate limiting is switched off.
    - The effective state is logged once.
    """
    if os.getenv("DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS") == "1":
        app.state.rate_limit_enabled = False
        logger.info("Rate limiting disabled by DISABLE_FASTAPI_LIMITER_INIT_FOR_TESTS")
        yield
        return

    try:
        r = _redis_connection()
        await FastAPILimiter.init(r)
        app.state.rate_limit_enabled = True
        logger.info("Rate limiting enabled")
    except (RedisError, OSError) as e:
        app.state.rate_limit_enabled = os.getenv("LOCAL_RATE_LIMIT_FALLBACK") == "1"
        if app.state.rate_limit_enabled:
            logger.warning("Rate limiting falling back to local in-memory due to init error: %s", e)
        else:
            logger.warning("Rate limiting disabled due to init error: %s", e)

    yield

    if app.state.rate_limit_enabled and getattr(FastAPILimiter, "redis", None) is not None:
        await FastAPILimiter.close()
