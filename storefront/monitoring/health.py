"""
Health checks for readiness/liveness probes.

Checks:
- Database connectivity
- Redis connectivity (webhook de-duplication store)
- Stripe API reachability
"""
import asyncio
from typing import Any, Awaitable, Callable, Dict

import redis.asyncio as aioredis
import stripe
import structlog
from sqlalchemy import text

from storefront.config import get_settings
from storefront.database.connection import get_session_factory

logger = structlog.get_logger(__name__)


class HealthCheckError(Exception):
    """Raised when health check fails."""

    pass


class HealthCheck:
    """Health check service for the storefront's external dependencies."""

    def __init__(self) -> None:
        self.settings = get_settings()

    async def check_database(self) -> Dict[str, Any]:
        """
        Check database connectivity.

        Raises:
            HealthCheckError: If database check fails
        """
        try:
            session_factory = get_session_factory()
            async with session_factory() as db:
                result = await db.execute(text("SELECT 1"))
                result.scalar()
        except Exception as e:
            logger.error("database_health_check_failed", error=str(e))
            raise HealthCheckError(f"Database health check failed: {str(e)}")

        return {
            "status": "healthy",
            "service": "database",
            "message": "Database connection successful",
        }

    async def check_redis(self) -> Dict[str, Any]:
        """
        Check Redis connectivity.

        Raises:
            HealthCheckError: If Redis check fails
        """
        redis_client: aioredis.Redis | None = None
        try:
            redis_client = aioredis.from_url(
                self.settings.redis_url,
                encoding="utf-8",
                decode_responses=True,
            )
            await redis_client.ping()
        except Exception as e:
            logger.error("redis_health_check_failed", error=str(e))
            raise HealthCheckError(f"Redis health check failed: {str(e)}")
        finally:
            if redis_client is not None:
                await redis_client.aclose()

        return {
            "status": "healthy",
            "service": "redis",
            "message": "Redis connection successful",
        }

    async def check_stripe(self) -> Dict[str, Any]:
        """
        Check Stripe API reachability.

        Raises:
            HealthCheckError: If Stripe check fails
        """
        try:
            await asyncio.to_thread(
                stripe.Balance.retrieve, api_key=self.settings.stripe_secret_key
            )
        except Exception as e:
            logger.error("stripe_health_check_failed", error=str(e))
            raise HealthCheckError(f"Stripe health check failed: {str(e)}")

        return {
            "status": "healthy",
            "service": "stripe",
            "message": "Stripe API connection successful",
            "test_mode": self.settings.is_test_mode,
        }

    async def check_all(self) -> Dict[str, Any]:
        """
        Run all health checks.

        Returns:
            Dict[str, Any]: Overall health status
        """
        probes: Dict[str, Callable[[], Awaitable[Dict[str, Any]]]] = {
            "database": self.check_database,
            "redis": self.check_redis,
            "stripe": self.check_stripe,
        }
        checks: Dict[str, Any] = {}
        all_healthy = True

        for name, probe in probes.items():
            try:
                checks[name] = await probe()
            except HealthCheckError as e:
                checks[name] = {"status": "unhealthy", "service": name, "error": str(e)}
                all_healthy = False

        return {
            "status": "healthy" if all_healthy else "unhealthy",
            "checks": checks,
        }

    async def liveness(self) -> Dict[str, Any]:
        """
        Liveness probe.

        Does not check external dependencies.
        """
        return {
            "status": "alive",
            "message": "Application is running",
        }

    async def readiness(self) -> Dict[str, Any]:
        """Readiness probe: the API can serve traffic once the database answers."""
        try:
            database = await self.check_database()
        except HealthCheckError as e:
            return {
                "status": "unhealthy",
                "checks": {"database": {"status": "unhealthy", "error": str(e)}},
            }
        return {"status": "healthy", "checks": {"database": database}}
