"""
Health check aggregation: liveness probes for open pool handles.

Checks:
    • Database connectivity (SELECT 1 through a DatabasePool)
    • Cache connectivity (PING through a RedisPool)

Returns a structured health report suitable for:
    - Kubernetes liveness/readiness probes
    - Load balancer health checks
    - Monitoring dashboards

Probes never raise; a failing dependency shows up as UNHEALTHY.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING, Any, Awaitable, Callable, Dict, List, Optional

if TYPE_CHECKING:
    from multitool.cache import RedisPool
    from multitool.database import DatabasePool

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"  # partial functionality
    UNHEALTHY = "unhealthy"


@dataclass
class ComponentHealth:
    name: str
    status: HealthStatus = HealthStatus.HEALTHY
    latency_ms: float = 0.0
    message: str = ""
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {
            "name": self.name,
            "status": self.status.value,
            "latency_ms": round(self.latency_ms, 2),
        }
        if self.message:
            d["message"] = self.message
        if self.details:
            d["details"] = self.details
        return d


@dataclass
class HealthReport:
    status: HealthStatus = HealthStatus.HEALTHY
    timestamp: str = ""
    components: List[ComponentHealth] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "timestamp": self.timestamp or datetime.now(timezone.utc).isoformat(),
            "components": [c.to_dict() for c in self.components],
        }


async def _probe(
    name: str,
    ping: Callable[[], Awaitable[None]],
    status: Callable[[], Dict[str, Any]],
    ok_message: str,
) -> ComponentHealth:
    comp = ComponentHealth(name=name)
    start = time.monotonic()
    try:
        await ping()
        comp.status = HealthStatus.HEALTHY
        comp.message = ok_message
    except Exception as e:
        logger.warning("Health probe %s failed: %s", name, e)
        comp.status = HealthStatus.UNHEALTHY
        comp.message = str(e) or type(e).__name__
    comp.latency_ms = (time.monotonic() - start) * 1000

    try:
        comp.details = status()
    except Exception as e:
        logger.warning("Health probe %s could not read pool status: %s", name, e)
        comp.status = HealthStatus.UNHEALTHY
        comp.message = str(e) or type(e).__name__

    if (
        comp.status == HealthStatus.HEALTHY
        and comp.details.get("checked_out", 0) >= comp.details.get("max_size", float("inf"))
    ):
        comp.status = HealthStatus.DEGRADED
        comp.message = "Pool exhausted: every connection is checked out"
    return comp


async def check_database(pool: "DatabasePool") -> ComponentHealth:
    """Check PostgreSQL connectivity."""
    return await _probe("postgresql", pool.ping, pool.status, "Connection pool available")


async def check_redis(pool: "RedisPool") -> ComponentHealth:
    """Check Redis connectivity."""
    return await _probe("redis", pool.ping, pool.status, "Cache available")


def aggregate_status(components: List[ComponentHealth]) -> HealthStatus:
    """Worst component status wins; no components means healthy."""
    statuses = [c.status for c in components]
    if HealthStatus.UNHEALTHY in statuses:
        return HealthStatus.UNHEALTHY
    if HealthStatus.DEGRADED in statuses:
        return HealthStatus.DEGRADED
    return HealthStatus.HEALTHY


async def run_health_check(
    database: Optional["DatabasePool"] = None,
    cache: Optional["RedisPool"] = None,
) -> HealthReport:
    """Run the probes for whichever handles are given and aggregate into a report."""
    report = HealthReport(timestamp=datetime.now(timezone.utc).isoformat())

    if database is not None:
        report.components.append(await check_database(database))
    if cache is not None:
        report.components.append(await check_redis(cache))

    report.status = aggregate_status(report.components)
    return report
