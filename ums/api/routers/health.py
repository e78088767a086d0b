"""Health probes for the enrollment service.

``/health`` and ``/health/live`` never touch a dependency. ``/health/ready``
checks the database and the Celery broker; ``/health/detailed`` adds host
disk and memory usage. A probe answers 503 when any check is unhealthy or
critical.
"""

from datetime import datetime
from typing import Any, Callable, Dict

import psutil
import redis
from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.orm import Session

from ums.api.deps import get_db
from ums.core.config import get_settings

router = APIRouter(tags=["health"])
settings = get_settings()

VERSION = "0.1.0"

# (warning, critical) percent used
RESOURCE_LIMITS = {
    "disk": (85, 95),
    "memory": (85, 95),
}

FAILING = ("unhealthy", "critical")

GIB = 1024 ** 3


def _now() -> str:
    return datetime.utcnow().isoformat()


def check_database(db: Session) -> Dict[str, Any]:
    """Run a trivial query through the request session."""
    try:
        db.execute(text("SELECT 1")).scalar()
    except Exception as exc:
        return {"status": "unhealthy", "error": str(exc)}
    return {"status": "healthy", "dialect": db.get_bind().dialect.name}


def check_redis() -> Dict[str, Any]:
    """Ping the Redis broker the enrollment workers consume from."""
    try:
        with redis.from_url(settings.celery_broker, socket_connect_timeout=2, socket_timeout=2) as client:
            client.ping()
            version = client.info("server").get("redis_version", "unknown")
    except Exception as exc:
        return {"status": "unhealthy", "error": str(exc)}
    return {"status": "healthy", "version": version}


def _usage(kind: str, measure: Callable[[], Any], **sizes: str) -> Dict[str, Any]:
    warning, critical = RESOURCE_LIMITS[kind]
    try:
        sample = measure()
    except Exception as exc:
        return {"status": "unknown", "error": str(exc)}

    if sample.percent >= critical:
        level = "critical"
    elif sample.percent >= warning:
        level = "warning"
    else:
        level = "healthy"

    result = {"status": level, "percent_used": sample.percent}
    for key, attr in sizes.items():
        result[key] = round(getattr(sample, attr) / GIB, 2)
    return result


def check_disk() -> Dict[str, Any]:
    return _usage("disk", lambda: psutil.disk_usage("/"), total_gb="total", free_gb="free")


def check_memory() -> Dict[str, Any]:
    return _usage("memory", psutil.virtual_memory, total_gb="total", available_gb="available")


def _report(checks: Dict[str, Dict[str, Any]], passing_status: str) -> JSONResponse:
    failed = [name for name, check in checks.items() if check["status"] in FAILING]
    body: Dict[str, Any] = {
        "status": "not_ready" if failed else passing_status,
        "checks": checks,
        "timestamp": _now(),
    }
    if failed:
        body["failed"] = failed
    code = status.HTTP_503_SERVICE_UNAVAILABLE if failed else status.HTTP_200_OK
    return JSONResponse(status_code=code, content=body)


@router.get("/health")
async def health_check():
    """Process is up."""
    return {"status": "healthy", "version": VERSION, "timestamp": _now()}


@router.get("/health/live")
async def liveness_probe():
    return {"status": "alive", "timestamp": _now()}


@router.get("/health/ready")
async def readiness_probe(db: Session = Depends(get_db)):
    """Database and broker reachable."""
    return _report({"database": check_database(db), "redis": check_redis()}, "ready")


@router.get("/health/detailed")
async def detailed_health_check(db: Session = Depends(get_db)):
    checks = {
        "database": check_database(db),
        "redis": check_redis(),
        "disk": check_disk(),
        "memory": check_memory(),
    }
    return _report(checks, "healthy")
