"""
Health checks for liveness and readiness probes.
"""
from datetime import datetime, timezone
from typing import Dict, Any
import asyncio
import time

import psutil
from sqlalchemy.exc import SQLAlchemyError

from .logging import get_logger
from .store import EventStore

logger = get_logger()


class HealthChecker:
    """
    Health checker for the ingest service.

    Provides:
    - Liveness checks (is the process running?)
    - Store checks (does the database answer within the deadline?)
    - Readiness checks (can the service accept writes?)
    """

    def __init__(
        self,
        store: EventStore,
        service_name: str = "telemetry-ingest",
        version: str = "0.1.0",
        timeout: float = 2.0,
    ):
        self.store = store
        self.service_name = service_name
        self.version = version
        self.timeout = timeout

    def _timestamp(self) -> str:
        return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")

    def liveness(self) -> Dict[str, Any]:
        return {
            "status": "ok",
            "service": self.service_name,
            "version": self.version,
            "timestamp": self._timestamp(),
        }

    async def check_store(self) -> Dict[str, Any]:
        """
        Ping the store, bounded by the health deadline.

        Returns:
            dict: {"status": "ok", "latency_ms": ...} or {"status": "error", "error": ...}
        """
        if not self.store.ready:
            return {"status": "error", "error": "store is not initialized"}
        start = time.time()
        try:
            await self.store.ping(timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning("store_health_check_timeout", timeout=self.timeout)
            return {"status": "error", "error": f"ping timed out after {self.timeout}s"}
        except (SQLAlchemyError, OSError) as e:
            logger.warning("store_health_check_failed", error=str(e))
            return {"status": "error", "error": str(e)}
        return {"status": "ok", "latency_ms": round((time.time() - start) * 1000, 2)}

    async def readiness(self) -> Dict[str, Any]:
        """
        Readiness check.

        Checks:
        - Store connectivity
        - Disk space on the database volume
        - Memory availability
        """
        checks = {
            "store": await self.check_store(),
            "disk_space": self._check_disk_space(),
            "memory": self._check_memory(),
        }
        ready = all(check["status"] != "error" for check in checks.values())

        return {
            "status": "ready" if ready else "not_ready",
            "service": self.service_name,
            "version": self.version,
            "timestamp": self._timestamp(),
            "checks": checks,
        }

    def _check_disk_space(self, threshold_gb: float = 1.0) -> Dict[str, Any]:
        """
        Check available disk space where the database lives.

        Args:
            threshold_gb: Minimum available disk space in GB (default: 1.0)
        """
        path = self.store.db_path.parent
        try:
            disk = psutil.disk_usage(str(path if path.exists() else "/"))
        except OSError as e:
            logger.warning("disk_health_check_failed", error=str(e))
            return {"status": "error", "error": str(e)}

        available_gb = disk.free / (1024**3)
        if available_gb < threshold_gb:
            status = "error"
        elif available_gb < threshold_gb * 2:
            status = "warning"
        else:
            status = "ok"

        return {
            "status": status,
            "available_gb": round(available_gb, 2),
            "total_gb": round(disk.total / (1024**3), 2),
            "used_percent": disk.percent,
        }

    def _check_memory(self, threshold_mb: float = 50.0) -> Dict[str, Any]:
        """
        Check available memory.

        Args:
            threshold_mb: Minimum available memory in MB (default: 50.0)
        """
        memory = psutil.virtual_memory()
        available_mb = memory.available / (1024**2)

        if available_mb < threshold_mb:
            status = "error"
        elif available_mb < threshold_mb * 2:
            status = "warning"
        else:
            status = "ok"

        return {
            "status": status,
            "available_mb": round(available_mb, 2),
            "total_mb": round(memory.total / (1024**2), 2),
            "used_percent": memory.percent,
        }
