"""
Health Check Service

Reports the health of MongoDB (required) and Redis (optional) together
with basic system metrics.
"""

import os
import time
import psutil
from datetime import datetime
from typing import Dict, Any, List
from opentelemetry import trace
from pymongo.errors import PyMongoError

from services.mongodb import MongoDBService
from services.redis import RedisService

tracer = trace.get_tracer(__name__)


def _now() -> str:
    return datetime.utcnow().isoformat() + "Z"


class HealthCheckService:
    """Service for system health monitoring."""

    def __init__(self, mongodb_service: MongoDBService, redis_service: RedisService,
                 service_version: str = "1.0.0"):
        self.mongodb_service = mongodb_service
        self.redis_service = redis_service
        self.service_version = service_version

    def get_comprehensive_health(self) -> Dict[str, Any]:
        """Get health status including dependencies and metrics."""
        with tracer.start_as_current_span("health.comprehensive_check") as span:
            start_time = time.time()

            mongodb_health = self._check_mongodb_health()
            redis_health = self._check_redis_health()

            overall_status = self._determine_overall_status(mongodb_health["status"], [redis_health["status"]])
            response_time_ms = round((time.time() - start_time) * 1000, 2)

            span.set_attributes({
                "health.overall_status": overall_status,
                "health.response_time_ms": response_time_ms,
                "health.mongodb_status": mongodb_health["status"],
                "health.redis_status": redis_health["status"]
            })

            return {
                "status": overall_status,
                "service": "sewa-directory-api",
                "version": self.service_version,
                "environment": os.getenv('ENVIRONMENT', 'development'),
                "timestamp": _now(),
                "response_time_ms": response_time_ms,
                "dependencies": {
                    "mongodb": mongodb_health,
                    "redis": redis_health
                },
                "system_metrics": self._get_system_metrics()
            }

    def _check_mongodb_health(self) -> Dict[str, Any]:
        """Check MongoDB connectivity."""
        with tracer.start_as_current_span("health.mongodb_check") as span:
            start_time = time.time()
            try:
                self.mongodb_service.client.admin.command('ping')
                server_info = self.mongodb_service.client.server_info()
            except PyMongoError as e:
                span.set_attribute("mongodb.status", "unhealthy")
                span.record_exception(e)
                return {"status": "unhealthy", "error": str(e), "last_check": _now()}

            response_time = round((time.time() - start_time) * 1000, 2)
            span.set_attributes({"mongodb.status": "healthy", "mongodb.response_time_ms": response_time})

            return {
                "status": "healthy",
                "response_time_ms": response_time,
                "version": server_info.get("version", "unknown"),
                "database": self.mongodb_service.database_name,
                "last_check": _now()
            }

    def _check_redis_health(self) -> Dict[str, Any]:
        """Check Redis connectivity; an unconfigured Redis is reported as disabled."""
        with tracer.start_as_current_span("health.redis_check") as span:
            if not self.redis_service.is_available():
                span.set_attribute("redis.status", "disabled")
                return {"status": "disabled", "last_check": _now()}

            start_time = time.time()
            if not self.redis_service.ping():
                span.set_attribute("redis.status", "unhealthy")
                return {"status": "unhealthy", "error": "Redis ping failed", "last_check": _now()}

            response_time = round((time.time() - start_time) * 1000, 2)
            redis_info = self.redis_service.get_info()
            span.set_attributes({"redis.status": "healthy", "redis.response_time_ms": response_time})

            return {
                "status": "healthy",
                "response_time_ms": response_time,
                "version": redis_info.get("redis_version", "unknown"),
                "memory_usage_mb": round(redis_info.get("used_memory", 0) / 1024 / 1024, 2),
                "connected_clients": redis_info.get("connected_clients", 0),
                "last_check": _now()
            }

    def _get_system_metrics(self) -> Dict[str, Any]:
        """Get basic system performance metrics."""
        try:
            memory = psutil.virtual_memory()
            disk = psutil.disk_usage('/')
        except (OSError, psutil.Error) as e:
            return {"error": f"Failed to collect system metrics: {str(e)}"}

        return {
            "cpu_percent": psutil.cpu_percent(interval=None),
            "memory": {
                "used_mb": round(memory.used / 1024 / 1024, 2),
                "total_mb": round(memory.total / 1024 / 1024, 2),
                "percent": memory.percent
            },
            "disk": {
                "used_gb": round(disk.used / 1024 / 1024 / 1024, 2),
                "total_gb": round(disk.total / 1024 / 1024 / 1024, 2),
                "percent": round((disk.used / disk.total) * 100, 2)
            },
            "load_average": list(os.getloadavg()) if hasattr(os, 'getloadavg') else None
        }

    def _determine_overall_status(self, required_status: str, optional_statuses: List[str]) -> str:
        """Unhealthy without MongoDB; degraded when an optional dependency is down."""
        if required_status != "healthy":
            return "unhealthy"
        if any(status == "unhealthy" for status in optional_statuses):
            return "degraded"
        return "healthy"
