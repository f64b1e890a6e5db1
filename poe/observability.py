"""
Observability Module - Logging, Metrics, and Health

Provides:
- Structured JSON logging with request and caller IDs
- Request/response logging middleware
- Metrics collection (dispatch latency, operation counts, rejections)
- Health check utilities

Configuration:
- POE_LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
- POE_LOG_FORMAT: json, text (default: json in production)
- POE_PRODUCTION: Enable production mode

Usage:
    from poe.observability import get_logger

    logger = get_logger(__name__)
    logger.info("Claim created", owner=caller, block=now)
"""

import json
import logging
import os
import sys
import time
import uuid
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from threading import Lock
from typing import Any, Dict, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

request_id_var: ContextVar[str] = ContextVar("request_id", default="")
caller_id_var: ContextVar[str] = ContextVar("caller_id", default="")


# ============================================================
# CONFIGURATION
# ============================================================

def _is_production() -> bool:
    return os.environ.get("POE_PRODUCTION", "").lower() in ("1", "true", "yes")


def _get_log_level() -> int:
    level_str = os.environ.get("POE_LOG_LEVEL", "INFO").upper()
    levels = {
        "DEBUG": logging.DEBUG,
        "INFO": logging.INFO,
        "WARNING": logging.WARNING,
        "ERROR": logging.ERROR,
        "CRITICAL": logging.CRITICAL,
    }
    return levels.get(level_str, logging.INFO)


def _use_json_logging() -> bool:
    format_str = os.environ.get("POE_LOG_FORMAT", "").lower()
    if format_str == "json":
        return True
    if format_str == "text":
        return False
    return _is_production()


# ============================================================
# STRUCTURED LOGGING
# ============================================================

_STANDARD_RECORD_FIELDS = frozenset((
    "name", "msg", "args", "created", "levelname", "levelno",
    "pathname", "filename", "module", "lineno", "funcName",
    "exc_info", "exc_text", "stack_info", "message", "msecs",
    "relativeCreated", "thread", "threadName", "processName",
    "process", "taskName",
))


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.

    Output format:
    {
        "timestamp": "2024-01-15T10:30:00.000000+00:00",
        "level": "INFO",
        "logger": "poe.core.runtime",
        "message": "create_claim dispatched",
        "request_id": "abc-123",
        "caller_id": "base64-public-key",
        ...extra fields...
    }
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        request_id = request_id_var.get()
        if request_id:
            log_data["request_id"] = request_id

        caller_id = caller_id_var.get()
        if caller_id:
            log_data["caller_id"] = caller_id

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key in _STANDARD_RECORD_FIELDS or key.startswith("_"):
                continue
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = str(value)

        return json.dumps(log_data)


class TextFormatter(logging.Formatter):
    """Human-readable formatter for development."""

    def format(self, record: logging.LogRecord) -> str:
        prefix = ""
        request_id = request_id_var.get()
        if request_id:
            prefix = f"[{request_id[:8]}] "

        timestamp = datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")
        msg = f"{timestamp} {record.levelname:8} {prefix}{record.name}: {record.getMessage()}"

        if record.exc_info:
            msg += "\n" + self.formatException(record.exc_info)

        return msg


class ContextLogger(logging.LoggerAdapter):
    """
    Logger adapter that turns keyword arguments into extra fields.

    Usage:
        logger = get_logger(__name__)
        logger.info("Claim revoked", owner=caller)
    """

    def process(self, msg: str, kwargs: Dict[str, Any]) -> tuple:
        extra = kwargs.get("extra", {})

        for key in list(kwargs.keys()):
            if key not in ("exc_info", "stack_info", "stacklevel", "extra"):
                extra[key] = kwargs.pop(key)

        kwargs["extra"] = extra
        return msg, kwargs


def get_logger(name: str) -> ContextLogger:
    """
    Get a structured logger for the given name.

    Args:
        name: Logger name (typically __name__)
    """
    return ContextLogger(logging.getLogger(name), {})


def setup_logging() -> None:
    """
    Configure logging for the application.

    Call this once at application startup.
    """
    root_logger = logging.getLogger()
    root_logger.setLevel(_get_log_level())

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(_get_log_level())

    if _use_json_logging():
        handler.setFormatter(StructuredFormatter())
    else:
        handler.setFormatter(TextFormatter())

    root_logger.addHandler(handler)

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ============================================================
# REQUEST CONTEXT MIDDLEWARE
# ============================================================

class RequestContextMiddleware(BaseHTTPMiddleware):
    """
    Middleware that sets up request context for logging.

    - Generates a request ID (or honours X-Request-ID)
    - Logs request/response with timing
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint
    ) -> Response:
        request_id = request.headers.get("X-Request-ID", str(uuid.uuid4())[:8])
        request_id_var.set(request_id)

        logger = get_logger("poe.request")
        start_time = time.perf_counter()

        logger.debug(
            f"{request.method} {request.url.path}",
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)

            duration_ms = (time.perf_counter() - start_time) * 1000
            log_level = logging.INFO if response.status_code < 400 else logging.WARNING

            logger.log(
                log_level,
                f"{request.method} {request.url.path} -> {response.status_code}",
                method=request.method,
                path=request.url.path,
                status_code=response.status_code,
                duration_ms=round(duration_ms, 2),
            )

            response.headers["X-Request-ID"] = request_id
            return response

        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.exception(
                f"{request.method} {request.url.path} -> 500",
                method=request.method,
                path=request.url.path,
                status_code=500,
                duration_ms=round(duration_ms, 2),
                error=str(e),
            )
            raise

        finally:
            request_id_var.set("")
            caller_id_var.set("")


# ============================================================
# METRICS
# ============================================================

_MAX_SAMPLES = 1000


@dataclass
class MetricsCollector:
    """
    Simple in-memory metrics collector.

    For production, replace with Prometheus, StatsD, or similar.
    """

    # Counters
    claims_created: int = 0
    claims_revoked: int = 0
    claims_transferred: int = 0
    rejections: Dict[str, int] = field(default_factory=dict)

    # Histogram (simplified as a bounded list)
    dispatch_latencies_ms: list = field(default_factory=list)

    _lock: Lock = field(default_factory=Lock, repr=False, compare=False)

    def record_dispatch(self, call: str, latency_ms: float) -> None:
        """Record a successful registry operation."""
        with self._lock:
            if call == "create_claim":
                self.claims_created += 1
            elif call == "revoke_claim":
                self.claims_revoked += 1
            elif call == "transfer_claim":
                self.claims_transferred += 1
            self.dispatch_latencies_ms.append(latency_ms)
            if len(self.dispatch_latencies_ms) > _MAX_SAMPLES:
                self.dispatch_latencies_ms = self.dispatch_latencies_ms[-_MAX_SAMPLES:]

    def record_rejection(self, code: str) -> None:
        """Record a rejected operation by error code."""
        with self._lock:
            self.rejections[code] = self.rejections.get(code, 0) + 1

    def reset(self) -> None:
        with self._lock:
            self.claims_created = 0
            self.claims_revoked = 0
            self.claims_transferred = 0
            self.rejections = {}
            self.dispatch_latencies_ms = []

    def get_summary(self) -> Dict[str, Any]:
        """Get metrics summary."""
        def percentile(data: list, p: float) -> Optional[float]:
            if not data:
                return None
            sorted_data = sorted(data)
            idx = int(len(sorted_data) * p)
            return sorted_data[min(idx, len(sorted_data) - 1)]

        with self._lock:
            samples = list(self.dispatch_latencies_ms)
            return {
                "claims_created": self.claims_created,
                "claims_revoked": self.claims_revoked,
                "claims_transferred": self.claims_transferred,
                "rejections": dict(self.rejections),
                "dispatch_latency_p50_ms": percentile(samples, 0.5),
                "dispatch_latency_p95_ms": percentile(samples, 0.95),
                "dispatch_latency_p99_ms": percentile(samples, 0.99),
            }


_metrics = MetricsCollector()


def get_metrics() -> MetricsCollector:
    """Get the global metrics collector."""
    return _metrics


# ============================================================
# HEALTH CHECKS
# ============================================================

@dataclass
class HealthStatus:
    """Health check result."""
    healthy: bool
    checks: Dict[str, Dict[str, Any]]
    duration_ms: float


def check_health(runtime=None, store=None) -> HealthStatus:
    """
    Run all health checks.

    Args:
        runtime: Runtime instance (journal integrity)
        store: ProofStore instance (reachability)
    """
    start = time.perf_counter()
    checks = {}
    all_healthy = True

    checks["liveness"] = {"status": "healthy"}

    if store is not None:
        try:
            checks["proof_store"] = {
                "status": "healthy",
                "claim_count": store.count(),
                "store_type": type(store).__name__,
            }
        except Exception as e:
            checks["proof_store"] = {"status": "unhealthy", "error": str(e)}
            all_healthy = False

    if runtime is not None and len(runtime.journal) > 0:
        is_valid = runtime.journal.verify_chain_integrity()
        checks["journal_integrity"] = {
            "status": "healthy" if is_valid else "unhealthy",
            "valid": is_valid,
            "event_count": len(runtime.journal),
        }
        if not is_valid:
            all_healthy = False

    duration_ms = (time.perf_counter() - start) * 1000

    return HealthStatus(
        healthy=all_healthy,
        checks=checks,
        duration_ms=round(duration_ms, 2),
    )
