"""
Logging and metrics for Spam Detective.

Production logs are one JSON object per line; dev logs are plain text.
Both carry the current batch and account id when an analysis is running.
"""

import json
import logging
import sys
import threading
import time
import traceback
from contextvars import ContextVar
from datetime import datetime, timezone
from functools import wraps
from typing import Any, Dict, List, Optional

from spamdetective.config import settings


# Set by the batch workers so every log line can be traced to an account
batch_id_var: ContextVar[Optional[str]] = ContextVar("batch_id", default=None)
account_id_var: ContextVar[Optional[int]] = ContextVar("account_id", default=None)


def _analysis_context() -> Dict[str, Any]:
    context = {}
    if batch_id_var.get():
        context["batch_id"] = batch_id_var.get()
    if account_id_var.get() is not None:
        context["account_id"] = account_id_var.get()
    return context


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": "spamdetective",
            "environment": settings.environment,
        }
        entry.update(_analysis_context())

        data = getattr(record, "extra_data", None)
        if data:
            entry["data"] = data

        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(entry, default=str)


class ContextFormatter(logging.Formatter):
    """Human-readable lines with batch/account context and structured fields appended."""

    def __init__(self):
        super().__init__("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        fields = {**_analysis_context(), **(getattr(record, "extra_data", None) or {})}
        if fields:
            line += " | " + " ".join(f"{key}={value}" for key, value in fields.items())
        return line


class StructuredLogger:
    """
    Logger that takes keyword fields instead of a preformatted message.

        logger = StructuredLogger("spamdetective.analyzer")
        logger.info("Batch complete", suspicious=12, failed=0)
    """

    def __init__(self, name: str):
        self._logger = logging.getLogger(name)

    def _log(self, level: int, message: str, exc_info: bool = False, **fields):
        if not self._logger.isEnabledFor(level):
            return
        self._logger.log(level, message, exc_info=exc_info, extra={"extra_data": fields})

    def debug(self, message: str, **fields):
        self._log(logging.DEBUG, message, **fields)

    def info(self, message: str, **fields):
        self._log(logging.INFO, message, **fields)

    def warning(self, message: str, **fields):
        self._log(logging.WARNING, message, **fields)

    def error(self, message: str, exc_info: bool = False, **fields):
        self._log(logging.ERROR, message, exc_info=exc_info, **fields)


def setup_logging(level: str = "INFO", json_format: bool = True):
    root_logger = logging.getLogger()
    root_logger.setLevel(level.upper())
    root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if json_format else ContextFormatter())
    root_logger.addHandler(handler)

    # Per-request noise from the HTTP and database layers
    logging.getLogger("urllib3").setLevel(logging.WARNING)
    logging.getLogger("requests").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.access").setLevel(logging.INFO)


def init_logging():
    """JSON at INFO in production, plain text at DEBUG everywhere else."""
    if settings.is_production:
        setup_logging("INFO", json_format=True)
    else:
        setup_logging("DEBUG", json_format=False)


# ============== METRICS ==============


class MetricsCollector:
    """
    In-process counters and timings.

    Counter names used by the engine:
        analysis.total, analysis.failed, analysis.cache_hits,
        analysis.risk.<tier>, external.<provider>.errors, external.skipped
    """

    MAX_SAMPLES = 1000

    def __init__(self):
        self._counters: Dict[str, int] = {}
        self._timings: Dict[str, List[float]] = {}
        self._lock = threading.Lock()
        self._started = time.time()

    def increment(self, name: str, value: int = 1):
        with self._lock:
            self._counters[name] = self._counters.get(name, 0) + value

    def counter(self, name: str) -> int:
        with self._lock:
            return self._counters.get(name, 0)

    def timing(self, name: str, seconds: float):
        with self._lock:
            samples = self._timings.setdefault(name, [])
            samples.append(seconds)
            del samples[:-self.MAX_SAMPLES]

    @staticmethod
    def _summarize(samples: List[float]) -> Dict[str, Any]:
        ordered = sorted(samples)
        return {
            "count": len(ordered),
            "avg_ms": round(sum(ordered) / len(ordered) * 1000, 2),
            "max_ms": round(ordered[-1] * 1000, 2),
            "p50_ms": round(ordered[len(ordered) // 2] * 1000, 2),
        }

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "uptime_seconds": round(time.time() - self._started, 1),
                "counters": dict(self._counters),
                "timings": {name: self._summarize(s) for name, s in self._timings.items() if s},
            }

    def reset(self):
        with self._lock:
            self._counters.clear()
            self._timings.clear()


metrics = MetricsCollector()


def log_execution_time(logger_name: str = "spamdetective"):
    """Log how long the wrapped call took and record it as a timing."""
    def decorator(func):
        logger = StructuredLogger(logger_name)

        @wraps(func)
        def wrapper(*args, **kwargs):
            start = time.time()
            try:
                return func(*args, **kwargs)
            except Exception as e:
                logger.error(f"{func.__name__} failed", error=str(e), exc_info=True)
                raise
            finally:
                elapsed = time.time() - start
                metrics.timing(f"call.{func.__name__}", elapsed)
                logger.debug(f"{func.__name__} finished", duration_ms=round(elapsed * 1000, 2))

        return wrapper

    return decorator
