"""
Logging setup for the Candidate Search API.

Console plus rotating log files, chosen per ENVIRONMENT:

    production   LOG_LEVEL (default INFO), console + files
    development  DEBUG, console + files
    testing      WARNING, console only
"""
import functools
import logging
import logging.config
import os
import time
from datetime import datetime
from pathlib import Path
from typing import Dict, Any

LOGGER_NAMESPACE = "candidate_search"

FORMATS = {
    "simple": "%(levelname)s - %(name)s - %(message)s",
    "detailed": "%(asctime)s | %(levelname)-8s | %(name)-40s | %(funcName)-20s:%(lineno)-4d | %(message)s",
    "json": '{"timestamp": "%(asctime)s", "level": "%(levelname)s", "logger": "%(name)s", "message": "%(message)s"}',
}

ENVIRONMENT_PROFILES = {
    "production": {"level": None, "enable_file": True, "format_style": "detailed"},
    "development": {"level": "DEBUG", "enable_file": True, "format_style": "detailed"},
    "testing": {"level": "WARNING", "enable_file": False, "format_style": "simple"},
}

MAX_LOG_BYTES = 10 * 1024 * 1024
LOG_BACKUPS = 5


def _rotating_handler(filename: Path, level: str) -> Dict[str, Any]:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": level,
        "formatter": "detailed",
        "filename": str(filename),
        "maxBytes": MAX_LOG_BYTES,
        "backupCount": LOG_BACKUPS,
        "encoding": "utf8",
    }


def setup_logging(
    level: str = "INFO",
    log_file: str = None,
    enable_console: bool = True,
    enable_file: bool = True,
    format_style: str = "detailed"
) -> None:
    """
    Apply the logging configuration.

    Args:
        level: root level name
        log_file: main log file; defaults to $LOG_DIR/candidate_search_<date>.log
        enable_console: log to stdout
        enable_file: log to rotating files (main + errors-only)
        format_style: 'simple', 'detailed' or 'json'
    """
    handlers: Dict[str, Any] = {}
    stamp = datetime.now().strftime('%Y%m%d')

    if enable_console:
        handlers["console"] = {
            "class": "logging.StreamHandler",
            "level": level,
            "formatter": "simple" if format_style == "simple" else "detailed",
            "stream": "ext://sys.stdout",
        }

    if enable_file:
        log_dir = Path(os.getenv("LOG_DIR", "logs"))
        log_dir.mkdir(parents=True, exist_ok=True)
        log_file = log_file or log_dir / f"candidate_search_{stamp}.log"
        handlers["file"] = _rotating_handler(log_file, level)
        handlers["error_file"] = _rotating_handler(log_dir / f"candidate_search_errors_{stamp}.log", "ERROR")

    server_handlers = [name for name in ("console", "file") if name in handlers]

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "detailed": {"format": FORMATS.get(format_style, FORMATS["detailed"]), "datefmt": "%Y-%m-%d %H:%M:%S"},
            "simple": {"format": FORMATS["simple"]},
        },
        "handlers": handlers,
        "loggers": {
            "": {"level": level, "handlers": list(handlers), "propagate": False},
            "uvicorn": {"level": "INFO", "handlers": server_handlers, "propagate": False},
            "uvicorn.access": {"level": "INFO", "handlers": server_handlers[:1], "propagate": False},
            # SDK request logs are noisy at DEBUG
            "httpx": {"level": "WARNING"},
            "openai": {"level": "WARNING"},
            "pymongo": {"level": "WARNING"},
        },
    })

    get_logger("logging").info(
        f"Logging configured - Level: {level}, Console: {enable_console}, File: {log_file if enable_file else 'off'}"
    )


def configure_for_environment():
    """Configure logging from ENVIRONMENT and LOG_LEVEL"""
    environment = os.getenv("ENVIRONMENT", "development").lower()
    log_level = os.getenv("LOG_LEVEL", "INFO").upper()
    profile = ENVIRONMENT_PROFILES.get(environment)

    if profile is None:
        setup_logging(level=log_level)
        return
    setup_logging(
        level=profile["level"] or log_level,
        enable_console=True,
        enable_file=profile["enable_file"],
        format_style=profile["format_style"],
    )


def get_logger(name: str) -> logging.Logger:
    """Logger under the candidate_search namespace (module names are not prefixed twice)"""
    if name == LOGGER_NAMESPACE or name.startswith(f"{LOGGER_NAMESPACE}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_NAMESPACE}.{name}")


def log_function_call(func):
    """Debug-log entry and duration of a coroutine function; errors are logged and re-raised."""

    @functools.wraps(func)
    async def wrapper(*args, **kwargs):
        logger = get_logger(func.__module__)
        started = time.perf_counter()
        logger.debug(f"Entering {func.__name__} with args={len(args)}, kwargs={list(kwargs.keys())}")
        try:
            result = await func(*args, **kwargs)
        except Exception as e:
            logger.error(f"Error in {func.__name__} after {time.perf_counter() - started:.3f}s: {e}")
            raise
        logger.debug(f"Completed {func.__name__} in {time.perf_counter() - started:.3f}s")
        return result

    return wrapper


def log_api_call(operation: str):
    """Info-log start, duration and failure of an API endpoint"""
    def decorator(func):

        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            logger = get_logger(f"api.{operation}")
            started = time.perf_counter()
            logger.info(f"API {operation} started - {func.__name__}")
            try:
                result = await func(*args, **kwargs)
            except Exception as e:
                elapsed = time.perf_counter() - started
                logger.error(f"API {operation} failed after {elapsed:.3f}s: {e}", extra={"execution_time": elapsed})
                raise
            elapsed = time.perf_counter() - started
            logger.info(f"API {operation} completed in {elapsed:.3f}s", extra={"execution_time": elapsed})
            return result

        return wrapper
    return decorator


class PerformanceMonitor:
    """Times a block; logs at WARNING when it exceeds `threshold_ms`"""

    def __init__(self, operation_name: str, logger: logging.Logger = None, threshold_ms: float = 1000):
        self.operation_name = operation_name
        self.logger = logger or get_logger("performance")
        self.threshold_ms = threshold_ms
        self.elapsed_ms = None
        self._started = None

    def __enter__(self):
        self._started = time.perf_counter()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.elapsed_ms = (time.perf_counter() - self._started) * 1000

        if exc_type is not None:
            self.logger.debug(f"{self.operation_name} aborted after {self.elapsed_ms:.2f}ms: {exc_val}")
        elif self.elapsed_ms > self.threshold_ms:
            self.logger.warning(f"{self.operation_name} took {self.elapsed_ms:.2f}ms (threshold {self.threshold_ms}ms)")
        else:
            self.logger.debug(f"{self.operation_name} completed in {self.elapsed_ms:.2f}ms")
        return False
