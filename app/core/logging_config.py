import logging
import logging.config
import os
from datetime import datetime
from app.core.config import settings
from app.core.request_context import request_id_var

MAX_LOG_BYTES = 10 * 1024 * 1024

class RequestIdFilter(logging.Filter):
    """Stamps every record with the id of the request being served"""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get()
        return True

def _rotating_file(path: str, level: str, formatter: str, backup_count: int = 10) -> dict:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": level,
        "formatter": formatter,
        "filters": ["request_id"],
        "filename": path,
        "maxBytes": MAX_LOG_BYTES,
        "backupCount": backup_count,
        "encoding": "utf-8",
    }

def build_logging_config(log_dir: str, level: str) -> dict:
    """
    dictConfig for the service.

    Application records go to the console and a daily app file, errors are
    duplicated into their own file, access lines and the audit trail of
    authorization changes each get a dedicated file.
    """
    current_date = datetime.now().strftime("%Y-%m-%d")

    def path(kind: str) -> str:
        return os.path.join(log_dir, kind, f"{kind}-{current_date}.log")

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "request_id": {"()": RequestIdFilter},
        },
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "detailed": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - [%(request_id)s] "
                          "%(module)s.%(funcName)s:%(lineno)d - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "access": {
                "format": "%(asctime)s - [%(request_id)s] %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "default",
                "filters": ["request_id"],
                "stream": "ext://sys.stdout",
            },
            "app_file": _rotating_file(path("app"), level, "detailed"),
            "error_file": _rotating_file(path("error"), "ERROR", "detailed"),
            "access_file": _rotating_file(path("access"), "INFO", "access"),
            # Authorization changes are kept longer than the rest
            "audit_file": _rotating_file(path("audit"), "INFO", "default", backup_count=30),
        },
        "loggers": {
            "": {
                "level": level,
                "handlers": ["console", "app_file", "error_file"],
            },
            "audit": {
                "level": "INFO",
                "handlers": ["audit_file", "console"],
                "propagate": False,
            },
            "access": {
                "level": "INFO",
                "handlers": ["access_file", "console"],
                "propagate": False,
            },
            "uvicorn.access": {
                "level": "WARNING",
                "handlers": ["access_file"],
                "propagate": False,
            },
            "sqlalchemy.engine": {
                "level": "WARNING",
                "handlers": ["app_file"],
                "propagate": False,
            },
        },
    }

def setup_logging():
    """Setup application logging configuration"""
    log_dir = settings.LOG_DIR
    for kind in ("app", "access", "error", "audit"):
        os.makedirs(os.path.join(log_dir, kind), exist_ok=True)

    logging.config.dictConfig(build_logging_config(log_dir, settings.LOG_LEVEL))

    logger = logging.getLogger(__name__)
    logger.info(f"📝 Logging configured: level {settings.LOG_LEVEL}, directory ./{log_dir}/")
