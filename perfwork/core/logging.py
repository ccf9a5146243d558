import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from pythonjsonlogger import jsonlogger
from contextvars import ContextVar

from perfwork.core.config import settings

# Correlation id of the request being served, set by CorrelationIdMiddleware
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """One JSON object per line, tagged with the service, environment and request id."""

    def add_fields(self, log_record: Dict[str, Any], record: logging.LogRecord, message_dict: Dict[str, Any]) -> None:
        super(CustomJsonFormatter, self).add_fields(log_record, record, message_dict)

        req_id = request_id_var.get()
        if req_id:
            log_record["request_id"] = req_id

        log_record.setdefault("service", settings.app_name)
        log_record.setdefault("environment", settings.environment)
        if not log_record.get("timestamp"):
            log_record["timestamp"] = datetime.now(timezone.utc).isoformat()
        log_record["level"] = record.levelname

def setup_logging(level: Optional[str] = None):
    logger = logging.getLogger()
    # Re-importing the app (tests, reloaders) must not stack handlers
    if any(isinstance(h.formatter, CustomJsonFormatter) for h in logger.handlers):
        return
    log_handler = logging.StreamHandler()
    log_handler.setFormatter(CustomJsonFormatter("%(timestamp) %(level) %(name) %(message)"))
    logger.addHandler(log_handler)
    logger.setLevel((level or settings.log_level).upper())

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
