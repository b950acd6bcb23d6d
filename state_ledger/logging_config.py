"""
Structured Logging Configuration Module

Provides JSON-formatted structured logging for all ledger operations.
"""

import contextvars
import logging
import json
import uuid
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any, Dict, Optional


# Invocation context for the handler call currently running
_current_invocation = contextvars.ContextVar('current_invocation', default=None)


def get_current_invocation() -> Optional[Dict[str, Any]]:
    """Get the function name and correlation ID of the running invocation"""
    return _current_invocation.get()


@contextmanager
def invocation_context(function_name: str, correlation_id: Optional[str] = None):
    """
    Tag every ledger log record emitted inside the block with the invoked
    function and a correlation ID (generated when not given).
    """
    invocation = {
        "function": function_name,
        "correlation_id": correlation_id or str(uuid.uuid4()),
    }
    token = _current_invocation.set(invocation)
    try:
        yield invocation["correlation_id"]
    finally:
        _current_invocation.reset(token)


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured logging"""
    
    def format(self, record):
        invocation = get_current_invocation() or {}
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": getattr(record, 'function', invocation.get("function")),
            "correlation_id": getattr(record, 'correlation_id', invocation.get("correlation_id")),
            "action": getattr(record, 'action', None),
            "resource": getattr(record, 'resource', None),
            "extra": getattr(record, 'extra', None)
        }
        
        # Remove None values
        log_entry = {k: v for k, v in log_entry.items() if v is not None}
        
        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)
            
        return json.dumps(log_entry, default=str)


def setup_logging(level: str = "INFO", fmt: str = "json",
                  logger_name: str = "state_ledger") -> logging.Logger:
    """
    Setup logging for the ledger.
    
    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        fmt: "json" for structured output, anything else for plain text
        logger_name: Name of the logger
        
    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(logger_name)
    
    # Remove existing handlers to avoid duplicates
    for handler in logger.handlers[:]:
        logger.removeHandler(handler)
    
    handler = logging.StreamHandler()
    if fmt == "json":
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
        ))
    
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.propagate = False
    
    return logger


def get_logger(name: str = "state_ledger") -> logging.Logger:
    """Get logger instance"""
    return logging.getLogger(name)


def log_action(logger: logging.Logger, level: str, message: str,
               action: Optional[str] = None, resource: Optional[str] = None,
               correlation_id: Optional[str] = None,
               extra: Optional[dict] = None):
    """
    Log an action with structured data.
    
    Args:
        logger: Logger instance
        level: Log level (info, warning, error, etc.)
        message: Log message
        action: Action being performed
        resource: Resource being acted upon
        correlation_id: Correlation ID for request tracing, defaults to
            the running invocation's
        extra: Additional structured data
    """
    levelno = getattr(logging, level.upper())
    if not logger.isEnabledFor(levelno):
        return
    
    record = logger.makeRecord(
        logger.name, levelno, __name__, 0, message, (), None
    )
    
    if action:
        record.action = action
    if resource:
        record.resource = resource
    invocation = get_current_invocation()
    if invocation:
        record.function = invocation["function"]
        correlation_id = correlation_id or invocation["correlation_id"]
    if correlation_id:
        record.correlation_id = correlation_id
    if extra:
        record.extra = extra
        
    logger.handle(record)
