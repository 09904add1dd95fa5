"""Telemetry module for structured logging and trace correlation.

This module provides:
- TraceContext for request and run correlation
- Structured logging via structlog
- Semantic event constants
"""

from admin_agent.telemetry.events import (
    MODEL_CALL_COMPLETED,
    MODEL_CALL_ERROR,
    MODEL_CALL_STARTED,
    REPLY_READY,
    REQUEST_RECEIVED,
    ROUTING_DECISION,
    RUN_COMPLETED,
    RUN_RESUMED,
    RUN_SUSPENDED,
    STEP_EXECUTED,
    STEP_FAILED,
)
from admin_agent.telemetry.logger import configure_logging, get_logger
from admin_agent.telemetry.trace import TraceContext

__all__ = [
    # Core exports
    "TraceContext",
    "get_logger",
    "configure_logging",
    # Event constants
    "REQUEST_RECEIVED",
    "REPLY_READY",
    "ROUTING_DECISION",
    "STEP_EXECUTED",
    "STEP_FAILED",
    "RUN_SUSPENDED",
    "RUN_RESUMED",
    "RUN_COMPLETED",
    "MODEL_CALL_STARTED",
    "MODEL_CALL_COMPLETED",
    "MODEL_CALL_ERROR",
]
