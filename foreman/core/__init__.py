"""Core module - Orchestrator, configuration, and errors."""

from foreman.core.config import Settings, get_settings
from foreman.core.errors import ForemanError
from foreman.core.orchestrator import (
    ExecutionReport,
    Foreman,
    WorkOrderOutcome,
    WorkOrderStatus,
)

__all__ = [
    "ExecutionReport",
    "Foreman",
    "ForemanError",
    "Settings",
    "WorkOrderOutcome",
    "WorkOrderStatus",
    "get_settings",
]
