# Structured logging with multi-channel support
from typing import Optional

import structlog

from core.config.settings import Settings
from .channels import LogChannel
from .enhanced_logging import (
    configure_enhanced_logging,
    get_enhanced_logger,
    get_channel_logger,
    get_trading_logger_safe,
    get_audit_logger_safe,
    get_error_logger_safe,
    get_database_logger_safe,
)


def configure_logging(settings: Settings) -> None:
    """Configure logging system; repeated calls are ignored."""
    configure_enhanced_logging(settings)


def get_logger(name: str, component: Optional[str] = None) -> structlog.BoundLogger:
    """Get a structured logger instance."""
    return get_enhanced_logger(name, component)


__all__ = [
    "LogChannel",
    "configure_logging",
    "get_logger",
    "get_channel_logger",
    "get_trading_logger_safe",
    "get_audit_logger_safe",
    "get_error_logger_safe",
    "get_database_logger_safe",
]
