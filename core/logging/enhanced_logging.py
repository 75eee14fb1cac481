# structlog over stdlib logging, with per-channel files and secret redaction
import logging
import logging.handlers
import re
import sys
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

import structlog

from core.config.settings import Settings
from .channels import (
    LogChannel,
    get_channel_for_component,
    get_channel_config,
    create_log_directory_structure,
)

REDACTED = "[REDACTED]"

_SIZE_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([KMG]?)B?\s*$", re.IGNORECASE)
_SIZE_UNITS = {"": 1, "K": 1024, "M": 1024 ** 2, "G": 1024 ** 3}

# Applied to records that did not come through structlog (SQLAlchemy, kiteconnect)
_FOREIGN_PRE_CHAIN = [
    structlog.stdlib.add_log_level,
    structlog.stdlib.add_logger_name,
    structlog.processors.TimeStamper(fmt="iso"),
]

_manager: Optional["EnhancedLoggerManager"] = None


def parse_size(size: str) -> int:
    """'50MB' -> bytes. Plain integers are taken as bytes."""
    match = _SIZE_PATTERN.match(size)
    if not match:
        raise ValueError(f"Unrecognised size: {size!r}")
    number, unit = match.groups()
    return int(float(number) * _SIZE_UNITS[unit.upper()])


def redact_event(event_dict: Dict[str, Any], keys_to_redact: Iterable[str]) -> Dict[str, Any]:
    """Replace values of sensitive keys, at any depth, with a marker."""
    keys = {k.lower() for k in keys_to_redact}

    def scrub(value):
        if isinstance(value, dict):
            return {
                k: REDACTED if isinstance(k, str) and k.lower() in keys else scrub(v)
                for k, v in value.items()
            }
        if isinstance(value, list):
            return [scrub(v) for v in value]
        return value

    return scrub(event_dict)


class ChannelFilter(logging.Filter):
    """Pass only records whose structured `channel` equals the handler's channel."""

    def __init__(self, channel: LogChannel):
        super().__init__()
        self.channel = channel.value

    def filter(self, record: logging.LogRecord) -> bool:
        channel = getattr(record, "channel", None)
        if channel is None and isinstance(record.msg, dict):
            channel = record.msg.get("channel")
        return channel is not None and str(channel) == self.channel


def _renderer(as_json: bool, console: bool = False):
    if as_json:
        return structlog.processors.JSONRenderer()
    if console:
        return structlog.dev.ConsoleRenderer()
    return structlog.processors.KeyValueRenderer(key_order=["timestamp", "level", "event"])


def _formatter(renderer) -> logging.Formatter:
    return structlog.stdlib.ProcessorFormatter(processor=renderer, foreign_pre_chain=_FOREIGN_PRE_CHAIN)


def _rotating_handler(path: Path, max_size: str, backups: int, level: int, renderer) -> logging.Handler:
    handler = logging.handlers.RotatingFileHandler(
        filename=path,
        maxBytes=parse_size(max_size),
        backupCount=backups,
        encoding="utf-8",
    )
    handler.setLevel(level)
    handler.setFormatter(_formatter(renderer))
    return handler


class EnhancedLoggerManager:
    """Owns the process-wide handler set. Built once by `configure_enhanced_logging`."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.config = settings.logging
        self.level = getattr(logging, self.config.level.upper())
        self.channel_handlers: Dict[LogChannel, logging.Handler] = {}
        self._root = logging.getLogger()

        self._root.setLevel(self.level)
        if self.config.console_enabled:
            self._add_console_handler()
        if self.config.file_enabled:
            create_log_directory_structure(settings.logs_dir)
            self._add_main_file_handler()
            if self.config.multi_channel_enabled:
                self._add_channel_handlers()

        # kiteconnect logs every HTTP request at DEBUG
        logging.getLogger("kiteconnect").setLevel(logging.WARNING)
        self._configure_structlog()

    def _add_console_handler(self) -> None:
        handler = logging.StreamHandler(sys.stdout)
        handler.setLevel(self.level)
        handler.setFormatter(_formatter(_renderer(self.config.console_json_format, console=True)))
        self._root.addHandler(handler)

    def _add_main_file_handler(self) -> None:
        self._root.addHandler(_rotating_handler(
            Path(self.settings.logs_dir) / "portfolio_sync.log",
            self.config.file_max_size,
            self.config.file_backup_count,
            self.level,
            _renderer(self.config.json_format),
        ))

    def _add_channel_handlers(self) -> None:
        renderer = _renderer(self.config.json_format)
        for channel in LogChannel:
            config = get_channel_config(channel)
            handler = _rotating_handler(
                config.get_file_path(self.settings.logs_dir),
                config.max_bytes,
                config.backup_count,
                getattr(logging, config.level),
                renderer,
            )
            # The error file collects every ERROR record regardless of channel
            if channel is not LogChannel.ERROR:
                handler.addFilter(ChannelFilter(channel))
            self.channel_handlers[channel] = handler
            self._root.addHandler(handler)

        # SQLAlchemy's own loggers go to the database file only
        db_handler = self.channel_handlers[LogChannel.DATABASE]
        for name in ("sqlalchemy.engine", "sqlalchemy.pool"):
            sa_logger = logging.getLogger(name)
            sa_logger.addHandler(db_handler)
            sa_logger.setLevel(logging.WARNING)
            sa_logger.propagate = False

    def _configure_structlog(self) -> None:
        environment = self.settings.environment.value
        service = self.settings.app_name
        redact_keys = self.config.redact_keys

        def add_service_context(logger, method_name, event_dict):
            event_dict.setdefault("env", environment)
            event_dict.setdefault("service", service)
            return event_dict

        def redact_sensitive(logger, method_name, event_dict):
            return redact_event(event_dict, redact_keys)

        structlog.configure(
            processors=[
                add_service_context,
                structlog.stdlib.add_log_level,
                structlog.stdlib.add_logger_name,
                structlog.stdlib.PositionalArgumentsFormatter(),
                structlog.processors.TimeStamper(fmt="iso"),
                structlog.processors.StackInfoRenderer(),
                structlog.processors.format_exc_info,
                redact_sensitive,
                structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
            ],
            logger_factory=structlog.stdlib.LoggerFactory(),
            wrapper_class=structlog.stdlib.BoundLogger,
            cache_logger_on_first_use=True,
        )


def configure_enhanced_logging(settings: Settings) -> None:
    """Configure logging once per process; later calls are ignored."""
    global _manager
    if _manager is None:
        _manager = EnhancedLoggerManager(settings)


def get_enhanced_logger(name: str, component: Optional[str] = None) -> structlog.BoundLogger:
    """Structured logger, bound to the component's channel when one is given."""
    if not component:
        return structlog.get_logger(name)
    # Lazy proxy: binds against the configuration active at first use
    return structlog.get_logger(name, component=component, channel=get_channel_for_component(component).value)


def get_channel_logger(name: str, channel: LogChannel) -> structlog.BoundLogger:
    return structlog.get_logger(name, channel=channel.value)


def _safe_channel_logger(name: str, channel: LogChannel, fallback_component: str) -> structlog.BoundLogger:
    try:
        return get_channel_logger(name, channel)
    except Exception:
        return get_enhanced_logger(name, fallback_component)


def get_trading_logger_safe(name: str) -> structlog.BoundLogger:
    return _safe_channel_logger(name, LogChannel.TRADING, "broker_sync")


def get_audit_logger_safe(name: str) -> structlog.BoundLogger:
    return _safe_channel_logger(name, LogChannel.AUDIT, "audit")


def get_error_logger_safe(name: str) -> structlog.BoundLogger:
    return _safe_channel_logger(name, LogChannel.ERROR, "error")


def get_database_logger_safe(name: str) -> structlog.BoundLogger:
    return _safe_channel_logger(name, LogChannel.DATABASE, "database")
