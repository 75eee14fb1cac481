"""
Log channels for Portfolio Sync. Each channel gets its own rotating file;
the error channel additionally receives every ERROR record from the root.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict


class LogChannel(str, Enum):
    APPLICATION = "application"
    TRADING = "trading"      # Kite sessions, retries, holdings/positions/margins sync
    DATABASE = "database"
    AUDIT = "audit"          # Session creation and credential changes
    ERROR = "error"

    @property
    def filename(self) -> str:
        return f"{self.value}.log"


@dataclass(frozen=True)
class ChannelConfig:
    channel: LogChannel
    level: str = "INFO"
    max_bytes: str = "50MB"
    backup_count: int = 5

    def get_file_path(self, logs_dir: str) -> Path:
        return Path(logs_dir) / self.channel.filename


CHANNEL_CONFIGS: Dict[LogChannel, ChannelConfig] = {
    config.channel: config
    for config in (
        ChannelConfig(LogChannel.APPLICATION, max_bytes="100MB", backup_count=10),
        ChannelConfig(LogChannel.TRADING, backup_count=20),
        ChannelConfig(LogChannel.DATABASE, level="WARNING"),
        ChannelConfig(LogChannel.AUDIT, max_bytes="100MB", backup_count=50),
        ChannelConfig(LogChannel.ERROR, level="ERROR", backup_count=20),
    )
}

_COMPONENT_CHANNELS = {
    "auth": LogChannel.TRADING,
    "session_manager": LogChannel.TRADING,
    "broker_sync": LogChannel.TRADING,
    "database": LogChannel.DATABASE,
    "audit": LogChannel.AUDIT,
}


def get_channel_for_component(component: str) -> LogChannel:
    """Map a component name to its channel; unknown components log to application."""
    return _COMPONENT_CHANNELS.get(component, LogChannel.APPLICATION)


def get_channel_config(channel: LogChannel) -> ChannelConfig:
    return CHANNEL_CONFIGS[channel]


def create_log_directory_structure(logs_dir: str) -> None:
    Path(logs_dir).mkdir(parents=True, exist_ok=True)
