"""Configuration management"""

from .config_loader import ConfigLoader
from .logging_config import configure_logging, current_message_id
from .receiver_config import AppConfig, ReceiverConfig, StorageConfig

__all__ = [
    "ConfigLoader",
    "AppConfig",
    "ReceiverConfig",
    "StorageConfig",
    "configure_logging",
    "current_message_id",
]
