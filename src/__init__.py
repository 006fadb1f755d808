"""
Webapp support layer - structured logging, request context and global error handling
"""

__version__ = "1.0.0"

from .observability.handler import init_global_error_handler
from .observability.logging import Logger, LogLevel, create_logger, logger
from .web_server import AppServer

__all__ = [
    "AppServer",
    "Logger",
    "LogLevel",
    "create_logger",
    "init_global_error_handler",
    "logger",
]
