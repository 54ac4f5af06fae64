"""Logger module for the xi login server."""

from xi_login.logger.file_writer import FileWriter
from xi_login.logger.logger import Logger, get_logger, init_logger
from xi_login.logger.types import Category, Field, Level, LogEntry

__all__ = [
    "Logger",
    "get_logger",
    "init_logger",
    "FileWriter",
    "Category",
    "Level",
    "LogEntry",
    "Field",
]
