"""Logging configuration for the ReSet Toolkit.

This module sets up structured logging with file rotation and a
separate operations log for backup, restore and gated reset runs.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# Log format constants
DEFAULT_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DETAILED_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(filename)s:%(lineno)d | %(message)s"
SIMPLE_FORMAT = "%(levelname)s: %(message)s"

# Default settings
DEFAULT_LOG_LEVEL = logging.INFO
DEFAULT_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
DEFAULT_BACKUP_COUNT = 5

ROOT_LOGGER_NAME = "resettk"

# Policy LogLevel values -> logging levels
POLICY_LOG_LEVELS = {
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "verbose": logging.DEBUG,
    "debug": logging.DEBUG,
}


def level_from_policy(value: str | None, default: int = DEFAULT_LOG_LEVEL) -> int:
    """Map a policy LogLevel string onto a logging level."""
    if not value:
        return default
    return POLICY_LOG_LEVELS.get(value.strip().lower(), default)


class ReSetLogger:
    """Centralized logger management for the toolkit.

    Manages log files for different concerns:
        - main.log: General application logging
        - operations.log: Backup, restore and reset operation outcomes
    """

    _instance: Optional["ReSetLogger"] = None
    _initialized: bool = False

    def __new__(cls) -> "ReSetLogger":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __init__(self) -> None:
        if self._initialized:
            return

        self.logs_dir: Path | None = None
        self.log_level: int = DEFAULT_LOG_LEVEL
        self.loggers: dict[str, logging.Logger] = {}
        self._initialized = True

    def setup(
        self,
        logs_dir: Path,
        log_level: int = DEFAULT_LOG_LEVEL,
        console_output: bool = True,
    ) -> None:
        """Initialize logging with specified configuration.

        Args:
            logs_dir: Directory for log files.
            log_level: Logging level (e.g., logging.INFO).
            console_output: Whether to also log to console.
        """
        self.logs_dir = logs_dir
        self.log_level = log_level

        logs_dir.mkdir(parents=True, exist_ok=True)

        root_logger = logging.getLogger(ROOT_LOGGER_NAME)
        root_logger.setLevel(log_level)

        # Repeated setup (tests, config reload) must not stack handlers
        for handler in list(root_logger.handlers):
            handler.close()
        root_logger.handlers.clear()

        main_handler = self._create_file_handler(
            logs_dir / "main.log",
            DETAILED_FORMAT,
        )
        root_logger.addHandler(main_handler)

        if console_output:
            console_handler = logging.StreamHandler(sys.stderr)
            console_handler.setLevel(log_level)
            console_handler.setFormatter(logging.Formatter(SIMPLE_FORMAT))
            root_logger.addHandler(console_handler)

        self.loggers["main"] = root_logger

        self._setup_operations_logger(logs_dir)

    def _create_file_handler(
        self,
        log_path: Path,
        format_string: str,
        max_bytes: int = DEFAULT_MAX_BYTES,
        backup_count: int = DEFAULT_BACKUP_COUNT,
    ) -> RotatingFileHandler:
        """Create a rotating file handler.

        Args:
            log_path: Path to the log file.
            format_string: Log format string.
            max_bytes: Maximum file size before rotation.
            backup_count: Number of backup files to keep.

        Returns:
            Configured RotatingFileHandler.
        """
        handler = RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        handler.setLevel(self.log_level)
        handler.setFormatter(logging.Formatter(format_string))
        return handler

    def _setup_operations_logger(self, logs_dir: Path) -> None:
        """Setup the operations logger."""
        logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.operations")
        logger.setLevel(self.log_level)
        logger.propagate = False

        for handler in list(logger.handlers):
            handler.close()
        logger.handlers.clear()

        handler = self._create_file_handler(
            logs_dir / "operations.log",
            "%(asctime)s | %(levelname)-8s | OPERATION | %(message)s",
        )
        logger.addHandler(handler)
        self.loggers["operations"] = logger

    def set_file_level(self, level: int) -> None:
        """Change the level of file logging, leaving the console as is."""
        for logger in self.loggers.values():
            logger.setLevel(min(level, self._console_level(logger)))
            for handler in logger.handlers:
                if isinstance(handler, RotatingFileHandler):
                    handler.setLevel(level)

    @staticmethod
    def _console_level(logger: logging.Logger) -> int:
        levels = [
            h.level
            for h in logger.handlers
            if isinstance(h, logging.StreamHandler) and not isinstance(h, RotatingFileHandler)
        ]
        return min(levels) if levels else logging.CRITICAL

    def get_logger(self, name: str = "main") -> logging.Logger:
        """Get a logger by name.

        Args:
            name: Logger name ("main", "operations" or a child name).

        Returns:
            The requested logger, or a child of the root logger.
        """
        if name in self.loggers:
            return self.loggers[name]

        return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


_logger_manager = ReSetLogger()


def setup_logging(
    logs_dir: Path,
    log_level: int = DEFAULT_LOG_LEVEL,
    console_output: bool = True,
) -> None:
    """Initialize the logging system.

    This should be called once at application startup.

    Args:
        logs_dir: Directory for log files.
        log_level: Logging level (default: INFO).
        console_output: Whether to also log to console (default: True).
    """
    _logger_manager.setup(logs_dir, log_level, console_output)


def set_file_log_level(level: int) -> None:
    """Change the file logging level, e.g. to the level deployed by policy."""
    _logger_manager.set_file_level(level)


def get_logger(name: str = "main") -> logging.Logger:
    """Get a logger instance.

    Args:
        name: Logger name. Options:
            - "main": General application logging
            - "operations": Operation outcome logging

    Returns:
        Logger instance.
    """
    return _logger_manager.get_logger(name)


def log_operation(
    operation: str,
    target: str,
    success: bool,
    details: str = "",
) -> None:
    """Log an operation outcome.

    Args:
        operation: Operation kind (BACKUP, RESTORE, PRUNE, RESET, ...).
        target: Backup name or operation name affected.
        success: Whether the operation succeeded.
        details: Additional details.
    """
    logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.operations")
    status = "SUCCESS" if success else "FAILED"
    message = f"{operation} | {target} | {status}"
    if details:
        message += f" | {details}"

    if success:
        logger.info(message)
    else:
        logger.error(message)
