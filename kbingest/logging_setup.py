"""Logging setup and configuration for kbingest"""

import logging
import logging.handlers
import sys
import time
from typing import Optional
from kbingest.config import KBConfig, LoggingConfig


class ColoredFormatter(logging.Formatter):
    """Colored formatter for console output"""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'        # Reset
    }

    def format(self, record):
        # Format a copy so file handlers sharing the record keep plain level names
        record = logging.makeLogRecord(record.__dict__)
        if record.levelname in self.COLORS:
            record.levelname = (
                f"{self.COLORS[record.levelname]}{record.levelname}{self.COLORS['RESET']}"
            )

        return super().format(record)


def setup_logging(config: Optional[KBConfig] = None) -> logging.Logger:
    """
    Setup logging configuration based on kbingest config

    Args:
        config: kbingest configuration object. If None, loads default config.

    Returns:
        Configured logger instance
    """
    if config is None:
        config = KBConfig.load()

    logging_config = config.logging

    logger = logging.getLogger('kbingest')
    logger.setLevel(getattr(logging, logging_config.level.upper()))

    logger.handlers.clear()

    if logging_config.file_enabled:
        _setup_file_logging(logger, config, logging_config)

    if logging_config.console_enabled:
        _setup_console_logging(logger, logging_config)

    logger.propagate = False

    return logger


def _setup_file_logging(logger: logging.Logger, config: KBConfig, logging_config: LoggingConfig):
    """Setup file logging with rotation"""
    logs_dir = config.logs_path
    logs_dir.mkdir(parents=True, exist_ok=True)

    file_handler = logging.handlers.RotatingFileHandler(
        logs_dir / "kbingest.log",
        maxBytes=logging_config.max_file_size,
        backupCount=logging_config.backup_count,
        encoding='utf-8'
    )
    file_handler.setFormatter(logging.Formatter(logging_config.format))
    file_handler.setLevel(getattr(logging, logging_config.level.upper()))

    logger.addHandler(file_handler)

    # Separate error log
    error_handler = logging.handlers.RotatingFileHandler(
        logs_dir / "kbingest_errors.log",
        maxBytes=logging_config.max_file_size,
        backupCount=logging_config.backup_count,
        encoding='utf-8'
    )
    error_handler.setFormatter(logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(filename)s:%(lineno)d - %(message)s"
    ))
    error_handler.setLevel(logging.ERROR)

    logger.addHandler(error_handler)


def _setup_console_logging(logger: logging.Logger, logging_config: LoggingConfig):
    """Setup console logging with colors"""
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(ColoredFormatter("%(levelname)s - %(message)s"))
    console_handler.setLevel(getattr(logging, logging_config.level.upper()))

    logger.addHandler(console_handler)


def get_logger(name: str = 'kbingest') -> logging.Logger:
    """Get a logger instance with the specified name"""
    return logging.getLogger(name)


def log_performance(operation: str, logger: Optional[logging.Logger] = None):
    """Context manager to log performance of operations"""
    class PerformanceLogger:
        def __init__(self, operation: str, logger: logging.Logger):
            self.operation = operation
            self.logger = logger
            self.start_time = None
            self.elapsed = 0.0

        def __enter__(self):
            self.start_time = time.time()
            self.logger.debug(f"Starting {self.operation}")
            return self

        def __exit__(self, exc_type, exc_val, exc_tb):
            self.elapsed = time.time() - self.start_time
            if exc_type is None:
                self.logger.info(f"Completed {self.operation} in {self.elapsed:.3f}s")
            else:
                self.logger.error(f"Failed {self.operation} after {self.elapsed:.3f}s")

    if logger is None:
        logger = get_logger()

    return PerformanceLogger(operation, logger)


def setup_cli_logging(verbose: bool = False, config: Optional[KBConfig] = None) -> logging.Logger:
    """Setup logging specifically for CLI usage"""
    if config is None:
        try:
            config = KBConfig.load()
        except Exception:
            logging.basicConfig(
                level=logging.DEBUG if verbose else logging.INFO,
                format="%(levelname)s - %(message)s"
            )
            return logging.getLogger('kbingest')

    if verbose:
        config.logging.level = "DEBUG"
        config.logging.console_enabled = True

    return setup_logging(config)
