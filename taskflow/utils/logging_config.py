"""
Enhanced logging configuration with colored output and better formatting.
"""

import logging
import sys
from typing import Optional, Union


class ColoredFormatter(logging.Formatter):
    """Custom formatter to add colors to log levels."""

    # ANSI color codes
    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[34m',       # Blue
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[35m',   # Magenta
        'RESET': '\033[0m'
    }

    MODULE_LABELS = {
        '__main__': '🚀 MAIN',
        'main': '🚀 CLI',
        'task_lifecycle_manager': '🔄 LIFECYCLE',
        'task_store': '🗄️  STORE',
        'sql_task_store': '🗄️  SQL',
        'object_storage': '🪣 STORAGE',
        'attachment_service': '📎 FILES',
        'task_operations': '📋 TASKS',
        'project_operations': '📁 PROJECTS',
        'retry_decorator': '🔁 RETRY',
        'config': '⚙️  CONFIG',
    }

    def format(self, record):
        # Work on a copy so other handlers see the raw record
        record = logging.makeLogRecord(record.__dict__)
        record.name = self._get_module_display_name(record.name)

        if record.levelname in self.COLORS:
            record.levelname = f"{self.COLORS[record.levelname]}{record.levelname}{self.COLORS['RESET']}"

        return super().format(record)

    def _get_module_display_name(self, name: str) -> str:
        """Convert module names to more descriptive display names."""
        short_name = name.split('.')[-1]
        if short_name in self.MODULE_LABELS:
            return self.MODULE_LABELS[short_name]
        return f"📦 {short_name.upper()}"


def setup_logging(
    level: Union[int, str] = logging.INFO,
    format_string: Optional[str] = None,
    use_colors: bool = True
) -> None:
    """
    Set up enhanced logging with colors and better formatting.

    Args:
        level: Logging level (e.g., logging.INFO or "DEBUG")
        format_string: Custom format string (optional)
        use_colors: Whether to use colored output
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
        if not isinstance(level, int):
            level = logging.INFO

    if format_string is None:
        format_string = '%(asctime)s | %(name)s | %(levelname)s | %(message)s'

    if use_colors:
        formatter = ColoredFormatter(format_string, datefmt='%H:%M:%S')
    else:
        formatter = logging.Formatter(format_string, datefmt='%H:%M:%S')

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Remove existing handlers to avoid duplicates
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    # Suppress noisy third-party loggers
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("boto3").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the specified name.

    Args:
        name: Module name (usually __name__)
    """
    return logging.getLogger(name)


def log_section_header(logger: logging.Logger, title: str, char: str = "=") -> None:
    border = char * 60
    logger.info(border)
    logger.info(f"{title.center(60)}")
    logger.info(border)


def log_key_value(logger: logging.Logger, key: str, value: str, level: int = logging.INFO) -> None:
    logger.log(level, f"{key}: {value}")
