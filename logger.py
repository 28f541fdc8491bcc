"""Structured logging infrastructure with verbosity levels and progress tracking."""

import copy
import logging
import logging.handlers
import time
from collections import Counter
from typing import Any, Dict, Optional

ROOT_LOGGER_NAME = 'feishu_md_exporter'
DEFAULT_LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DEFAULT_DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
ALLOWED_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
REDACTED = "***REDACTED***"

# Third-party loggers that would otherwise echo every HTTP request
NOISY_LOGGERS = ('urllib3', 'requests')


def resolve_log_level(verbosity: int = 0, level: Optional[str] = None) -> int:
    """
    Map a verbosity count or explicit level name to a logging level.

    Raises:
        ValueError: If level is not a known level name
    """
    if level:
        level_upper = level.upper()
        if level_upper not in ALLOWED_LEVELS:
            raise ValueError(
                f"Invalid log level '{level}'. Must be one of: {sorted(ALLOWED_LEVELS)}"
            )
        return getattr(logging, level_upper)

    if verbosity >= 2:
        return logging.DEBUG
    if verbosity >= 1:
        return logging.INFO
    return logging.WARNING


def setup_logging(
    verbosity: int = 0,
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    date_format: Optional[str] = None,
    level: Optional[str] = None
) -> logging.Logger:
    """
    Set up structured logging with configurable verbosity levels.

    Args:
        verbosity: Verbosity level (0=WARNING, 1=INFO, 2+=DEBUG)
        log_file: Optional path to a rotating log file
        log_format: Optional custom log format string
        date_format: Optional custom date format string
        level: Optional explicit log level string, wins over verbosity

    Returns:
        The configured project logger
    """
    log_level = resolve_log_level(verbosity, level)
    log_format = log_format or DEFAULT_LOG_FORMAT
    date_format = date_format or DEFAULT_DATE_FORMAT

    logging.basicConfig(level=logging.WARNING, format=log_format, datefmt=date_format)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(log_level)
    logger.handlers.clear()
    logger.propagate = False

    console_handler = logging.StreamHandler()
    console_handler.setLevel(log_level)
    console_handler.setFormatter(_console_formatter(log_format, date_format))
    logger.addHandler(console_handler)

    if log_file:
        try:
            file_handler = logging.handlers.RotatingFileHandler(
                log_file,
                maxBytes=10 * 1024 * 1024,  # 10MB
                backupCount=5,
                encoding='utf-8'
            )
            file_handler.setLevel(log_level)
            file_handler.setFormatter(logging.Formatter(fmt=log_format, datefmt=date_format))
            logger.addHandler(file_handler)
            logger.info(f"Logging to file: {log_file} (level {logging.getLevelName(log_level)})")
        except OSError as e:
            logger.warning(f"Failed to set up file logging: {e}")
    else:
        logger.debug(f"Console logging only. Level: {logging.getLevelName(log_level)}")

    return logger


def _console_formatter(log_format: str, date_format: str) -> logging.Formatter:
    try:
        import colorlog
    except ImportError:
        return logging.Formatter(fmt=log_format, datefmt=date_format)

    return colorlog.ColoredFormatter(
        fmt='%(log_color)s' + log_format,
        datefmt=date_format,
        log_colors={
            'DEBUG': 'cyan',
            'INFO': 'green',
            'WARNING': 'yellow',
            'ERROR': 'red',
            'CRITICAL': 'red,bg_white',
        }
    )


class ProgressTracker:
    """Context manager that tallies export statuses and logs a summary on exit."""

    SUMMARY_LABELS = (('success', 'Written'), ('skip', 'Skipped'), ('error', 'Failed'))

    def __init__(self, total_items: int, item_type: str = "documents", log_every: int = 10):
        self.total_items = total_items
        self.item_type = item_type
        self.log_every = max(1, log_every)
        self.counts: Counter = Counter()
        self.started_at: Optional[float] = None
        self.logger = logging.getLogger(f"{ROOT_LOGGER_NAME}.progress")

    @property
    def processed(self) -> int:
        return sum(self.counts.values())

    def __enter__(self) -> 'ProgressTracker':
        self.started_at = time.monotonic()
        self.logger.info(f"Processing {self.total_items} {self.item_type}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self.started_at is None:
            return

        stats = self.get_stats()
        failed = stats['failed']
        if failed and failed == self.total_items:
            emit = self.logger.error
        elif failed:
            emit = self.logger.warning
        else:
            emit = self.logger.info

        parts = ', '.join(f"{label} {self.counts[status]}" for status, label in self.SUMMARY_LABELS)
        emit(f"{self.item_type.capitalize()}: {stats['processed']}/{self.total_items} processed "
             f"({parts}) in {stats['elapsed']}")

    def increment(self, status: str = 'success') -> None:
        """Record one item; anything other than success or skip counts as a failure."""
        self.counts[status if status in ('success', 'skip') else 'error'] += 1

        if status == 'error' or self.processed % self.log_every == 0:
            self.logger.info(f"{self.processed}/{self.total_items} {self.item_type} done, last: {status}")

    def get_stats(self) -> Dict[str, Any]:
        seconds = time.monotonic() - self.started_at if self.started_at is not None else 0.0
        return {
            'total': self.total_items,
            'processed': self.processed,
            'written': self.counts['success'],
            'skipped': self.counts['skip'],
            'failed': self.counts['error'],
            'elapsed': format_elapsed(seconds),
        }


def format_elapsed(seconds: float) -> str:
    """Render a duration as 5.4s, 2m 5s or 1h 2m 5s."""
    if seconds < 60:
        return f"{seconds:.1f}s"

    minutes, secs = divmod(int(seconds), 60)
    hours, minutes = divmod(minutes, 60)
    if not hours:
        return f"{minutes}m {secs}s"
    return f"{hours}h {minutes}m {secs}s"


def log_section(title: str, width: int = 60) -> None:
    """Log a banner line around title."""
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.info("=" * width)
    logger.info(f"  {title.upper()}")
    logger.info("=" * width)


# (section, key, label) rows shown by log_config
CONFIG_SUMMARY_ROWS = (
    ('feishu', 'base_url', 'Feishu API base URL'),
    ('feishu', 'app_id', 'App id'),
    ('feishu', 'app_secret', 'App secret'),
    ('feishu', 'verify_ssl', 'Verify SSL'),
    ('discovery', 'url', 'Root URL'),
    ('discovery', 'max_depth', 'Max depth'),
    ('discovery', 'max_docs', 'Max docs'),
    ('discovery', 'skip_discover', 'Skip discover'),
    ('export', 'output_directory', 'Output directory'),
    ('export', 'manifest', 'Manifest'),
    ('advanced', 'page_size', 'Page size'),
    ('advanced', 'request_timeout', 'Request timeout (s)'),
    ('advanced', 'max_retries', 'Max retries'),
    ('advanced', 'rate_limit', 'Request spacing (s)'),
)


def log_config(config: Dict[str, Any]) -> None:
    """
    Log the effective configuration with secrets masked.

    Args:
        config: Resolved configuration dictionary
    """
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    sanitized = sanitize_config(config)

    log_section("Configuration")
    for section, key, label in CONFIG_SUMMARY_ROWS:
        value = (sanitized.get(section) or {}).get(key)
        logger.info(f"{label}: {'Not Set' if value in (None, '') else value}")


def sanitize_config(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Create a copy of configuration with credentials masked.

    Args:
        config: Configuration dictionary

    Returns:
        Sanitized configuration copy
    """
    sensitive_fields = ('secret', 'password', 'token', 'authorization')

    def mask_sensitive(data: Any) -> Any:
        if isinstance(data, dict):
            return {
                key: REDACTED if _is_sensitive(key, sensitive_fields) and isinstance(value, str) and value
                else mask_sensitive(value)
                for key, value in data.items()
            }
        if isinstance(data, list):
            return [mask_sensitive(item) for item in data]
        return data

    return mask_sensitive(copy.deepcopy(config))


def _is_sensitive(key: Any, sensitive_fields) -> bool:
    return isinstance(key, str) and any(field in key.lower() for field in sensitive_fields)


__all__ = [
    'setup_logging',
    'resolve_log_level',
    'ProgressTracker',
    'format_elapsed',
    'log_section',
    'log_config',
    'sanitize_config',
]
