"""Logging configuration for the sync runtime."""
import logging
import os
import sys

LOG_FORMAT = '%(asctime)s %(levelname)-8s %(name)-22s %(message)s'
# Loggers that are chatty at INFO during uploads and thumbnailing.
QUIET_LOGGERS = ('urllib3', 'PIL')


class ColorFormatter(logging.Formatter):
    """Colours the level name; the record itself is left untouched."""

    COLORS = {
        logging.DEBUG: '\033[36m',
        logging.INFO: '\033[32m',
        logging.WARNING: '\033[33m',
        logging.ERROR: '\033[31m',
        logging.CRITICAL: '\033[35m',
    }

    def format(self, record):
        levelname = record.levelname
        color = self.COLORS.get(record.levelno)
        if color:
            record.levelname = f"{color}{levelname}\033[0m"
        try:
            return super().format(record)
        finally:
            record.levelname = levelname


def setup_logging(level=None):
    """Send log records to stdout.

    The level comes from the argument, else LOG_LEVEL, else INFO. Colours are
    used on a terminal unless LOG_COLORS is set to a false value.
    """
    level_name = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()
    log_level = getattr(logging, level_name, logging.INFO)

    use_colors = sys.stdout.isatty() and os.getenv('LOG_COLORS', 'true').lower() in ('true', '1', 'yes')
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(ColorFormatter(LOG_FORMAT) if use_colors else logging.Formatter(LOG_FORMAT))

    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers[:] = [handler]

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    root.info(f"Sync logging initialized (level: {level_name})")
    return root
