"""
Logging setup for Reimburse.

setup_logging() installs one stdout handler on the `reimburse` logger
tree: JSON lines when LOG_JSON is on, a coloured single line otherwise.
Engine transitions go through log_with_context(), which attaches
expense ids, steps and actors as fields of the record.
"""

import sys
import json
import logging
from datetime import datetime, timezone


class JSONFormatter(logging.Formatter):
    """One JSON object per record; context fields are merged in at the top level."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        entry.update(getattr(record, 'extra', None) or {})
        if record.exc_info:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class DevelopmentFormatter(logging.Formatter):

    LEVEL_COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
    }
    RESET = '\033[0m'

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, '')
        line = (f'{color}[{datetime.now():%H:%M:%S}] {record.levelname:8}{self.RESET} '
                f'{record.name}: {record.getMessage()}')

        context = getattr(record, 'extra', None)
        if context:
            line += ' | ' + ' '.join(f'{k}={v}' for k, v in context.items())
        if record.exc_info:
            line += '\n' + self.formatException(record.exc_info)
        return line


def setup_logging(level: str = 'INFO', json_format: bool = False,
                  logger_name: str = 'reimburse') -> logging.Logger:
    """Configure the `logger_name` tree and return its root logger.

    Safe to call more than once: existing handlers are replaced.
    """
    logger = logging.getLogger(logger_name)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JSONFormatter() if json_format else DevelopmentFormatter())
    logger.addHandler(handler)
    logger.propagate = False
    return logger


def log_with_context(logger: logging.Logger, level: int, message: str, **context):
    """Log `message` with `context` attached as structured fields.

        log_with_context(logger, logging.INFO, 'Decision recorded',
                         expense_id='e-1', user_id='u-fin', decision='APPROVE')
    """
    if not logger.isEnabledFor(level):
        return
    record = logger.makeRecord(logger.name, level, '', 0, message, (), None)
    record.extra = context
    logger.handle(record)
