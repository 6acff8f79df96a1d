"""
Structured logging configuration.

Called once from create_app(). Supports text (human-readable) and JSON formats
via LOG_FORMAT env var. LOG_LEVEL defaults to INFO.

Automation code attaches context through `extra=`: `job` (scheduler job name)
and `lead_id`. Both formats render them when present.
"""
import json
import logging
import os
import sys
from datetime import datetime, timezone

# Optional record attributes rendered by both formatters
CONTEXT_FIELDS = ('job', 'lead_id')


def _context(record):
    return {name: getattr(record, name) for name in CONTEXT_FIELDS
            if getattr(record, name, None) is not None}


class JSONFormatter(logging.Formatter):
    """Single-line JSON log formatter for production log aggregators."""

    def format(self, record):
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        entry.update(_context(record))
        if record.exc_info and record.exc_info[0] is not None:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class TextFormatter(logging.Formatter):
    """Human-readable format; context fields are appended as key=value."""

    def __init__(self):
        super().__init__('[%(asctime)s] %(levelname)s %(name)s — %(message)s', datefmt='%Y-%m-%d %H:%M:%S')

    def format(self, record):
        line = super().format(record)
        context = _context(record)
        if not context:
            return line
        suffix = ' '.join(f'{k}={v}' for k, v in context.items())
        head, sep, tail = line.partition('\n')
        return f'{head} [{suffix}]{sep}{tail}'


# Third-party loggers that are noisy at INFO
_NOISY_LOGGERS = [
    'urllib3',
    'python_http_client',
    'sendgrid',
    'sqlalchemy.engine',
    'werkzeug',
]


def configure_logging(app=None):
    """
    Set up root logger with format/level from env vars.

    Environment variables:
        LOG_LEVEL  — Python log level name (default: INFO)
        LOG_FORMAT — "text" (default) or "json"
    """
    level_name = os.getenv('LOG_LEVEL', 'INFO').upper()
    level = getattr(logging, level_name, logging.INFO)

    log_format = os.getenv('LOG_FORMAT', 'text').lower()

    root = logging.getLogger()
    root.setLevel(level)

    # Remove any existing handlers to avoid duplicates on re-init
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(JSONFormatter() if log_format == 'json' else TextFormatter())

    root.addHandler(handler)

    # Quiet noisy third-party loggers
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
