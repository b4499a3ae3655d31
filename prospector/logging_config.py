"""
Structured logging configuration.

Called once by the CLI and the RQ worker entrypoint. Supports text and JSON
output via LOG_FORMAT; LOG_LEVEL defaults to INFO. Pipeline code passes
prospect_id / attempt / pass_name through `extra=` and the JSON formatter
lifts them into the log entry.
"""
import json
import logging
import os
import sys
from datetime import datetime, timezone


# Fields pipeline loggers attach via extra={...}
_CONTEXT_FIELDS = ('prospect_id', 'attempt', 'pass_name')


class JSONFormatter(logging.Formatter):
    """Single-line JSON log formatter for production log aggregators."""

    def format(self, record):
        entry = {
            'timestamp': datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }
        for field in _CONTEXT_FIELDS:
            value = getattr(record, field, None)
            if value is not None:
                entry[field] = value
        if record.exc_info and record.exc_info[0] is not None:
            entry['exception'] = self.formatException(record.exc_info)
        return json.dumps(entry)


# Third-party loggers that are noisy at INFO
_NOISY_LOGGERS = [
    'urllib3',
    'openai',
    'httpcore',
    'httpx',
    'rq.worker',
]


def configure_logging(level=None, log_format=None):
    """
    Set up root logger.

    Explicit arguments win over the LOG_LEVEL / LOG_FORMAT environment
    variables.
    """
    level_name = (level or os.getenv('LOG_LEVEL', 'INFO')).upper()
    resolved = getattr(logging, level_name, None)
    if not isinstance(resolved, int):
        resolved = logging.INFO

    fmt = (log_format or os.getenv('LOG_FORMAT', 'text')).lower()

    root = logging.getLogger()
    root.setLevel(resolved)
    root.handlers.clear()

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(resolved)

    if fmt == 'json':
        handler.setFormatter(JSONFormatter())
    else:
        handler.setFormatter(logging.Formatter(
            '[%(asctime)s] %(levelname)s %(name)s — %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S',
        ))

    root.addHandler(handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
