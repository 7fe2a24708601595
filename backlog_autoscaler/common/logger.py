import os
import logging
import json

# LogRecord attributes that are not user supplied "extra" fields
_RESERVED_ATTRIBUTES = frozenset({
    'args', 'asctime', 'created', 'exc_info', 'exc_text', 'filename',
    'funcName', 'id', 'levelname', 'levelno', 'lineno', 'module',
    'msecs', 'message', 'msg', 'name', 'pathname', 'process',
    'processName', 'relativeCreated', 'stack_info', 'thread', 'threadName',
    'taskName'
})


def setup_logging(level=None):
    """
    Set up logging for the controller loops.

    Plain text with the thread name is used locally so the alarm loop and the
    instance loop can be told apart. Inside AWS (Lambda, ECS) every record is
    rendered as JSON for CloudWatch Logs Insights.

    Args:
        level: Optional log level override (default: uses LOG_LEVEL env var or INFO)
    """
    if level is None:
        level = os.environ.get('LOG_LEVEL', 'INFO').upper()

    numeric_level = getattr(logging, level, logging.INFO)

    logging.basicConfig(
        level=numeric_level,
        format='%(asctime)s [%(levelname)s] %(threadName)s %(name)s - %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    )

    if os.environ.get('AWS_EXECUTION_ENV') is not None:
        root_logger = logging.getLogger()
        root_logger.setLevel(numeric_level)
        for handler in root_logger.handlers:
            handler.setFormatter(JsonFormatter())

    # Silence noisy loggers
    for noisy in ('boto3', 'botocore', 'urllib3', 'redis'):
        logging.getLogger(noisy).setLevel(logging.WARNING)

    logging.debug("Logging initialized")


class JsonFormatter(logging.Formatter):
    """
    Format logs as JSON, carrying any ``extra`` fields such as alarm_state or target.
    """

    def format(self, record):
        log_record = {
            'timestamp': self.formatTime(record, self.datefmt),
            'level': record.levelname,
            'name': record.name,
            'thread': record.threadName,
            'message': record.getMessage(),
            'file': record.pathname,
            'line': record.lineno,
            'function': record.funcName
        }

        if record.exc_info:
            log_record['exception'] = self.formatException(record.exc_info)

        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRIBUTES:
                log_record[key] = value

        return json.dumps(log_record, default=str)
