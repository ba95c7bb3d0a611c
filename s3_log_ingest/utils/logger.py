"""
Logging configuration for the log ingestor

Modules log through ``logging.getLogger(__name__)``; this module only
configures where those records go.
"""

import logging
import sys
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

# Third-party loggers that flood the output at DEBUG
NOISY_LOGGERS = ('botocore', 'boto3', 'urllib3', 's3transfer')


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """
    Send log records to stderr so that the JSON lines sink can own stdout

    Args:
        level: Log level name; missing or unknown names fall back to INFO

    Returns:
        The package logger
    """
    numeric_level = logging.getLevelName((level or 'INFO').upper())
    if not isinstance(numeric_level, int):
        numeric_level = logging.INFO

    logging.basicConfig(level=numeric_level, format=LOG_FORMAT, stream=sys.stderr)

    package_logger = logging.getLogger('s3_log_ingest')
    package_logger.setLevel(numeric_level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    return package_logger
