"""
Test utilities for the s3-log-ingest project.

Builders for SQS notification bodies and log file content shared by the
unit and integration tests.
"""

from .notifications import (
    BACKUP_BUCKET,
    CLOUDFRONT_LINES,
    SOURCE_BUCKET,
    gzip_lines,
    plain_lines,
    sns_wrapped_body,
)

__all__ = ['BACKUP_BUCKET', 'CLOUDFRONT_LINES', 'SOURCE_BUCKET', 'gzip_lines', 'plain_lines', 'sns_wrapped_body']
