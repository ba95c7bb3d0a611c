"""
Exception classes for the ingestion pipeline
"""


class NonRecoverableError(Exception):
    """Exception for errors that should not be retried"""
    pass


class InvalidS3NotificationError(NonRecoverableError):
    """Exception for invalid S3 notifications that cannot be processed"""
    pass


class ObjectNotFoundError(NonRecoverableError):
    """Exception for S3 objects that no longer exist in the source bucket"""
    pass


class LogDecodeError(NonRecoverableError):
    """Exception for log files whose content cannot be decompressed"""
    pass


class ConfigurationError(NonRecoverableError):
    """Exception for startup failures (queue unreachable, directories not creatable)"""
    pass


class TransientIOError(Exception):
    """Exception for queue, download, disk or backup failures that may succeed on retry"""
    pass
