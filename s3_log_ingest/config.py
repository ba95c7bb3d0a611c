"""
Pydantic model for log ingestor configuration
"""

import os
import re
import tempfile
from typing import Dict, Optional

from pydantic import BaseModel, Field, field_validator

DEFAULT_CHECKPOINT_PATH = os.path.join(os.path.expanduser('~'), '.s3_log_ingest_checkpoint')
DEFAULT_TEMPORARY_DIRECTORY = os.path.join(tempfile.gettempdir(), 's3_log_ingest')

# Environment variable -> config field
ENVIRONMENT_FIELDS = {
    'SQS_QUEUE': 'queue',
    'AWS_REGION': 'region',
    'S3_ENDPOINT_URL': 's3_endpoint_url',
    'SQS_ENDPOINT_URL': 'sqs_endpoint_url',
    'POLLING_INTERVAL': 'polling_interval',
    'VISIBILITY_TIMEOUT': 'visibility_timeout',
    'WAIT_TIME_SECONDS': 'wait_time_seconds',
    'MAX_BATCH_SIZE': 'max_batch',
    'DELETE_QUEUE_ITEM': 'delete_queue_item',
    'CHECKPOINT_PATH': 'checkpoint_path',
    'BACKUP_TO_BUCKET': 'backup_to_bucket',
    'BACKUP_ADD_PREFIX': 'backup_add_prefix',
    'BACKUP_TO_DIR': 'backup_to_dir',
    'DELETE_SOURCE': 'delete_source',
    'TEMPORARY_DIRECTORY': 'temporary_directory',
    'EXCLUDE_PATTERN': 'exclude_pattern',
    'SKIP_OLDER_THAN_CHECKPOINT': 'skip_older_than_checkpoint',
    'LOG_LEVEL': 'log_level',
}


def validate_optional_name(value: Optional[str]) -> Optional[str]:
    """Shared validator turning blank strings into None"""
    if value is not None and not value.strip():
        return None
    return value


class IngestConfig(BaseModel):
    """Configuration for the SQS-driven S3 log ingestor"""
    queue: str = Field(..., min_length=1, description="SQS queue name or queue URL")
    region: str = Field(default='us-east-1', description="AWS region for SQS and S3 clients")
    s3_endpoint_url: Optional[str] = Field(default=None, description="Custom S3 endpoint (e.g. MinIO)")
    sqs_endpoint_url: Optional[str] = Field(default=None, description="Custom SQS endpoint (e.g. LocalStack)")
    polling_interval: float = Field(default=0, ge=0, description="Seconds to wait after an empty receive")
    visibility_timeout: int = Field(default=3600, ge=0, le=43200, description="SQS visibility timeout for received messages")
    wait_time_seconds: int = Field(default=20, ge=0, le=20, description="SQS long polling wait time")
    max_batch: int = Field(default=10, ge=1, le=10, description="Maximum messages per receive")
    delete_queue_item: bool = Field(default=True, description="Delete messages after all references were dispatched")
    checkpoint_path: str = Field(default=DEFAULT_CHECKPOINT_PATH, description="Path of the checkpoint watermark file")
    backup_to_bucket: Optional[str] = Field(default=None, description="Bucket to back processed objects up to")
    backup_add_prefix: str = Field(default='', description="Prefix prepended to the key of backed up objects")
    backup_to_dir: Optional[str] = Field(default=None, description="Local directory to back processed files up to")
    delete_source: bool = Field(default=False, description="Delete processed objects from the source bucket")
    temporary_directory: str = Field(default=DEFAULT_TEMPORARY_DIRECTORY, description="Local staging directory")
    exclude_pattern: Optional[str] = Field(default=None, description="Regular expression of keys to skip")
    skip_older_than_checkpoint: bool = Field(default=False, description="Skip objects not newer than the checkpoint")
    log_level: str = Field(default='INFO', description="Log level")

    @field_validator('backup_to_bucket', 'backup_to_dir', 's3_endpoint_url', 'sqs_endpoint_url', 'exclude_pattern')
    @classmethod
    def blank_to_none(cls, v):
        return validate_optional_name(v)

    @field_validator('exclude_pattern')
    @classmethod
    def validate_exclude_pattern(cls, v):
        """Validate that the exclusion pattern compiles"""
        if v is not None:
            try:
                re.compile(v)
            except re.error as e:
                raise ValueError(f'exclude_pattern is not a valid regular expression: {e}')
        return v

    @field_validator('log_level')
    @classmethod
    def validate_log_level(cls, v):
        v = v.upper()
        if v not in ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'):
            raise ValueError('log_level must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL')
        return v

    @property
    def queue_is_url(self) -> bool:
        return '://' in self.queue

    @classmethod
    def from_env(cls, environ: Dict[str, str] = None, **overrides) -> 'IngestConfig':
        """
        Build the configuration from environment variables

        Args:
            environ: Mapping to read from (defaults to os.environ)
            overrides: Field values taking precedence over the environment

        Returns:
            Validated configuration

        Raises:
            pydantic.ValidationError: If a value is missing or invalid
        """
        if environ is None:
            environ = os.environ

        values = {}
        for env_name, field_name in ENVIRONMENT_FIELDS.items():
            if env_name in environ:
                values[field_name] = environ[env_name]

        values.update({k: v for k, v in overrides.items() if v is not None})
        return cls(**values)
