"""
Pydantic models for notifications, object references and emitted records
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field


class ObjectReference(BaseModel):
    """Bucket name and object key identifying one remote log object"""
    model_config = ConfigDict(frozen=True)

    bucket: str = Field(..., min_length=1, description="Source S3 bucket name")
    key: str = Field(..., min_length=1, description="Source S3 object key (URL-decoded)")

    @property
    def uri(self) -> str:
        return f"s3://{self.bucket}/{self.key}"


class SourceObject(BaseModel):
    """
    Attributes of the object version that was actually downloaded

    Taken from the GetObject response so that checkpointing and disposition
    refer to the same version whose lines were emitted.
    """
    model_config = ConfigDict(frozen=True)

    last_modified: datetime
    etag: str
    content_type: Optional[str] = None
    content_encoding: Optional[str] = None
    metadata: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_response(cls, response: Dict[str, Any]) -> "SourceObject":
        return cls(
            last_modified=response['LastModified'],
            etag=response['ETag'],
            content_type=response.get('ContentType'),
            content_encoding=response.get('ContentEncoding'),
            metadata=response.get('Metadata', {})
        )


class Notification(BaseModel):
    """One SQS message and the object references it carries"""
    model_config = ConfigDict(frozen=True)

    message_id: str
    receipt_handle: str
    references: Tuple[ObjectReference, ...] = ()


class MetadataState(str, Enum):
    NO_METADATA = "no_metadata"
    HAVE_VERSION = "have_version"
    HAVE_FIELDS = "have_fields"
    HAVE_BOTH = "have_both"


class LineMetadata(BaseModel):
    """
    Declarations seen so far while scanning one file top-to-bottom

    Only the metadata extractor produces new values; instances are immutable
    so each emitted record keeps the snapshot it was built with.
    """
    model_config = ConfigDict(frozen=True)

    version: Optional[str] = None
    fields: Optional[str] = None

    @property
    def state(self) -> MetadataState:
        if self.version is not None and self.fields is not None:
            return MetadataState.HAVE_BOTH
        if self.version is not None:
            return MetadataState.HAVE_VERSION
        if self.fields is not None:
            return MetadataState.HAVE_FIELDS
        return MetadataState.NO_METADATA


class Record(BaseModel):
    """One decoded log line handed to the downstream sink"""
    model_config = ConfigDict(frozen=True)

    message: str
    bucket: str
    key: str
    version: Optional[str] = None
    fields: Optional[str] = None

    def to_event(self) -> Dict[str, Any]:
        """
        Render the sink payload

        Metadata keys are present only when the declaration was seen earlier
        in the same file.
        """
        event = {
            'message': self.message,
            's3_bucket': self.bucket,
            's3_key': self.key,
        }
        if self.version is not None:
            event['cloudfront_version'] = self.version
        if self.fields is not None:
            event['cloudfront_fields'] = self.fields
        return event


class ProcessOutcome(str, Enum):
    COMPLETED = "completed"
    # Cancelled mid-object; the notification must redeliver
    INCOMPLETE = "incomplete"
    SKIPPED = "skipped"
    FAILED = "failed"
