"""
Post-processing handling of source objects: backup, delete and local cleanup
"""

import logging
import os
import shutil
from datetime import datetime
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from .errors import TransientIOError
from .models import ObjectReference, SourceObject

logger = logging.getLogger(__name__)

PRECONDITION_FAILED_CODES = ('PreconditionFailed', '412')


def remove_staged_file(path: str) -> None:
    """Best-effort removal; a file that is already gone is not an error"""
    try:
        os.remove(path)
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.warning(f"Failed to remove staged file {path}: {str(e)}")


def describe_s3_error(e: Exception) -> str:
    if isinstance(e, ClientError) and e.response['Error']['Code'] in PRECONDITION_FAILED_CODES:
        return "object was replaced after it was downloaded"
    return str(e)


class DispositionManager:
    """
    Disposes of a fully processed object.

    With a backup bucket the object is copied there (moved when
    delete_source is on). With a backup directory the staged file is copied
    there. With delete_source and no backup bucket the source object is
    deleted. The staged file is always removed last.

    Remote copy and delete are conditional on the ETag of the downloaded
    version, a source key overwritten in the meantime is left alone.
    """

    def __init__(
        self,
        s3_client,
        backup_bucket: Optional[str] = None,
        backup_prefix: str = '',
        backup_dir: Optional[str] = None,
        delete_source: bool = False
    ):
        self.s3_client = s3_client
        self.backup_bucket = backup_bucket
        self.backup_prefix = backup_prefix or ''
        self.backup_dir = backup_dir
        self.delete_source = delete_source

    def dispose(self, ref: ObjectReference, staged_path: str, source: SourceObject) -> None:
        """
        Raises:
            TransientIOError: If a backup or delete step fails; the staged
                file is removed regardless
        """
        try:
            self.backup_to_bucket(ref, source)
            self.backup_to_dir(ref, staged_path)
            self.delete_from_source(ref, source)
        finally:
            remove_staged_file(staged_path)

    def backup_to_bucket(self, ref: ObjectReference, source: SourceObject) -> None:
        if self.backup_bucket is None:
            return

        backup_key = f"{self.backup_prefix}{ref.key}"
        action = 'Moving' if self.delete_source else 'Copying'
        logger.info(f"{action} {ref.uri} to s3://{self.backup_bucket}/{backup_key}")

        # Source user metadata is kept, traceability keys are added on top
        metadata = dict(source.metadata)
        metadata.update({
            'source-bucket': ref.bucket,
            'source-key': ref.key,
            'source-last-modified': source.last_modified.isoformat(),
            'backup-timestamp': str(int(datetime.now().timestamp()))
        })

        copy_args = {
            'Bucket': self.backup_bucket,
            'Key': backup_key,
            'CopySource': {'Bucket': ref.bucket, 'Key': ref.key},
            'CopySourceIfMatch': source.etag,
            'Metadata': metadata,
            'MetadataDirective': 'REPLACE'
        }
        # REPLACE drops every header that is not sent again
        if source.content_type:
            copy_args['ContentType'] = source.content_type
        if source.content_encoding:
            copy_args['ContentEncoding'] = source.content_encoding

        try:
            self.s3_client.copy_object(**copy_args)
            if self.delete_source:
                self.s3_client.delete_object(Bucket=ref.bucket, Key=ref.key, IfMatch=source.etag)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Backup of {ref.uri} to bucket {self.backup_bucket} failed: {describe_s3_error(e)}")
            raise TransientIOError(f"Backup of {ref.uri} to bucket {self.backup_bucket} failed") from e

    def backup_to_dir(self, ref: ObjectReference, staged_path: str) -> None:
        if self.backup_dir is None:
            return

        destination = os.path.join(self.backup_dir, os.path.basename(ref.key))
        logger.info(f"Copying staged file of {ref.uri} to {destination}")
        try:
            shutil.copyfile(staged_path, destination)
        except OSError as e:
            logger.error(f"Backup of {ref.uri} to directory {self.backup_dir} failed: {str(e)}")
            raise TransientIOError(f"Backup of {ref.uri} to directory {self.backup_dir} failed") from e

    def delete_from_source(self, ref: ObjectReference, source: SourceObject) -> None:
        # Moving to the backup bucket already removed the source
        if not self.delete_source or self.backup_bucket is not None:
            return

        logger.info(f"Deleting {ref.uri} from source bucket")
        try:
            self.s3_client.delete_object(Bucket=ref.bucket, Key=ref.key, IfMatch=source.etag)
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Delete of {ref.uri} failed: {describe_s3_error(e)}")
            raise TransientIOError(f"Delete of {ref.uri} failed") from e
