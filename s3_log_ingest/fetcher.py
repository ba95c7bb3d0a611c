"""
Streams remote S3 objects to local staging files
"""

import logging
import threading
from datetime import datetime
from typing import Optional

from botocore.exceptions import BotoCoreError, ClientError

from .errors import ObjectNotFoundError, TransientIOError
from .models import ObjectReference, SourceObject

logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 1024 * 1024

NOT_FOUND_CODES = ('NoSuchKey', '404', 'NotFound')


class ObjectFetcher:
    """Downloads objects chunk by chunk so that a stop request is observed mid-transfer"""

    def __init__(self, s3_client, stop_event: threading.Event, chunk_size: int = DEFAULT_CHUNK_SIZE):
        self.s3_client = s3_client
        self.stop_event = stop_event
        self.chunk_size = chunk_size

    def fetch(self, ref: ObjectReference, destination: str) -> Optional[SourceObject]:
        """
        Stream the object to destination

        Returns:
            Attributes of the downloaded version once the whole object was
            written, None if stop was requested before the transfer finished.
            The caller removes the destination file in both the None and the
            error case.

        Raises:
            ObjectNotFoundError: If the object no longer exists
            TransientIOError: On any transport or local disk error
        """
        logger.debug(f"Downloading {ref.uri} to {destination}")
        written = 0

        try:
            response = self.s3_client.get_object(Bucket=ref.bucket, Key=ref.key)
            body = response['Body']
            try:
                source = SourceObject.from_response(response)
                with open(destination, 'wb') as f:
                    for chunk in body.iter_chunks(chunk_size=self.chunk_size):
                        if self.stop_event.is_set():
                            logger.warning(f"Stop requested while downloading {ref.uri} ({written} bytes written), will retry on redelivery")
                            return None
                        f.write(chunk)
                        written += len(chunk)
            finally:
                body.close()

        except ClientError as e:
            error_code = e.response['Error']['Code']
            if error_code in NOT_FOUND_CODES:
                raise ObjectNotFoundError(f"Source S3 object {ref.uri} not found") from e
            logger.error(f"Failed to download {ref.uri} with error {error_code}: {str(e)}")
            raise TransientIOError(f"Download of {ref.uri} failed: {error_code}") from e
        except (BotoCoreError, OSError) as e:
            logger.error(f"Failed to download {ref.uri}: {str(e)}")
            raise TransientIOError(f"Download of {ref.uri} failed: {str(e)}") from e

        logger.info(f"Downloaded {ref.uri}: {written} bytes")
        return source

    def last_modified(self, ref: ObjectReference) -> datetime:
        """
        Return the object's LastModified timestamp

        Raises:
            ObjectNotFoundError: If the object no longer exists
            TransientIOError: On any other S3 error
        """
        try:
            response = self.s3_client.head_object(Bucket=ref.bucket, Key=ref.key)
        except ClientError as e:
            error_code = e.response['Error']['Code']
            if error_code in NOT_FOUND_CODES:
                raise ObjectNotFoundError(f"Source S3 object {ref.uri} not found") from e
            raise TransientIOError(f"HEAD of {ref.uri} failed: {error_code}") from e
        except BotoCoreError as e:
            raise TransientIOError(f"HEAD of {ref.uri} failed: {str(e)}") from e

        return response['LastModified']
