"""
SQS notification poller

Receives batches of S3 event notifications (SNS envelopes delivered through
SQS), turns them into object references and dispatches each reference to the
per-object processor.
"""

import json
import logging
import threading
import urllib.parse
from typing import Any, Callable, Dict, List

from botocore.exceptions import BotoCoreError, ClientError

from .errors import InvalidS3NotificationError
from .models import Notification, ObjectReference, ProcessOutcome

logger = logging.getLogger(__name__)

# Wait at least this long after a failed receive before polling again
ERROR_RETRY_INTERVAL = 1.0


def parse_notification(body: str) -> List[ObjectReference]:
    """
    Parse an SQS message body into object references

    The body is a JSON envelope whose 'Message' field holds a second JSON
    document with a 'Records' array of S3 event records. Any other JSON shape
    yields no references.

    Raises:
        InvalidS3NotificationError: If either JSON layer cannot be decoded
    """
    try:
        envelope = json.loads(body)
    except (json.JSONDecodeError, TypeError) as e:
        raise InvalidS3NotificationError(f"Invalid SQS message format: {str(e)}")

    if not isinstance(envelope, dict) or 'Message' not in envelope:
        logger.warning("SQS message has no 'Message' field, no objects to process")
        return []

    try:
        s3_event = json.loads(envelope['Message'])
    except (json.JSONDecodeError, TypeError) as e:
        raise InvalidS3NotificationError(f"Invalid notification payload: {str(e)}")

    if not isinstance(s3_event, dict) or not isinstance(s3_event.get('Records'), list):
        logger.warning("Notification payload has no 'Records' array, no objects to process")
        return []

    references = []
    for index, s3_record in enumerate(s3_event['Records']):
        try:
            bucket_name = s3_record['s3']['bucket']['name']
            object_key = urllib.parse.unquote_plus(s3_record['s3']['object']['key'])
            references.append(ObjectReference(bucket=bucket_name, key=object_key))
        except (KeyError, TypeError) as e:
            logger.warning(f"Skipping S3 event record {index}: missing {str(e)}")
        except ValueError as e:
            logger.warning(f"Skipping S3 event record {index}: {str(e)}")

    return references


class NotificationPoller:
    """
    Long-running receive loop over one SQS queue.

    Messages are never deleted on receive. With delete_after_dispatch the
    message is deleted once every reference it carries was dispatched,
    whatever the individual outcomes; otherwise messages are left to expire
    and redeliver after the visibility timeout. A message whose dispatch was
    interrupted by a stop request is never deleted.
    """

    def __init__(
        self,
        sqs_client,
        queue_url: str,
        stop_event: threading.Event,
        visibility_timeout: int,
        max_batch: int = 10,
        wait_time_seconds: int = 20,
        polling_interval: float = 0,
        delete_after_dispatch: bool = True
    ):
        self.sqs_client = sqs_client
        self.queue_url = queue_url
        self.stop_event = stop_event
        self.visibility_timeout = visibility_timeout
        self.max_batch = max_batch
        self.wait_time_seconds = wait_time_seconds
        self.polling_interval = polling_interval
        self.delete_after_dispatch = delete_after_dispatch

    def poll(self, on_object: Callable[[ObjectReference], ProcessOutcome]) -> None:
        """
        Receive and dispatch batches until the stop event is set

        A stop request cannot interrupt a receive_message call that is
        already long polling. Shutdown therefore takes up to
        wait_time_seconds (20s by default) plus the processing of the
        object in flight. Lower WAIT_TIME_SECONDS where a faster shutdown
        matters more than fewer empty receives.
        """
        logger.info(f"Starting SQS polling for queue: {self.queue_url}")

        while not self.stop_event.is_set():
            try:
                received = self.poll_once(on_object)
            except (ClientError, BotoCoreError) as e:
                logger.error(f"Error in SQS polling: {str(e)}")
                self.stop_event.wait(max(self.polling_interval, ERROR_RETRY_INTERVAL))
                continue

            if not received:
                logger.debug("No messages received, continuing to poll...")
                if self.polling_interval:
                    self.stop_event.wait(self.polling_interval)

        logger.info("Stop requested, SQS polling finished")

    def poll_once(self, on_object: Callable[[ObjectReference], ProcessOutcome]) -> int:
        """
        Receive one batch and dispatch it

        Returns:
            Number of messages received

        Raises:
            ClientError, BotoCoreError: If the receive call itself fails
        """
        response = self.sqs_client.receive_message(
            QueueUrl=self.queue_url,
            MaxNumberOfMessages=self.max_batch,
            WaitTimeSeconds=self.wait_time_seconds,
            VisibilityTimeout=self.visibility_timeout
        )

        messages = response.get('Messages', [])
        if not messages:
            return 0

        logger.info(f"Received {len(messages)} messages from SQS")

        for message in messages:
            if self.stop_event.is_set():
                logger.info(f"Stop requested, leaving message {message.get('MessageId', 'unknown')} for redelivery")
                continue
            self.handle_message(message, on_object)

        return len(messages)

    def handle_message(self, message: Dict[str, Any], on_object: Callable[[ObjectReference], ProcessOutcome]) -> None:
        message_id = message.get('MessageId', 'unknown')

        try:
            references = parse_notification(message.get('Body', ''))
        except InvalidS3NotificationError as e:
            logger.error(f"Non-recoverable error parsing message {message_id}: {str(e)}. Message is skipped.")
            references = []

        notification = Notification(
            message_id=message_id,
            receipt_handle=message['ReceiptHandle'],
            references=tuple(references)
        )

        if self.dispatch(notification, on_object):
            self.acknowledge(notification)

    def dispatch(self, notification: Notification, on_object: Callable[[ObjectReference], ProcessOutcome]) -> bool:
        """
        Hand every reference of the notification to on_object

        Returns:
            True if every reference was dispatched and none was interrupted,
            i.e. the message may be acknowledged
        """
        failed = []

        for ref in notification.references:
            if self.stop_event.is_set():
                logger.info(f"Stop requested in the middle of message {notification.message_id}, leaving it for redelivery")
                return False

            try:
                outcome = on_object(ref)
            except Exception as e:
                logger.error(f"Error processing {ref.uri} from message {notification.message_id}: {str(e)}", exc_info=True)
                outcome = ProcessOutcome.FAILED

            if outcome == ProcessOutcome.INCOMPLETE:
                logger.info(f"{ref.uri} was not completely processed, leaving message {notification.message_id} for redelivery")
                return False
            if outcome == ProcessOutcome.FAILED:
                failed.append(ref.uri)

        if failed and self.delete_after_dispatch:
            # Deletion does not depend on individual outcomes, these objects
            # are only retried if another notification names them.
            logger.warning(f"Message {notification.message_id} will be deleted although processing failed for: {', '.join(failed)}")

        return True

    def acknowledge(self, notification: Notification) -> None:
        if not self.delete_after_dispatch:
            return

        try:
            self.sqs_client.delete_message(
                QueueUrl=self.queue_url,
                ReceiptHandle=notification.receipt_handle
            )
            logger.info(f"Successfully deleted message {notification.message_id}")
        except (ClientError, BotoCoreError) as e:
            logger.error(f"Failed to delete message {notification.message_id}: {str(e)}")
