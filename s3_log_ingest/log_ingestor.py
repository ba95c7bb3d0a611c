#!/usr/bin/env python3
"""
S3 log ingestor driven by SQS event notifications
Supports SQS polling and manual input modes
"""

import argparse
import logging
import os
import signal
import sys
import threading
from typing import Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError
from pydantic import ValidationError

from .checkpoint import CheckpointStore
from .config import IngestConfig
from .disposition import DispositionManager
from .errors import ConfigurationError, InvalidS3NotificationError
from .fetcher import ObjectFetcher
from .models import ProcessOutcome
from .poller import NotificationPoller, parse_notification
from .processor import ObjectProcessor
from .sinks import JsonLinesSink, RecordSink
from .utils.logger import setup_logging

logger = logging.getLogger(__name__)

# Let botocore handle retries and backoff for receive/download calls
CLIENT_CONFIG = Config(retries={'mode': 'standard', 'max_attempts': 5})


def create_clients(config: IngestConfig):
    """Create the SQS and S3 clients for the configured region and endpoints"""
    sqs_client = boto3.client(
        'sqs',
        region_name=config.region,
        endpoint_url=config.sqs_endpoint_url,
        config=CLIENT_CONFIG
    )
    s3_client = boto3.client(
        's3',
        region_name=config.region,
        endpoint_url=config.s3_endpoint_url,
        config=CLIENT_CONFIG
    )
    return sqs_client, s3_client


def register(config: IngestConfig, sqs_client, s3_client) -> str:
    """
    Prepare everything the ingestor needs before polling starts

    Resolves the queue URL, then prepares the backup and staging storage.

    Returns:
        The queue URL

    Raises:
        ConfigurationError: If the queue cannot be reached or a required
            bucket or directory cannot be created
    """
    if config.queue_is_url:
        queue_url = config.queue
    else:
        try:
            queue_url = sqs_client.get_queue_url(QueueName=config.queue)['QueueUrl']
        except (ClientError, BotoCoreError) as e:
            raise ConfigurationError(f"Cannot resolve SQS queue '{config.queue}': {str(e)}") from e
    logger.info(f"Registering log ingestor for queue: {queue_url}")

    prepare_storage(config, s3_client)
    return queue_url


def prepare_storage(config: IngestConfig, s3_client) -> None:
    """
    Create the backup bucket if it does not exist, and the backup and
    staging directories

    Raises:
        ConfigurationError: If a bucket or directory cannot be created
    """
    if config.backup_to_bucket:
        ensure_bucket_exists(s3_client, config.backup_to_bucket, config.region)

    try:
        if config.backup_to_dir and not os.path.isdir(config.backup_to_dir):
            os.makedirs(config.backup_to_dir, mode=0o700)
        os.makedirs(config.temporary_directory, exist_ok=True)
    except OSError as e:
        raise ConfigurationError(f"Cannot create required directory: {str(e)}") from e


def ensure_bucket_exists(s3_client, bucket: str, region: str) -> None:
    try:
        s3_client.head_bucket(Bucket=bucket)
        return
    except ClientError as e:
        error_code = e.response['Error']['Code']
        if error_code not in ('404', 'NoSuchBucket', 'NotFound'):
            raise ConfigurationError(f"Cannot access backup bucket '{bucket}': {error_code}") from e
    except BotoCoreError as e:
        raise ConfigurationError(f"Cannot access backup bucket '{bucket}': {str(e)}") from e

    logger.info(f"Creating backup bucket: {bucket}")
    create_args = {'Bucket': bucket}
    if region != 'us-east-1':
        create_args['CreateBucketConfiguration'] = {'LocationConstraint': region}
    try:
        s3_client.create_bucket(**create_args)
    except (ClientError, BotoCoreError) as e:
        raise ConfigurationError(f"Cannot create backup bucket '{bucket}': {str(e)}") from e


def build_processor(
    config: IngestConfig,
    s3_client,
    stop_event: threading.Event,
    sink: RecordSink,
    checkpoint: Optional[CheckpointStore] = None
) -> ObjectProcessor:
    """Wire the per-object pipeline from configuration"""
    if checkpoint is None:
        checkpoint = CheckpointStore(config.checkpoint_path)

    disposition = DispositionManager(
        s3_client,
        backup_bucket=config.backup_to_bucket,
        backup_prefix=config.backup_add_prefix,
        backup_dir=config.backup_to_dir,
        delete_source=config.delete_source
    )

    return ObjectProcessor(
        fetcher=ObjectFetcher(s3_client, stop_event),
        sink=sink,
        checkpoint=checkpoint,
        disposition=disposition,
        stop_event=stop_event,
        temporary_directory=config.temporary_directory,
        exclude_pattern=config.exclude_pattern,
        skip_older_than_checkpoint=config.skip_older_than_checkpoint
    )


def build_poller(config: IngestConfig, sqs_client, queue_url: str, stop_event: threading.Event) -> NotificationPoller:
    return NotificationPoller(
        sqs_client,
        queue_url,
        stop_event,
        visibility_timeout=config.visibility_timeout,
        max_batch=config.max_batch,
        wait_time_seconds=config.wait_time_seconds,
        polling_interval=config.polling_interval,
        delete_after_dispatch=config.delete_queue_item
    )


def install_signal_handlers(stop_event: threading.Event) -> None:
    def handle_signal(signum, frame):
        logger.info(f"Received signal {signum}, shutting down...")
        stop_event.set()

    signal.signal(signal.SIGINT, handle_signal)
    signal.signal(signal.SIGTERM, handle_signal)


def sqs_polling_mode(config: IngestConfig, sink: RecordSink, stop_event: threading.Event) -> None:
    """
    SQS polling mode
    Continuously polls the queue and processes every referenced object
    """
    sqs_client, s3_client = create_clients(config)
    queue_url = register(config, sqs_client, s3_client)

    processor = build_processor(config, s3_client, stop_event, sink)
    poller = build_poller(config, sqs_client, queue_url, stop_event)
    poller.poll(processor)


def manual_input_mode(config: IngestConfig, sink: RecordSink, stop_event: threading.Event, input_data: str) -> bool:
    """
    Manual input mode for development/testing
    Processes the objects named by one SQS message body

    Returns:
        True if every referenced object completed or was skipped
    """
    logger.info("Manual input mode - processing one SQS message body")

    _, s3_client = create_clients(config)
    prepare_storage(config, s3_client)

    references = parse_notification(input_data)
    processor = build_processor(config, s3_client, stop_event, sink)

    outcomes = [processor.process(ref) for ref in references]
    successful = sum(1 for o in outcomes if o in (ProcessOutcome.COMPLETED, ProcessOutcome.SKIPPED))
    logger.info(f"Processed manual input. Objects: Success: {successful}, Failed: {len(outcomes) - successful}")
    return successful == len(outcomes)


def main(argv=None) -> int:
    """
    Main entry point for standalone execution
    """
    parser = argparse.ArgumentParser(description='S3 log ingestor driven by SQS notifications')
    parser.add_argument('--mode', choices=['sqs', 'manual'], default='sqs',
                        help='Execution mode: sqs (poll queue) or manual (stdin input)')
    parser.add_argument('--queue', help='SQS queue name or URL (overrides SQS_QUEUE)')
    parser.add_argument('--log-level', dest='log_level', help='Log level (overrides LOG_LEVEL)')

    args = parser.parse_args(argv)

    # Manual mode does not need a queue
    fallback_queue = 'manual-input' if args.mode == 'manual' else None
    try:
        config = IngestConfig.from_env(queue=args.queue or os.environ.get('SQS_QUEUE') or fallback_queue,
                                       log_level=args.log_level)
    except ValidationError as e:
        setup_logging(args.log_level or os.environ.get('LOG_LEVEL'))
        logger.error(f"Invalid configuration: {str(e)}")
        return 1

    setup_logging(config.log_level)

    stop_event = threading.Event()
    sink = JsonLinesSink(sys.stdout)

    try:
        if args.mode == 'sqs':
            install_signal_handlers(stop_event)
            sqs_polling_mode(config, sink, stop_event)
            return 0

        input_data = sys.stdin.read().strip()
        if not input_data:
            logger.error("No input data provided")
            return 1
        return 0 if manual_input_mode(config, sink, stop_event, input_data) else 1

    except ConfigurationError as e:
        logger.error(f"Startup failed: {str(e)}")
        return 1
    except InvalidS3NotificationError as e:
        logger.error(f"Error processing manual input: {str(e)}")
        return 1
    finally:
        sink.close()


if __name__ == '__main__':
    sys.exit(main())
