"""
End-to-end pipeline tests

A notification is sent to the queue, the poller dispatches it to a fully
wired processor and records, checkpoint, backups and queue state are checked
afterwards. Runs against moto's in-process S3 and SQS.
"""
import os

import pytest

from s3_log_ingest.checkpoint import EPOCH_ZERO
from s3_log_ingest.config import IngestConfig
from s3_log_ingest.log_ingestor import build_poller, build_processor, register
from s3_log_ingest.models import ProcessOutcome
from s3_log_ingest.sinks import CallbackSink
from tests.utils import BACKUP_BUCKET, CLOUDFRONT_LINES, SOURCE_BUCKET, gzip_lines, plain_lines, sns_wrapped_body

# Mark all tests in this module as integration tests
pytestmark = pytest.mark.integration

GZ_KEY = 'cloudfront/E2ABC.2024-06-01-12.abcd.gz'


def object_keys(s3_client, bucket):
    return sorted(obj['Key'] for obj in s3_client.list_objects_v2(Bucket=bucket).get('Contents', []))


def queue_depth(sqs_client, queue_url) -> int:
    attributes = sqs_client.get_queue_attributes(
        QueueUrl=queue_url,
        AttributeNames=['ApproximateNumberOfMessages', 'ApproximateNumberOfMessagesNotVisible']
    )['Attributes']
    return int(attributes['ApproximateNumberOfMessages']) + int(attributes['ApproximateNumberOfMessagesNotVisible'])


class TestPipeline:

    @pytest.fixture
    def make_config(self, tmp_path, queue_url):
        def factory(**overrides):
            values = {
                'SQS_QUEUE': 'log-notifications',
                'WAIT_TIME_SECONDS': '0',
                'VISIBILITY_TIMEOUT': '0',
                'TEMPORARY_DIRECTORY': str(tmp_path / 'staging'),
                'CHECKPOINT_PATH': str(tmp_path / 'checkpoint'),
            }
            values.update(overrides)
            return IngestConfig.from_env(values)
        return factory

    @pytest.fixture
    def run_once(self, sqs_client, s3_client, stop_event, records):
        def runner(config):
            queue_url = register(config, sqs_client, s3_client)
            processor = build_processor(config, s3_client, stop_event, CallbackSink(records.append))
            outcomes = []

            def on_object(ref):
                outcome = processor.process(ref)
                outcomes.append(outcome)
                return outcome

            build_poller(config, sqs_client, queue_url, stop_event).poll_once(on_object)
            return processor, outcomes
        return runner

    def test_cloudfront_log_moved_to_backup(self, sqs_client, s3_client, queue_url, make_config, run_once, records):
        s3_client.put_object(Bucket=SOURCE_BUCKET, Key=GZ_KEY, Body=gzip_lines(CLOUDFRONT_LINES))
        sqs_client.send_message(QueueUrl=queue_url, MessageBody=sns_wrapped_body((SOURCE_BUCKET, GZ_KEY)))
        config = make_config(BACKUP_TO_BUCKET=BACKUP_BUCKET, BACKUP_ADD_PREFIX='processed/', DELETE_SOURCE='true')

        processor, outcomes = run_once(config)

        assert outcomes == [ProcessOutcome.COMPLETED]
        assert [r.to_event() for r in records] == [
            {
                'message': line,
                's3_bucket': SOURCE_BUCKET,
                's3_key': GZ_KEY,
                'cloudfront_version': '1.0',
                'cloudfront_fields': 'date time x-edge-location sc-bytes',
            }
            for line in CLOUDFRONT_LINES[2:]
        ]
        assert object_keys(s3_client, SOURCE_BUCKET) == []
        assert object_keys(s3_client, BACKUP_BUCKET) == [f'processed/{GZ_KEY}']
        assert processor.checkpoint.read() > EPOCH_ZERO
        assert os.listdir(config.temporary_directory) == []
        assert queue_depth(sqs_client, queue_url) == 0

    def test_redelivery_reprocesses_same_records(self, sqs_client, s3_client, queue_url, make_config, run_once, records):
        s3_client.put_object(Bucket=SOURCE_BUCKET, Key='app/server.log', Body=plain_lines(['a', 'b', 'c']))
        body = sns_wrapped_body((SOURCE_BUCKET, 'app/server.log'))
        config = make_config(DELETE_QUEUE_ITEM='false')

        sqs_client.send_message(QueueUrl=queue_url, MessageBody=body)
        run_once(config)
        first = list(records)
        records.clear()

        # Message was left on the queue; it is delivered again
        run_once(config)

        assert first == records
        assert [r.message for r in records] == ['a', 'b', 'c']
        assert queue_depth(sqs_client, queue_url) == 1

    def test_excluded_and_missing_objects(self, sqs_client, s3_client, queue_url, make_config, run_once, records):
        s3_client.put_object(Bucket=SOURCE_BUCKET, Key='logs/keep.log', Body=plain_lines(['kept']))
        s3_client.put_object(Bucket=SOURCE_BUCKET, Key='logs/skip.tmp', Body=plain_lines(['skipped']))
        sqs_client.send_message(QueueUrl=queue_url, MessageBody=sns_wrapped_body(
            (SOURCE_BUCKET, 'logs/keep.log'),
            (SOURCE_BUCKET, 'logs/skip.tmp'),
            (SOURCE_BUCKET, 'logs/gone.log'),
        ))

        _, outcomes = run_once(make_config(EXCLUDE_PATTERN=r'\.tmp$'))

        assert outcomes == [ProcessOutcome.COMPLETED, ProcessOutcome.SKIPPED, ProcessOutcome.SKIPPED]
        assert [r.message for r in records] == ['kept']
        assert queue_depth(sqs_client, queue_url) == 0

    def test_corrupt_file_left_in_place(self, sqs_client, s3_client, queue_url, make_config, run_once, records, tmp_path):
        s3_client.put_object(Bucket=SOURCE_BUCKET, Key=GZ_KEY, Body=b'garbage')
        sqs_client.send_message(QueueUrl=queue_url, MessageBody=sns_wrapped_body((SOURCE_BUCKET, GZ_KEY)))
        backup_dir = tmp_path / 'backup'
        config = make_config(BACKUP_TO_DIR=str(backup_dir), DELETE_SOURCE='true')

        processor, outcomes = run_once(config)

        assert outcomes == [ProcessOutcome.FAILED]
        assert records == []
        assert object_keys(s3_client, SOURCE_BUCKET) == [GZ_KEY]
        assert list(backup_dir.iterdir()) == []
        assert processor.checkpoint.read() == EPOCH_ZERO
