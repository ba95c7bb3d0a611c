"""
Test configuration and fixtures for unit and integration tests
"""
import os
import threading

import boto3
import pytest
from moto import mock_aws

from s3_log_ingest.checkpoint import CheckpointStore
from s3_log_ingest.sinks import CallbackSink
from tests.utils import BACKUP_BUCKET, SOURCE_BUCKET


@pytest.fixture
def aws_credentials():
    """Mocked AWS Credentials for moto."""
    os.environ['AWS_ACCESS_KEY_ID'] = 'testing'
    os.environ['AWS_SECRET_ACCESS_KEY'] = 'testing'
    os.environ['AWS_SECURITY_TOKEN'] = 'testing'
    os.environ['AWS_SESSION_TOKEN'] = 'testing'
    os.environ['AWS_DEFAULT_REGION'] = 'us-east-1'


@pytest.fixture
def mock_aws_services(aws_credentials):
    """Mock all AWS services."""
    with mock_aws():
        yield


@pytest.fixture
def s3_client(mock_aws_services):
    """S3 client with an empty source bucket"""
    client = boto3.client('s3', region_name='us-east-1')
    client.create_bucket(Bucket=SOURCE_BUCKET)
    return client


@pytest.fixture
def backup_bucket(s3_client):
    s3_client.create_bucket(Bucket=BACKUP_BUCKET)
    return BACKUP_BUCKET


@pytest.fixture
def sqs_client(mock_aws_services):
    return boto3.client('sqs', region_name='us-east-1')


@pytest.fixture
def queue_url(sqs_client):
    return sqs_client.create_queue(QueueName='log-notifications')['QueueUrl']


@pytest.fixture
def stop_event():
    return threading.Event()


@pytest.fixture
def staging_dir(tmp_path):
    path = tmp_path / 'staging'
    path.mkdir()
    return str(path)


@pytest.fixture
def checkpoint(tmp_path):
    return CheckpointStore(str(tmp_path / 'checkpoint'))


@pytest.fixture
def records():
    """List receiving every record emitted through the sink fixture"""
    return []


@pytest.fixture
def sink(records):
    return CallbackSink(records.append)
