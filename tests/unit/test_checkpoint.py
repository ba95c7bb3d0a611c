"""
Unit tests for the checkpoint watermark store
"""
import os
from datetime import datetime, timedelta, timezone

import pytest

from s3_log_ingest.checkpoint import EPOCH_ZERO, CheckpointStore


class TestCheckpointRead:

    def test_missing_file_reads_epoch_zero(self, tmp_path):
        store = CheckpointStore(str(tmp_path / 'does-not-exist'))
        assert store.read() == EPOCH_ZERO

    def test_zero_length_file_reads_epoch_zero(self, tmp_path):
        path = tmp_path / 'checkpoint'
        path.write_text('')
        assert CheckpointStore(str(path)).read() == EPOCH_ZERO

    def test_whitespace_only_file_reads_epoch_zero(self, tmp_path):
        path = tmp_path / 'checkpoint'
        path.write_text('  \n')
        assert CheckpointStore(str(path)).read() == EPOCH_ZERO

    def test_corrupt_file_reads_epoch_zero(self, tmp_path):
        path = tmp_path / 'checkpoint'
        path.write_text('2024-06-0')
        assert CheckpointStore(str(path)).read() == EPOCH_ZERO

    def test_naive_timestamp_is_read_as_utc(self, tmp_path):
        path = tmp_path / 'checkpoint'
        path.write_text('2024-06-01T12:00:00\n')
        assert CheckpointStore(str(path)).read() == datetime(2024, 6, 1, 12, tzinfo=timezone.utc)

    def test_default_path_is_under_home(self):
        store = CheckpointStore()
        assert store.path.startswith(os.path.expanduser('~'))


class TestCheckpointWrite:

    def test_write_then_read(self, checkpoint):
        timestamp = datetime(2024, 6, 1, 12, 30, tzinfo=timezone.utc)
        checkpoint.write(timestamp)
        assert checkpoint.read() == timestamp

    def test_file_holds_single_iso_timestamp(self, checkpoint):
        checkpoint.write(datetime(2024, 6, 1, 12, 30, tzinfo=timezone.utc))
        with open(checkpoint.path) as f:
            assert f.read() == '2024-06-01T12:30:00+00:00'

    def test_write_replaces_value(self, checkpoint):
        later = datetime(2024, 6, 2, tzinfo=timezone.utc)
        earlier = datetime(2024, 6, 1, tzinfo=timezone.utc)
        checkpoint.write(later)
        checkpoint.write(earlier)
        assert checkpoint.read() == earlier

    def test_write_leaves_no_temporary_files(self, tmp_path):
        store = CheckpointStore(str(tmp_path / 'checkpoint'))
        store.write(datetime(2024, 6, 1, tzinfo=timezone.utc))
        assert os.listdir(tmp_path) == ['checkpoint']

    def test_write_creates_parent_directory(self, tmp_path):
        store = CheckpointStore(str(tmp_path / 'nested' / 'checkpoint'))
        store.write(datetime(2024, 6, 1, tzinfo=timezone.utc))
        assert store.read() == datetime(2024, 6, 1, tzinfo=timezone.utc)


class TestCheckpointAdvance:

    def test_advance_moves_forward(self, checkpoint):
        first = datetime(2024, 6, 1, tzinfo=timezone.utc)
        second = first + timedelta(hours=1)
        assert checkpoint.advance(first) == first
        assert checkpoint.advance(second) == second
        assert checkpoint.read() == second

    def test_advance_never_moves_back(self, checkpoint):
        newest = datetime(2024, 6, 2, tzinfo=timezone.utc)
        checkpoint.advance(newest)
        assert checkpoint.advance(newest - timedelta(days=1)) == newest
        assert checkpoint.read() == newest

    @pytest.mark.parametrize('offset,expected', [
        (timedelta(seconds=1), True),
        (timedelta(0), False),
        (timedelta(seconds=-1), False),
    ])
    def test_newer(self, checkpoint, offset, expected):
        stored = datetime(2024, 6, 1, tzinfo=timezone.utc)
        checkpoint.write(stored)
        assert checkpoint.newer(stored + offset) is expected
