"""
Checkpoint watermark persisted as a single timestamp in a local file
"""

import logging
import os
import tempfile
import threading
from datetime import datetime, timezone
from typing import Optional

from .config import DEFAULT_CHECKPOINT_PATH

logger = logging.getLogger(__name__)

EPOCH_ZERO = datetime(1970, 1, 1, tzinfo=timezone.utc)


class CheckpointStore:
    """
    Stores the last-modified time of the most recently fully processed object.

    The file holds one ISO-8601 date-time string. A missing, empty or
    unparsable file reads as epoch-zero so that a crash in the middle of a
    write never blocks startup.
    """

    def __init__(self, path: Optional[str] = None):
        if path is None:
            path = DEFAULT_CHECKPOINT_PATH
            logger.info(f"Using default checkpoint file: {path}")
        else:
            logger.info(f"Using provided checkpoint file: {path}")
        self.path = path
        self._lock = threading.Lock()

    def read(self) -> datetime:
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                content = f.read().strip()
        except FileNotFoundError:
            return EPOCH_ZERO

        # Created but never written to
        if not content:
            return EPOCH_ZERO

        try:
            timestamp = datetime.fromisoformat(content)
        except ValueError:
            logger.warning(f"Checkpoint file {self.path} is corrupt, falling back to epoch: {content[:100]!r}")
            return EPOCH_ZERO

        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return timestamp

    def write(self, timestamp: datetime) -> None:
        """Replace the stored timestamp; readers see either the old or the new value"""
        with self._lock:
            self._write_locked(timestamp)

    def advance(self, timestamp: datetime) -> datetime:
        """
        Move the watermark forward to timestamp if it is newer than the stored value

        Objects are not processed in last-modified order, so an older object
        finishing later must not move the watermark back.

        Returns:
            The stored watermark after the call
        """
        with self._lock:
            current = self.read()
            if timestamp > current:
                self._write_locked(timestamp)
                return timestamp
            return current

    def newer(self, timestamp: datetime) -> bool:
        return timestamp > self.read()

    def _write_locked(self, timestamp: datetime) -> None:
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)

        directory = os.path.dirname(os.path.abspath(self.path))
        os.makedirs(directory, exist_ok=True)

        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix='.checkpoint-')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                f.write(timestamp.isoformat())
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_path, self.path)
        except BaseException:
            try:
                os.remove(tmp_path)
            except OSError:
                pass
            raise

        logger.debug(f"Checkpoint {self.path} set to {timestamp.isoformat()}")
