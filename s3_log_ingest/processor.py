"""
Per-object pipeline: stage, decode, enrich, emit, checkpoint and dispose
"""

import logging
import os
import re
import threading
import uuid
from typing import Optional

from .checkpoint import CheckpointStore
from .decoder import read_file
from .disposition import DispositionManager, remove_staged_file
from .errors import LogDecodeError, ObjectNotFoundError, TransientIOError
from .fetcher import ObjectFetcher
from .metadata import enrich
from .models import ObjectReference, ProcessOutcome
from .sinks import RecordSink

logger = logging.getLogger(__name__)


class ObjectProcessor:
    """
    Drives one object through the pipeline.

    Checkpoint and disposition only run after every line of the file was
    handed to the sink. A stop request or any failure leaves the source
    object untouched so that a redelivered notification processes it again
    from the first line.
    """

    def __init__(
        self,
        fetcher: ObjectFetcher,
        sink: RecordSink,
        checkpoint: CheckpointStore,
        disposition: DispositionManager,
        stop_event: threading.Event,
        temporary_directory: str,
        exclude_pattern: Optional[str] = None,
        skip_older_than_checkpoint: bool = False
    ):
        self.fetcher = fetcher
        self.sink = sink
        self.checkpoint = checkpoint
        self.disposition = disposition
        self.stop_event = stop_event
        self.temporary_directory = temporary_directory
        self.exclude_pattern = re.compile(exclude_pattern) if exclude_pattern else None
        self.skip_older_than_checkpoint = skip_older_than_checkpoint

    def __call__(self, ref: ObjectReference) -> ProcessOutcome:
        return self.process(ref)

    def is_excluded(self, key: str) -> bool:
        return self.exclude_pattern is not None and self.exclude_pattern.search(key) is not None

    def staging_path(self, ref: ObjectReference) -> str:
        return os.path.join(self.temporary_directory, f"{uuid.uuid4().hex}_{os.path.basename(ref.key)}")

    def process(self, ref: ObjectReference) -> ProcessOutcome:
        """Process one object; never raises"""
        if self.stop_event.is_set():
            return ProcessOutcome.INCOMPLETE

        if self.is_excluded(ref.key):
            logger.info(f"Skipping {ref.uri}: key matches exclude pattern")
            return ProcessOutcome.SKIPPED

        logger.info(f"Processing S3 object: {ref.uri}")
        staged_path = self.staging_path(ref)
        stage = 'fetch'

        try:
            if self.skip_older_than_checkpoint:
                stage = 'checkpoint filter'
                last_modified = self.fetcher.last_modified(ref)
                if not self.checkpoint.newer(last_modified):
                    logger.info(f"Skipping {ref.uri}: last modified {last_modified.isoformat()} is not newer than the checkpoint")
                    return ProcessOutcome.SKIPPED

            stage = 'fetch'
            source = self.fetcher.fetch(ref, staged_path)
            if source is None:
                return ProcessOutcome.INCOMPLETE

            stage = 'process'
            if not self.process_local_log(staged_path, ref):
                return ProcessOutcome.INCOMPLETE

            stage = 'checkpoint'
            self.checkpoint.advance(source.last_modified)

            stage = 'disposition'
            self.disposition.dispose(ref, staged_path, source)

        except ObjectNotFoundError as e:
            logger.warning(f"Non-recoverable error processing {ref.uri} during {stage}: {str(e)}. Skipping object.")
            return ProcessOutcome.SKIPPED
        except LogDecodeError as e:
            logger.error(f"Cannot decode {ref.uri} during {stage}: {str(e)}. Object left in place.")
            return ProcessOutcome.FAILED
        except (TransientIOError, OSError) as e:
            logger.error(f"Recoverable error processing {ref.uri} during {stage}: {str(e)}. Object left for retry.")
            return ProcessOutcome.FAILED
        except Exception as e:
            logger.error(f"Unexpected error processing {ref.uri} during {stage}: {str(e)}. Object left for retry.", exc_info=True)
            return ProcessOutcome.FAILED
        finally:
            remove_staged_file(staged_path)

        logger.info(f"Finished processing {ref.uri}")
        return ProcessOutcome.COMPLETED

    def process_local_log(self, staged_path: str, ref: ObjectReference) -> bool:
        """
        Emit one record per data line of the staged file

        Returns:
            True if the file was completely read, False if stop was requested
            in the middle of the file

        Raises:
            LogDecodeError: If the file cannot be decompressed
        """
        logger.debug(f"Processing staged file {staged_path} for {ref.uri}")
        emitted = 0

        records = enrich(read_file(staged_path, ref.key), ref)
        try:
            for record in records:
                if self.stop_event.is_set():
                    logger.warning(f"Stop requested in the middle of {ref.uri} after {emitted} records, it will be read again from the start")
                    return False
                self.sink.emit(record)
                emitted += 1
        finally:
            records.close()

        logger.info(f"Emitted {emitted} records from {ref.uri}")
        return True
