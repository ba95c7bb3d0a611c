"""
Downstream sinks receiving one record per data line
"""

import json
import sys
from abc import ABC, abstractmethod
from typing import Callable, TextIO

from .models import Record


class RecordSink(ABC):
    """Interface for the downstream consumer; ownership of each record passes to the sink"""

    @abstractmethod
    def emit(self, record: Record) -> None:
        """Accept one record; raising fails the object being processed"""

    def close(self) -> None:
        pass


class JsonLinesSink(RecordSink):
    """Writes each record's event as one JSON document per line"""

    def __init__(self, stream: TextIO = None):
        self.stream = stream if stream is not None else sys.stdout

    def emit(self, record: Record) -> None:
        self.stream.write(json.dumps(record.to_event(), ensure_ascii=False) + '\n')

    def close(self) -> None:
        self.stream.flush()


class CallbackSink(RecordSink):
    """Hands each record to a callable, e.g. a queue's put method"""

    def __init__(self, callback: Callable[[Record], None]):
        self.callback = callback

    def emit(self, record: Record) -> None:
        self.callback(record)
