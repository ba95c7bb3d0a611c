"""
Format-aware decoding of staged log files into lines
"""

import gzip
import logging
import zlib
from typing import BinaryIO, Iterator

from .errors import LogDecodeError

logger = logging.getLogger(__name__)


def is_gzip(key: str) -> bool:
    """Compression is decided by the object key alone (case-sensitive)"""
    return key.endswith('.gz')


def decode(stream: BinaryIO, key: str) -> Iterator[str]:
    """
    Yield decoded lines from a byte stream

    Lines are split on '\\n' and returned without the delimiter; a final
    unterminated line is still yielded. Invalid UTF-8 bytes are replaced so
    that every line can be matched as text.

    Raises:
        LogDecodeError: If the key names a gzip file whose stream is corrupt
            or truncated
    """
    if not is_gzip(key):
        for raw_line in stream:
            yield _to_text(raw_line)
        return

    try:
        with gzip.GzipFile(fileobj=stream, mode='rb') as decoder:
            for raw_line in decoder:
                yield _to_text(raw_line)
    except (gzip.BadGzipFile, EOFError, zlib.error) as e:
        logger.error(f"Cannot uncompress gzip file {key}: {str(e)}")
        raise LogDecodeError(f"Corrupt gzip stream in {key}: {str(e)}") from e


def read_file(path: str, key: str) -> Iterator[str]:
    """Yield decoded lines from a staged file, closing it when iteration ends"""
    with open(path, 'rb') as f:
        yield from decode(f, key)


def _to_text(raw_line: bytes) -> str:
    if raw_line.endswith(b'\n'):
        raw_line = raw_line[:-1]
    return raw_line.decode('utf-8', errors='replace')
