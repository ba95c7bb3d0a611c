"""
Declaration-line scanning for logs that announce their format in-band

CloudFront-style access logs start with lines such as

    #Version: 1.0
    #Fields: date time x-edge-location ...

which describe every following line of the same file. Declaration lines are
dropped from the output and their values attached to the data lines after
them.
"""

from typing import Iterable, Iterator

from .models import LineMetadata, ObjectReference, Record

VERSION_MARKER = '#Version: '
FIELDS_MARKER = '#Fields: '


def is_version_declaration(line: str) -> bool:
    return line.startswith(VERSION_MARKER)


def is_fields_declaration(line: str) -> bool:
    return line.startswith(FIELDS_MARKER)


def is_declaration(line: str) -> bool:
    return is_version_declaration(line) or is_fields_declaration(line)


def update_metadata(metadata: LineMetadata, line: str) -> LineMetadata:
    """
    Return the metadata after applying one declaration line

    The value is taken from the stripped line. A declaration whose value is
    blank (so the stripped line lost the marker's trailing space) leaves the
    metadata unchanged.
    """
    stripped = line.strip()

    if is_version_declaration(stripped):
        return metadata.model_copy(update={'version': stripped[len(VERSION_MARKER):]})

    if is_fields_declaration(stripped):
        return metadata.model_copy(update={'fields': stripped[len(FIELDS_MARKER):]})

    return metadata


def enrich(lines: Iterable[str], ref: ObjectReference) -> Iterator[Record]:
    """Fold the decoded lines of one file into records carrying the declarations seen so far"""
    metadata = LineMetadata()

    for line in lines:
        if is_declaration(line):
            metadata = update_metadata(metadata, line)
            continue

        yield Record(
            message=line,
            bucket=ref.bucket,
            key=ref.key,
            version=metadata.version,
            fields=metadata.fields,
        )
