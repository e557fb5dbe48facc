"""Mailing-list archive input.

This package turns archive files into Message records:
- Message record with factory and typed validation error
- Message parser with archive-obfuscated sender decoding
- Archive splitter and reader
"""

from mlscan.mail.archive import (
    ArchiveParseResult,
    ArchiveReader,
    check_archive_paths,
    read_archives,
    split_archive,
    split_archive_text,
)
from mlscan.mail.message import Message, OptionalFields
from mlscan.mail.parser import decode_obfuscated_address, message_excerpt, parse_message

__all__ = [
    # Archive
    "ArchiveParseResult",
    "ArchiveReader",
    "check_archive_paths",
    "read_archives",
    "split_archive",
    "split_archive_text",
    # Message
    "Message",
    "OptionalFields",
    # Parser
    "decode_obfuscated_address",
    "message_excerpt",
    "parse_message",
]
