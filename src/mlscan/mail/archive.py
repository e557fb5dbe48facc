"""Mailing-list archive splitting and reading.

An archive is a flat text file of concatenated messages, each one starting
with a line that begins with ``From `` (the mbox convention). Splitting is a
plain line-prefix scan; lines inside a body that happen to start with
``From `` are not escaped in these archives and will start a new message.

Usage:
    from mlscan.mail.archive import ArchiveReader, read_archives

    with ArchiveReader(Path("users.mbox")) as reader:
        messages = reader.read_messages()
        print(len(reader.unparseable))

    result = read_archives([Path("2017-April.txt"), Path("2017-May.txt")])
"""

from collections.abc import Iterable, Iterator, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from types import TracebackType
from typing import TextIO

from mlscan.core.errors import ArchiveReadError, MalformedMessageError
from mlscan.core.logging import get_logger
from mlscan.mail.message import Message
from mlscan.mail.parser import parse_message

logger = get_logger(__name__)

MESSAGE_DELIMITER = "From "


def split_archive(lines: Iterable[str]) -> Iterator[str]:
    """Split archive lines into raw message texts.

    Lines are kept verbatim, line endings included, so joining the yielded
    messages reproduces the input. A delimiter line always starts a new
    message; a delimiter on the very first line does not yield an empty one.

    Args:
        lines: Archive lines, e.g. an open text file

    Yields:
        Raw message texts, each starting with its delimiter line (except
        for text preceding the first delimiter)
    """
    buffer: list[str] = []
    for line in lines:
        if line.startswith(MESSAGE_DELIMITER) and buffer:
            yield "".join(buffer)
            buffer = []
        buffer.append(line)
    if buffer:
        yield "".join(buffer)


def split_archive_text(text: str) -> list[str]:
    """Split an in-memory archive into raw message texts."""
    return list(split_archive(text.splitlines(keepends=True)))


def check_archive_paths(paths: Iterable[Path]) -> None:
    """Check that every archive path is a readable regular file.

    Raises:
        ArchiveReadError: For the first path that is missing or unreadable
    """
    for path in paths:
        if not path.is_file():
            raise ArchiveReadError(f"Archive {path} does not exist or is not a file", path=path)
        try:
            with open(path, "rb") as f:
                f.read(1)
        except OSError as e:
            raise ArchiveReadError(f"Archive {path} is not readable: {e}", path=path) from e


class ArchiveReader:
    """Reads one archive file and parses its messages.

    The reader owns the open file for the duration of a ``with`` block.
    Messages that fail to parse are kept verbatim in ``unparseable``.

    Attributes:
        path: Archive being read
        unparseable: Raw texts of messages that could not be parsed
    """

    def __init__(self, path: Path, encoding: str = "utf-8"):
        self.path = Path(path)
        self.encoding = encoding
        self.unparseable: list[str] = []
        self._file: TextIO | None = None

    def __enter__(self) -> "ArchiveReader":
        try:
            self._file = open(self.path, encoding=self.encoding, errors="replace", newline="")
        except OSError as e:
            raise ArchiveReadError(f"Cannot open archive {self.path}: {e}", path=self.path) from e
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self._file is not None:
            self._file.close()
            self._file = None

    def iter_raw_messages(self) -> Iterator[str]:
        """Stream raw message texts from the open archive."""
        if self._file is None:
            raise ArchiveReadError(
                f"Archive {self.path} is not open; use ArchiveReader as a context manager",
                path=self.path,
            )
        return split_archive(self._file)

    def read_messages(self) -> list[Message]:
        """Parse every message of the archive.

        Returns:
            Parsed messages in archive order
        """
        messages: list[Message] = []
        for raw in self.iter_raw_messages():
            try:
                messages.append(parse_message(raw))
            except MalformedMessageError as e:
                logger.debug("Unparseable message", path=str(self.path), excerpt=e.excerpt)
                self.unparseable.append(raw)
        logger.info(
            "archive_parsed",
            path=str(self.path),
            messages=len(messages),
            unparseable=len(self.unparseable),
        )
        return messages


@dataclass
class ArchiveParseResult:
    """Messages and unparseable raw texts gathered from a set of archives."""

    messages: list[Message] = field(default_factory=list)
    unparseable: list[str] = field(default_factory=list)


def read_archives(paths: Sequence[Path]) -> ArchiveParseResult:
    """Read and parse several archives, in order.

    Args:
        paths: Archive files

    Returns:
        ArchiveParseResult with the messages and unparseable texts of all archives

    Raises:
        ArchiveReadError: If an archive cannot be opened
    """
    result = ArchiveParseResult()
    for path in paths:
        with ArchiveReader(path) as reader:
            result.messages.extend(reader.read_messages())
            result.unparseable.extend(reader.unparseable)
    return result
