"""Output directory handling.

All artifacts of a run land in one directory and share a file name prefix:
``<directory>/<prefix><suffix>``, e.g. ``output/mlscan.Interesting``.

Usage:
    from mlscan.core.files import OutputDirectory

    output = OutputDirectory(Path("output"))
    output.prepare()
    output.write_records("unparseable", raw_messages, "\\n\\n=== UNPARSEABLE MESSAGE ===\\n\\n")
"""

import os
from collections.abc import Iterable
from pathlib import Path

from mlscan.core.errors import OutputDirectoryError
from mlscan.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_PREFIX = "mlscan."


class OutputDirectory:
    """Names and writes the files produced by a run.

    Attributes:
        directory: Directory all files are written to
        prefix: File name prefix shared by every output file
    """

    def __init__(self, directory: Path, prefix: str = DEFAULT_PREFIX):
        self.directory = Path(directory)
        self.prefix = prefix

    def prepare(self) -> None:
        """Create the directory if needed and check that it is writable.

        Raises:
            OutputDirectoryError: If the path is a file, cannot be created,
                or is not writable
        """
        if self.directory.exists() and not self.directory.is_dir():
            raise OutputDirectoryError(
                f"Output directory {self.directory} exists but is a file. "
                "Choose a different output directory.",
                path=self.directory,
            )
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise OutputDirectoryError(
                f"Cannot create output directory {self.directory}: {e}",
                path=self.directory,
            ) from e
        if not os.access(self.directory, os.W_OK):
            raise OutputDirectoryError(
                f"Output directory {self.directory} is not writable",
                path=self.directory,
            )

    def path(self, suffix: str) -> Path:
        """Return the path of the output file with the given suffix."""
        return self.directory / f"{self.prefix}{suffix}"

    def write_text(self, suffix: str, text: str) -> Path:
        """Write text to an output file as UTF-8, replacing any previous content."""
        target = self.path(suffix)
        with open(target, "w", encoding="utf-8") as f:
            f.write(text)
        logger.debug("output_written", path=str(target), chars=len(text))
        return target

    def write_records(self, suffix: str, records: Iterable[str], delimiter: str = "\n") -> Path:
        """Write records joined by a delimiter to an output file.

        Args:
            suffix: Output file suffix
            records: Records to write, in order
            delimiter: Text placed between consecutive records

        Returns:
            Path of the written file
        """
        return self.write_text(suffix, delimiter.join(records))
