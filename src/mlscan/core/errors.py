"""Custom exception types for mlscan.

Messages follow one shape: what failed, where it failed, why it failed and,
when there is one, how to fix it. Per-message problems (malformed messages)
are absorbed by the archive reader; everything else is fatal and surfaces at
the command line with exit status 1.
"""

from pathlib import Path


class MlscanError(Exception):
    """Base exception for all mlscan errors."""

    pass


class ConfigValidationError(MlscanError):
    """Raised when the config file fails Pydantic validation.

    Includes specific field errors with actionable messages.
    """

    pass


class ConfigLoadError(MlscanError):
    """Raised when the config file cannot be loaded (file not found, YAML parse error)."""

    pass


class MessageValidationError(MlscanError):
    """Raised when a Message is constructed without a required field.

    Attributes:
        missing_fields: Names of the required fields that were not supplied
    """

    def __init__(self, message: str, missing_fields: tuple[str, ...] = ()):
        super().__init__(message)
        self.missing_fields = missing_fields


class MalformedMessageError(MlscanError):
    """Raised when a raw message cannot be turned into a Message.

    This is a non-fatal error: the archive reader records the raw text as
    unparseable and moves on to the next message.

    Attributes:
        excerpt: First line of the raw message, at most 80 characters,
            or "(empty)"
    """

    def __init__(self, message: str, excerpt: str):
        super().__init__(message)
        self.excerpt = excerpt


class ArchiveReadError(MlscanError):
    """Raised when an archive file is missing or cannot be read.

    Attributes:
        path: The archive that failed
    """

    def __init__(self, message: str, path: Path | None = None):
        super().__init__(message)
        self.path = path


class EmptyArchiveError(MlscanError):
    """Raised when no parseable message was found in the training archives."""

    pass


class OutputDirectoryError(MlscanError):
    """Raised when the output directory cannot be created or written to.

    Attributes:
        path: The offending directory
    """

    def __init__(self, message: str, path: Path | None = None):
        super().__init__(message)
        self.path = path


class ClassifierError(MlscanError):
    """Raised when the text classifier cannot be fitted, validated or queried.

    Attributes:
        method: Classification method in use, if known
    """

    def __init__(self, message: str, method: str | None = None):
        super().__init__(message)
        self.method = method
