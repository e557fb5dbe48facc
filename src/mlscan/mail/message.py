"""Immutable mailing-list message record.

Usage:
    from mlscan.mail.message import Message, OptionalFields

    msg = Message.create(
        from_address="jdoe@example.com",
        date="Mon, 3 Apr 2017 10:00:00 +0200",
        subject="[users] engine fails to start",
        message_id="<abc@example.com>",
        body="Hello list...",
        optional=OptionalFields(from_name="John Doe", in_reply_to="<xyz@example.com>"),
    )
"""

from dataclasses import dataclass, fields

from mlscan.core.errors import MessageValidationError

REQUIRED_FIELDS = ("from_address", "date", "subject", "message_id", "body")


@dataclass(frozen=True, slots=True)
class OptionalFields:
    """Message fields that default to the empty string when absent."""

    from_name: str = ""
    to: str = ""
    cc: str = ""
    in_reply_to: str = ""


@dataclass(frozen=True, slots=True)
class Message:
    """One parsed message of a mailing-list archive.

    Equality and hashing are structural over every field. All fields are
    strings; the required ones must be supplied, the rest default to "".

    Raises:
        MessageValidationError: If a required field is None or a field is
            not a string
    """

    from_address: str
    date: str
    subject: str
    message_id: str
    body: str
    from_name: str = ""
    to: str = ""
    cc: str = ""
    in_reply_to: str = ""

    def __post_init__(self) -> None:
        missing = tuple(name for name in REQUIRED_FIELDS if getattr(self, name) is None)
        if missing:
            raise MessageValidationError(
                f"Cannot build message: missing required field(s) {', '.join(missing)}",
                missing_fields=missing,
            )
        for f in fields(self):
            value = getattr(self, f.name)
            if not isinstance(value, str):
                raise MessageValidationError(
                    f"Cannot build message: field '{f.name}' must be a string, "
                    f"got {type(value).__name__}"
                )

    @classmethod
    def create(
        cls,
        from_address: str | None,
        date: str | None,
        subject: str | None,
        message_id: str | None,
        body: str | None,
        optional: OptionalFields | None = None,
    ) -> "Message":
        """Build a message from its required fields and optional defaults.

        Args:
            from_address: Sender address
            date: Date header value, kept verbatim
            subject: Subject header value
            message_id: Message-ID header value
            body: Decoded body text
            optional: Defaulted fields; all "" when omitted

        Returns:
            The validated Message

        Raises:
            MessageValidationError: If a required field is missing
        """
        optional = optional or OptionalFields()
        return cls(
            from_address=from_address,  # type: ignore[arg-type]
            date=date,  # type: ignore[arg-type]
            subject=subject,  # type: ignore[arg-type]
            message_id=message_id,  # type: ignore[arg-type]
            body=body,  # type: ignore[arg-type]
            from_name=optional.from_name,
            to=optional.to,
            cc=optional.cc,
            in_reply_to=optional.in_reply_to,
        )

    @property
    def is_reply(self) -> bool:
        """True when the message names a parent via In-Reply-To."""
        return bool(self.in_reply_to)

    @property
    def summary(self) -> str:
        """One-line description: ``subject (address (name) date)``."""
        return f"{self.subject} ({self.from_address} ({self.from_name}) {self.date})"

    def __str__(self) -> str:
        return self.summary
