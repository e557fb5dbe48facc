"""Raw message text to Message conversion.

Mailing-list archives (pipermail and friends) obfuscate the sender as
``jdoe at example.com (John Doe)``. This module decodes that shape, picks the
headers the rest of the pipeline needs and decodes the body with its declared
charset.

Header names are matched case-sensitively: ``From``, ``To``, ``Cc``, ``Date``,
``Subject``, ``Message-ID`` and ``In-Reply-To``. Anything else is ignored.

Usage:
    from mlscan.mail.parser import parse_message

    try:
        msg = parse_message(raw_text)
    except MalformedMessageError as e:
        print(e.excerpt)
"""

import codecs
import email
import email.errors
from email.message import Message as EmailMessage

import regex

from mlscan.core.errors import MalformedMessageError, MessageValidationError
from mlscan.core.logging import get_logger
from mlscan.mail.message import Message, OptionalFields

logger = get_logger(__name__)

REGEX_TIMEOUT = 1.0
EXCERPT_MAX_LENGTH = 80
DEFAULT_CHARSET = "utf-8"

# localpart at domain (display name), display name optional
OBFUSCATED_FROM_PATTERN = regex.compile(
    r"^(?P<local>.+?) at (?P<domain>(?:[\w-]+\.)+[\w-]+)(?:\s+\((?P<name>.*)\))?\s*$",
    regex.DOTALL,
)
HEADER_FOLD_PATTERN = regex.compile(r"\r?\n(?=[ \t])")

# Header name -> Message field, exact case
HEADER_FIELDS = {
    "From": "from",
    "To": "to",
    "Cc": "cc",
    "Date": "date",
    "Subject": "subject",
    "Message-ID": "message_id",
    "In-Reply-To": "in_reply_to",
}

PLAIN_TRANSFER_ENCODINGS = frozenset({"", "7bit", "8bit", "binary"})


def message_excerpt(raw: str) -> str:
    """Return the first line of a raw message, capped to 80 characters.

    Returns "(empty)" when the first line is empty.
    """
    first_line = raw.split("\n", 1)[0].rstrip("\r")
    return first_line[:EXCERPT_MAX_LENGTH] or "(empty)"


def decode_obfuscated_address(value: str) -> tuple[str, str] | None:
    """Decode an archive-obfuscated From header.

    Args:
        value: Header value such as ``jdoe at example.com (John Doe)``

    Returns:
        Tuple of (address, display_name), display_name being "" when absent,
        or None if the value does not have the obfuscated shape
    """
    try:
        match = OBFUSCATED_FROM_PATTERN.match(value.strip(), timeout=REGEX_TIMEOUT)
    except TimeoutError:
        logger.warning("Regex timeout decoding From header", value=value[:50])
        return None
    if match is None:
        return None
    address = f"{match.group('local')}@{match.group('domain')}"
    return address, match.group("name") or ""


def _unfold(value: str) -> str:
    return HEADER_FOLD_PATTERN.sub("", value, timeout=REGEX_TIMEOUT).strip()


def _charset_of(part: EmailMessage) -> str:
    charset = part.get_content_charset() or DEFAULT_CHARSET
    try:
        codecs.lookup(charset)
    except LookupError:
        logger.debug("Unknown charset, falling back to utf-8", charset=charset)
        return DEFAULT_CHARSET
    return charset


def _decode_part(part: EmailMessage) -> str:
    """Decode a single non-multipart part to text."""
    payload = part.get_payload()
    if not isinstance(payload, str):
        return ""
    encoding = str(part.get("Content-Transfer-Encoding", "")).strip().lower()
    if encoding in PLAIN_TRANSFER_ENCODINGS:
        # Archive text arrives decoded
        return payload
    data = part.get_payload(decode=True) or b""
    return data.decode(_charset_of(part), errors="replace")


def _extract_body(parsed: EmailMessage) -> str:
    """Return the body text: first text/plain leaf, else the first leaf with content."""
    if not parsed.is_multipart():
        return _decode_part(parsed)

    leaves = [part for part in parsed.walk() if not part.is_multipart()]
    for part in leaves:
        if part.get_content_type() == "text/plain":
            text = _decode_part(part)
            if text:
                return text
    for part in leaves:
        text = _decode_part(part)
        if text:
            return text
    return ""


def _collect_headers(parsed: EmailMessage) -> dict[str, str]:
    """Pick the known headers; the last occurrence of a repeated header wins."""
    collected: dict[str, str] = {}
    for name, value in parsed.items():
        key = HEADER_FIELDS.get(name)
        if key is not None:
            collected[key] = _unfold(str(value))
    return collected


def parse_message(raw: str) -> Message:
    """Parse one raw archive message.

    Args:
        raw: Message text, optionally starting with its ``From `` delimiter line

    Returns:
        The parsed Message

    Raises:
        MalformedMessageError: If the text cannot be decoded or a required
            field (sender, date, subject, message id, body) is missing
    """
    excerpt = message_excerpt(raw)

    try:
        parsed = email.message_from_string(raw)
        headers = _collect_headers(parsed)
        body = _extract_body(parsed)
    except (email.errors.MessageError, UnicodeError, ValueError) as e:
        logger.warning("Failed to parse message", excerpt=excerpt, error=str(e))
        raise MalformedMessageError(
            f'Failed to parse message "{excerpt}": {e}', excerpt=excerpt
        ) from e

    from_address: str | None = None
    from_name = ""
    if "from" in headers:
        decoded = decode_obfuscated_address(headers["from"])
        if decoded is None:
            logger.debug("From header not in archive format", value=headers["from"][:80])
            from_address = ""
        else:
            from_address, from_name = decoded

    try:
        return Message.create(
            from_address=from_address,
            date=headers.get("date"),
            subject=headers.get("subject"),
            message_id=headers.get("message_id"),
            body=body or None,
            optional=OptionalFields(
                from_name=from_name,
                to=headers.get("to", ""),
                cc=headers.get("cc", ""),
                in_reply_to=headers.get("in_reply_to", ""),
            ),
        )
    except MessageValidationError as e:
        raise MalformedMessageError(
            f'Failed to parse message "{excerpt}": {e}', excerpt=excerpt
        ) from e
