"""Message text normalization for the bag-of-words classifier.

Turns a message's subject and body into a lowercase string of ASCII word
tokens, with list boilerplate, log dumps, punctuation, single characters and
common English stop words removed.

All regex operations use the `regex` library with a timeout at match time so
a pathological body cannot stall a whole run. A step that times out leaves
its input unchanged.

Usage:
    from mlscan.classifier.normalizer import TextNormalizer, normalize_text

    normalizer = TextNormalizer()
    result = normalizer.clean(message)
    print(result.text, result.steps_applied)

    # Or use convenience function
    tokens = normalize_text(message)
"""

from dataclasses import dataclass, field

import regex

from mlscan.core.logging import get_logger
from mlscan.mail.message import Message

logger = get_logger(__name__)

REGEX_TIMEOUT = 1.0

STOP_WORDS = (
    "the", "be", "to", "of", "and", "a", "in", "that", "have", "i", "it", "for",
    "not", "on", "with", "he", "as", "you", "do", "at", "this", "but", "his", "by",
    "from", "they", "we", "say", "her", "she", "or", "an", "will", "my", "one",
    "all", "would", "there", "their", "what", "so", "up", "out", "if", "about",
    "who", "get", "which", "go", "me", "was", "were", "are", "is", "had", "did",
    "done", "said", "went",
)  # fmt: skip


# =============================================================================
# Compiled Regex Patterns
# Note: timeout is passed at match time (sub), not compile time
# =============================================================================

# Step 1: pipermail attachment separator and everything after it
ATTACHMENT_PATTERN = regex.compile(r"-------------- next part --------------.*", regex.DOTALL)

# Step 2: everything up to the end of the last line holding a log timestamp
LOG_PATTERN = regex.compile(
    r".*201\d-\d{2}-\d{2} \d{2}:\d{2}:\d{2},\d{3}[^\n]*",
    regex.DOTALL,
)

# Step 3: anything that is not an ASCII letter, digit or space
PUNCTUATION_PATTERN = regex.compile(r"[^ A-Za-z0-9]")

# Step 4: isolated single characters
SINGLE_CHAR_PATTERN = regex.compile(r"\b\S\b")

# Step 5: stop words, whole words only
STOP_WORD_PATTERN = regex.compile(r"\b(?:" + "|".join(STOP_WORDS) + r")\b")


def _safe_sub(pattern: regex.Pattern, repl: str, text: str) -> tuple[str, bool]:
    """Safely perform regex substitution with timeout.

    Args:
        pattern: Compiled regex pattern
        repl: Replacement string
        text: Text to process

    Returns:
        Tuple of (result_text, was_modified)
    """
    try:
        result = pattern.sub(repl, text, timeout=REGEX_TIMEOUT)
        return result, result != text
    except TimeoutError:
        logger.warning("Regex timeout during substitution", pattern=pattern.pattern[:50])
        return text, False


@dataclass
class NormalizationResult:
    """Normalized text with the steps that changed it.

    Attributes:
        text: Normalized token string (may be empty)
        original_length: Length of subject plus body before normalization
        steps_applied: Names of the steps that modified the text
    """

    text: str
    original_length: int
    steps_applied: list[str] = field(default_factory=list)


class TextNormalizer:
    """Five-step text normalization.

    The body is lowercased and stripped of:
    1. the attachment separator block and everything after it
    2. log output, up to and including the last timestamped log line

    Then the lowercased subject and the body are joined with a space and:
    3. every character other than ASCII letters, digits and space becomes a space
    4. single-character tokens are removed
    5. stop words are removed
    """

    def clean(self, message: Message) -> NormalizationResult:
        """Normalize a message's subject and body.

        Args:
            message: Message to normalize

        Returns:
            NormalizationResult with the token string and applied steps
        """
        steps_applied: list[str] = []
        body = message.body.lower()

        body, applied = _safe_sub(ATTACHMENT_PATTERN, "", body)
        if applied:
            steps_applied.append("remove_attachment")

        body, applied = _safe_sub(LOG_PATTERN, "", body)
        if applied:
            steps_applied.append("remove_logs")

        text = f"{message.subject.lower()} {body}"

        for name, pattern, repl in (
            ("remove_punctuation", PUNCTUATION_PATTERN, " "),
            ("remove_single_chars", SINGLE_CHAR_PATTERN, ""),
            ("remove_stop_words", STOP_WORD_PATTERN, ""),
        ):
            text, applied = _safe_sub(pattern, repl, text)
            if applied:
                steps_applied.append(name)

        return NormalizationResult(
            text=text,
            original_length=len(message.subject) + len(message.body),
            steps_applied=steps_applied,
        )

    def normalize(self, message: Message) -> str:
        """Return the normalized token string of a message."""
        return self.clean(message).text


def normalize_text(message: Message) -> str:
    """Convenience function to normalize one message."""
    return TextNormalizer().normalize(message)
