"""Thread labeling by interesting senders.

A thread is interesting when one of a configured set of people took part in
it. Threads started from an excluded domain (typically the project's own
staff) are ignored so the classifier learns what draws those people in from
outside, not what they post themselves.

Usage:
    from mlscan.engine.labeler import InterestingSendersLabeler, Label

    labeler = InterestingSendersLabeler(
        senders={"dev1@example.com", "dev2@example.com"},
        excluded_domain="example.com",
    )
    labeled = labeler.label_threads(roots)
    print(labeler.counts[Label.INTERESTING])
"""

from collections.abc import Iterable
from enum import Enum
from typing import Literal

from mlscan.core.logging import get_logger
from mlscan.engine.threads import ThreadNode

logger = get_logger(__name__)

LabelingMode = Literal["first_message", "whole_thread"]


class Label(Enum):
    """Thread label; the value is the display text."""

    INTERESTING = "Interesting"
    NOT_INTERESTING = "NotInteresting"
    IGNORED = "Ignored"

    @property
    def use_for_training(self) -> bool:
        """Whether texts with this label go into the training set."""
        return self is not Label.IGNORED

    @classmethod
    def trainable(cls) -> list["Label"]:
        """Labels used for training, in declaration order."""
        return [label for label in cls if label.use_for_training]

    def __str__(self) -> str:
        return self.value


class InterestingSendersLabeler:
    """Labels threads by whether a listed sender took part.

    Attributes:
        senders: Addresses whose participation makes a thread interesting
        excluded_domain: Sender address suffix whose messages are ignored
        mode: "first_message" labels thread starters only, "whole_thread"
            labels every message of a thread
    """

    def __init__(
        self,
        senders: Iterable[str],
        excluded_domain: str | None = None,
        mode: LabelingMode = "first_message",
    ):
        self.senders = frozenset(senders)
        self.excluded_domain = excluded_domain or None
        self.mode = mode
        self._labels: dict[str, Label] = {}
        self._counts: dict[Label, int] = {label: 0 for label in Label}

    def is_excluded(self, address: str) -> bool:
        """True when the address ends with the excluded domain."""
        return self.excluded_domain is not None and address.endswith(self.excluded_domain)

    def thread_label(self, node: ThreadNode) -> Label:
        """INTERESTING if any message at or below the node came from a listed sender."""
        for member in node.all_in_thread():
            if member.message.from_address in self.senders:
                return Label.INTERESTING
        return Label.NOT_INTERESTING

    def label_for(self, node: ThreadNode) -> Label:
        """Label a thread starter without recording it.

        Replies (including orphans) and messages from the excluded domain
        are IGNORED; everything else gets the thread label.
        """
        message = node.message
        if message.is_reply:
            return Label.IGNORED
        if self.is_excluded(message.from_address):
            return Label.IGNORED
        return self.thread_label(node)

    def label_threads(self, roots: Iterable[ThreadNode]) -> dict[Label, list[ThreadNode]]:
        """Label every thread and record the result per message id.

        Orphan roots (roots that reply to a message never seen) are skipped.

        Args:
            roots: Forest roots from the collator

        Returns:
            Label -> labeled nodes, in input order; every label is present
        """
        labeled: dict[Label, list[ThreadNode]] = {label: [] for label in Label}
        skipped = 0

        for root in roots:
            if root.message.is_reply:
                skipped += 1
                continue
            if self.mode == "whole_thread":
                self._label_whole_thread(root, labeled)
            else:
                self._record(root, self.label_for(root), labeled)

        logger.info(
            "threads_labeled",
            mode=self.mode,
            orphans_skipped=skipped,
            **{str(label): count for label, count in self._counts.items()},
        )
        return labeled

    def _label_whole_thread(
        self,
        root: ThreadNode,
        labeled: dict[Label, list[ThreadNode]],
    ) -> None:
        thread_label = self.thread_label(root)
        for member in root.all_in_thread():
            if self.is_excluded(member.message.from_address):
                self._record(member, Label.IGNORED, labeled)
            else:
                self._record(member, thread_label, labeled)

    def _record(
        self,
        node: ThreadNode,
        label: Label,
        labeled: dict[Label, list[ThreadNode]],
    ) -> None:
        self._labels[node.message.message_id] = label
        self._counts[label] += 1
        labeled[label].append(node)

    def label_of(self, message_id: str) -> Label:
        """Recorded label of a message, IGNORED when never labeled."""
        return self._labels.get(message_id, Label.IGNORED)

    @property
    def counts(self) -> dict[Label, int]:
        """Number of messages recorded per label."""
        return dict(self._counts)
