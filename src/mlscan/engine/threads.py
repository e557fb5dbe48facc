"""Conversation thread reconstruction.

Archives deliver messages flat and in arbitrary order: a reply can arrive
before the message it answers. ThreadCollator builds the reply forest online,
parking messages whose parent has not been seen yet and adopting them once
the parent shows up, so the final forest does not depend on arrival order.

Every traversal here is iterative; threads can be arbitrarily deep.

Usage:
    from mlscan.engine.threads import ThreadCollator

    collator = ThreadCollator()
    for message in messages:
        collator.add(message)

    for root in collator.get_roots():
        print(root)
"""

from collections import defaultdict, deque
from collections.abc import Callable, Iterable, Iterator

from mlscan.core.logging import get_logger
from mlscan.mail.message import Message

logger = get_logger(__name__)

BRANCH_MARKER = "+-- "
CONTINUATION = "|   "
INDENT = "    "


class ThreadNode:
    """One message in a reply tree.

    A node owns its children; the parent reference is a back-pointer and is
    None for roots. A node is attached to a parent at most once.

    Attributes:
        message: The wrapped message
        parent: Parent node, None for roots
        children: Replies, in attachment order
    """

    __slots__ = ("message", "parent", "children")

    def __init__(self, message: Message):
        self.message = message
        self.parent: ThreadNode | None = None
        self.children: list[ThreadNode] = []

    def add_child(self, child: "ThreadNode") -> None:
        """Attach a reply to this node."""
        child.parent = self
        self.children.append(child)

    @property
    def root(self) -> "ThreadNode":
        """Topmost ancestor (the node itself for roots)."""
        node = self
        while node.parent is not None:
            node = node.parent
        return node

    @property
    def depth(self) -> int:
        """Number of ancestors above this node."""
        depth = 0
        node = self.parent
        while node is not None:
            depth += 1
            node = node.parent
        return depth

    def ancestors(self) -> Iterator["ThreadNode"]:
        """Yield this node and then each ancestor up to the root."""
        node: ThreadNode | None = self
        while node is not None:
            yield node
            node = node.parent

    def all_in_thread(self) -> list["ThreadNode"]:
        """Flatten this subtree breadth-first, starting with this node."""
        result: list[ThreadNode] = []
        queue = deque([self])
        while queue:
            node = queue.popleft()
            result.append(node)
            queue.extend(node.children)
        return result

    def render(self, formatter: Callable[[Message], str]) -> str:
        """Render this subtree as an indented tree, one line per message.

        Children are shown in attachment order below their parent, marked
        with ``+-- ``. A ``|   `` column is drawn at every depth where a
        later sibling is still to be printed.

        Args:
            formatter: Produces the text of one message's line

        Returns:
            The rendered tree; every line ends with a newline
        """
        lines: list[str] = []
        stack: list[tuple[ThreadNode, int]] = [(self, 0)]
        pending_at_depth: defaultdict[int, int] = defaultdict(int)
        pending_at_depth[0] = 1

        while stack:
            node, depth = stack.pop()
            pending_at_depth[depth] -= 1

            prefix = "".join(
                CONTINUATION if pending_at_depth[level] > 0 else INDENT
                for level in range(1, depth)
            )
            if depth > 0:
                prefix += BRANCH_MARKER
            lines.append(f"{prefix}{formatter(node.message)}\n")

            for child in reversed(node.children):
                stack.append((child, depth + 1))
                pending_at_depth[depth + 1] += 1

        return "".join(lines)

    def __str__(self) -> str:
        return self.render(lambda message: message.summary)

    def __repr__(self) -> str:
        return f"ThreadNode({self.message.message_id!r}, children={len(self.children)})"


class ThreadCollator:
    """Online reply-forest builder.

    Attributes:
        by_id: Message id -> node; a duplicated id keeps the last node added
        pending: Missing parent id -> nodes waiting for it, in arrival order.
            The key "" holds messages that are not replies.
    """

    def __init__(self) -> None:
        self.by_id: dict[str, ThreadNode] = {}
        self.pending: dict[str, list[ThreadNode]] = {}

    def add(self, message: Message) -> ThreadNode:
        """Insert a message into the forest.

        Args:
            message: Message to place

        Returns:
            The node created for the message
        """
        node = ThreadNode(message)
        message_id = message.message_id

        if message_id in self.by_id:
            logger.debug("Duplicate message id, keeping last", message_id=message_id)
        self.by_id[message_id] = node

        parent = self.by_id.get(message.in_reply_to) if message.in_reply_to else None
        if parent is not None and parent is not node:
            parent.add_child(node)
        else:
            self.pending.setdefault(message.in_reply_to, []).append(node)

        waiting = self.pending.get(message_id) if message_id else None
        if waiting:
            # A waiting node that is already above the new node stays pending.
            lineage = {id(n) for n in node.ancestors()}
            kept = [n for n in waiting if id(n) in lineage]
            for orphan in waiting:
                if id(orphan) not in lineage:
                    node.add_child(orphan)
            if kept:
                self.pending[message_id] = kept
            else:
                del self.pending[message_id]

        return node

    def add_all(self, messages: Iterable[Message]) -> None:
        """Insert several messages, in order."""
        for message in messages:
            self.add(message)

    def get_roots(self) -> list[ThreadNode]:
        """Return every node without a parent, in group-creation order.

        Genuine thread starters have an empty in_reply_to; any other root is
        an orphan whose parent never appeared.
        """
        return [node for group in self.pending.values() for node in group]


def collate(messages: Iterable[Message]) -> list[ThreadNode]:
    """Build the reply forest of a batch of messages and return its roots."""
    collator = ThreadCollator()
    collator.add_all(messages)
    return collator.get_roots()
