"""Training set preparation: vocabulary pruning and class balancing.

Usage:
    from mlscan.engine.dataset import DatasetBuilder

    builder = DatasetBuilder(min_occurrences=4, random_seed=42)
    training_sets = builder.build({Label.INTERESTING: [...], Label.NOT_INTERESTING: [...]})
"""

import random
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from typing import TypeVar

from mlscan.core.files import OutputDirectory
from mlscan.core.logging import get_logger
from mlscan.engine.labeler import Label

logger = get_logger(__name__)

T = TypeVar("T")

DEFAULT_MIN_OCCURRENCES = 4
WORD_FREQUENCY_SUFFIX = "wordFrequency"


# ---------------------------------------------------------------------------
# Vocabulary pruning
# ---------------------------------------------------------------------------


def count_words(sets: Mapping[Label, Iterable[str]]) -> Counter[str]:
    """Count whitespace-separated words across every text of every label."""
    counts: Counter[str] = Counter()
    for texts in sets.values():
        for text in texts:
            counts.update(text.split())
    return counts


def format_frequency_report(counts: Counter[str]) -> str:
    """Group words by exact occurrence count, rarest first.

    Words within a group appear in first-seen order.
    """
    by_count: dict[int, list[str]] = {}
    for word, count in counts.items():
        by_count.setdefault(count, []).append(word)

    sections = [
        f"=== {count} occurrences\n  {' '.join(by_count[count])}\n"
        for count in sorted(by_count)
    ]
    return "\n".join(sections)


def prune_uncommon_words(
    sets: Mapping[Label, Sequence[str]],
    counts: Counter[str],
    min_occurrences: int,
) -> dict[Label, list[str]]:
    """Drop words seen fewer than min_occurrences times from every text.

    Surviving words keep their order and are joined by single spaces.
    """
    return {
        label: [
            " ".join(word for word in text.split() if counts[word] >= min_occurrences)
            for text in texts
        ]
        for label, texts in sets.items()
    }


# ---------------------------------------------------------------------------
# Balancing
# ---------------------------------------------------------------------------


def reservoir_sample(items: Sequence[T], k: int, rng: random.Random) -> list[T]:
    """Pick k items uniformly at random (Algorithm R).

    Args:
        items: Population
        k: Sample size; the whole population is returned when k >= len(items)
        rng: Random generator, seeded by the caller

    Returns:
        The sample, as a new list
    """
    sample = list(items[:k])
    for i in range(k, len(items)):
        j = rng.randrange(i + 1)
        if j < k:
            sample[j] = items[i]
    return sample


def balance_training_sets(
    sets: Mapping[Label, Sequence[str]],
    random_seed: int,
) -> dict[Label, list[str]]:
    """Shrink the largest trainable bucket to the size of the smallest.

    Labels not used for training are returned unchanged.

    Args:
        sets: Label -> texts
        random_seed: Seed for the sampling generator

    Returns:
        New Label -> texts mapping
    """
    balanced = {label: list(texts) for label, texts in sets.items()}
    trainable = [label for label in balanced if label.use_for_training]
    if len(trainable) < 2:
        return balanced

    larger = max(trainable, key=lambda label: len(balanced[label]))
    smaller = min(trainable, key=lambda label: len(balanced[label]))
    target = len(balanced[smaller])
    if len(balanced[larger]) == target:
        return balanced

    rng = random.Random(random_seed)
    logger.info(
        "balancing_training_sets",
        larger=str(larger),
        smaller=str(smaller),
        from_size=len(balanced[larger]),
        to_size=target,
        seed=random_seed,
    )
    balanced[larger] = reservoir_sample(balanced[larger], target, rng)
    return balanced


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


class DatasetBuilder:
    """Prunes rare vocabulary and balances the trainable label buckets.

    Attributes:
        min_occurrences: Words seen fewer times than this are dropped
        random_seed: Seed for balancing
        output: Where the word frequency report goes; not written when None
        word_counts: Word counts of the last build, before pruning
    """

    def __init__(
        self,
        min_occurrences: int = DEFAULT_MIN_OCCURRENCES,
        random_seed: int = 0,
        output: OutputDirectory | None = None,
    ):
        self.min_occurrences = min_occurrences
        self.random_seed = random_seed
        self.output = output
        self.word_counts: Counter[str] = Counter()

    def build(self, sets: Mapping[Label, Sequence[str]]) -> dict[Label, list[str]]:
        """Prune and balance a copy of the given sets.

        Args:
            sets: Label -> normalized texts

        Returns:
            Label -> pruned, balanced texts (labels not used for training
            are pruned but not balanced)
        """
        self.word_counts = count_words(sets)
        if self.output is not None:
            self.output.write_text(
                WORD_FREQUENCY_SUFFIX, format_frequency_report(self.word_counts)
            )

        pruned = prune_uncommon_words(sets, self.word_counts, self.min_occurrences)
        logger.info(
            "vocabulary_pruned",
            vocabulary=len(self.word_counts),
            kept=sum(1 for c in self.word_counts.values() if c >= self.min_occurrences),
            min_occurrences=self.min_occurrences,
        )
        return balance_training_sets(pruned, self.random_seed)
