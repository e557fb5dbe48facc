"""Classifier evaluation against held-out archives and sample sentences.

Test archives are labeled with the same interesting-senders policy as the
training data; the classifier's prediction for each thread starter is then
compared with that label. With a confidence other than 0.5 a second,
threshold-based verdict is scored as well: a message counts as interesting
when its predicted probability of being interesting exceeds the confidence.

Usage:
    from mlscan.engine.evaluation import evaluate_threads, predict_texts

    report = evaluate_threads(classifier, labeler, normalizer, roots, confidence=0.7)
    for line in report.summary_lines():
        print(line)
"""

from collections.abc import Iterable
from dataclasses import dataclass, field

from mlscan.classifier.normalizer import TextNormalizer
from mlscan.classifier.text_classifier import Prediction, TextClassifier
from mlscan.core.logging import get_logger
from mlscan.engine.labeler import InterestingSendersLabeler, Label
from mlscan.engine.threads import ThreadNode

logger = get_logger(__name__)

NEUTRAL_CONFIDENCE = 0.5


def _format_prediction(prediction: Prediction) -> str:
    probabilities = ", ".join(
        f"{label}={p:.4f}" for label, p in sorted(prediction.probabilities.items())
    )
    return f"Predicted class: {prediction.label}\nProbabilities: {probabilities}\n"


def _percent(part: int, whole: int) -> float:
    return 100.0 * part / whole if whole else 0.0


def predict_texts(classifier: TextClassifier, texts: Iterable[str]) -> list[str]:
    """Classify free-text sentences.

    Returns:
        One report entry per sentence
    """
    entries = []
    for text in texts:
        prediction = classifier.predict(text.lower())
        entries.append(f"Classifying sentence: {text}\n{_format_prediction(prediction)}")
    return entries


@dataclass
class EvaluationReport:
    """Counts and mismatch details of a test-archive evaluation.

    Attributes:
        confidence: Probability threshold for the threshold-based verdict
        total: Messages evaluated
        matches: Messages whose predicted label equals the expected one
        total_interesting: Messages expected to be interesting
        matched_interesting: Interesting messages predicted as such
        false_positives: Correct predictions the threshold verdict gets wrong
        fuzzy_positives: Wrong predictions the threshold verdict gets right
        entries: One text entry per mispredicted message
    """

    confidence: float = NEUTRAL_CONFIDENCE
    total: int = 0
    matches: int = 0
    total_interesting: int = 0
    matched_interesting: int = 0
    false_positives: int = 0
    fuzzy_positives: int = 0
    entries: list[str] = field(default_factory=list)

    @property
    def total_uninteresting(self) -> int:
        return self.total - self.total_interesting

    @property
    def matched_uninteresting(self) -> int:
        return self.matches - self.matched_interesting

    @property
    def accuracy(self) -> float:
        """Fraction of exact matches, 0.0 when nothing was evaluated."""
        return self.matches / self.total if self.total else 0.0

    def summary_lines(self) -> list[str]:
        """Human-readable result lines, percentages guarded against empty groups."""
        lines = [
            f"{self.total} messages total, {self.matches} predicted successfully "
            f"({_percent(self.matches, self.total):.2f}%)",
            f"{self.total_uninteresting} uninteresting messages, "
            f"{self.matched_uninteresting} predicted successfully "
            f"({_percent(self.matched_uninteresting, self.total_uninteresting):.2f}%)",
            f"{self.total_interesting} interesting messages, "
            f"{self.matched_interesting} predicted successfully "
            f"({_percent(self.matched_interesting, self.total_interesting):.2f}%)",
        ]
        if self.confidence != NEUTRAL_CONFIDENCE:
            threshold_matches = self.matches + self.fuzzy_positives - self.false_positives
            uninteresting = self.matched_uninteresting - self.false_positives
            interesting = self.matched_interesting + self.fuzzy_positives
            lines += [
                "",
                f"Results for positive match at {self.confidence * 100:.2f}% "
                "probability of being interesting:",
                f"{self.total} messages total, {threshold_matches} predicted successfully "
                f"({_percent(threshold_matches, self.total):.2f}%)",
                f"{self.total_uninteresting} uninteresting messages, {uninteresting} "
                f"predicted successfully "
                f"({_percent(uninteresting, self.total_uninteresting):.2f}%) "
                f"({self.false_positives} more false positives)",
                f"{self.total_interesting} interesting messages, {interesting} "
                f"predicted successfully "
                f"({_percent(interesting, self.total_interesting):.2f}%) "
                f"({self.fuzzy_positives} more matches)",
            ]
        return lines


def threshold_label(prediction: Prediction, confidence: float) -> Label:
    """Verdict at a probability threshold; the plain prediction at 0.5."""
    if confidence == NEUTRAL_CONFIDENCE:
        return Label(prediction.label)
    if prediction.probability(str(Label.INTERESTING)) > confidence:
        return Label.INTERESTING
    return Label.NOT_INTERESTING


def evaluate_threads(
    classifier: TextClassifier,
    labeler: InterestingSendersLabeler,
    normalizer: TextNormalizer,
    roots: Iterable[ThreadNode],
    confidence: float = NEUTRAL_CONFIDENCE,
) -> EvaluationReport:
    """Score the classifier on collated test threads.

    Threads whose expected label is not used for training (replies, orphans,
    excluded senders) are skipped.

    Args:
        classifier: Fitted classifier
        labeler: Produces the expected label of each thread
        normalizer: Turns each thread starter into classifier input
        roots: Test forest roots
        confidence: Threshold for the threshold-based verdict

    Returns:
        EvaluationReport with counts and mismatch entries
    """
    report = EvaluationReport(confidence=confidence)

    for root in roots:
        expected = labeler.label_for(root)
        if not expected.use_for_training:
            continue

        prediction = classifier.predict(normalizer.normalize(root.message))
        predicted = Label(prediction.label)
        fuzzy = threshold_label(prediction, confidence)

        report.total += 1
        if expected is Label.INTERESTING:
            report.total_interesting += 1

        if predicted is expected:
            report.matches += 1
            if expected is Label.INTERESTING:
                report.matched_interesting += 1
            if fuzzy is not expected:
                report.false_positives += 1
            continue

        entry = (
            f"Classifying mail: {root.message.summary}\n"
            f"Expected class: {expected}\n"
            f"{_format_prediction(prediction)}"
        )
        if fuzzy is expected:
            report.fuzzy_positives += 1
            entry += "Fuzzy match\n"
        report.entries.append(entry)

    logger.info(
        "test_threads_evaluated",
        total=report.total,
        matches=report.matches,
        false_positives=report.false_positives,
        fuzzy_positives=report.fuzzy_positives,
    )
    return report
