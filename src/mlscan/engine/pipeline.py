"""End-to-end training pipeline.

Reads training archives, rebuilds threads, labels them, prepares a balanced
dataset, writes the dataset files and reports, trains and validates the
classifier and finally evaluates it on test archives and sample sentences.

Files written to the output directory (default prefix ``mlscan.``):
    unparseable      raw messages that could not be parsed
    wordFrequency    vocabulary grouped by occurrence count
    <Label>          one dataset file per label, one example per line
    messages         every training thread with the label of each message
    model            the fitted classifier (joblib)
    testResults      sentence predictions and test-archive evaluation

Usage:
    from mlscan.engine.pipeline import TrainingPipeline

    pipeline = TrainingPipeline(config, OutputDirectory(Path("output")))
    result = pipeline.run(training_paths, test_paths=[...], sentences=["..."])
"""

from __future__ import annotations

import random
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from mlscan.classifier.normalizer import TextNormalizer
from mlscan.classifier.text_classifier import (
    ClassificationMethod,
    SklearnTextClassifier,
    TrainingParameters,
    ValidationMetrics,
    build_classifier,
)
from mlscan.core.errors import EmptyArchiveError
from mlscan.core.logging import get_logger, get_run_id, run_context
from mlscan.engine.dataset import DatasetBuilder
from mlscan.engine.evaluation import EvaluationReport, evaluate_threads, predict_texts
from mlscan.engine.labeler import InterestingSendersLabeler, Label
from mlscan.engine.threads import ThreadNode, collate
from mlscan.mail.archive import read_archives

if TYPE_CHECKING:
    from mlscan.classifier.text_classifier import TextClassifier
    from mlscan.config_schema import AppConfig
    from mlscan.core.files import OutputDirectory

logger = get_logger(__name__)

UNPARSEABLE_SUFFIX = "unparseable"
UNPARSEABLE_DELIMITER = "\n\n=== UNPARSEABLE MESSAGE ===\n\n"
MESSAGES_SUFFIX = "messages"
MODEL_SUFFIX = "model"
TEST_RESULTS_SUFFIX = "testResults"
REPORT_DELIMITER = "===\n"


def draw_random_seed() -> int:
    """Draw a seed for a run that was not given one."""
    return random.SystemRandom().randrange(2**32)


# ---------------------------------------------------------------------------
# Result dataclasses
# ---------------------------------------------------------------------------


@dataclass
class TrainingResult:
    """Outcome of a training run."""

    random_seed: int
    run_id: str | None = None
    label_counts: dict[Label, int] = field(default_factory=dict)
    training_sizes: dict[Label, int] = field(default_factory=dict)
    dataset_files: dict[Label, Path] = field(default_factory=dict)
    unparseable: int = 0
    metrics: ValidationMetrics | None = None
    model_path: Path | None = None
    evaluation: EvaluationReport | None = None
    test_entries: list[str] = field(default_factory=list)


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------


class TrainingPipeline:
    """Archive-to-classifier training run.

    Attributes:
        config: Application configuration
        output: Output directory for every artifact
        random_seed: Seed used for balancing and the classifier
    """

    def __init__(
        self,
        config: AppConfig,
        output: OutputDirectory,
        console: Console | None = None,
        classifier: TextClassifier | None = None,
        normalizer: TextNormalizer | None = None,
    ):
        self.config = config
        self.output = output
        self._console = console or Console()
        self.random_seed = (
            config.dataset.random_seed
            if config.dataset.random_seed is not None
            else draw_random_seed()
        )
        self.method = ClassificationMethod(config.classifier.method)
        self.classifier: TextClassifier = classifier or build_classifier(self.method)
        self.normalizer = normalizer or TextNormalizer()
        self.labeler = self._make_labeler()

    def _make_labeler(self) -> InterestingSendersLabeler:
        return InterestingSendersLabeler(
            senders=self.config.labeling.senders,
            excluded_domain=self.config.labeling.excluded_domain,
            mode=self.config.labeling.mode,
        )

    # -- stages ----------------------------------------------------------------

    def collect_threads(self, paths: Sequence[Path]) -> tuple[list[ThreadNode], int]:
        """Parse training archives and collate them into threads.

        Unparseable messages are written to the ``unparseable`` file.

        Returns:
            Tuple of (forest roots, number of unparseable messages)

        Raises:
            EmptyArchiveError: If no message could be parsed
        """
        result = read_archives(paths)
        unparseable_file = self.output.write_records(
            UNPARSEABLE_SUFFIX, result.unparseable, UNPARSEABLE_DELIMITER
        )
        if result.unparseable:
            logger.warning(
                "Unparseable messages skipped",
                count=len(result.unparseable),
                path=str(unparseable_file),
            )

        if not result.messages:
            raise EmptyArchiveError(
                f"No training messages found in {', '.join(str(p) for p in paths)}"
            )

        roots = collate(result.messages)
        logger.info("threads_collated", messages=len(result.messages), roots=len(roots))
        return roots, len(result.unparseable)

    def build_training_sets(self, roots: Sequence[ThreadNode]) -> dict[Label, list[str]]:
        """Label threads, normalize their text and prune and balance the result."""
        labeled = self.labeler.label_threads(roots)
        sets = {
            label: [self.normalizer.normalize(node.message) for node in nodes]
            for label, nodes in labeled.items()
        }
        builder = DatasetBuilder(
            min_occurrences=self.config.dataset.min_occurrences,
            random_seed=self.random_seed,
            output=self.output,
        )
        return builder.build(sets)

    def write_dataset_files(
        self, sets: Mapping[Label, Sequence[str]]
    ) -> tuple[dict[Label, Path], dict[Label, int]]:
        """Write one file per label, one lowercased example per line.

        Texts left empty by pruning cannot be represented in a line-based
        file and are dropped.

        Returns:
            Tuple of (label -> file, label -> examples written)
        """
        files: dict[Label, Path] = {}
        written: dict[Label, int] = {}
        for label, texts in sets.items():
            examples = [text.replace("\n", " ").lower() for text in texts]
            examples = [example for example in examples if example.strip()]
            if len(examples) < len(texts):
                logger.info(
                    "empty_examples_dropped",
                    label=str(label),
                    dropped=len(texts) - len(examples),
                )
            files[label] = self.output.write_records(str(label), examples)
            written[label] = len(examples)
        return files, written

    def write_thread_report(self, roots: Sequence[ThreadNode]) -> Path:
        """Write every thread with the recorded label of each message."""
        labeler = self.labeler
        renderings = [
            root.render(lambda m: f"{m.summary} - {labeler.label_of(m.message_id)}")
            for root in roots
        ]
        return self.output.write_records(MESSAGES_SUFFIX, renderings, REPORT_DELIMITER)

    def fit_classifier(self, dataset_files: Mapping[Label, Path]) -> ValidationMetrics:
        """Train on the trainable dataset files and validate on the same data."""
        datasets = {
            str(label): path for label, path in dataset_files.items() if label.use_for_training
        }
        params = TrainingParameters(
            method=self.method,
            random_seed=self.random_seed,
            chisquare_alpha=self.config.classifier.chisquare_alpha,
            max_ngram=self.config.classifier.max_ngram,
        )
        self.classifier.fit(datasets, params)
        return self.classifier.validate(datasets)

    def evaluate(
        self,
        test_paths: Sequence[Path],
        sentences: Sequence[str],
    ) -> tuple[EvaluationReport | None, list[str]]:
        """Run sample sentences and test archives through the trained classifier.

        All entries are written to the ``testResults`` file.
        """
        entries = predict_texts(self.classifier, sentences)
        report = None

        if test_paths:
            parsed = read_archives(test_paths)
            if parsed.unparseable:
                logger.warning("Unparseable test messages skipped", count=len(parsed.unparseable))
            report = evaluate_threads(
                self.classifier,
                self._make_labeler(),
                self.normalizer,
                collate(parsed.messages),
                confidence=self.config.classifier.confidence,
            )
            entries.extend(report.entries)
            entries.append("\n" + "\n".join(report.summary_lines()) + "\n")

        path = self.output.write_records(TEST_RESULTS_SUFFIX, entries, REPORT_DELIMITER)
        self._console.print(f"Wrote test results to [cyan]{path}[/cyan]")
        return report, entries

    # -- orchestration ---------------------------------------------------------

    def train(self, training_paths: Sequence[Path]) -> TrainingResult:
        """Run every stage up to a validated, saved classifier."""
        result = TrainingResult(random_seed=self.random_seed, run_id=get_run_id())
        logger.info("training_started", archives=len(training_paths), seed=self.random_seed)

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=self._console,
            transient=True,
        ) as progress:
            task = progress.add_task("Reading archives...", total=None)
            roots, result.unparseable = self.collect_threads(training_paths)

            progress.update(task, description="Preparing training sets...")
            sets = self.build_training_sets(roots)
            result.label_counts = self.labeler.counts
            result.dataset_files, result.training_sizes = self.write_dataset_files(sets)
            self.write_thread_report(roots)

            progress.update(task, description=f"Training {self.method.value} classifier...")
            result.metrics = self.fit_classifier(result.dataset_files)

        if isinstance(self.classifier, SklearnTextClassifier):
            result.model_path = self.classifier.save(self.output.path(MODEL_SUFFIX))

        self._print_training_stats(result)
        return result

    def run(
        self,
        training_paths: Sequence[Path],
        test_paths: Sequence[Path] = (),
        sentences: Sequence[str] = (),
    ) -> TrainingResult:
        """Train, then evaluate when test archives or sample sentences are given."""
        with run_context():
            self.output.prepare()
            result = self.train(training_paths)
            if test_paths or sentences:
                result.evaluation, result.test_entries = self.evaluate(test_paths, sentences)
                if result.evaluation is not None:
                    self._console.print()
                    for line in result.evaluation.summary_lines():
                        self._console.print(line)
            return result

    # -- display ---------------------------------------------------------------

    def _print_training_stats(self, result: TrainingResult) -> None:
        self._console.print("\n[bold]Training Set[/bold]")
        self._console.print(f"  Random seed: [cyan]{result.random_seed}[/cyan]")
        if result.run_id is not None:
            self._console.print(f"  Run ID: [cyan]{result.run_id}[/cyan]")
        if result.unparseable:
            self._console.print(
                f"  Unparseable messages: [yellow]{result.unparseable}[/yellow]"
            )

        table = Table(box=None, padding=(0, 2))
        table.add_column("Label", style="cyan")
        table.add_column("Labeled", justify="right")
        table.add_column("In training set", justify="right")
        for label in Label:
            in_training = (
                str(result.training_sizes.get(label, 0)) if label.use_for_training else "-"
            )
            table.add_row(str(label), str(result.label_counts.get(label, 0)), in_training)
        self._console.print(table)

        if result.metrics is not None:
            self._console.print(
                f"\n[bold]Validation accuracy:[/bold] {result.metrics.accuracy * 100:.2f}%"
            )
            for name, metrics in result.metrics.per_label.items():
                self._console.print(
                    f"  {name}: precision {metrics.precision:.2f}, "
                    f"recall {metrics.recall:.2f}, f1 {metrics.f1:.2f}"
                )
        if result.model_path is not None:
            self._console.print(f"  Model saved to [cyan]{result.model_path}[/cyan]")
