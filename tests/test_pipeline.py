"""Tests for the end-to-end training pipeline and its evaluation step."""

from __future__ import annotations

from pathlib import Path

import pytest
from rich.console import Console

from mlscan.classifier.text_classifier import Prediction, read_examples
from mlscan.config_schema import AppConfig
from mlscan.core.errors import EmptyArchiveError, OutputDirectoryError
from mlscan.core.files import OutputDirectory
from mlscan.core.logging import RUN_ID_LENGTH, get_run_id
from mlscan.engine.evaluation import EvaluationReport, evaluate_threads, threshold_label
from mlscan.engine.labeler import InterestingSendersLabeler, Label
from mlscan.engine.pipeline import TrainingPipeline
from mlscan.engine.threads import collate
from mlscan.classifier.normalizer import TextNormalizer


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def output(sample_config: AppConfig) -> OutputDirectory:
    """Output directory from the sample config."""
    return OutputDirectory(Path(sample_config.output.directory))


@pytest.fixture
def pipeline(sample_config: AppConfig, output: OutputDirectory) -> TrainingPipeline:
    """A pipeline with quiet console output."""
    return TrainingPipeline(sample_config, output, console=Console(quiet=True))


class _FixedClassifier:
    """Classifier stub returning a fixed prediction per input text."""

    def __init__(self, predictions: dict[str, Prediction], default: Prediction):
        self.predictions = predictions
        self.default = default

    def fit(self, datasets, params) -> None:  # noqa: ANN001
        pass

    def predict(self, text: str) -> Prediction:
        for key, prediction in self.predictions.items():
            if key in text:
                return prediction
        return self.default

    def validate(self, datasets):  # noqa: ANN001, ANN201
        return None


# =============================================================================
# Pipeline
# =============================================================================


class TestTrainingPipeline:
    """Tests for TrainingPipeline.run and its stages."""

    def test_run_writes_all_artifacts(
        self, pipeline: TrainingPipeline, training_archive: Path, output: OutputDirectory
    ) -> None:
        """Test a full training run on the sample archive."""
        result = pipeline.run([training_archive])

        assert result.random_seed == 7
        assert result.unparseable == 1
        assert result.label_counts == {
            Label.INTERESTING: 6,
            Label.NOT_INTERESTING: 8,
            Label.IGNORED: 1,
        }
        assert result.training_sizes[Label.INTERESTING] == 6
        assert result.training_sizes[Label.NOT_INTERESTING] == 6
        for suffix in (
            "Interesting",
            "NotInteresting",
            "Ignored",
            "wordFrequency",
            "messages",
            "unparseable",
            "model",
        ):
            assert output.path(suffix).exists(), suffix

        interesting = read_examples(output.path("Interesting"))
        assert len(interesting) == 6
        assert all("storage" in line for line in interesting)
        assert result.metrics is not None
        assert result.metrics.accuracy == pytest.approx(1.0)
        assert result.model_path == output.path("model")

    def test_unparseable_file_contents(
        self, pipeline: TrainingPipeline, training_archive: Path, output: OutputDirectory
    ) -> None:
        """Test that unparseable raw messages are dumped verbatim."""
        pipeline.run([training_archive])
        dumped = output.path("unparseable").read_text(encoding="utf-8")
        assert dumped.startswith("From broken at users.org")

    def test_messages_report_shows_labels(
        self, pipeline: TrainingPipeline, training_archive: Path, output: OutputDirectory
    ) -> None:
        """Test that the thread report renders labels per message."""
        pipeline.run([training_archive])
        report = output.path("messages").read_text(encoding="utf-8")
        threads = report.split("===\n")

        assert len(threads) == 16  # 6 + 8 thread starters, staff, orphan
        first = threads[0].splitlines()
        assert first[0].endswith(" - Interesting")
        assert first[1].startswith("+-- Re: [users] storage domain failure")
        assert first[1].endswith(" - Ignored")

    def test_same_seed_same_training_sets(
        self, sample_config: AppConfig, training_archive: Path, tmp_path: Path
    ) -> None:
        """Test that a fixed seed reproduces the balanced datasets."""
        outputs = []
        for name in ("first", "second"):
            output = OutputDirectory(tmp_path / name)
            TrainingPipeline(sample_config, output, console=Console(quiet=True)).run(
                [training_archive]
            )
            outputs.append(output.path("NotInteresting").read_text(encoding="utf-8"))
        assert outputs[0] == outputs[1]

    def test_no_messages_raises(
        self, pipeline: TrainingPipeline, tmp_path: Path, output: OutputDirectory
    ) -> None:
        """Test that an archive without parseable messages is fatal."""
        archive = tmp_path / "broken.mbox"
        archive.write_text("From x\nSubject: nothing else\n\nbody\n", encoding="utf-8")

        with pytest.raises(EmptyArchiveError):
            pipeline.run([archive])
        assert output.path("unparseable").exists()

    def test_output_path_is_a_file(
        self, sample_config: AppConfig, training_archive: Path, tmp_path: Path
    ) -> None:
        """Test that an output path occupied by a file is rejected."""
        blocker = tmp_path / "blocker"
        blocker.write_text("x")
        pipeline = TrainingPipeline(
            sample_config, OutputDirectory(blocker), console=Console(quiet=True)
        )
        with pytest.raises(OutputDirectoryError):
            pipeline.run([training_archive])

    def test_random_seed_drawn_when_unset(
        self, sample_config: AppConfig, output: OutputDirectory
    ) -> None:
        """Test that a seed is chosen when none is configured."""
        config = sample_config.model_copy(
            update={"dataset": sample_config.dataset.model_copy(update={"random_seed": None})}
        )
        pipeline = TrainingPipeline(config, output, console=Console(quiet=True))
        assert 0 <= pipeline.random_seed < 2**32

    def test_run_with_test_archive_and_sentences(
        self,
        pipeline: TrainingPipeline,
        training_archive: Path,
        heldout_archive: Path,
        output: OutputDirectory,
    ) -> None:
        """Test evaluation on a held-out archive and sample sentences."""
        result = pipeline.run(
            [training_archive],
            test_paths=[heldout_archive],
            sentences=["Storage domain VDSM failure"],
        )

        assert result.evaluation is not None
        assert result.evaluation.total == 4
        assert result.evaluation.total_interesting == 2
        results = output.path("testResults").read_text(encoding="utf-8")
        assert results.startswith("Classifying sentence: Storage domain VDSM failure\n")
        assert "4 messages total" in results

    def test_run_binds_a_run_id(self, pipeline: TrainingPipeline, training_archive: Path) -> None:
        """Test that a run is tagged and the tag does not outlive it."""
        result = pipeline.run([training_archive])
        assert result.run_id is not None
        assert len(result.run_id) == RUN_ID_LENGTH
        assert get_run_id() is None

    def test_empty_examples_are_not_written(
        self, pipeline: TrainingPipeline, output: OutputDirectory
    ) -> None:
        """Test that texts emptied by pruning are dropped from dataset files."""
        output.prepare()
        files, written = pipeline.write_dataset_files(
            {
                Label.INTERESTING: ["Storage Domain", "", "vdsm\nfailure", "  "],
                Label.IGNORED: [""],
            }
        )

        assert read_examples(files[Label.INTERESTING]) == ["storage domain", "vdsm failure"]
        assert written == {Label.INTERESTING: 2, Label.IGNORED: 0}
        assert read_examples(files[Label.IGNORED]) == []


# =============================================================================
# Evaluation
# =============================================================================


class TestEvaluation:
    """Tests for evaluate_threads and the report."""

    @pytest.fixture
    def roots(self, make_message):  # noqa: ANN001, ANN201
        """Two interesting and two uninteresting thread starters."""
        return collate(
            [
                make_message("<i1>", body="alpha"),
                make_message("<i1r>", in_reply_to="<i1>", from_address="dev@corp.com"),
                make_message("<i2>", body="beta"),
                make_message("<i2r>", in_reply_to="<i2>", from_address="dev@corp.com"),
                make_message("<n1>", body="gamma"),
                make_message("<n2>", body="delta"),
                make_message("<x>", from_address="boss@corp.com", body="alpha"),
            ]
        )

    @pytest.fixture
    def classifier(self) -> _FixedClassifier:
        """alpha: confident interesting, beta: borderline not interesting,
        gamma: borderline interesting, anything else: not interesting."""
        return _FixedClassifier(
            {
                "alpha": Prediction("Interesting", {"Interesting": 0.9, "NotInteresting": 0.1}),
                "beta": Prediction("NotInteresting", {"Interesting": 0.45, "NotInteresting": 0.55}),
                "gamma": Prediction("Interesting", {"Interesting": 0.6, "NotInteresting": 0.4}),
            },
            Prediction("NotInteresting", {"Interesting": 0.1, "NotInteresting": 0.9}),
        )

    @pytest.fixture
    def labeler(self) -> InterestingSendersLabeler:
        return InterestingSendersLabeler({"dev@corp.com"}, excluded_domain="corp.com")

    def test_counts_at_neutral_confidence(self, roots, classifier, labeler) -> None:  # noqa: ANN001
        """Test exact-match counting; excluded senders are skipped."""
        report = evaluate_threads(classifier, labeler, TextNormalizer(), roots)

        assert report.total == 4
        assert report.total_interesting == 2
        assert report.matches == 2  # alpha and delta
        assert report.matched_interesting == 1
        assert report.false_positives == 0
        assert report.fuzzy_positives == 0
        assert len(report.entries) == 2
        assert len(report.summary_lines()) == 3

    def test_threshold_counts(self, roots, classifier, labeler) -> None:  # noqa: ANN001
        """Test false and fuzzy positives at a lower threshold."""
        report = evaluate_threads(classifier, labeler, TextNormalizer(), roots, confidence=0.4)

        # beta (0.45 > 0.4) becomes a fuzzy match; delta stays correct
        assert report.fuzzy_positives == 1
        assert report.false_positives == 0
        assert any("Fuzzy match" in entry for entry in report.entries)
        lines = report.summary_lines()
        assert "Results for positive match at 40.00% probability of being interesting:" in lines

    def test_threshold_false_positive(self, roots, classifier, labeler) -> None:  # noqa: ANN001
        """Test a correct prediction lost at a higher threshold."""
        report = evaluate_threads(classifier, labeler, TextNormalizer(), roots, confidence=0.95)
        # alpha (0.9) is no longer interesting at 0.95
        assert report.false_positives == 1

    def test_threshold_label(self) -> None:
        """Test the threshold verdict."""
        prediction = Prediction("NotInteresting", {"Interesting": 0.3, "NotInteresting": 0.7})
        assert threshold_label(prediction, 0.5) is Label.NOT_INTERESTING
        assert threshold_label(prediction, 0.2) is Label.INTERESTING
        assert threshold_label(prediction, 0.3) is Label.NOT_INTERESTING

    def test_summary_with_no_messages(self) -> None:
        """Test that empty groups report 0% instead of dividing by zero."""
        lines = EvaluationReport(confidence=0.7).summary_lines()
        assert lines[0] == "0 messages total, 0 predicted successfully (0.00%)"
        assert len(lines) == 8
