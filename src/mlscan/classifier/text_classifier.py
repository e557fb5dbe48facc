"""Bag-of-words text classification over per-label dataset files.

The pipeline hands the classifier one file per label, each holding one
normalized example per line, and picks an algorithm from a closed set.
SklearnTextClassifier implements that contract on scikit-learn: word counts,
optional chi-square feature selection, then the chosen estimator.

Usage:
    from mlscan.classifier.text_classifier import (
        ClassificationMethod,
        TrainingParameters,
        build_classifier,
    )

    classifier = build_classifier(ClassificationMethod.MULTINOMIAL_BAYES)
    classifier.fit(
        {"Interesting": Path("out/mlscan.Interesting"),
         "NotInteresting": Path("out/mlscan.NotInteresting")},
        TrainingParameters(method=ClassificationMethod.MULTINOMIAL_BAYES, random_seed=42),
    )
    prediction = classifier.predict("engine fails start after upgrade")
    print(prediction.label, prediction.probabilities)
"""

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Protocol

import joblib
import numpy as np
from sklearn.base import BaseEstimator
from sklearn.feature_extraction.text import CountVectorizer
from sklearn.feature_selection import SelectFpr, chi2
from sklearn.linear_model import LogisticRegression
from sklearn.metrics import accuracy_score, classification_report, precision_recall_fscore_support
from sklearn.naive_bayes import BernoulliNB, MultinomialNB
from sklearn.pipeline import Pipeline
from sklearn.svm import LinearSVC

from mlscan.core.errors import ClassifierError
from mlscan.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_CHISQUARE_ALPHA = 0.10
# Whitespace tokens, single characters included; the normalizer has done the rest.
TOKEN_PATTERN = r"(?u)\S+"


class ClassificationMethod(str, Enum):
    """Supported classification algorithms."""

    BERNOULLI_BAYES = "bernoulli_bayes"
    BINARIZED_BAYES = "binarized_bayes"
    MULTINOMIAL_BAYES = "multinomial_bayes"
    SVM = "svm"
    MAX_ENTROPY = "max_entropy"


@dataclass(frozen=True, slots=True)
class TrainingParameters:
    """Settings for one fit.

    Attributes:
        method: Algorithm to train
        random_seed: Seed for estimators with a stochastic solver
        chisquare_alpha: False-positive rate for chi-square feature
            selection; None disables selection
        max_ngram: Longest word n-gram used as a feature
    """

    method: ClassificationMethod
    random_seed: int = 0
    chisquare_alpha: float | None = DEFAULT_CHISQUARE_ALPHA
    max_ngram: int = 1


@dataclass(frozen=True, slots=True)
class Prediction:
    """Predicted label with per-label probabilities."""

    label: str
    probabilities: dict[str, float] = field(default_factory=dict)

    def probability(self, label: str) -> float:
        """Probability of a label, 0.0 for labels the model does not know."""
        return self.probabilities.get(label, 0.0)


@dataclass(frozen=True, slots=True)
class LabelMetrics:
    """Precision, recall and F1 for one label."""

    precision: float
    recall: float
    f1: float
    support: int


@dataclass
class ValidationMetrics:
    """Scores of a classifier on labeled data.

    Attributes:
        accuracy: Fraction of examples predicted correctly
        per_label: Label -> precision/recall/F1
        report: Human-readable classification report
    """

    accuracy: float
    per_label: dict[str, LabelMetrics] = field(default_factory=dict)
    report: str = ""


class TextClassifier(Protocol):
    """Capability the training pipeline needs from a classifier."""

    def fit(self, datasets: Mapping[str, Path], params: TrainingParameters) -> None: ...

    def predict(self, text: str) -> Prediction: ...

    def validate(self, datasets: Mapping[str, Path]) -> ValidationMetrics: ...


def read_examples(path: Path) -> list[str]:
    """Read a dataset file: one example per line."""
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ClassifierError(f"Cannot read dataset file {path}: {e}") from e
    return text.split("\n") if text else []


def _load_datasets(datasets: Mapping[str, Path]) -> tuple[list[str], list[str]]:
    texts: list[str] = []
    labels: list[str] = []
    for label, path in datasets.items():
        examples = read_examples(path)
        texts.extend(examples)
        labels.extend([label] * len(examples))
    return texts, labels


def _make_estimator(params: TrainingParameters) -> BaseEstimator:
    match params.method:
        case ClassificationMethod.BERNOULLI_BAYES:
            return BernoulliNB()
        case ClassificationMethod.BINARIZED_BAYES | ClassificationMethod.MULTINOMIAL_BAYES:
            return MultinomialNB()
        case ClassificationMethod.SVM:
            return LinearSVC(random_state=params.random_seed)
        case ClassificationMethod.MAX_ENTROPY:
            return LogisticRegression(max_iter=1000, random_state=params.random_seed)
    raise ClassifierError(f"Unknown classification method: {params.method}")


def _make_vectorizer(params: TrainingParameters) -> CountVectorizer:
    return CountVectorizer(
        token_pattern=TOKEN_PATTERN,
        ngram_range=(1, params.max_ngram),
        binary=params.method is ClassificationMethod.BINARIZED_BAYES,
        lowercase=False,
    )


def _softmax(scores: np.ndarray) -> np.ndarray:
    shifted = scores - scores.max()
    exp = np.exp(shifted)
    return exp / exp.sum()


class SklearnTextClassifier:
    """TextClassifier backed by a scikit-learn Pipeline.

    Attributes:
        method: Algorithm, set by fit() or load()
        classes: Label names known to the fitted model
    """

    def __init__(self, method: ClassificationMethod | None = None):
        self.method = method
        self.classes: list[str] = []
        self._pipeline: Pipeline | None = None

    @property
    def is_fitted(self) -> bool:
        return self._pipeline is not None

    def fit(self, datasets: Mapping[str, Path], params: TrainingParameters) -> None:
        """Train on one dataset file per label.

        Args:
            datasets: Label name -> dataset file
            params: Algorithm and feature settings

        Raises:
            ClassifierError: If fewer than two labels have examples or the
                vocabulary is empty
        """
        texts, labels = _load_datasets(datasets)
        present = sorted(set(labels))
        if len(present) < 2:
            raise ClassifierError(
                f"Need examples for at least two labels to train, got {present or 'none'}",
                method=params.method.value,
            )

        steps: list[tuple[str, Any]] = [("vectorize", _make_vectorizer(params))]
        if params.chisquare_alpha is not None and self._selection_keeps_features(
            texts, labels, params
        ):
            steps.append(("select", SelectFpr(chi2, alpha=params.chisquare_alpha)))
        steps.append(("classify", _make_estimator(params)))

        pipeline = Pipeline(steps)
        try:
            pipeline.fit(texts, labels)
        except ValueError as e:
            raise ClassifierError(
                f"Failed to train {params.method.value} classifier: {e}",
                method=params.method.value,
            ) from e

        self._pipeline = pipeline
        self.method = params.method
        self.classes = [str(c) for c in pipeline.classes_]
        logger.info(
            "classifier_trained",
            method=params.method.value,
            examples=len(texts),
            classes=self.classes,
            feature_selection="select" in pipeline.named_steps,
        )

    def _selection_keeps_features(
        self,
        texts: list[str],
        labels: list[str],
        params: TrainingParameters,
    ) -> bool:
        """Check that chi-square selection leaves at least one feature."""
        try:
            features = _make_vectorizer(params).fit_transform(texts)
        except ValueError as e:
            raise ClassifierError(
                f"Failed to build vocabulary for {params.method.value} classifier: {e}",
                method=params.method.value,
            ) from e
        selector = SelectFpr(chi2, alpha=params.chisquare_alpha).fit(features, labels)
        if selector.get_support().any():
            return True
        logger.warning(
            "Chi-square selection keeps no features, training on all words",
            alpha=params.chisquare_alpha,
        )
        return False

    def _require_pipeline(self) -> Pipeline:
        if self._pipeline is None:
            raise ClassifierError("Classifier has not been trained or loaded")
        return self._pipeline

    def predict(self, text: str) -> Prediction:
        """Predict the label of one normalized text."""
        pipeline = self._require_pipeline()
        label = str(pipeline.predict([text])[0])

        if hasattr(pipeline, "predict_proba"):
            scores = pipeline.predict_proba([text])[0]
        else:
            decision = np.atleast_1d(pipeline.decision_function([text])[0])
            if decision.shape[0] == 1:
                positive = 1.0 / (1.0 + np.exp(-decision[0]))
                scores = np.array([1.0 - positive, positive])
            else:
                scores = _softmax(decision)

        probabilities = {cls: float(p) for cls, p in zip(self.classes, scores, strict=True)}
        return Prediction(label=label, probabilities=probabilities)

    def validate(self, datasets: Mapping[str, Path]) -> ValidationMetrics:
        """Score the fitted model on one dataset file per label."""
        pipeline = self._require_pipeline()
        texts, labels = _load_datasets(datasets)
        if not texts:
            raise ClassifierError("No examples to validate against", method=self._method_name)

        predicted = [str(p) for p in pipeline.predict(texts)]
        names = sorted(set(labels) | set(self.classes))
        precision, recall, f1, support = precision_recall_fscore_support(
            labels, predicted, labels=names, zero_division=0
        )
        per_label = {
            name: LabelMetrics(
                precision=float(precision[i]),
                recall=float(recall[i]),
                f1=float(f1[i]),
                support=int(support[i]),
            )
            for i, name in enumerate(names)
        }
        return ValidationMetrics(
            accuracy=float(accuracy_score(labels, predicted)),
            per_label=per_label,
            report=classification_report(labels, predicted, labels=names, zero_division=0),
        )

    @property
    def _method_name(self) -> str | None:
        return self.method.value if self.method is not None else None

    def save(self, path: Path) -> Path:
        """Persist the fitted model with joblib."""
        pipeline = self._require_pipeline()
        joblib.dump(
            {"pipeline": pipeline, "method": self._method_name, "classes": self.classes},
            path,
        )
        logger.info("classifier_saved", path=str(path))
        return Path(path)

    @classmethod
    def load(cls, path: Path) -> "SklearnTextClassifier":
        """Load a model written by save()."""
        try:
            data = joblib.load(path)
        except (OSError, EOFError, KeyError, ValueError) as e:
            raise ClassifierError(f"Cannot load classifier model {path}: {e}") from e
        classifier = cls(ClassificationMethod(data["method"]) if data.get("method") else None)
        classifier._pipeline = data["pipeline"]
        classifier.classes = list(data["classes"])
        return classifier


def build_classifier(method: ClassificationMethod | str) -> SklearnTextClassifier:
    """Create an untrained classifier for the given algorithm."""
    try:
        method = ClassificationMethod(method)
    except ValueError as e:
        choices = ", ".join(m.value for m in ClassificationMethod)
        raise ClassifierError(
            f"Unknown classification method '{method}'. Choose one of: {choices}"
        ) from e
    return SklearnTextClassifier(method)
