"""Text preparation and classification.

This package provides:
- Text normalizer turning messages into classifier-ready token strings
- Text classifier contract and its scikit-learn implementation
"""

from mlscan.classifier.normalizer import NormalizationResult, TextNormalizer, normalize_text
from mlscan.classifier.text_classifier import (
    ClassificationMethod,
    LabelMetrics,
    Prediction,
    SklearnTextClassifier,
    TextClassifier,
    TrainingParameters,
    ValidationMetrics,
    build_classifier,
)

__all__ = [
    # Normalizer
    "NormalizationResult",
    "TextNormalizer",
    "normalize_text",
    # Text classifier
    "ClassificationMethod",
    "LabelMetrics",
    "Prediction",
    "SklearnTextClassifier",
    "TextClassifier",
    "TrainingParameters",
    "ValidationMetrics",
    "build_classifier",
]
