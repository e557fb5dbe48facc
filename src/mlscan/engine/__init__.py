"""Thread reconstruction, labeling and training engines.

This package provides:
- Thread collator rebuilding reply trees from out-of-order messages
- Interesting-senders labeler
- Dataset builder for vocabulary pruning and class balancing
- Evaluation against test archives and sample sentences
- The end-to-end training pipeline
"""

from mlscan.engine.dataset import (
    DatasetBuilder,
    balance_training_sets,
    count_words,
    format_frequency_report,
    prune_uncommon_words,
    reservoir_sample,
)
from mlscan.engine.evaluation import EvaluationReport, evaluate_threads, predict_texts
from mlscan.engine.labeler import InterestingSendersLabeler, Label
from mlscan.engine.pipeline import TrainingPipeline, TrainingResult
from mlscan.engine.threads import ThreadCollator, ThreadNode, collate

__all__ = [
    # Dataset
    "DatasetBuilder",
    "balance_training_sets",
    "count_words",
    "format_frequency_report",
    "prune_uncommon_words",
    "reservoir_sample",
    # Evaluation
    "EvaluationReport",
    "evaluate_threads",
    "predict_texts",
    # Labeling
    "InterestingSendersLabeler",
    "Label",
    # Pipeline
    "TrainingPipeline",
    "TrainingResult",
    # Threads
    "ThreadCollator",
    "ThreadNode",
    "collate",
]
