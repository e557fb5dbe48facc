"""Pydantic configuration schema for mlscan.

This module defines the configuration schema that mirrors the YAML config
file. Every value has a default except the interesting senders, which can
also be given on the command line.

Usage:
    from mlscan.config_schema import AppConfig

    # Validate a config dict
    config = AppConfig(**yaml_data)
"""

from typing import Literal

from pydantic import BaseModel, Field, field_validator

from mlscan.classifier.text_classifier import ClassificationMethod

# Current schema version - increment when adding new required fields
CURRENT_SCHEMA_VERSION = 1


class LabelingConfig(BaseModel):
    """Who makes a thread interesting."""

    senders: list[str] = Field(
        default_factory=list,
        description="Addresses whose participation marks a thread as interesting",
    )
    excluded_domain: str | None = Field(
        default=None,
        description="Threads started from addresses ending with this are ignored",
    )
    mode: Literal["first_message", "whole_thread"] = Field(
        default="first_message",
        description="Label only thread starters, or every message of a thread",
    )

    @field_validator("senders")
    @classmethod
    def validate_senders(cls, v: list[str]) -> list[str]:
        """Normalize sender addresses and reject malformed ones."""
        cleaned = []
        for address in v:
            address = address.strip()
            if "@" not in address:
                raise ValueError(f"Sender '{address}' is not an email address")
            cleaned.append(address)
        return cleaned


class DatasetConfig(BaseModel):
    """Training set preparation."""

    min_occurrences: int = Field(
        default=4,
        ge=1,
        description="Words seen fewer times than this across all texts are dropped",
    )
    random_seed: int | None = Field(
        default=None,
        description="Seed for class balancing; a random one is drawn when unset",
    )


class ClassifierConfig(BaseModel):
    """Classifier training and evaluation."""

    method: ClassificationMethod = Field(
        default=ClassificationMethod.MULTINOMIAL_BAYES,
        description="Classification algorithm",
    )
    confidence: float = Field(
        default=0.5,
        ge=0.0,
        le=1.0,
        description="Probability above which a test message counts as interesting",
    )
    chisquare_alpha: float | None = Field(
        default=0.10,
        gt=0.0,
        le=1.0,
        description="Chi-square feature selection false-positive rate; null disables it",
    )
    max_ngram: int = Field(
        default=1,
        ge=1,
        le=3,
        description="Longest word n-gram used as a feature",
    )


class OutputConfig(BaseModel):
    """Where run artifacts are written."""

    directory: str = Field(default="output", description="Output directory")
    prefix: str = Field(default="mlscan.", description="File name prefix of every output file")

    @field_validator("prefix")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        """Keep output files inside the output directory."""
        if "/" in v or "\\" in v or ".." in v:
            raise ValueError("Output prefix cannot contain path separators or '..'")
        return v


class AppConfig(BaseModel):
    """Root configuration model."""

    schema_version: int = Field(default=CURRENT_SCHEMA_VERSION, ge=1)
    labeling: LabelingConfig = Field(default_factory=LabelingConfig)
    dataset: DatasetConfig = Field(default_factory=DatasetConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
