"""Pytest fixtures and configuration for mlscan tests.

Provides common fixtures for configuration, archive files and messages.
"""

import os
from collections.abc import Callable
from pathlib import Path
from typing import Any, Generator

import pytest

from mlscan.config import reset_config
from mlscan.config_schema import AppConfig
from mlscan.mail.message import Message, OptionalFields

RawMessageFactory = Callable[..., str]


@pytest.fixture(autouse=True)
def reset_config_singleton() -> Generator[None, None, None]:
    """Reset the config singleton before each test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def temp_config_dir(tmp_path: Path) -> Path:
    """Create a temporary config directory."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def sample_config_yaml() -> str:
    """Return a minimal valid mlscan.yaml content."""
    return """
schema_version: 1

labeling:
  senders: ["dev1@example.com", "dev2@example.com"]
  excluded_domain: "example.com"

dataset:
  min_occurrences: 1
  random_seed: 7

classifier:
  method: "multinomial_bayes"
  chisquare_alpha: null
"""


@pytest.fixture
def sample_config_dict() -> dict[str, Any]:
    """Return a minimal valid config as a dictionary."""
    return {
        "schema_version": 1,
        "labeling": {
            "senders": ["dev1@example.com", "dev2@example.com"],
            "excluded_domain": "example.com",
        },
        "dataset": {"min_occurrences": 1, "random_seed": 7},
        "classifier": {"method": "multinomial_bayes", "chisquare_alpha": None},
    }


@pytest.fixture
def sample_config(sample_config_dict: dict[str, Any], tmp_path: Path) -> AppConfig:
    """Return a valid AppConfig writing to a temporary output directory."""
    data = dict(sample_config_dict)
    data["output"] = {"directory": str(tmp_path / "output")}
    return AppConfig(**data)


@pytest.fixture
def config_file(temp_config_dir: Path, sample_config_yaml: str) -> Path:
    """Create a temporary config file with valid content."""
    config_path = temp_config_dir / "mlscan.yaml"
    config_path.write_text(sample_config_yaml)
    return config_path


@pytest.fixture
def set_config_env(config_file: Path) -> Generator[None, None, None]:
    """Set the MLSCAN_CONFIG_PATH environment variable."""
    old_value = os.environ.get("MLSCAN_CONFIG_PATH")
    os.environ["MLSCAN_CONFIG_PATH"] = str(config_file)
    yield
    if old_value is None:
        del os.environ["MLSCAN_CONFIG_PATH"]
    else:
        os.environ["MLSCAN_CONFIG_PATH"] = old_value


# =============================================================================
# Messages and archives
# =============================================================================


@pytest.fixture
def make_raw_message() -> RawMessageFactory:
    """Return a factory for raw archive messages in pipermail format."""

    def _make(
        message_id: str,
        sender: str,
        subject: str = "[users] question",
        body: str = "Hello list",
        in_reply_to: str | None = None,
        name: str = "Some One",
        date: str = "Mon, 3 Apr 2017 10:00:00 +0200",
    ) -> str:
        local, domain = sender.split("@")
        lines = [
            f"From {local} at {domain}  Mon Apr  3 10:00:00 2017",
            f"From: {local} at {domain} ({name})",
            f"Date: {date}",
            f"Subject: {subject}",
            f"Message-ID: <{message_id}>",
        ]
        if in_reply_to is not None:
            lines.append(f"In-Reply-To: <{in_reply_to}>")
        return "\n".join(lines) + "\n\n" + body + "\n\n"

    return _make


@pytest.fixture
def make_message() -> Callable[..., Message]:
    """Return a factory for Message records with sensible defaults."""

    def _make(
        message_id: str,
        in_reply_to: str = "",
        from_address: str = "user@users.org",
        subject: str = "subject",
        body: str = "body",
    ) -> Message:
        return Message.create(
            from_address=from_address,
            date="Mon, 3 Apr 2017 10:00:00 +0200",
            subject=subject,
            message_id=message_id,
            body=body,
            optional=OptionalFields(in_reply_to=in_reply_to),
        )

    return _make


@pytest.fixture
def training_archive_text(make_raw_message: RawMessageFactory) -> str:
    """A training archive with interesting, uninteresting, excluded,
    orphaned and malformed messages.

    - 6 threads answered by dev1@example.com (Interesting)
    - 8 threads answered by other users (NotInteresting)
    - 1 thread started by staff@example.com (Ignored)
    - 1 orphan reply, 1 message without Message-ID
    """
    parts: list[str] = []
    for i in range(6):
        parts.append(
            make_raw_message(
                f"int{i}@users.org",
                f"user{i}@users.org",
                subject="[users] storage domain failure",
                body="vdsm cannot attach storage domain after upgrade",
            )
        )
        parts.append(
            make_raw_message(
                f"int{i}-reply@example.com",
                "dev1@example.com",
                subject="Re: [users] storage domain failure",
                body="please attach vdsm logs",
                in_reply_to=f"int{i}@users.org",
            )
        )
    for i in range(8):
        parts.append(
            make_raw_message(
                f"dull{i}@users.org",
                f"other{i}@users.org",
                subject="[users] dashboard theme colour",
                body="dashboard theme colour looks wrong",
            )
        )
        parts.append(
            make_raw_message(
                f"dull{i}-reply@users.org",
                f"helper{i}@users.org",
                subject="Re: [users] dashboard theme colour",
                body="clear browser cache",
                in_reply_to=f"dull{i}@users.org",
            )
        )
    parts.append(
        make_raw_message(
            "staff0@example.com",
            "staff@example.com",
            subject="[users] release announcement",
            body="new release available",
        )
    )
    parts.append(
        make_raw_message(
            "orphan0@users.org",
            "late@users.org",
            subject="Re: [users] old thread",
            body="replying to something long gone",
            in_reply_to="gone@users.org",
        )
    )
    parts.append(
        "From broken at users.org  Mon Apr  3 10:00:00 2017\n"
        "From: broken at users.org (Broken)\n"
        "Date: Mon, 3 Apr 2017 10:00:00 +0200\n"
        "Subject: no message id here\n"
        "\n"
        "body\n\n"
    )
    return "".join(parts)


@pytest.fixture
def training_archive(tmp_path: Path, training_archive_text: str) -> Path:
    """Write the training archive to disk."""
    path = tmp_path / "training.mbox"
    path.write_text(training_archive_text, encoding="utf-8")
    return path


@pytest.fixture
def heldout_archive(tmp_path: Path, make_raw_message: RawMessageFactory) -> Path:
    """A small held-out archive: two interesting and two uninteresting threads."""
    parts = []
    for i in range(2):
        parts.append(
            make_raw_message(
                f"t-int{i}@users.org",
                f"tester{i}@users.org",
                subject="[users] storage domain failure again",
                body="vdsm storage domain will not attach",
            )
        )
        parts.append(
            make_raw_message(
                f"t-int{i}-reply@example.com",
                "dev2@example.com",
                subject="Re: [users] storage domain failure again",
                body="logs please",
                in_reply_to=f"t-int{i}@users.org",
            )
        )
        parts.append(
            make_raw_message(
                f"t-dull{i}@users.org",
                f"viewer{i}@users.org",
                subject="[users] dashboard colour",
                body="theme colour of dashboard",
            )
        )
    path = tmp_path / "test.mbox"
    path.write_text("".join(parts), encoding="utf-8")
    return path
