"""Tests for output directory handling."""

import os
from pathlib import Path

import pytest

from mlscan.core.errors import OutputDirectoryError
from mlscan.core.files import OutputDirectory


class TestOutputDirectory:
    """Tests for OutputDirectory."""

    def test_prepare_creates_nested_directory(self, tmp_path: Path) -> None:
        output = OutputDirectory(tmp_path / "a" / "b")
        output.prepare()
        assert (tmp_path / "a" / "b").is_dir()

    def test_prepare_existing_directory(self, tmp_path: Path) -> None:
        OutputDirectory(tmp_path).prepare()

    def test_prepare_rejects_file(self, tmp_path: Path) -> None:
        target = tmp_path / "file"
        target.write_text("x")
        with pytest.raises(OutputDirectoryError) as exc_info:
            OutputDirectory(target).prepare()
        assert exc_info.value.path == target

    @pytest.mark.skipif(
        hasattr(os, "geteuid") and os.geteuid() == 0,
        reason="root can write to read-only directories",
    )
    def test_prepare_rejects_read_only(self, tmp_path: Path) -> None:
        target = tmp_path / "ro"
        target.mkdir()
        target.chmod(0o500)
        try:
            with pytest.raises(OutputDirectoryError, match="not writable"):
                OutputDirectory(target).prepare()
        finally:
            target.chmod(0o700)

    def test_path_uses_prefix(self, tmp_path: Path) -> None:
        assert OutputDirectory(tmp_path, prefix="run1.").path("model") == tmp_path / "run1.model"

    def test_write_records_joins_with_delimiter(self, tmp_path: Path) -> None:
        """Test record joining without a trailing delimiter."""
        output = OutputDirectory(tmp_path)
        path = output.write_records("Interesting", ["one", "two"])
        assert path.read_text(encoding="utf-8") == "one\ntwo"

        output.write_records("messages", ["a\n", "b\n"], "===\n")
        assert output.path("messages").read_text(encoding="utf-8") == "a\n===\nb\n"

    def test_write_text_is_utf8(self, tmp_path: Path) -> None:
        output = OutputDirectory(tmp_path)
        output.write_text("unparseable", "Grüße")
        assert output.path("unparseable").read_bytes() == "Grüße".encode()
