"""Command-line interface for mlscan.

Provides commands for training the thread classifier, inspecting the thread
trees of an archive and validating the configuration.

Usage:
    python -m mlscan train 2017-*.txt -s dev1@example.com -e example.com -o output
    python -m mlscan train users.mbox -s dev1@example.com -m svm -t test.mbox -c 0.7
    python -m mlscan threads users.mbox
    python -m mlscan validate-config --config config/mlscan.yaml
"""

from __future__ import annotations

import sys
from pathlib import Path
from typing import Any

import click
from pydantic import ValidationError
from rich.console import Console

from mlscan.classifier.text_classifier import ClassificationMethod
from mlscan.config import (
    format_validation_errors,
    get_config,
    resolve_config,
    validate_config_file,
)
from mlscan.config_schema import AppConfig
from mlscan.core.errors import ArchiveReadError, MlscanError
from mlscan.core.logging import configure_logging

console = Console()

METHOD_CHOICES = [method.value for method in ClassificationMethod]


def _apply_overrides(
    config: AppConfig,
    senders: tuple[str, ...],
    exclude: str | None,
    method: str | None,
    output_dir: Path | None,
    seed: int | None,
    confidence: float | None,
    min_occurrences: int | None,
) -> AppConfig:
    """Return a new config with command-line values applied.

    The merged values go through schema validation again.

    Raises:
        click.UsageError: If an option value fails validation
    """
    data: dict[str, Any] = config.model_dump()
    if senders:
        data["labeling"]["senders"] = list(senders)
    if exclude is not None:
        data["labeling"]["excluded_domain"] = exclude
    if seed is not None:
        data["dataset"]["random_seed"] = seed
    if min_occurrences is not None:
        data["dataset"]["min_occurrences"] = min_occurrences
    if method is not None:
        data["classifier"]["method"] = method
    if confidence is not None:
        data["classifier"]["confidence"] = confidence
    if output_dir is not None:
        data["output"]["directory"] = str(output_dir)

    try:
        return AppConfig.model_validate(data)
    except ValidationError as e:
        raise click.UsageError(f"Invalid option value:\n{format_validation_errors(e)}") from e


@click.group()
@click.option("--debug/--no-debug", default=False, help="Enable debug logging")
@click.option("--log-json", is_flag=True, default=False, help="Write logs as JSON lines")
def cli(debug: bool, log_json: bool) -> None:
    """mlscan - learn which mailing-list threads deserve attention."""
    log_level = "DEBUG" if debug else "INFO"
    configure_logging(log_level=log_level, json_output=log_json)


@cli.command("validate-config")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to config file (default: config/mlscan.yaml)",
)
def validate_config(config_path: Path | None) -> None:
    """Validate the configuration file.

    Checks that the file exists and passes Pydantic schema validation.
    Reports specific errors for invalid fields.
    """
    console.print(f"Validating config: [cyan]{config_path or 'config/mlscan.yaml'}[/cyan]")

    is_valid, message = validate_config_file(config_path)

    if is_valid:
        console.print(f"\n[green]✓[/green] {message}")
        sys.exit(0)
    else:
        console.print(f"\n[red]✗[/red] {message}")
        sys.exit(1)


@cli.command("train")
@click.argument(
    "archives",
    nargs=-1,
    required=True,
    type=click.Path(path_type=Path),
)
@click.option(
    "--sender",
    "-s",
    "senders",
    multiple=True,
    help="Address whose participation makes a thread interesting (repeatable)",
)
@click.option(
    "--exclude",
    "-e",
    default=None,
    help="Ignore threads started from addresses ending with this domain",
)
@click.option(
    "--method",
    "-m",
    type=click.Choice(METHOD_CHOICES),
    default=None,
    help="Classification algorithm",
)
@click.option(
    "--output",
    "-o",
    "output_dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Output directory",
)
@click.option(
    "--test",
    "-t",
    "test_archives",
    multiple=True,
    type=click.Path(path_type=Path),
    help="Archive to evaluate the trained classifier on (repeatable)",
)
@click.option(
    "--predict",
    "-p",
    "sentences",
    multiple=True,
    help="Sentence to classify after training (repeatable)",
)
@click.option("--seed", "-r", type=int, default=None, help="Random seed for balancing")
@click.option(
    "--confidence",
    "-c",
    type=click.FloatRange(0.0, 1.0),
    default=None,
    help="Probability needed to count a test message as interesting",
)
@click.option(
    "--min-occurrences",
    type=click.IntRange(min=1),
    default=None,
    help="Drop words seen fewer times than this",
)
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to config file",
)
def train(
    archives: tuple[Path, ...],
    senders: tuple[str, ...],
    exclude: str | None,
    method: str | None,
    output_dir: Path | None,
    test_archives: tuple[Path, ...],
    sentences: tuple[str, ...],
    seed: int | None,
    confidence: float | None,
    min_occurrences: int | None,
    config_path: Path | None,
) -> None:
    """Train the thread classifier on one or more archives.

    Threads in which any of the given senders took part are labeled
    interesting; the rest are not. Dataset files, reports and the trained
    model are written to the output directory.
    """
    from mlscan.core.files import OutputDirectory
    from mlscan.engine.pipeline import TrainingPipeline
    from mlscan.mail.archive import check_archive_paths

    try:
        config = _apply_overrides(
            resolve_config(config_path) if config_path is not None else get_config(),
            senders,
            exclude,
            method,
            output_dir,
            seed,
            confidence,
            min_occurrences,
        )
        if not config.labeling.senders:
            raise click.UsageError(
                "No interesting senders: pass --sender or set labeling.senders in the config"
            )
        check_archive_paths([*archives, *test_archives])

        output = OutputDirectory(Path(config.output.directory), prefix=config.output.prefix)
        pipeline = TrainingPipeline(config, output, console=console)
        pipeline.run(list(archives), test_paths=list(test_archives), sentences=list(sentences))
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled.[/yellow]")
        sys.exit(130)
    except click.UsageError:
        raise
    except ArchiveReadError as e:
        console.print(f"\n[red]Archive error:[/red] {e}")
        sys.exit(1)
    except MlscanError as e:
        console.print(f"\n[red]Error:[/red] {e}")
        sys.exit(1)


@cli.command("threads")
@click.argument(
    "archives",
    nargs=-1,
    required=True,
    type=click.Path(path_type=Path),
)
@click.option(
    "--orphans/--no-orphans",
    default=True,
    help="Include threads whose first message replies to a missing message",
)
def threads(archives: tuple[Path, ...], orphans: bool) -> None:
    """Print the reply trees reconstructed from archives."""
    from mlscan.engine.threads import collate
    from mlscan.mail.archive import check_archive_paths, read_archives

    try:
        check_archive_paths(archives)
        result = read_archives(list(archives))
    except MlscanError as e:
        console.print(f"\n[red]Error:[/red] {e}")
        sys.exit(1)

    roots = [root for root in collate(result.messages) if orphans or not root.message.is_reply]
    for root in roots:
        console.print(str(root), end="", markup=False, highlight=False, soft_wrap=True)
    console.print(
        f"\n{len(roots)} threads, {len(result.messages)} messages, "
        f"{len(result.unparseable)} unparseable"
    )


def main() -> None:
    """Entry point for the CLI."""
    cli()


if __name__ == "__main__":
    main()
