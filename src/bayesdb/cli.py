"""bayesdb command-line interface."""

from __future__ import annotations

import logging
import math
import sys
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Annotated, NoReturn

import typer

from . import __version__
from .classifier import NaiveBayesClassifier
from .config import Config, ConfigError, load_config, resolve_config_path
from .errors import StoreIntegrityError
from .learner import OnlineLearner
from .logging import configure_logging
from .pidfile import PidFile, PidFileError, running_pid
from .registry import TrainedDocumentRegistry
from .runtime import TrainingDaemon
from .stores import open_store
from .stream import TrainingStream
from .trainer import Trainer, read_labeled_lines
from .watcher import SpoolWatcher

app = typer.Typer(help="Naive Bayes text classifier backed by a statistics database.")
LOGGER = logging.getLogger(__name__)
REGISTRY_NAME = "trained_documents.txt"
EXIT_INTEGRITY = 3


@dataclass
class CLIState:
    """Stores shared CLI options."""

    config_path: Path | None
    debug: bool = False


@app.callback()
def _bayesdb(
    ctx: typer.Context,
    config: Annotated[
        Path | None,
        typer.Option(
            "-c",
            "--config",
            help="Path to config (env BAYESDB_CONFIG or ~/.config/bayesdb/config.yaml).",
        ),
    ] = None,
    debug: Annotated[
        bool,
        typer.Option("--debug", help="Trace every word update while training."),
    ] = False,
) -> None:
    """Capture global CLI options."""

    resolved = config.expanduser() if config else None
    ctx.obj = CLIState(config_path=resolved, debug=debug)


@app.command()
def status(ctx: typer.Context) -> None:
    """Show configuration and the restored model."""

    state = _state(ctx)
    config, classifier = _load_environment(state)
    pid = running_pid(PidFile.for_root(config.root_dir).path)

    typer.echo("→ bayesdb Status")
    typer.echo(f"Version: {__version__}")
    typer.echo(f"Config path: {resolve_config_path(state.config_path)}")
    typer.echo(f"Database: {config.database}")
    daemon_line = "Daemon: ● Running" if pid else "Daemon: ○ Stopped"
    if pid:
        daemon_line += f" (PID {pid})"
    typer.echo(daemon_line)
    typer.echo(f"Documents: {classifier.document_count}")
    typer.echo(f"Dictionary: {classifier.dictionary_size}")
    last = classifier.snapshot.last_training
    typer.echo(f"Last training: {last.isoformat() if last else 'never'}")
    typer.echo("Classes:")
    counts = classifier.snapshot.counts
    for class_id, prior in enumerate(classifier.priors):
        typer.echo(
            f"  {class_id}: {config.class_name(class_id)} "
            f"documents={int(counts[class_id])} prior={prior:.4f}"
        )


@app.command()
def train(
    ctx: typer.Context,
    source: Annotated[
        str,
        typer.Argument(help="File of 'label<TAB>text' lines, or '-' for stdin."),
    ],
    save: Annotated[
        bool,
        typer.Option("--save/--no-save", help="Save class statistics after training."),
    ] = True,
) -> None:
    """Learn from labelled documents and save the model."""

    state = _state(ctx)
    config, classifier = _load_environment(state)

    with _claim_database(config):
        _train_from(source, config, classifier, save=save)


def _train_from(
    source: str,
    config: Config,
    classifier: NaiveBayesClassifier,
    *,
    save: bool,
) -> None:
    stream = TrainingStream()
    learner = OnlineLearner(classifier, stream)
    learner.start()
    try:
        if source == "-":
            for document in read_labeled_lines(sys.stdin, config.class_id):
                stream.put_document(document)
        else:
            path = Path(source).expanduser()
            if not path.is_file():
                typer.secho(f"Training file not found: {path}", fg=typer.colors.RED, err=True)
                raise typer.Exit(1)
            with path.open("r", encoding="utf-8") as handle:
                for document in read_labeled_lines(handle, config.class_id):
                    stream.put_document(document)
    finally:
        stream.close()

    try:
        learner.join()
    except StoreIntegrityError as exc:
        _integrity_failure(exc)

    for error in learner.errors.drain():
        typer.secho(f"Skipped: {error}", fg=typer.colors.YELLOW, err=True)
    typer.echo(
        f"Learned {learner.documents_learned} of {learner.documents_seen} document(s); "
        f"{classifier.document_count} total, dictionary of {classifier.dictionary_size} word(s)."
    )
    if save:
        _save(classifier)


@app.command()
def predict(
    ctx: typer.Context,
    text: Annotated[str, typer.Argument(help="Document text.")],
) -> None:
    """Print the most likely class (log-space, safe for long documents)."""

    config, classifier = _load_environment(_state(ctx))
    class_id = classifier.predict(text)
    typer.echo(f"{config.class_name(class_id)} ({class_id})")


@app.command()
def probability(
    ctx: typer.Context,
    text: Annotated[str, typer.Argument(help="Short document text.")],
) -> None:
    """Print the most likely class with its probability."""

    config, classifier = _load_environment(_state(ctx))
    class_id, value = classifier.probability(text)
    if math.isnan(value):
        typer.echo("No known words; no evidence.")
        return
    typer.echo(f"{config.class_name(class_id)} ({class_id}) {value:.4f}")


@app.command()
def top(
    ctx: typer.Context,
    text: Annotated[str, typer.Argument(help="Short document text.")],
    count: Annotated[int, typer.Option("-n", "--count", help="Number of classes.")] = 3,
) -> None:
    """Print the classes ranked by probability."""

    config, classifier = _load_environment(_state(ctx))
    ranked = classifier.top_probabilities(text, count)
    if not ranked:
        typer.echo("No known words; no evidence.")
        return
    for rank, entry in enumerate(ranked, start=1):
        typer.echo(
            f"{rank}. {config.class_name(entry.class_id)} ({entry.class_id}) "
            f"{entry.probability:.4f}"
        )


@app.command()
def words(
    ctx: typer.Context,
    tokens: Annotated[list[str], typer.Argument(help="Words to look up.")],
) -> None:
    """Show stored statistics for words."""

    config, classifier = _load_environment(_state(ctx))
    found = classifier.lookup_words(token.lower() for token in tokens)
    for token in tokens:
        word = found.get(token.lower())
        if word is None:
            typer.echo(f"{token}: unknown")
            continue
        per_class = " ".join(
            f"{config.class_name(class_id)}={count}" for class_id, count in enumerate(word.count)
        )
        typer.echo(f"{token}: seen={word.seen} docs={word.docs_seen} {per_class}")


@app.command()
def restore(ctx: typer.Context) -> None:
    """Check whether a saved model exists and summarise it."""

    state = _state(ctx)
    config, classifier = _load_environment(state, restore=False)
    if not classifier.restore():
        typer.echo("Nothing to restore.")
        return
    typer.echo(
        f"Restored {classifier.class_count} class(es), {classifier.document_count} document(s), "
        f"dictionary of {classifier.dictionary_size} word(s) from {config.database}."
    )


@app.command()
def watch(
    ctx: typer.Context,
    spool: Annotated[
        Path | None,
        typer.Option("--spool", help="Spool directory (defaults to spool_dir from config)."),
    ] = None,
    skip_initial_training: Annotated[
        bool,
        typer.Option(
            "--skip-initial-training",
            help="Start without replaying documents already in the spool.",
        ),
    ] = False,
) -> None:
    """Run the training daemon on a spool directory."""

    state = _state(ctx)
    config, classifier = _load_environment(state)
    spool_dir = spool.expanduser() if spool else config.spool_dir
    if spool_dir is None:
        _config_failure(ConfigError("No spool directory configured (set spool_dir or --spool)."))

    with _claim_database(config):
        stream = TrainingStream()
        trainer = Trainer(
            stream=stream,
            classes=config.classes,
            registry=TrainedDocumentRegistry(config.root_dir / REGISTRY_NAME),
        )
        daemon = TrainingDaemon(
            classifier,
            stream=stream,
            learner=OnlineLearner(classifier, stream, on_learned=trainer.mark_learned),
            trainer=trainer,
            watcher=SpoolWatcher(spool_dir, config.classes),
        )
        try:
            daemon.run(initial_training=not skip_initial_training)
        except StoreIntegrityError as exc:
            _integrity_failure(exc)


@contextmanager
def _claim_database(config: Config) -> Iterator[PidFile]:
    """Hold the PID file so only one process trains ``config.database``."""

    pidfile = PidFile.for_root(config.root_dir, config.database)
    try:
        pidfile.create()
    except PidFileError as exc:
        typer.secho(str(exc), fg=typer.colors.RED, err=True)
        raise typer.Exit(1) from exc
    try:
        yield pidfile
    finally:
        pidfile.remove()


def _state(ctx: typer.Context) -> CLIState:
    state = ctx.obj
    if not isinstance(state, CLIState):
        raise RuntimeError("CLI state missing from context.")
    return state


def _load_environment(
    state: CLIState,
    *,
    restore: bool = True,
) -> tuple[Config, NaiveBayesClassifier]:
    config = _load_config(state.config_path)
    debug = state.debug or config.debug
    try:
        configure_logging(config.logging, config.root_dir, debug=debug)
    except ConfigError as exc:
        _config_failure(exc)
    classifier = NaiveBayesClassifier(
        open_store(config.database, config.root_dir), len(config.classes), debug=debug
    )
    if restore:
        classifier.restore()
        if classifier.class_count < len(config.classes):
            LOGGER.info(
                "Extending saved model from %s to %s classes",
                classifier.class_count,
                len(config.classes),
            )
            classifier.snapshot.grow(len(config.classes))
    return config, classifier


def _load_config(path: Path | None) -> Config:
    try:
        return load_config(path)
    except ConfigError as exc:
        _config_failure(exc)


def _save(classifier: NaiveBayesClassifier) -> None:
    try:
        classifier.save()
    except StoreIntegrityError as exc:
        _integrity_failure(exc)


def _config_failure(exc: ConfigError) -> NoReturn:
    typer.secho(f"Configuration error: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(2) from exc


def _integrity_failure(exc: StoreIntegrityError) -> NoReturn:
    typer.secho(f"Store integrity violated, aborting: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(EXIT_INTEGRITY) from exc


def main() -> None:  # pragma: no cover - delegated to Typer
    app()


__all__ = ["app", "main"]
