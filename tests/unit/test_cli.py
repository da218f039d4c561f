from __future__ import annotations

import os
from pathlib import Path

from typer.testing import CliRunner

from bayesdb.cli import EXIT_INTEGRITY, app

runner = CliRunner()

TRAINING_LINES = "\n".join(
    [
        "# label<TAB>text",
        "spam\tcheap pills online now",
        "spam\tcheap watches online",
        "ham\tlunch meeting tomorrow",
        "Ham\tlunch plans with team",
        "5\tmystery label",
        "",
    ]
)


def _write_config(tmp_path: Path, database: str | None = None) -> Path:
    tmp_path.mkdir(parents=True, exist_ok=True)
    config = tmp_path / "config.yaml"
    config.write_text(
        "\n".join(
            [
                f"root_dir: {tmp_path / 'state'}",
                f"database: {database or tmp_path / 'model.sqlite3'}",
                "classes: [spam, ham]",
                "",
            ]
        ),
        encoding="utf-8",
    )
    return config


def _trained_config(tmp_path: Path) -> Path:
    config_path = _write_config(tmp_path)
    corpus = tmp_path / "corpus.tsv"
    corpus.write_text(TRAINING_LINES, encoding="utf-8")
    result = runner.invoke(app, ["-c", str(config_path), "train", str(corpus)])
    assert result.exit_code == 0, result.output
    assert "Learned 4 of 5 document(s); 4 total, dictionary of 11 word(s)." in result.stdout
    return config_path


def test_train_then_query(tmp_path: Path) -> None:
    config_path = _trained_config(tmp_path)
    base = ["-c", str(config_path)]

    predicted = runner.invoke(app, [*base, "predict", "cheap offer"])
    assert predicted.exit_code == 0
    assert predicted.stdout.strip() == "spam (0)"

    probability = runner.invoke(app, [*base, "probability", "lunch"])
    assert probability.exit_code == 0
    assert probability.stdout.strip() == "ham (1) 0.7500"

    ranked = runner.invoke(app, [*base, "top", "cheap", "-n", "5"])
    assert ranked.exit_code == 0
    assert ranked.stdout.splitlines() == ["1. spam (0) 0.7500", "2. ham (1) 0.2500"]


def test_queries_without_evidence(tmp_path: Path) -> None:
    config_path = _trained_config(tmp_path)

    for command in ("probability", "top"):
        result = runner.invoke(app, ["-c", str(config_path), command, "zebra"])
        assert result.exit_code == 0
        assert "No known words; no evidence." in result.stdout


def test_words_reports_statistics(tmp_path: Path) -> None:
    config_path = _trained_config(tmp_path)

    result = runner.invoke(app, ["-c", str(config_path), "words", "Cheap", "zebra"])

    assert result.exit_code == 0
    assert result.stdout.splitlines() == [
        "Cheap: seen=2 docs=2 spam=2 ham=0",
        "zebra: unknown",
    ]


def test_status_reports_model(tmp_path: Path) -> None:
    config_path = _trained_config(tmp_path)

    result = runner.invoke(app, ["-c", str(config_path), "status"])

    assert result.exit_code == 0
    assert f"Database: {tmp_path / 'model.sqlite3'}" in result.stdout
    assert "Daemon: ○ Stopped" in result.stdout
    assert "Documents: 4" in result.stdout
    assert "Dictionary: 11" in result.stdout
    assert "0: spam documents=2 prior=0.5000" in result.stdout
    assert "1: ham documents=2 prior=0.5000" in result.stdout


def test_restore(tmp_path: Path) -> None:
    fresh = _write_config(tmp_path / "fresh")
    empty = runner.invoke(app, ["-c", str(fresh), "restore"])
    assert empty.exit_code == 0
    assert "Nothing to restore." in empty.stdout

    trained = _trained_config(tmp_path)
    result = runner.invoke(app, ["-c", str(trained), "restore"])
    assert result.exit_code == 0
    assert "Restored 2 class(es), 4 document(s), dictionary of 11 word(s)" in result.stdout


def test_train_without_save_keeps_store_empty(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)
    corpus = tmp_path / "corpus.tsv"
    corpus.write_text(TRAINING_LINES, encoding="utf-8")

    result = runner.invoke(app, ["-c", str(config_path), "train", str(corpus), "--no-save"])
    assert result.exit_code == 0

    restored = runner.invoke(app, ["-c", str(config_path), "restore"])
    assert "Nothing to restore." in restored.stdout


def test_train_reads_stdin(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)

    result = runner.invoke(app, ["-c", str(config_path), "train", "-"], input=TRAINING_LINES)

    assert result.exit_code == 0
    assert "Learned 4 of 5 document(s)" in result.stdout


def test_train_missing_file(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)

    result = runner.invoke(app, ["-c", str(config_path), "train", str(tmp_path / "absent.tsv")])

    assert result.exit_code == 1


def test_missing_config_is_reported(tmp_path: Path) -> None:
    result = runner.invoke(app, ["-c", str(tmp_path / "absent.yaml"), "status"])

    assert result.exit_code == 2


def test_watch_requires_spool(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)

    result = runner.invoke(app, ["-c", str(config_path), "watch"])

    assert result.exit_code == 2


def test_integrity_exit_code_is_distinct() -> None:
    assert EXIT_INTEGRITY not in (0, 1, 2)


def test_train_refuses_while_database_is_being_trained(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path)
    corpus = tmp_path / "corpus.tsv"
    corpus.write_text(TRAINING_LINES, encoding="utf-8")
    pid_path = tmp_path / "state" / "bayesdb-watch.pid"
    pid_path.parent.mkdir(parents=True)
    pid_path.write_text(f"{os.getpid()}\n{tmp_path / 'model.sqlite3'}\n", encoding="utf-8")

    result = runner.invoke(app, ["-c", str(config_path), "train", str(corpus)])

    assert result.exit_code == 1
    assert "Learned" not in result.stdout
    assert pid_path.exists()
    restored = runner.invoke(app, ["-c", str(config_path), "restore"])
    assert "Nothing to restore." in restored.stdout


def test_train_releases_pid_file(tmp_path: Path) -> None:
    _trained_config(tmp_path)

    assert not (tmp_path / "state" / "bayesdb-watch.pid").exists()


def test_memory_backend_survives_between_commands(tmp_path: Path) -> None:
    config_path = _write_config(tmp_path, database="memory")
    corpus = tmp_path / "corpus.tsv"
    corpus.write_text(TRAINING_LINES, encoding="utf-8")
    base = ["-c", str(config_path)]

    trained = runner.invoke(app, [*base, "train", str(corpus)])
    assert trained.exit_code == 0, trained.output
    assert (tmp_path / "state" / "memory-model.pickle").exists()

    status = runner.invoke(app, [*base, "status"])
    assert status.exit_code == 0
    assert "Database: memory" in status.stdout
    assert "Documents: 4" in status.stdout
    assert "Dictionary: 11" in status.stdout

    predicted = runner.invoke(app, [*base, "predict", "cheap offer"])
    assert predicted.stdout.strip() == "spam (0)"
