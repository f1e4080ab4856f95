"""Tests for :mod:`bqpreview.utils.logging`."""

from __future__ import annotations

import io
import logging
from pathlib import Path

import pytest

from bqpreview.utils import logging as logging_utils


@pytest.fixture(autouse=True)
def _shutdown():
    package_level = logging.getLogger(logging_utils.PACKAGE_LOGGER).level
    yield
    logging_utils.shutdown_logging()
    logging.getLogger(logging_utils.PACKAGE_LOGGER).setLevel(package_level)


def test_setup_logging_writes_to_log_dir(tmp_path: Path) -> None:
    path = logging_utils.setup_logging(logging.DEBUG, log_dir=tmp_path, console=False)

    logging_utils.get_logger("tests").debug("hello from the test")
    logging_utils.shutdown_logging()

    assert path == tmp_path / "bqpreview.log"
    assert "hello from the test" in path.read_text(encoding="utf-8")
    assert logging.getLogger("httpx").level == logging.WARNING


def test_console_output_respects_level(tmp_path: Path) -> None:
    stream = io.StringIO()
    logging_utils.setup_logging(logging.WARNING, log_dir=tmp_path, console_stream=stream)

    log = logging_utils.get_logger("bqpreview.analysis")
    log.info("quiet")
    log.warning("loud")

    assert "loud" in stream.getvalue()
    assert "quiet" not in stream.getvalue()


def test_second_setup_is_noop_unless_forced(tmp_path: Path) -> None:
    first = logging_utils.setup_logging(log_dir=tmp_path / "a", console=False)
    second = logging_utils.setup_logging(log_dir=tmp_path / "b", console=False)
    forced = logging_utils.setup_logging(log_dir=tmp_path / "b", console=False, force=True)

    assert second == first
    assert forced == tmp_path / "b" / "bqpreview.log"
    assert logging_utils.get_log_path() == forced


def test_log_dir_from_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("BQPREVIEW_LOG_DIR", str(tmp_path / "env-logs"))

    path = logging_utils.setup_logging(console=False)

    assert path.parent == tmp_path / "env-logs"


def test_get_logger_namespaces_children() -> None:
    assert logging_utils.get_logger("cli").name == "bqpreview.cli"
    assert logging_utils.get_logger("bqpreview.app").name == "bqpreview.app"
