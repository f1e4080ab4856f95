"""Tests for the save-on-close heuristic."""

from __future__ import annotations

import asyncio

import pytest

from bqpreview.analysis.change_tracker import ChangeTracker
from bqpreview.analysis.save_close import CloseSaveDisambiguator
from bqpreview.editor.document_model import DocumentState

KEY = "file:///report.sql"


@pytest.mark.asyncio
async def test_plain_save_is_not_suppressed_after_window() -> None:
    disambiguator = CloseSaveDisambiguator(save_window=0.03, close_grace=0.05)

    disambiguator.will_save(KEY)
    assert disambiguator.save_pending(KEY) is True
    assert disambiguator.should_suppress(KEY) is True

    await asyncio.sleep(0.06)

    assert disambiguator.save_pending(KEY) is False
    assert disambiguator.should_suppress(KEY) is False


@pytest.mark.asyncio
async def test_close_during_window_marks_key_closing() -> None:
    disambiguator = CloseSaveDisambiguator(save_window=0.05, close_grace=0.05)

    disambiguator.will_save(KEY)
    assert disambiguator.did_close(KEY) is True

    assert disambiguator.is_closing(KEY) is True
    assert disambiguator.save_pending(KEY) is False
    assert disambiguator.should_suppress(KEY) is True

    await asyncio.sleep(0.1)

    assert disambiguator.is_closing(KEY) is False
    assert len(disambiguator) == 0


@pytest.mark.asyncio
async def test_close_without_will_save_is_plain_close() -> None:
    disambiguator = CloseSaveDisambiguator()

    assert disambiguator.did_close(KEY) is False
    assert disambiguator.should_suppress(KEY) is False


@pytest.mark.asyncio
async def test_close_forgets_tracked_version() -> None:
    tracker = ChangeTracker()
    tracker.has_changed(DocumentState(text="select 1", key=KEY))
    disambiguator = CloseSaveDisambiguator(change_tracker=tracker)

    disambiguator.did_close(KEY)

    assert KEY not in tracker


@pytest.mark.asyncio
async def test_will_save_rearms_timer() -> None:
    disambiguator = CloseSaveDisambiguator(save_window=0.05)

    disambiguator.will_save(KEY)
    await asyncio.sleep(0.03)
    disambiguator.will_save(KEY)
    await asyncio.sleep(0.03)

    assert disambiguator.save_pending(KEY) is True


@pytest.mark.asyncio
async def test_clear_cancels_everything() -> None:
    disambiguator = CloseSaveDisambiguator(save_window=1.0, close_grace=1.0)
    disambiguator.will_save(KEY)
    disambiguator.will_save("file:///other.sql")
    disambiguator.did_close("file:///other.sql")

    disambiguator.clear()

    assert len(disambiguator) == 0
    assert disambiguator.should_suppress(KEY) is False
