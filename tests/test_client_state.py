"""Tests for the import wizard state machine."""

from __future__ import annotations

import pytest

from padu_api.client.state import (
    ChunkAcknowledged,
    Failed,
    FileLoaded,
    ImportFinished,
    ImportResults,
    ImportStarted,
    ImportState,
    ImportStep,
    ImportStore,
    InvalidTransition,
    MappingChanged,
    ParseProgressed,
    PreviewReady,
    Reset,
    reduce,
)
from padu_api.imports.mappers import ColumnMapping
from padu_api.imports.validators import ValidationReport

HEADERS = ("platform", "stars", "date", "comments")
COMPLETE = ColumnMapping({"provider": "platform", "rating": "stars", "created_at": "date"})


def _loaded(mapping: ColumnMapping = COMPLETE, **state_kwargs) -> ImportState:
    return reduce(
        ImportState(**state_kwargs),
        FileLoaded(
            filename="reviews.csv",
            file_size=120,
            headers=HEADERS,
            mapping=mapping,
            total_rows=100,
        ),
    )


def _previewed(error_rows: int = 0, total_rows: int = 100, **state_kwargs) -> ImportState:
    report = ValidationReport(total_rows=total_rows, error_rows=error_rows)
    return reduce(_loaded(**state_kwargs), PreviewReady(report))


class TestReduce:
    """Test step transitions."""

    def test_file_loaded_moves_to_mapping(self):
        state = _loaded()

        assert state.step == ImportStep.MAPPING
        assert state.total_rows == 100
        assert state.headers == HEADERS
        assert state.can_preview

    def test_file_loaded_only_in_upload(self):
        with pytest.raises(InvalidTransition):
            reduce(_loaded(), FileLoaded("b.csv", 1, HEADERS, COMPLETE, 1))

    def test_preview_requires_complete_mapping(self):
        state = _loaded(ColumnMapping({"provider": "platform"}))

        assert not state.can_preview
        with pytest.raises(InvalidTransition) as exc_info:
            reduce(state, PreviewReady(ValidationReport(total_rows=1)))
        assert "rating" in str(exc_info.value)

    def test_preview_ready(self):
        state = _previewed()

        assert state.step == ImportStep.PREVIEW
        assert state.can_import

    def test_mapping_change_returns_to_mapping(self):
        """Editing the mapping in preview discards the report."""
        state = reduce(_previewed(), MappingChanged(COMPLETE))

        assert state.step == ImportStep.MAPPING
        assert state.report is None

    def test_strict_policy_blocks_import(self):
        state = _previewed(error_rows=1)

        assert not state.can_import
        with pytest.raises(InvalidTransition):
            reduce(state, ImportStarted(rows_to_submit=99))

    def test_lenient_policy_allows_import(self):
        state = _previewed(error_rows=2, max_error_ratio=0.02)

        assert state.can_import
        started = reduce(state, ImportStarted(rows_to_submit=98))
        assert started.step == ImportStep.IMPORT
        assert started.progress == 0.0

    def test_lenient_policy_threshold(self):
        assert not _previewed(error_rows=3, max_error_ratio=0.02).can_import

    def test_chunk_progress_is_monotonic(self):
        state = reduce(_previewed(), ImportStarted(rows_to_submit=100))
        seen = []
        for job_id, rows in (("a", 40), ("b", 40), ("c", 20)):
            state = reduce(state, ChunkAcknowledged(job_id=job_id, rows=rows))
            seen.append(state.progress)

        assert seen == [40.0, 80.0, 100.0]
        assert state.job_ids == ("a", "b", "c")
        assert state.rows_submitted == 100

    def test_progress_with_nothing_to_submit(self):
        state = reduce(_previewed(), ImportStarted(rows_to_submit=0))
        state = reduce(state, ChunkAcknowledged(job_id="a", rows=0))

        assert state.progress == 100.0

    def test_import_finished(self):
        state = reduce(_previewed(), ImportStarted(rows_to_submit=100))
        results = ImportResults(inserted=90, updated=10)

        state = reduce(state, ImportFinished(results))

        assert state.step == ImportStep.RESULTS
        assert state.results.accepted == 100

    def test_chunk_ack_outside_import(self):
        with pytest.raises(InvalidTransition):
            reduce(_previewed(), ChunkAcknowledged(job_id="a", rows=1))

    def test_failed_keeps_step(self):
        state = reduce(_loaded(), Failed("network down"))

        assert state.step == ImportStep.MAPPING
        assert state.error == "network down"

    def test_reset_keeps_policy(self):
        state = reduce(_previewed(max_error_ratio=0.02), Reset())

        assert state == ImportState(max_error_ratio=0.02)

    def test_parse_progress_never_goes_back(self):
        state = reduce(ImportState(), ParseProgressed(rows_parsed=50, total_bytes=10))
        state = reduce(state, ParseProgressed(rows_parsed=20, total_bytes=10))

        assert state.rows_parsed == 50
        assert state.step == ImportStep.UPLOAD

    def test_reduce_is_pure(self):
        before = ImportState()
        reduce(before, ParseProgressed(rows_parsed=5, total_bytes=1))

        assert before.rows_parsed == 0


class TestImportStore:
    """Test the observable store."""

    def test_subscribers_see_each_state(self):
        store = ImportStore()
        seen = []
        store.subscribe(lambda state: seen.append(state.rows_parsed))

        store.dispatch(ParseProgressed(rows_parsed=1, total_bytes=1))
        store.dispatch(ParseProgressed(rows_parsed=2, total_bytes=1))

        assert seen == [1, 2]
        assert store.get_state().rows_parsed == 2

    def test_unsubscribe(self):
        store = ImportStore()
        seen = []
        unsubscribe = store.subscribe(seen.append)
        unsubscribe()
        unsubscribe()

        store.dispatch(ParseProgressed(rows_parsed=1, total_bytes=1))

        assert seen == []

    def test_rejected_action_leaves_state(self):
        store = ImportStore()

        with pytest.raises(InvalidTransition):
            store.dispatch(ImportStarted(rows_to_submit=1))

        assert store.get_state() == ImportState()
