"""Client-side import flow: parse, map, validate, chunk, submit, collect results.

Parsing and validation run on a worker thread and report back through a
message queue; every change of state goes through ``ImportStore.dispatch``.
"""

from __future__ import annotations

import logging
import os
import queue
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import Any, Callable, Iterable, Iterator, Optional

from padu_api.client.state import (
    ChunkAcknowledged,
    Failed,
    FileLoaded,
    ImportFinished,
    ImportResults,
    ImportStarted,
    ImportState,
    ImportStore,
    MappingChanged,
    ParseProgressed,
    PreviewReady,
    Reset,
)
from padu_api.client.submitters import (
    ImportChunk,
    IngestionClient,
    IngestionClientError,
    JobStatus,
)
from padu_api.core.config import settings
from padu_api.imports.mappers import (
    CANONICAL_FIELDS,
    IGNORED,
    ColumnMapping,
    IncompleteMapping,
    auto_map_columns,
)
from padu_api.imports.parsers import (
    CSVParser,
    CSVSource,
    FileTooLarge,
    MalformedInput,
    ParsedRow,
    check_upload,
    source_size,
)
from padu_api.imports.validators import (
    ValidationPolicy,
    ValidationReport,
    iter_accepted_rows,
)

logger = logging.getLogger(__name__)

PROGRESS = "progress"
COMPLETE = "complete"
ERROR = "error"


@dataclass
class WorkerMessage:
    kind: str
    payload: Any = None


def _run_reporting(fn: Callable, messages: "queue.Queue[WorkerMessage]", *args) -> None:
    try:
        result = fn(messages, *args)
    except Exception as e:
        messages.put(WorkerMessage(ERROR, e))
    else:
        messages.put(WorkerMessage(COMPLETE, result))


def _chunked(rows: Iterable[ParsedRow], size: int) -> Iterator[list[ParsedRow]]:
    chunk: list[ParsedRow] = []
    for row in rows:
        chunk.append(row)
        if len(chunk) >= size:
            yield chunk
            chunk = []
    if chunk:
        yield chunk


class ImportOrchestrator:
    """
    Drives one CSV file through ``upload -> mapping -> preview -> import -> results``.

    Args:
        client: Where chunks are submitted and job status is read from;
            optional when only checking a file
        integration_id: CSV integration the reviews belong to
        parser: CSV parser (defaults to one bounded by ``MAX_UPLOAD_BYTES``)
        policy: Error threshold for the preview -> import transition
        chunk_size: Accepted rows per submitted job
        preview_limit: Issue messages kept for the user
        sleep: Used between status polls
    """

    def __init__(
        self,
        client: Optional[IngestionClient] = None,
        integration_id: Optional[str] = None,
        parser: Optional[CSVParser] = None,
        policy: Optional[ValidationPolicy] = None,
        chunk_size: Optional[int] = None,
        preview_limit: Optional[int] = None,
        text_warning_length: Optional[int] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.integration_id = str(integration_id) if integration_id else None
        self.parser = parser or CSVParser(
            max_bytes=settings.max_upload_bytes,
            progress_every=settings.import_parse_progress_every,
        )
        policy = policy or ValidationPolicy(settings.import_max_error_ratio)
        self.chunk_size = chunk_size or settings.import_chunk_size
        self.preview_limit = preview_limit or settings.import_error_preview_limit
        self.text_warning_length = text_warning_length or settings.import_text_warning_length
        self.store = ImportStore(ImportState(max_error_ratio=policy.max_error_ratio))
        self._sleep = sleep
        self._source: Optional[CSVSource] = None
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="csv-import")

    # Worker thread plumbing

    def _run_in_worker(self, fn: Callable, *args) -> Any:
        """Run ``fn(messages, *args)`` off the calling thread, relaying progress."""
        messages: "queue.Queue[WorkerMessage]" = queue.Queue()
        future = self._executor.submit(_run_reporting, fn, messages, *args)
        while True:
            message = messages.get()
            if message.kind == PROGRESS:
                self.store.dispatch(ParseProgressed(*message.payload))
                continue
            future.result()
            if message.kind == ERROR:
                self.store.dispatch(Failed(str(message.payload)))
                raise message.payload
            return message.payload

    @staticmethod
    def _progress_reporter(messages: "queue.Queue[WorkerMessage]"):
        def report(rows_parsed: int, total_bytes: int) -> None:
            messages.put(WorkerMessage(PROGRESS, (rows_parsed, total_bytes)))

        return report

    def _scan(self, messages, source: CSVSource) -> tuple[list[str], int]:
        parsed = self.parser.parse(source, on_progress=self._progress_reporter(messages))
        total_rows = sum(1 for _ in parsed.rows)
        return parsed.headers, total_rows

    def _validate(self, messages, source: CSVSource, mapping: ColumnMapping) -> ValidationReport:
        rows = self.parser.iter_rows(
            source,
            on_progress=self._progress_reporter(messages),
            total_bytes=source_size(source),
        )
        return ValidationReport.build(
            rows, mapping, self.preview_limit, self.text_warning_length
        )

    # Steps

    def get_state(self) -> ImportState:
        return self.store.get_state()

    def subscribe(self, listener: Callable[[ImportState], None]) -> Callable[[], None]:
        return self.store.subscribe(listener)

    def load_file(self, source: CSVSource, filename: Optional[str] = None) -> ImportState:
        """
        Check, scan and auto-map a CSV file.

        Raises:
            MalformedInput: wrong extension, unreadable CSV, or no data rows
            FileTooLarge: above the upload ceiling
        """
        if filename is None:
            if not isinstance(source, (str, os.PathLike)):
                raise ValueError("filename is required when loading from bytes or a stream")
            filename = os.path.basename(os.fspath(source))
        if hasattr(source, "read"):
            source = source.read()

        size = source_size(source)
        try:
            check_upload(filename, size, self.parser.max_bytes or settings.max_upload_bytes)
        except (MalformedInput, FileTooLarge) as e:
            self.store.dispatch(Failed(str(e)))
            raise

        headers, total_rows = self._run_in_worker(self._scan, source)
        self._source = source
        mapping = auto_map_columns(headers)
        logger.info(
            f"Loaded {filename}: {total_rows} rows, {len(headers)} columns, "
            f"mapped {sorted(mapping.as_dict())}"
        )
        return self.store.dispatch(
            FileLoaded(
                filename=filename,
                file_size=size,
                headers=tuple(headers),
                mapping=mapping,
                total_rows=total_rows,
            )
        )

    def override_mapping(self, field_name: str, header: str) -> ImportState:
        """Bind ``header`` to ``field_name``; pass ``field_name="ignored"`` to unbind it."""
        state = self.store.get_state()
        if header not in state.headers:
            raise IncompleteMapping(f"Unknown column '{header}'")
        mapping = ColumnMapping(state.mapping.as_dict())
        if field_name == IGNORED:
            mapping.ignore(header)
        elif field_name in CANONICAL_FIELDS:
            mapping.assign(field_name, header)
        else:
            raise IncompleteMapping(f"Unknown field '{field_name}'")
        return self.store.dispatch(MappingChanged(mapping))

    def preview(self) -> ValidationReport:
        """
        Validate every row against the current mapping.

        Raises:
            IncompleteMapping: a required field is not mapped
        """
        state = self.store.get_state()
        if not state.mapping.is_complete():
            missing = state.mapping.missing_required()
            raise IncompleteMapping(
                f"Required fields not mapped: {', '.join(missing)}", missing
            )
        report = self._run_in_worker(self._validate, self._source, state.mapping)
        logger.info(
            f"Validated {report.total_rows} rows: {report.error_rows} with errors, "
            f"{report.warning_rows} with warnings"
        )
        self.store.dispatch(PreviewReady(report))
        return report

    def _build_chunk(self, state: ImportState, rows: list[ParsedRow]) -> ImportChunk:
        headers = list(state.headers)
        return ImportChunk(
            integration_id=self.integration_id,
            filename=state.filename,
            file_size=state.file_size,
            headers=headers,
            column_mapping=state.mapping.to_wire(headers),
            rows=[row.as_list(headers) for row in rows],
            row_numbers=[row.row_number for row in rows],
        )

    def run_import(
        self,
        poll_interval: float = 1.0,
        timeout: Optional[float] = None,
    ) -> ImportResults:
        """
        Submit accepted rows chunk by chunk, then wait for every job to finish.

        A failed submission stops the loop; chunks already submitted are kept.

        Raises:
            InvalidTransition: not in preview, or errors exceed the threshold
        """
        if self.client is None or self.integration_id is None:
            raise IngestionClientError("No ingestion client or integration configured")
        state = self.store.get_state()
        report = state.report
        self.store.dispatch(
            ImportStarted(rows_to_submit=report.accepted_rows if report else 0)
        )
        state = self.store.get_state()

        chunk_error: Optional[str] = None
        accepted = iter_accepted_rows(
            self.parser.iter_rows(self._source), state.mapping, self.text_warning_length
        )
        for index, rows in enumerate(_chunked(accepted, self.chunk_size), start=1):
            chunk = self._build_chunk(state, rows)
            try:
                job_id = self.client.submit_chunk(chunk)
            except IngestionClientError as e:
                first, last = chunk.row_numbers[0], chunk.row_numbers[-1]
                chunk_error = f"Chunk {index} (rows {first}-{last}) failed: {e}"
                logger.error(chunk_error)
                self.store.dispatch(Failed(chunk_error))
                break
            logger.info(f"Submitted chunk {index} ({len(chunk)} rows) as job {job_id}")
            self.store.dispatch(ChunkAcknowledged(job_id=job_id, rows=len(chunk)))

        state = self.store.get_state()
        statuses = self.wait_for_jobs(state.job_ids, poll_interval=poll_interval, timeout=timeout)
        results = self._build_results(state, statuses, chunk_error)
        self.store.dispatch(ImportFinished(results))
        return results

    def wait_for_jobs(
        self,
        job_ids: Iterable[str],
        poll_interval: float = 1.0,
        timeout: Optional[float] = None,
    ) -> list[JobStatus]:
        """
        Poll until every job is terminal.

        Raises:
            TimeoutError: ``timeout`` seconds passed with jobs still running
        """
        job_ids = list(job_ids)
        finished: dict[str, JobStatus] = {}
        deadline = None if timeout is None else time.monotonic() + timeout

        while True:
            for job_id in job_ids:
                if job_id in finished:
                    continue
                status = self.client.get_job(job_id)
                if status.is_terminal:
                    finished[job_id] = status
            if len(finished) == len(job_ids):
                return [finished[job_id] for job_id in job_ids]
            if deadline is not None and time.monotonic() >= deadline:
                running = [job_id for job_id in job_ids if job_id not in finished]
                raise TimeoutError(f"Import jobs still running: {', '.join(running)}")
            self._sleep(poll_interval)

    def _build_results(
        self,
        state: ImportState,
        statuses: list[JobStatus],
        chunk_error: Optional[str],
    ) -> ImportResults:
        report = state.report
        skipped = (report.error_rows if report else 0) + (
            state.rows_to_submit - state.rows_submitted
        )
        messages: list[str] = []
        if report:
            messages.extend(issue.format() for issue in report.error_issues)
        if chunk_error:
            messages.append(chunk_error)

        for status in statuses:
            if status.status in ("failed", "cancelled"):
                skipped += status.total_rows - status.processed_rows
                messages.append(
                    f"Job {status.id} {status.status}: {status.error_message or 'no details'}"
                )
            if status.failed_rows and len(messages) < self.preview_limit:
                messages.extend(
                    f"Row {error.row_number}: {error.error_message}"
                    for error in self.client.list_errors(status.id)
                )

        return ImportResults(
            inserted=sum(s.inserted_rows for s in statuses),
            updated=sum(s.updated_rows for s in statuses),
            skipped=skipped,
            errors=sum(s.failed_rows for s in statuses),
            messages=tuple(messages[: self.preview_limit]),
            job_ids=state.job_ids,
            failed_chunks=1 if chunk_error else 0,
        )

    def reset(self) -> ImportState:
        self._source = None
        return self.store.dispatch(Reset())

    def close(self) -> None:
        self._executor.shutdown(wait=True)

    def __enter__(self) -> "ImportOrchestrator":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()
