"""Import wizard state container.

``reduce`` is a pure function of ``(state, action)``; ``ImportStore`` owns the
current state and notifies subscribers after every dispatch.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Callable, Optional, Union

from padu_api.imports.mappers import ColumnMapping
from padu_api.imports.validators import ValidationPolicy, ValidationReport


class ImportStep(str, Enum):
    UPLOAD = "upload"
    MAPPING = "mapping"
    PREVIEW = "preview"
    IMPORT = "import"
    RESULTS = "results"


class InvalidTransition(Exception):
    """An action was dispatched in a step that does not accept it."""

    def __init__(self, step: ImportStep, action: object, reason: str = ""):
        self.step = step
        self.action = action
        message = f"{type(action).__name__} not allowed in step '{step.value}'"
        if reason:
            message += f": {reason}"
        super().__init__(message)


@dataclass(frozen=True)
class ImportResults:
    """Final outcome shown to the user."""

    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    messages: tuple[str, ...] = ()
    job_ids: tuple[str, ...] = ()
    failed_chunks: int = 0

    @property
    def accepted(self) -> int:
        return self.inserted + self.updated


@dataclass(frozen=True)
class ImportState:
    step: ImportStep = ImportStep.UPLOAD
    max_error_ratio: float = 0.0
    filename: Optional[str] = None
    file_size: int = 0
    headers: tuple[str, ...] = ()
    mapping: ColumnMapping = field(default_factory=ColumnMapping)
    total_rows: int = 0
    rows_parsed: int = 0
    report: Optional[ValidationReport] = None
    rows_to_submit: int = 0
    rows_submitted: int = 0
    progress: float = 0.0
    job_ids: tuple[str, ...] = ()
    results: Optional[ImportResults] = None
    error: Optional[str] = None

    @property
    def policy(self) -> ValidationPolicy:
        return ValidationPolicy(self.max_error_ratio)

    @property
    def can_preview(self) -> bool:
        return self.step == ImportStep.MAPPING and self.mapping.is_complete()

    @property
    def can_import(self) -> bool:
        return (
            self.step == ImportStep.PREVIEW
            and self.report is not None
            and self.report.is_importable(self.policy)
        )


# Actions


@dataclass(frozen=True)
class FileLoaded:
    filename: str
    file_size: int
    headers: tuple[str, ...]
    mapping: ColumnMapping
    total_rows: int


@dataclass(frozen=True)
class ParseProgressed:
    rows_parsed: int
    total_bytes: int


@dataclass(frozen=True)
class MappingChanged:
    mapping: ColumnMapping


@dataclass(frozen=True)
class PreviewReady:
    report: ValidationReport


@dataclass(frozen=True)
class ImportStarted:
    rows_to_submit: int


@dataclass(frozen=True)
class ChunkAcknowledged:
    job_id: str
    rows: int


@dataclass(frozen=True)
class ImportFinished:
    results: ImportResults


@dataclass(frozen=True)
class Failed:
    message: str


@dataclass(frozen=True)
class Reset:
    pass


Action = Union[
    FileLoaded,
    ParseProgressed,
    MappingChanged,
    PreviewReady,
    ImportStarted,
    ChunkAcknowledged,
    ImportFinished,
    Failed,
    Reset,
]

# Steps in which each action may be dispatched; Failed and Reset are always allowed
ALLOWED_STEPS: dict[type, frozenset[ImportStep]] = {
    FileLoaded: frozenset({ImportStep.UPLOAD}),
    ParseProgressed: frozenset({ImportStep.UPLOAD, ImportStep.MAPPING}),
    MappingChanged: frozenset({ImportStep.MAPPING, ImportStep.PREVIEW}),
    PreviewReady: frozenset({ImportStep.MAPPING}),
    ImportStarted: frozenset({ImportStep.PREVIEW}),
    ChunkAcknowledged: frozenset({ImportStep.IMPORT}),
    ImportFinished: frozenset({ImportStep.IMPORT}),
}


def _progress(state: ImportState, rows_submitted: int) -> float:
    if state.rows_to_submit <= 0:
        return 100.0
    percent = min(100.0, rows_submitted / state.rows_to_submit * 100)
    return max(state.progress, round(percent, 2))


def reduce(state: ImportState, action: Action) -> ImportState:
    """
    Compute the next state.

    Raises:
        InvalidTransition: the action is not accepted in the current step, or
            its guard (complete mapping, error threshold) does not hold
    """
    if isinstance(action, Reset):
        return ImportState(max_error_ratio=state.max_error_ratio)
    if isinstance(action, Failed):
        return replace(state, error=action.message)

    allowed = ALLOWED_STEPS.get(type(action), frozenset())
    if state.step not in allowed:
        raise InvalidTransition(state.step, action)

    if isinstance(action, FileLoaded):
        return replace(
            state,
            step=ImportStep.MAPPING,
            filename=action.filename,
            file_size=action.file_size,
            headers=action.headers,
            mapping=action.mapping,
            total_rows=action.total_rows,
            rows_parsed=action.total_rows,
            error=None,
        )

    if isinstance(action, ParseProgressed):
        return replace(state, rows_parsed=max(state.rows_parsed, action.rows_parsed))

    if isinstance(action, MappingChanged):
        return replace(state, step=ImportStep.MAPPING, mapping=action.mapping, report=None)

    if isinstance(action, PreviewReady):
        if not state.mapping.is_complete():
            missing = ", ".join(state.mapping.missing_required())
            raise InvalidTransition(state.step, action, f"required fields not mapped: {missing}")
        return replace(state, step=ImportStep.PREVIEW, report=action.report, error=None)

    if isinstance(action, ImportStarted):
        if not state.can_import:
            raise InvalidTransition(
                state.step, action, "validation errors exceed the allowed threshold"
            )
        return replace(
            state,
            step=ImportStep.IMPORT,
            rows_to_submit=action.rows_to_submit,
            rows_submitted=0,
            progress=0.0,
            job_ids=(),
        )

    if isinstance(action, ChunkAcknowledged):
        rows_submitted = state.rows_submitted + action.rows
        return replace(
            state,
            rows_submitted=rows_submitted,
            progress=_progress(state, rows_submitted),
            job_ids=state.job_ids + (action.job_id,),
        )

    if isinstance(action, ImportFinished):
        return replace(state, step=ImportStep.RESULTS, results=action.results)

    raise InvalidTransition(state.step, action)


Listener = Callable[[ImportState], None]


class ImportStore:
    """Thread-safe holder of the current ImportState."""

    def __init__(self, initial: Optional[ImportState] = None):
        self._state = initial or ImportState()
        self._listeners: list[Listener] = []
        self._lock = threading.RLock()

    def get_state(self) -> ImportState:
        with self._lock:
            return self._state

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns a function that unregisters it."""
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def dispatch(self, action: Action) -> ImportState:
        with self._lock:
            self._state = reduce(self._state, action)
            state = self._state
            listeners = list(self._listeners)
        for listener in listeners:
            listener(state)
        return state
