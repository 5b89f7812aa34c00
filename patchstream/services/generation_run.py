"""
Generation run orchestration.

One ``GenerationRun`` owns everything for one in-flight stream: the decoder
automaton, a fresh ``FileMutationEngine`` (alias table + basename registry)
and the status transitions of the files it touches. ``StreamEngine`` owns
the project across runs and guarantees at most one live run: starting a new
run cancels the previous one first.

End-of-file handling
--------------------
- interrupted (partial End): PARTIAL, then deterministic heal; a successful
  repair makes the file COMPROMISED, otherwise it stays PARTIAL. An
  interrupted rewrite that left the file empty restores the content the file
  had before the run and marks it COMPROMISED.
- clean End: integrity scan. Pass -> READY (markup additionally gets its
  footer). Fail -> PARTIAL -> heal -> COMPROMISED when the repair converges.
- resume: a PARTIAL or COMPROMISED file reopened by a resumed run continues
  from its unhealed streamed text instead of being overwritten.
"""

from __future__ import annotations

import logging
import uuid
from enum import Enum
from typing import AsyncIterable, Callable, Dict, Iterable, List, Optional, Union

from pydantic import BaseModel, Field

from ..exceptions import RunSupersededError
from ..models.events import AnyEvent, FileChunk, FileDelete, FileEnd, FileMove, FileMutationEvent, FileStart
from ..models.integrity import FileIntegrityStatus, FileKind, file_kind_for_path
from ..models.policy import EnginePolicy
from .file_mutation_engine import FileMutationEngine, Resolver
from .integrity_scanner import IntegrityScanner
from .json_stream_decoder import JsonStreamDecoder
from .marker_stream_decoder import MarkerStreamDecoder
from .path_rules import strip_trailing_marker_fragment
from .project_state import ProjectState
from .self_healer import DEFAULT_FOOTER_MARKER, SelfHealer
from .status_log import StatusLog

logger = logging.getLogger(__name__)

RESUMABLE_STATUSES = (FileIntegrityStatus.PARTIAL, FileIntegrityStatus.COMPROMISED)

EventCallback = Callable[[AnyEvent], None]
Decoder = Union[JsonStreamDecoder, MarkerStreamDecoder]


class StreamProtocol(str, Enum):
    AUTO = "auto"
    JSON = "json"
    MARKERS = "markers"


class RunSummary(BaseModel):
    """What a finished (or cancelled) run did to the project."""

    run_id: str
    protocol: StreamProtocol
    cancelled: bool = False
    events: List[FileMutationEvent] = Field(default_factory=list)
    statuses: Dict[str, FileIntegrityStatus] = Field(default_factory=dict)
    refusals: List[str] = Field(default_factory=list)

    @property
    def partial_files(self) -> List[str]:
        return sorted(p for p, s in self.statuses.items() if s == FileIntegrityStatus.PARTIAL)

    @property
    def compromised_files(self) -> List[str]:
        return sorted(p for p, s in self.statuses.items() if s == FileIntegrityStatus.COMPROMISED)


class GenerationRun:
    def __init__(
        self,
        project: ProjectState,
        mutation_engine: FileMutationEngine,
        scanner: IntegrityScanner,
        healer: SelfHealer,
        status_log: StatusLog,
        protocol: StreamProtocol = StreamProtocol.AUTO,
        resume: bool = False,
        on_event: Optional[EventCallback] = None,
        run_id: Optional[str] = None,
    ):
        self.run_id = run_id or uuid.uuid4().hex[:12]
        self.project = project
        self.mutation_engine = mutation_engine
        self.scanner = scanner
        self.healer = healer
        self.status_log = status_log
        self.protocol = protocol
        self.resume = resume
        self._on_event = on_event

        self._decoder: Optional[Decoder] = None
        self._pending = ""
        self._writing: List[str] = []
        self._touched: Dict[str, FileIntegrityStatus] = {}
        self._pre_stream: Dict[str, str] = {}
        self.events: List[AnyEvent] = []

        self.cancelled = False
        self.finished = False
        self.superseded = False

        if protocol != StreamProtocol.AUTO:
            self._decoder = self._make_decoder(protocol)

    @property
    def active(self) -> bool:
        return not (self.cancelled or self.finished or self.superseded)

    @staticmethod
    def _make_decoder(protocol: StreamProtocol) -> Decoder:
        if protocol == StreamProtocol.JSON:
            return JsonStreamDecoder()
        return MarkerStreamDecoder()

    def feed(self, chunk: str) -> List[AnyEvent]:
        """Decode one chunk and apply the resulting events; returns the canonical events."""
        if self.superseded:
            raise RunSupersededError(self.run_id)
        if not self.active or not chunk:
            return []

        if self._decoder is None:
            self._pending += chunk
            stripped = self._pending.lstrip()
            if not stripped:
                return []
            detected = StreamProtocol.JSON if stripped[0] == "{" else StreamProtocol.MARKERS
            logger.info(f"Run {self.run_id}: detected {detected.value} protocol")
            self.protocol = detected
            self._decoder = self._make_decoder(detected)
            chunk, self._pending = self._pending, ""

        return self._dispatch(self._decoder.feed(chunk))

    async def consume(self, source: AsyncIterable[str]) -> RunSummary:
        """Drive the run from an async chunk source until it ends or the run is cancelled."""
        async for chunk in source:
            if not self.active:
                break
            self.feed(chunk)
        return self.finish()

    def finish(self) -> RunSummary:
        if self.superseded:
            raise RunSupersededError(self.run_id)
        if not self.finished:
            if not self.cancelled and self._decoder is not None:
                self._dispatch(self._decoder.finish())
            self._finalize_interrupted()
            self.finished = True
        return self.summary()

    def cancel(self) -> None:
        """Stop consuming between events; files still being written end as interrupted."""
        if self.cancelled or self.finished:
            return
        self.cancelled = True
        self.status_log.status(f"Run {self.run_id} cancelled")
        self._finalize_interrupted()

    def supersede(self) -> None:
        self.cancel()
        self.superseded = True

    def summary(self) -> RunSummary:
        return RunSummary(
            run_id=self.run_id,
            protocol=self.protocol,
            cancelled=self.cancelled,
            events=list(self.events),
            statuses=dict(self._touched),
            refusals=list(self.mutation_engine.refusals),
        )

    def _dispatch(self, raw_events: Iterable[AnyEvent]) -> List[AnyEvent]:
        applied: List[AnyEvent] = []
        for raw in raw_events:
            if self.cancelled:
                break
            event = self.mutation_engine.apply(raw)
            if event is None:
                continue
            event = self._apply(event)
            applied.append(event)
            if self._on_event is not None:
                self._on_event(event)
        return applied

    def _apply(self, event: AnyEvent) -> AnyEvent:
        if isinstance(event, FileStart):
            if self.resume and self.project.statuses.get(event.path) in RESUMABLE_STATUSES:
                event = event.model_copy(update={"append": True})
            self._pre_stream.setdefault(event.path, self.project.files.get(event.path, ""))
            self.project.apply(event)
            self._set_status(event.path, FileIntegrityStatus.WRITING)
            if event.path not in self._writing:
                self._writing.append(event.path)
            self.status_log.status(f"Writing {event.path} ({event.mode.value})")
        elif isinstance(event, FileChunk):
            self.project.apply(event)
        elif isinstance(event, FileEnd):
            if event.path in self._writing:
                self._writing.remove(event.path)
            self._end_file(event)
        elif isinstance(event, FileDelete):
            self.project.apply(event)
            self._touched.pop(event.path, None)
            self.status_log.status(f"Deleted {event.path}")
        elif isinstance(event, FileMove):
            self.project.apply(event)
            if event.from_path in self._touched:
                self._touched[event.to_path] = self._touched.pop(event.from_path)
            if event.from_path in self._pre_stream:
                self._pre_stream[event.to_path] = self._pre_stream.pop(event.from_path)
            self._writing = [event.to_path if p == event.from_path else p for p in self._writing]
            self.status_log.status(f"Moved {event.from_path} -> {event.to_path}")
        else:
            raise TypeError(f"Unsupported event type: {type(event).__name__}")
        self.events.append(event)
        return event

    def _set_status(self, path: str, status: FileIntegrityStatus) -> None:
        self.project.statuses[path] = status
        self._touched[path] = status

    def _finalize_interrupted(self) -> None:
        for path in list(self._writing):
            self._writing.remove(path)
            end = FileEnd(path=path, partial=True)
            self.events.append(end)
            self._end_file(end)

    def _end_file(self, end: FileEnd) -> None:
        if self.project.apply(end) is None and end.path not in self.project.files:
            self.project.statuses.pop(end.path, None)
            self._touched.pop(end.path, None)
            self.status_log.status(f"Skipped {end.path}: no edit applied to a missing file")
            return
        self._finalize_file(end.path, partial=end.partial, cursor_line=end.cursor_line)

    def _finalize_file(self, path: str, partial: bool, cursor_line: Optional[int]) -> None:
        content = self.project.files.get(path, "")
        cleaned = strip_trailing_marker_fragment(content)
        if cleaned != content:
            self.project.set_content(path, cleaned)
            content = cleaned

        if partial:
            where = f" at line {cursor_line}" if cursor_line else ""
            self.status_log.status(f"Interrupted {path}{where}")
            previous = self._pre_stream.get(path, "")
            if not content.strip() and previous.strip():
                self.project.set_content(path, previous)
                self._set_status(path, FileIntegrityStatus.COMPROMISED)
                self.status_log.recover(f"Restored last stable snapshot for {path} after interrupted stream")
                return
            self._set_status(path, FileIntegrityStatus.PARTIAL)
            self._heal_partial(path, content, reason="stream interrupted")
            return

        scan = self.scanner.scan_file(path, content)
        if scan.ok:
            if file_kind_for_path(path) == FileKind.MARKUP:
                healed = self.healer.heal_file(path, content)
                if healed.repaired:
                    self.project.set_content(path, healed.content)
            self._set_status(path, FileIntegrityStatus.READY)
            self.status_log.status(f"Completed {path}")
            return

        self.status_log.status(f"Integrity check failed for {path}: {scan.reason}")
        self._set_status(path, FileIntegrityStatus.PARTIAL)
        self._heal_partial(path, content, reason=scan.reason or "integrity failure")

    def _heal_partial(self, path: str, content: str, reason: str) -> None:
        result = self.healer.heal_file(path, content)
        if result.repaired and result.ok:
            self.project.stream_base[path] = content
            self.project.set_content(path, result.content)
            self._set_status(path, FileIntegrityStatus.COMPROMISED)
            self.status_log.repair(f"Repaired {path} after {reason}")
        else:
            self.status_log.repair(f"No safe repair for {path}: {result.reason or reason}")


class StreamEngine:
    """
    Project-level entry point: builds a fresh run (and mutation engine) per
    stream, with at most one live run at a time.
    """

    def __init__(
        self,
        project: Optional[ProjectState] = None,
        policy: Optional[EnginePolicy] = None,
        resolver: Optional[Resolver] = None,
        scanner: Optional[IntegrityScanner] = None,
        healer: Optional[SelfHealer] = None,
        status_log: Optional[StatusLog] = None,
    ):
        self.project = project or ProjectState()
        self.policy = policy or EnginePolicy()
        self.resolver = resolver
        self.scanner = scanner or IntegrityScanner()
        footer = self.policy.footer_marker if self.policy.footer_marker is not None else DEFAULT_FOOTER_MARKER
        self.healer = healer or SelfHealer(scanner=self.scanner, footer_marker=footer)
        self.status_log = status_log or StatusLog()
        self._current: Optional[GenerationRun] = None

    @property
    def current_run(self) -> Optional[GenerationRun]:
        return self._current

    def new_run(
        self,
        protocol: StreamProtocol = StreamProtocol.AUTO,
        resume: bool = False,
        on_event: Optional[EventCallback] = None,
    ) -> GenerationRun:
        if self._current is not None and not self._current.superseded:
            if self._current.active:
                logger.info(f"Superseding run {self._current.run_id}")
            self._current.supersede()

        mutation_engine = FileMutationEngine(
            policy=self.policy,
            resolver=self.resolver,
            reference_source=self.project.snapshot,
            existing_paths=list(self.project.files),
            status_log=self.status_log,
        )
        self._current = GenerationRun(
            project=self.project,
            mutation_engine=mutation_engine,
            scanner=self.scanner,
            healer=self.healer,
            status_log=self.status_log,
            protocol=protocol,
            resume=resume,
            on_event=on_event,
        )
        return self._current

    async def run_stream(
        self,
        source: AsyncIterable[str],
        protocol: StreamProtocol = StreamProtocol.AUTO,
        resume: bool = False,
    ) -> RunSummary:
        run = self.new_run(protocol=protocol, resume=resume)
        return await run.consume(source)

    def run_text(self, chunks: Iterable[str], protocol: StreamProtocol = StreamProtocol.AUTO) -> RunSummary:
        run = self.new_run(protocol=protocol)
        for chunk in chunks:
            run.feed(chunk)
        return run.finish()
