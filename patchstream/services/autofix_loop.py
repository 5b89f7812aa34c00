"""
Bounded constraint auto-fix loop.

Design intent
-------------
Every round starts with the free step (deterministic self-heal over every
healable file), then re-validates. Only if violations that warrant
re-generation remain does the loop spend generator calls, one per ordered
issue batch, each decoded by the same stream engine as the initial
generation.

The loop ends when:
- the report no longer asks for auto-fix,
- the round budget is used up, or
- a whole round produced no change in the issue signature (stall). The
  best-effort report is returned instead of repeating identical requests.

The engine never hard-fails here: the caller receives the final report and
decides whether to finalize with warnings.
"""

from __future__ import annotations

import logging
from typing import AsyncIterable, Callable, List, Optional

from ..config import DEFAULT_MAX_AUTOFIX_ROUNDS, Config, config
from ..models.integrity import FileIntegrityStatus, FileKind, file_kind_for_path
from ..models.validation import (
    AutoFixOutcome,
    AutoFixRoundState,
    GenerationConstraints,
    QualityGateMode,
    RepairRequest,
    ValidationReport,
)
from .constraint_validator import ConstraintValidator
from .generation_run import StreamEngine, StreamProtocol
from .issue_batching import build_issue_batches
from .project_state import ProjectState
from .repair_prompt_builder import build_repair_request
from .self_healer import SelfHealer
from .status_log import StatusLog

logger = logging.getLogger(__name__)

DEFAULT_MAX_ROUNDS = DEFAULT_MAX_AUTOFIX_ROUNDS

# RepairRequest -> text chunks of the generator's answer
RepairSource = Callable[[RepairRequest], AsyncIterable[str]]

_HEALABLE_KINDS = (FileKind.MARKUP, FileKind.STYLE, FileKind.SCRIPT)


def heal_project(project: ProjectState, healer: SelfHealer) -> List[str]:
    """
    Deterministically heal every file of a healable kind.

    A file whose integrity scan failed before the repair and passes after it
    is marked COMPROMISED. Returns the paths whose content changed.
    """
    healed: List[str] = []
    for path in sorted(project.files):
        if file_kind_for_path(path) not in _HEALABLE_KINDS:
            continue
        content = project.files[path]
        before = healer.scanner.scan_file(path, content)
        result = healer.heal_file(path, content)
        if not result.repaired:
            continue
        project.set_content(path, result.content)
        healed.append(path)
        if not before.ok and result.ok:
            project.statuses[path] = FileIntegrityStatus.COMPROMISED
    return healed


class AutoFixLoop:
    def __init__(
        self,
        stream_engine: StreamEngine,
        validator: ConstraintValidator,
        constraints: GenerationConstraints,
        repair_source: RepairSource,
        max_rounds: int = DEFAULT_MAX_ROUNDS,
        status_log: Optional[StatusLog] = None,
    ):
        self.stream_engine = stream_engine
        self.validator = validator
        self.constraints = constraints
        self.repair_source = repair_source
        self.max_rounds = max(1, int(max_rounds))
        self.status_log = status_log or stream_engine.status_log

    @classmethod
    def from_config(
        cls,
        stream_engine: StreamEngine,
        validator: ConstraintValidator,
        constraints: GenerationConstraints,
        repair_source: RepairSource,
        cfg: Optional[Config] = None,
        status_log: Optional[StatusLog] = None,
    ) -> "AutoFixLoop":
        """Build a loop whose round budget comes from configuration (ENV > config.json > default)."""
        cfg = cfg or config
        return cls(
            stream_engine=stream_engine,
            validator=validator,
            constraints=constraints,
            repair_source=repair_source,
            max_rounds=cfg.get_max_autofix_rounds(),
            status_log=status_log,
        )

    @property
    def project(self) -> ProjectState:
        return self.stream_engine.project

    def validate(self) -> ValidationReport:
        return self.validator.validate(self.project.snapshot(), self.constraints)

    def _heal(self, label: str) -> List[str]:
        healed = heal_project(self.project, self.stream_engine.healer)
        if healed:
            self.status_log.constraints(f"{label}: {', '.join(healed)}")
        return healed

    async def run(self) -> AutoFixOutcome:
        report = self.validate()
        signature = report.issue_signature()
        state = AutoFixRoundState(round=0, issue_signature=signature)
        healed_files: List[str] = []
        last_batch: Optional[str] = None
        stalled = False

        for round_no in range(1, self.max_rounds + 1):
            state = AutoFixRoundState(round=round_no, issue_signature=signature)
            deterministic = self._heal("Deterministic syntax self-heal")
            healed_files.extend(p for p in deterministic if p not in healed_files)

            report = self.validate()
            progressed = report.issue_signature() != signature
            signature = report.issue_signature()
            state.issue_signature = signature
            if not report.should_auto_fix:
                if report.advisory_violations and report.ready_for_finalize:
                    self.status_log.constraints(
                        f"Advisory findings only (no auto-fix): {', '.join(report.advisory_violations[:8])}"
                    )
                break

            include_quality = self.constraints.quality_gate_mode == QualityGateMode.STRICT
            batches = build_issue_batches(report, include_quality=include_quality)
            if not batches:
                break

            for index, batch in enumerate(batches, start=1):
                last_batch = batch.label
                self.status_log.constraints(
                    f"Smart auto-fix round {round_no}/{self.max_rounds} {batch.label} ({index}/{len(batches)})"
                )
                request = build_repair_request(
                    batch.issues,
                    self.constraints,
                    focus=batch.label,
                    attempt=round_no,
                    max_attempts=self.max_rounds,
                    recently_healed_files=deterministic,
                    catalog=self.validator.catalog,
                )
                await self.stream_engine.run_stream(self.repair_source(request), protocol=StreamProtocol.MARKERS)

                post = self._heal("Post auto-fix syntax self-heal")
                healed_files.extend(p for p in post if p not in healed_files)

                report = self.validate()
                next_signature = report.issue_signature()
                if next_signature != signature:
                    progressed = True
                signature = next_signature
                state.issue_signature = signature
                if not report.should_auto_fix:
                    break

            if not report.should_auto_fix:
                break
            if not progressed:
                stalled = True
                self.status_log.constraints("Smart auto-fix stalled (no issue delta). Using best-effort result.")
                break

        if report.should_auto_fix and not stalled:
            logger.warning(f"Auto-fix budget exhausted with violations remaining: {report.summary()}")

        return AutoFixOutcome(
            report=report,
            rounds=state.round,
            stalled=stalled,
            round_state=state,
            healed_files=healed_files,
            last_batch=last_batch,
        )
