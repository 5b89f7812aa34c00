"""
Engine API endpoints.

Stateless wrappers around the scanner, healer, stream decoding and the
constraint validator. Every request works on its own in-memory project;
nothing is persisted between calls.
"""

import logging
from functools import lru_cache
from typing import Dict, List

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field

from ..config import config
from ..exceptions import RunSupersededError, UnknownFileKindError
from ..models.integrity import FileIntegrityStatus, FileKind, HealResult, ScanResult
from ..models.validation import GenerationConstraints, ValidationReport
from ..services.constraint_validator import ConstraintValidator
from ..services.generation_run import RunSummary, StreamEngine, StreamProtocol
from ..services.integrity_scanner import IntegrityScanner
from ..services.project_state import ProjectState
from ..services.self_healer import DEFAULT_FOOTER_MARKER, SelfHealer
from ..services.status_log import StatusLog
from ..services.validators.yaml_loader import FeatureCatalog

logger = logging.getLogger(__name__)

router = APIRouter()


class ContentRequest(BaseModel):
    content: str = ""
    kind: str


class DecodeRequest(BaseModel):
    chunks: List[str] = Field(default_factory=list)
    protocol: StreamProtocol = StreamProtocol.AUTO
    existing_files: Dict[str, str] = Field(default_factory=dict)

    class Config:
        json_schema_extra = {
            "example": {
                "chunks": ["[[START_FILE: style.css]]\nbody{color:", "red}\n[[END_FILE]]"],
                "protocol": "auto",
                "existing_files": {},
            }
        }


class DecodeResponse(BaseModel):
    run: RunSummary
    files: Dict[str, str]
    statuses: Dict[str, FileIntegrityStatus]
    status_lines: List[str]


class ValidateRequest(BaseModel):
    files: Dict[str, str] = Field(default_factory=dict)
    constraints: GenerationConstraints = Field(default_factory=GenerationConstraints)


def parse_file_kind(kind: str) -> FileKind:
    try:
        return FileKind((kind or "").strip().lower())
    except ValueError:
        raise UnknownFileKindError(kind)


@lru_cache()
def get_scanner() -> IntegrityScanner:
    return IntegrityScanner()


@lru_cache()
def get_healer() -> SelfHealer:
    footer = config.get_footer_marker() or DEFAULT_FOOTER_MARKER
    return SelfHealer(scanner=get_scanner(), footer_marker=footer)


@lru_cache()
def get_validator() -> ConstraintValidator:
    return ConstraintValidator(
        catalog=FeatureCatalog(config.get_features_dir()),
        scanner=get_scanner(),
        policy=config.get_engine_policy(),
    )


def _kind_or_422(kind: str) -> FileKind:
    try:
        return parse_file_kind(kind)
    except UnknownFileKindError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))


@router.post("/scan", response_model=ScanResult)
async def scan_content(request: ContentRequest, scanner: IntegrityScanner = Depends(get_scanner)):
    """Run the structural integrity scan on one piece of content."""
    return scanner.scan(request.content, _kind_or_422(request.kind))


@router.post("/heal", response_model=HealResult)
async def heal_content(request: ContentRequest, healer: SelfHealer = Depends(get_healer)):
    """Apply the deterministic, format-specific repair to one piece of content."""
    return healer.heal(request.content, _kind_or_422(request.kind))


@router.post("/decode", response_model=DecodeResponse)
async def decode_stream(request: DecodeRequest):
    """
    Feed a recorded chunk sequence through a fresh stream engine.

    Returns the canonical events, the resulting files and their integrity statuses.
    """
    status_lines: List[str] = []
    engine = StreamEngine(
        project=ProjectState(request.existing_files),
        policy=config.get_engine_policy(),
        scanner=get_scanner(),
        status_log=StatusLog(sink=status_lines.append),
    )
    run = engine.new_run(protocol=request.protocol)
    try:
        for chunk in request.chunks:
            run.feed(chunk)
        summary = run.finish()
    except RunSupersededError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e))

    logger.info(f"🧩 Decoded {len(summary.events)} event(s) for run {summary.run_id}")
    return DecodeResponse(
        run=summary,
        files=engine.project.snapshot(),
        statuses=dict(engine.project.statuses),
        status_lines=status_lines,
    )


@router.post("/validate", response_model=ValidationReport)
async def validate_project(request: ValidateRequest, validator: ConstraintValidator = Depends(get_validator)):
    """Validate a complete file set against generation constraints."""
    return validator.validate(request.files, request.constraints)
