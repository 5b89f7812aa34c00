"""
Data models for patchstream.
"""

from .events import (
    AnyEvent,
    FileChunk,
    FileDelete,
    FileEnd,
    FileMove,
    FileMutationEvent,
    FileStart,
    SearchReplaceEdit,
    WriteMode,
    coalesce_chunks,
)
from .integrity import FileIntegrityStatus, FileKind, HealResult, ScanResult, file_kind_for_path
from .policy import EnginePolicy
from .validation import (
    AutoFixOutcome,
    AutoFixRoundState,
    FeatureDefinition,
    GenerationConstraints,
    IssueCategory,
    ProjectMode,
    QualityGateMode,
    RepairRequest,
    ValidationReport,
)

__all__ = [
    "AnyEvent",
    "FileChunk",
    "FileDelete",
    "FileEnd",
    "FileMove",
    "FileMutationEvent",
    "FileStart",
    "SearchReplaceEdit",
    "WriteMode",
    "coalesce_chunks",
    "FileIntegrityStatus",
    "FileKind",
    "HealResult",
    "ScanResult",
    "file_kind_for_path",
    "EnginePolicy",
    "AutoFixOutcome",
    "AutoFixRoundState",
    "FeatureDefinition",
    "GenerationConstraints",
    "IssueCategory",
    "ProjectMode",
    "QualityGateMode",
    "RepairRequest",
    "ValidationReport",
]
