"""Engine services for patchstream."""

from .autofix_loop import AutoFixLoop, heal_project
from .constraint_validator import ConstraintValidator
from .file_mutation_engine import FileMutationEngine
from .generation_run import GenerationRun, RunSummary, StreamEngine, StreamProtocol
from .integrity_scanner import IntegrityScanner
from .json_stream_decoder import JsonStreamDecoder
from .marker_stream_decoder import MarkerStreamDecoder
from .project_state import ProjectState
from .self_healer import SelfHealer
from .status_log import StatusLog

__all__ = [
    "AutoFixLoop",
    "heal_project",
    "ConstraintValidator",
    "FileMutationEngine",
    "GenerationRun",
    "RunSummary",
    "StreamEngine",
    "StreamProtocol",
    "IntegrityScanner",
    "JsonStreamDecoder",
    "MarkerStreamDecoder",
    "ProjectState",
    "SelfHealer",
    "StatusLog",
]
