"""
File mutation events.

Every decoder emits these and every consumer (mutation engine, project state,
run orchestrator) matches on ``type``. The union is closed: a new event kind
means touching every ``match``/``isinstance`` chain on purpose.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated, Iterable, List, Literal, Optional, Union

from pydantic import BaseModel, Field


class WriteMode(str, Enum):
    """How a file is opened by a ``Start`` event."""

    CREATE = "create"
    EDIT = "edit"


class SearchReplaceEdit(BaseModel):
    """One nested search/replace pair from an edit block."""

    search: str
    replace: str = ""


class FileStart(BaseModel):
    type: Literal["start"] = "start"
    raw_path: str
    path: str
    mode: WriteMode = WriteMode.CREATE
    reason: Optional[str] = None
    # Resume streaming: keep the file's current content and append to it.
    append: bool = False


class FileChunk(BaseModel):
    type: Literal["chunk"] = "chunk"
    path: str
    text: str


class FileEnd(BaseModel):
    type: Literal["end"] = "end"
    path: str
    mode: WriteMode = WriteMode.CREATE
    partial: bool = False
    cursor_line: Optional[int] = None
    edits: List[SearchReplaceEdit] = Field(default_factory=list)


class FileDelete(BaseModel):
    type: Literal["delete"] = "delete"
    path: str
    reason: Optional[str] = None


class FileMove(BaseModel):
    type: Literal["move"] = "move"
    from_path: str
    to_path: str
    reason: Optional[str] = None


FileMutationEvent = Annotated[
    Union[FileStart, FileChunk, FileEnd, FileDelete, FileMove],
    Field(discriminator="type"),
]

AnyEvent = Union[FileStart, FileChunk, FileEnd, FileDelete, FileMove]


def coalesce_chunks(events: Iterable[AnyEvent]) -> List[AnyEvent]:
    """
    Merge consecutive ``Chunk`` events for the same path.

    Chunk slicing depends on how the upstream text happened to be split; the
    coalesced sequence does not.
    """
    merged: List[AnyEvent] = []
    for event in events:
        if (
            isinstance(event, FileChunk)
            and merged
            and isinstance(merged[-1], FileChunk)
            and merged[-1].path == event.path
        ):
            merged[-1] = FileChunk(path=event.path, text=merged[-1].text + event.text)
        else:
            merged.append(event)
    return merged
