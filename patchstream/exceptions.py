"""
Exceptions raised at patchstream's API boundaries.

Engine operations never raise on malformed stream input; these cover
programmer errors only (feeding a dead run, passing an unknown kind).
"""


class PatchstreamError(Exception):
    """Base class for patchstream errors."""


class RunSupersededError(PatchstreamError):
    """A generation run was fed after it was cancelled or superseded."""

    def __init__(self, run_id: str):
        self.run_id = run_id
        super().__init__(f"Generation run {run_id} is no longer active")


class UnknownFileKindError(PatchstreamError):
    """A caller named a file kind that does not exist."""

    def __init__(self, kind: str):
        self.kind = kind
        super().__init__(f"Unknown file kind: {kind!r}")
