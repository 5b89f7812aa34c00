"""
File mutation engine: canonical paths, duplicate prevention, delete/move safety.

Why this exists
---------------
The generator names files loosely. It re-creates ``styles.css`` next to an
existing ``style.css``, renames a file mid-stream, asks to delete
``package.json`` "for cleanup". Every raw event passes through one engine
instance per run before it touches project state:

- ``Start`` (create): forbidden aliases are rewritten to their canonical
  basename, and duplicate-sensitive singletons are redirected to the path
  already holding that basename, unless the two live under different
  top-level directories (``src/App.js`` and ``server/app.js``).
- ``Chunk`` / ``End``: resolved through the raw->resolved alias table, so a
  mid-stream rename never splits one file into two.
- ``Delete`` / ``Move``: sensitive manifests need an explicit override reason;
  a move whose old path is still referenced needs an explicit safety reason.

Refused or unresolvable events are dropped (``apply`` returns None) with a
status line.
"""

from __future__ import annotations

import logging
from typing import Callable, Dict, Iterable, List, Mapping, Optional

from ..models.events import AnyEvent, FileChunk, FileDelete, FileEnd, FileMove, FileStart, WriteMode
from ..models.policy import EnginePolicy
from .path_rules import basename, dirname, join_path, sanitize_operation_path, share_scope
from .status_log import StatusLog

logger = logging.getLogger(__name__)

# raw path -> resolved path, or None when the caller has no opinion
Resolver = Callable[[str], Optional[str]]
# current project files (path -> content) used for move reference checks
ReferenceSource = Callable[[], Mapping[str, str]]


def find_path_references(files: Mapping[str, str], target: str) -> List[str]:
    """Paths of files whose content still mentions ``target``."""
    target = sanitize_operation_path(target)
    if not target:
        return []
    name = basename(target)
    needles = {target, f"/{target}", f"./{name}", f"/{name}"}
    hits = []
    for path, content in files.items():
        if sanitize_operation_path(path) == target or not content:
            continue
        if any(needle in content for needle in needles):
            hits.append(path)
    return sorted(hits)


class FileMutationEngine:
    """
    Per-run path resolution and policy gate.

    Owns the PathAliasTable (``aliases``) and the BasenameRegistry
    (``registry``). Never shared across runs.
    """

    def __init__(
        self,
        policy: Optional[EnginePolicy] = None,
        resolver: Optional[Resolver] = None,
        reference_source: Optional[ReferenceSource] = None,
        existing_paths: Iterable[str] = (),
        status_log: Optional[StatusLog] = None,
    ):
        self.policy = policy or EnginePolicy()
        self._resolver = resolver
        self._reference_source = reference_source
        self.status_log = status_log or StatusLog()

        self.aliases: Dict[str, str] = {}
        self.registry: Dict[str, str] = {}
        self.active_path: Optional[str] = None
        self.refusals: List[str] = []

        self._seed_registry(existing_paths)

    def _seed_registry(self, paths: Iterable[str]) -> None:
        cleaned = sorted(
            {p for p in (sanitize_operation_path(x) for x in paths) if p},
            key=lambda p: (p.count("/"), p),
        )
        for path in cleaned:
            key = basename(path).lower()
            if self._tracks(key):
                self.registry.setdefault(key, path)

    def _tracks(self, key: str) -> bool:
        return self.policy.is_duplicate_sensitive(key) or len(self.policy.purpose_group(key)) > 1

    def _resolve(self, raw: str, resolver: Optional[Resolver]) -> Optional[str]:
        fn = resolver or self._resolver
        if fn is None:
            return None
        resolved = fn(raw)
        return sanitize_operation_path(resolved) if resolved else None

    def _lookup(self, raw: str, resolver: Optional[Resolver]) -> str:
        return self.aliases.get(raw) or self._resolve(raw, resolver) or raw

    def apply(self, event: AnyEvent, resolver: Optional[Resolver] = None) -> Optional[AnyEvent]:
        """Canonicalize one raw event; None means drop it."""
        if isinstance(event, FileStart):
            return self._apply_start(event, resolver)
        if isinstance(event, (FileChunk, FileEnd)):
            return self._apply_write(event, resolver)
        if isinstance(event, FileDelete):
            return self._apply_delete(event, resolver)
        if isinstance(event, FileMove):
            return self._apply_move(event, resolver)
        raise TypeError(f"Unsupported event type: {type(event).__name__}")

    def _apply_start(self, event: FileStart, resolver: Optional[Resolver]) -> Optional[FileStart]:
        raw = sanitize_operation_path(event.raw_path or event.path)
        if not raw:
            self.status_log.safety(f"Dropped file start with unusable path {event.raw_path!r}")
            return None

        if event.mode == WriteMode.EDIT:
            resolved = self._lookup(raw, resolver)
        else:
            resolved = self._resolve_create(self._resolve(raw, resolver) or raw)

        self.aliases[raw] = resolved
        self.active_path = resolved
        if resolved != raw:
            logger.info(f"Resolved {raw} -> {resolved}")
        return event.model_copy(update={"raw_path": raw, "path": resolved})

    def _resolve_create(self, resolved: str) -> str:
        key = basename(resolved).lower()

        canonical = self.policy.canonical_for_alias(key)
        if canonical:
            existing = self._registered_in_group(canonical.lower())
            if existing and existing != resolved and share_scope(existing, resolved):
                self.status_log.status(f"Redirected {resolved} to existing {existing}")
                return existing
            rewritten = join_path(dirname(resolved), canonical)
            self.status_log.status(f"Rewrote forbidden alias {resolved} -> {rewritten}")
            resolved = rewritten
            key = canonical.lower()

        if self._tracks(key):
            existing = self._registered_in_group(key)
            if existing and existing != resolved and share_scope(existing, resolved):
                self.status_log.status(f"Redirected duplicate {resolved} to existing {existing}")
                return existing
            if existing and existing != resolved:
                # separate top-level tree: keep the first registration
                return resolved
        self.registry[key] = resolved
        return resolved

    def _registered_in_group(self, key: str) -> Optional[str]:
        if key in self.registry:
            return self.registry[key]
        for member in self.policy.purpose_group(key):
            if member in self.registry:
                return self.registry[member]
        return None

    def _apply_write(self, event, resolver: Optional[Resolver]):
        raw = sanitize_operation_path(event.path)
        resolved = self.aliases.get(raw) if raw else None
        if not resolved:
            resolved = self.active_path or (self._resolve(raw, resolver) if raw else None) or raw
        if not resolved:
            return None
        if isinstance(event, FileEnd):
            self.aliases.pop(raw, None)
            if self.active_path == resolved:
                self.active_path = None
        return event.model_copy(update={"path": resolved})

    def _refuse(self, message: str) -> None:
        self.refusals.append(message)
        self.status_log.safety(message)

    def _apply_delete(self, event: FileDelete, resolver: Optional[Resolver]) -> Optional[FileDelete]:
        raw = sanitize_operation_path(event.path)
        if not raw:
            return None
        resolved = self._lookup(raw, resolver)

        if self.policy.is_sensitive_path(resolved) and not self.policy.has_sensitive_override(event.reason):
            self._refuse(f"Refused delete of sensitive file {resolved} (reason: {event.reason or 'none'})")
            return None

        self.aliases.pop(raw, None)
        if self.active_path == resolved:
            self.active_path = None
        self._retire(resolved, replacement=None)
        return event.model_copy(update={"path": resolved})

    def _apply_move(self, event: FileMove, resolver: Optional[Resolver]) -> Optional[FileMove]:
        from_raw = sanitize_operation_path(event.from_path)
        to_raw = sanitize_operation_path(event.to_path)
        if not from_raw or not to_raw:
            return None
        from_path = self._lookup(from_raw, resolver)
        to_path = self._lookup(to_raw, resolver)
        if from_path == to_path:
            return None

        sensitive = self.policy.is_sensitive_path(from_path) or self.policy.is_sensitive_path(to_path)
        if sensitive and not self.policy.has_sensitive_override(event.reason):
            self._refuse(f"Refused move of sensitive file {from_path} -> {to_path} (reason: {event.reason or 'none'})")
            return None

        if self._reference_source is not None and not self.policy.has_safety_reason(event.reason):
            hits = find_path_references(self._reference_source(), from_path)
            if hits:
                self._refuse(
                    f"Refused move {from_path} -> {to_path}: still referenced by {', '.join(hits[:5])}"
                )
                return None

        self.aliases[from_raw] = to_path
        self.aliases[to_raw] = to_path
        if self.active_path == from_path:
            self.active_path = to_path
        self._retire(from_path, replacement=to_path)
        return event.model_copy(update={"from_path": from_path, "to_path": to_path})

    def _retire(self, path: str, replacement: Optional[str]) -> None:
        """Drop or re-point registry entries that pointed at ``path``."""
        for key in [k for k, v in self.registry.items() if v == path]:
            if replacement and basename(replacement).lower() == key:
                self.registry[key] = replacement
            else:
                del self.registry[key]
        if replacement:
            new_key = basename(replacement).lower()
            if self._tracks(new_key) and self._registered_in_group(new_key) is None:
                self.registry[new_key] = replacement
