"""Project aggregation: one snapshot per journal, includes followed.

``ProjectCache`` maps a root journal (or a workspace directory) to a
:class:`~hledger_assist.models.CacheEntry` holding the merged snapshot of
every file that contributed. Lifecycle:

- ``get(path)`` builds the entry on first access and rebuilds it when any
  contributing file's ``st_mtime_ns`` changed, when a missing include target
  appears, or when a directory a glob include expands over changes. Per-file
  parse results are cached by mtime as well, so a rebuild only re-parses
  files that changed.
- ``update_text(path, text)`` makes an unsaved editor buffer override the
  file on disk.
- ``invalidate(path)`` / ``invalidate()`` drop one or all entries;
  ``dispose()`` drops everything and refuses further use.

``include`` targets resolve relative to the including file and may be glob
patterns. Missing targets, include cycles and nesting beyond
``Settings.max_include_depth`` become warnings on the entry; a missing root
file raises ``FileNotFoundError``. A pass can be abandoned through a cancel
flag (anything with ``is_set()``, e.g. ``threading.Event``) checked between
files; the previous entry then stays in place. New entries are built
completely before a single assignment publishes them.
"""

from __future__ import annotations

import glob
import os
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Protocol, TypeAlias

from .builder import build_chunked, merge_all
from .config import Settings
from .errors import AggregationCancelled
from .lexer import LineKind, TokenStream, match_line
from .logging_setup import get_logger
from .models import CacheEntry, ParsedData, ParseWarning

_logger = get_logger("hledger_assist.aggregator")

Reader: TypeAlias = Callable[[Path], str]

_MISSING = -1


class CancelFlag(Protocol):
    def is_set(self) -> bool: ...


def read_journal(path: Path) -> str:
    """Default reader: UTF-8 with an optional byte-order mark."""

    return path.read_text(encoding="utf-8-sig")


def _mtime(path: Path) -> int:
    try:
        return path.stat().st_mtime_ns
    except OSError:
        return _MISSING


def _normalize(path: Path | str) -> Path:
    return Path(path).expanduser().resolve()


def _include_targets(text: str) -> list[tuple[str, int]]:
    """``(pattern, line)`` for every ``include`` directive in ``text``."""

    out: list[tuple[str, int]] = []
    for n, line in enumerate(TokenStream(text).lines()):
        if not line.startswith("include"):
            continue
        rule, m = match_line(line)
        if rule.kind is LineKind.DIRECTIVE and m.group("directive") == "include":
            target = (m.group("text") or "").strip()
            if target:
                out.append((target, n))
    return out


def resolve_include(base: Path, pattern: str) -> list[Path]:
    """Files an ``include`` of ``pattern`` in a file under ``base`` refers to.

    Relative patterns resolve against ``base``; glob patterns expand to the
    sorted list of matching files. Returns ``[]`` when nothing exists.
    """

    expanded = os.path.expanduser(pattern)
    full = expanded if os.path.isabs(expanded) else str(base / expanded)
    if glob.has_magic(full):
        return [_normalize(p) for p in sorted(glob.glob(full, recursive=True)) if os.path.isfile(p)]
    target = _normalize(full)
    return [target] if target.is_file() else []



def _include_watch(base: Path, pattern: str) -> Path:
    """Path whose mtime changes when ``pattern`` starts resolving differently.

    A plain target is watched itself (it may not exist yet); a glob is
    watched through the deepest directory above its first wildcard.
    """

    expanded = os.path.expanduser(pattern)
    full = Path(expanded if os.path.isabs(expanded) else base / expanded)
    if not glob.has_magic(str(full)):
        return _normalize(full)
    fixed: list[str] = []
    for part in full.parts:
        if glob.has_magic(part):
            break
        fixed.append(part)
    return _normalize(Path(*fixed))


@dataclass(frozen=True, slots=True)
class _FileResult:
    path: Path
    mtime: int
    data: ParsedData
    includes: tuple[tuple[str, int], ...]
    from_buffer: bool = False


@dataclass(slots=True)
class _Pass:
    """State of one aggregation pass; discarded unless it completes."""

    root: Path
    cancel: CancelFlag | None
    snapshots: list[ParsedData] = field(default_factory=list)
    mtimes: dict[Path, int] = field(default_factory=dict)
    warnings: list[ParseWarning] = field(default_factory=list)
    visited: set[Path] = field(default_factory=set)

    def check_cancel(self) -> None:
        if self.cancel is not None and self.cancel.is_set():
            _logger.info(
                "aggregate:cancelled root=%s files_done=%d", self.root, len(self.visited)
            )
            raise AggregationCancelled(self.root, files_done=len(self.visited))

    def warn(self, source: Path, line: int, message: str) -> None:
        _logger.warning("aggregate:%s (%s:%d)", message, source, line + 1)
        self.warnings.append(ParseWarning(line, message, str(source)))


class ProjectCache:
    """Aggregated snapshots keyed by resolved root path.

    Parameters
    ----------
    settings:
        Include depth, chunk size, date order and workspace scan rules.
    reader:
        ``Path -> str`` used to load journal text; tests inject one to count
        reads. Defaults to :func:`read_journal`.
    """

    def __init__(self, settings: Settings | None = None, *, reader: Reader | None = None) -> None:
        self.settings = settings or Settings()
        self._read = reader or read_journal
        self._entries: dict[Path, CacheEntry] = {}
        self._files: dict[Path, _FileResult] = {}
        self._buffers: dict[Path, str] = {}
        self._disposed = False

    # -- container protocol -----------------------------------------------------

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, Path)):
            return False
        return _normalize(path) in self._entries

    # -- lifecycle ----------------------------------------------------------------

    def get(self, path: Path | str, *, cancel: CancelFlag | None = None) -> CacheEntry:
        """Entry for the journal at ``path``, (re)built when missing or stale."""

        self._check_open()
        root = _normalize(path)
        entry = self._entries.get(root)
        if entry is not None and not self._is_stale(entry):
            _logger.debug("cache:hit path=%s", root)
            return entry
        run = _Pass(root=root, cancel=cancel)
        self._visit(run, root, depth=0, chain=())
        return self._publish(run)

    def peek(self, path: Path | str) -> CacheEntry | None:
        """Current entry for ``path`` without checking freshness."""

        return self._entries.get(_normalize(path))

    def update_text(self, path: Path | str, text: str) -> None:
        """Use ``text`` instead of the file contents of ``path`` until invalidated."""

        self._check_open()
        target = _normalize(path)
        self._buffers[target] = text
        self._files.pop(target, None)
        self._drop_dependents(target)
        _logger.debug("cache:buffer_update path=%s chars=%d", target, len(text))

    def invalidate(self, path: Path | str | None = None) -> None:
        """Forget ``path`` (entry, buffer and per-file result), or everything."""

        if path is None:
            self._entries = {}
            self._files = {}
            self._buffers = {}
            _logger.debug("cache:invalidate_all")
            return
        target = _normalize(path)
        self._entries.pop(target, None)
        self._files.pop(target, None)
        self._buffers.pop(target, None)
        self._drop_dependents(target)
        _logger.debug("cache:invalidate path=%s", target)

    def dispose(self) -> None:
        self.invalidate()
        self._disposed = True

    # -- workspaces -----------------------------------------------------------------

    def scan_workspace(self, root: Path | str) -> list[Path]:
        """Journal files under ``root``, sorted, skipping excluded directories."""

        return [p for p, _ in self._walk(_normalize(root)) if p.is_file()]

    def load_workspace(self, root: Path | str, *, cancel: CancelFlag | None = None) -> CacheEntry:
        """Merged snapshot of every journal file under the directory ``root``.

        Files pulled in by another file's ``include`` are counted once. The
        entry is keyed by the directory and goes stale when a contributing
        file or a scanned directory changes.
        """

        self._check_open()
        base = _normalize(root)
        if not base.is_dir():
            raise NotADirectoryError(f"workspace root is not a directory: {base}")
        entry = self._entries.get(base)
        if entry is not None and not self._is_stale(entry):
            _logger.debug("cache:hit workspace=%s", base)
            return entry
        run = _Pass(root=base, cancel=cancel)
        files: list[Path] = []
        for path, is_dir in self._walk(base):
            if is_dir:
                run.mtimes[path] = _mtime(path)
            else:
                files.append(path)
        for path in files:
            if path not in run.visited:
                self._visit(run, path, depth=0, chain=())
        _logger.info("workspace:loaded root=%s files=%d", base, len(run.visited))
        return self._publish(run)

    def _walk(self, base: Path) -> Iterator[tuple[Path, bool]]:
        """Yield ``(path, is_dir)``: each scanned directory, then its journals."""

        exts = tuple(self.settings.journal_extensions)
        excluded = set(self.settings.exclude_dirs)
        for dirpath, dirnames, filenames in os.walk(base):
            dirnames[:] = sorted(d for d in dirnames if d not in excluded and not d.startswith("."))
            here = Path(dirpath)
            yield here, True
            for name in sorted(filenames):
                if name.lower().endswith(exts):
                    yield here / name, False

    # -- internals -------------------------------------------------------------------

    def _check_open(self) -> None:
        if self._disposed:
            raise RuntimeError("ProjectCache has been disposed")

    def _is_stale(self, entry: CacheEntry) -> bool:
        for path, seen in entry.mtimes.items():
            if _mtime(path) != seen:
                _logger.debug("cache:stale path=%s changed=%s", entry.path, path)
                return True
        return False

    def _drop_dependents(self, path: Path) -> None:
        stale = [root for root, e in self._entries.items() if path in e.mtimes or root == path]
        if stale:
            self._entries = {k: v for k, v in self._entries.items() if k not in stale}

    def _publish(self, run: _Pass) -> CacheEntry:
        entry = CacheEntry(
            path=run.root,
            data=merge_all(run.snapshots),
            mtimes=MappingProxyType(dict(run.mtimes)),
            loaded_at=time.time(),
            warnings=tuple(run.warnings),
        )
        self._entries[run.root] = entry
        _logger.debug(
            "cache:refresh path=%s files=%d warnings=%d",
            run.root,
            len(run.snapshots),
            len(entry.warnings),
        )
        return entry

    def _load(self, path: Path) -> _FileResult:
        """Parse result for ``path``, re-parsed only when its mtime or buffer changed.

        Runs :func:`~hledger_assist.builder.build_chunked` to completion in
        the calling thread, logging progress per chunk. Callers that need to
        interleave other work drive ``build_chunked`` or ``build_async``
        themselves; cancellation here happens between files.
        """

        mtime = _mtime(path)
        buffered = self._buffers.get(path)
        cached = self._files.get(path)
        if cached is not None and cached.mtime == mtime and cached.from_buffer == (buffered is not None):
            return cached

        text = buffered if buffered is not None else self._read(path)
        gen = build_chunked(
            text,
            chunk_size=self.settings.chunk_size,
            date_order=self.settings.date_order,
            source=str(path),
        )
        while True:
            try:
                lines_done = next(gen)
            except StopIteration as stop:
                data: ParsedData = stop.value
                break
            _logger.debug("parse:chunk path=%s lines=%d", path, lines_done)

        result = _FileResult(
            path=path,
            mtime=mtime,
            data=data,
            includes=tuple(_include_targets(text)),
            from_buffer=buffered is not None,
        )
        self._files[path] = result
        return result

    def _visit(self, run: _Pass, path: Path, *, depth: int, chain: tuple[Path, ...]) -> None:
        run.check_cancel()
        run.visited.add(path)
        result = self._load(path)
        run.mtimes[path] = result.mtime
        run.snapshots.append(result.data)

        if not result.includes:
            return
        if depth >= self.settings.max_include_depth:
            run.warn(
                path,
                result.includes[0][1],
                f"include depth limit ({self.settings.max_include_depth}) reached; "
                "nested includes ignored",
            )
            return

        here = (*chain, path)
        for pattern, line in result.includes:
            targets = resolve_include(path.parent, pattern)
            watch = _include_watch(path.parent, pattern)
            if watch not in run.mtimes:
                run.mtimes[watch] = _mtime(watch)
            if not targets:
                run.warn(path, line, f"included file not found: {pattern}")
                continue
            for target in targets:
                if target in here:
                    run.warn(path, line, f"include cycle skipped: {target}")
                    continue
                if target in run.visited:
                    continue
                try:
                    self._visit(run, target, depth=depth + 1, chain=here)
                except (UnicodeDecodeError, OSError) as exc:
                    run.warn(path, line, f"cannot read included file {target}: {exc}")


__all__ = [
    "CancelFlag",
    "ProjectCache",
    "Reader",
    "read_journal",
    "resolve_include",
]
