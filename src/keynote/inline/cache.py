"""Inline template cache with mtime invalidation.

Each entry maps a ``CacheKey`` (call site plus sorted local names) to the
compiled template and the source file mtime seen when it was built. A fetch
stats the file; an unchanged mtime is a hit, anything else rebuilds the entry
from scratch.

Scoping:
The active cache lives in a ``ContextVar`` stamped with its owner: the thread
and, under asyncio, the running task. Each thread and each task gets its own
instance, created lazily on first use, even when it inherits a context that
already holds a cache. Caches are never shared across execution units, so
they need no locking; each unit compiles its own templates. A
``cache_scope()`` block likewise applies to the thread or task that opens it.

    ```python
    template = get_cache().fetch(path, line, "erb", {"user": user})
    reset()                 # drop this unit's cache
    with cache_scope():     # temporary fresh cache
        ...
    ```

Invalidation is best-effort: if the file changes between the stat and the
read, the entry may pair new mtime with old text until the next change.
"""

from __future__ import annotations

import asyncio
import logging
import os
import threading
from collections import OrderedDict
from collections.abc import Iterator, Mapping
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass
from typing import Any

from keynote._types import CacheKey
from keynote.config import get_config
from keynote.exceptions import LocateError
from keynote.handlers import handler_for
from keynote.inline.locator import normalize_literal, read_template
from keynote.inline.template import InlineTemplate

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CacheEntry:
    """A compiled template and the source mtime it was built from."""

    template: InlineTemplate
    mtime: float


class TemplateCache:
    """Per-execution-unit store of compiled inline templates.

    Attributes:
        maxsize: Entry bound. ``None`` keeps every entry until it goes stale;
            a positive value evicts least recently used entries.
        stats: Counters for ``hits``, ``misses`` and ``stale`` rebuilds.
    """

    __slots__ = ("_entries", "maxsize", "stats")

    def __init__(self, maxsize: int | None = None):
        if maxsize is not None and maxsize < 1:
            raise ValueError(f"maxsize must be positive or None, got {maxsize}")
        self.maxsize = maxsize
        self._entries: OrderedDict[CacheKey, CacheEntry] = OrderedDict()
        self.stats: dict[str, int] = {"hits": 0, "misses": 0, "stale": 0}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def get(self, key: CacheKey) -> CacheEntry | None:
        return self._entries.get(key)

    def clear(self) -> None:
        self._entries.clear()
        self.stats = {"hits": 0, "misses": 0, "stale": 0}

    def fetch(
        self,
        path: str,
        line: int,
        format: str,
        locals: Mapping[str, Any],
        *,
        source: str | None = None,
    ) -> InlineTemplate:
        """Return the compiled template for a call site, rebuilding if stale.

        Args:
            path: Source file of the call site.
            line: Line of the call site.
            format: Handler format name.
            locals: Locals for this render; only the names matter here.
            source: Literal template text. When omitted the text is read from
                the comment lines after ``line``.

        Raises:
            LocateError: If the file cannot be stat'ed or read.
            UnknownFormatError: If ``format`` has no handler.
        """
        key = CacheKey(f"{path}:{line}", locals)
        mtime = _mtime(path)

        entry = self._entries.get(key)
        if entry is not None and entry.mtime == mtime:
            self.stats["hits"] += 1
            if self.maxsize is not None:
                self._entries.move_to_end(key)
            return entry.template

        if entry is None:
            self.stats["misses"] += 1
            logger.debug("Inline template cache miss for %s", key.identity)
        else:
            self.stats["stale"] += 1
            logger.debug("Inline template %s is stale, recompiling", key.identity)

        template = self._build(key, path, line, format, source)
        self._entries[key] = CacheEntry(template, mtime)
        if self.maxsize is not None:
            self._entries.move_to_end(key)
            while len(self._entries) > self.maxsize:
                self._entries.popitem(last=False)
        return template

    def _build(
        self,
        key: CacheKey,
        path: str,
        line: int,
        format: str,
        source: str | None,
    ) -> InlineTemplate:
        handler = handler_for(format)
        if source is None:
            text = read_template(path, line)
            filename: str | None = path
        else:
            # Literal text has no stable mapping onto file lines
            text = normalize_literal(source)
            filename = None
        return InlineTemplate(
            text,
            key.identity,
            handler,
            format=format,
            local_names=key.local_names,
            filename=filename,
            lineno=line,
        )


def _mtime(path: str) -> float:
    try:
        return os.stat(path).st_mtime
    except OSError as exc:
        raise LocateError(f"Cannot stat inline template source {path}: {exc}", path) from exc


# ((thread ident, task id), cache); inherited contexts never match a new owner
_cache: ContextVar[tuple[tuple[int, int | None], TemplateCache] | None] = ContextVar(
    "keynote_template_cache", default=None
)


def _owner() -> tuple[int, int | None]:
    try:
        task = asyncio.current_task()
    except RuntimeError:
        # No running event loop
        task = None
    return threading.get_ident(), None if task is None else id(task)


def get_cache() -> TemplateCache:
    """Return the current execution unit's cache, creating it on first use."""
    current = _cache.get()
    owner = _owner()
    if current is None or current[0] != owner:
        cache = TemplateCache(maxsize=get_config().cache_maxsize)
        _cache.set((owner, cache))
        return cache
    return current[1]


def reset() -> None:
    """Drop the current execution unit's cache."""
    _cache.set(None)


@contextmanager
def cache_scope(cache: TemplateCache | None = None) -> Iterator[TemplateCache]:
    """Install ``cache`` (or a fresh one) for the duration of the block.

    Example:
        >>> with cache_scope() as cache:
        ...     presenter.header()
        ...     assert len(cache) == 1
    """
    if cache is None:
        cache = TemplateCache(maxsize=get_config().cache_maxsize)
    token = _cache.set((_owner(), cache))
    try:
        yield cache
    finally:
        _cache.reset(token)
