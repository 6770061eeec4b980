"""Process-wide keynote settings.

Settings are an immutable ``Config`` replaced wholesale by ``configure()``
(copy-on-write), so readers never observe a half-applied change. Template
caches read the config when they are created; call ``keynote.reset()`` after
``configure()`` to apply new cache settings to the current execution unit.

Environment overrides, read once at import:
    KEYNOTE_CACHE_MAXSIZE: LRU bound for template caches (unset = unbounded)
    KEYNOTE_ENCODING: encoding used to read presenter source files
"""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from typing import Any


@dataclass(frozen=True, slots=True)
class Config:
    """keynote settings.

    Attributes:
        cache_maxsize: Maximum entries per template cache. ``None`` keeps
            every compiled call site for the life of the cache.
        encoding: Encoding for reading inline template source files.
        default_format: Format used by ``render_inline`` when none is given.
    """

    cache_maxsize: int | None = None
    encoding: str = "utf-8"
    default_format: str = "erb"

    def __post_init__(self) -> None:
        if self.cache_maxsize is not None and self.cache_maxsize < 1:
            raise ValueError(f"cache_maxsize must be positive or None, got {self.cache_maxsize}")


def _from_environ() -> Config:
    overrides: dict[str, Any] = {}
    maxsize = os.environ.get("KEYNOTE_CACHE_MAXSIZE")
    if maxsize:
        overrides["cache_maxsize"] = int(maxsize)
    encoding = os.environ.get("KEYNOTE_ENCODING")
    if encoding:
        overrides["encoding"] = encoding
    return Config(**overrides)


_config = _from_environ()


def get_config() -> Config:
    """Return the active settings."""
    return _config


def configure(**changes: Any) -> Config:
    """Replace the active settings with ``changes`` applied.

    Example:
        >>> configure(cache_maxsize=256)
        Config(cache_maxsize=256, encoding='utf-8', default_format='erb')

    Raises:
        TypeError: For unknown setting names.
        ValueError: For invalid values.
    """
    global _config
    known = {f.name for f in fields(Config)}
    unknown = set(changes) - known
    if unknown:
        raise TypeError(f"Unknown keynote settings: {', '.join(sorted(unknown))}")
    _config = replace(_config, **changes)
    return _config
