"""Shared types for keynote inline templates."""

from __future__ import annotations

import sys
from collections.abc import Iterable
from typing import Any, NamedTuple, Protocol, runtime_checkable


class CallSite(NamedTuple):
    """Source location of an inline template request.

    The template text for comment-style templates starts on the line
    after ``lineno``.
    """

    filename: str
    lineno: int

    @property
    def identity(self) -> str:
        return f"{self.filename}:{self.lineno}"

    @classmethod
    def from_frame(cls, depth: int = 1) -> CallSite:
        """Capture the location of a caller ``depth`` frames above this call.

        ``depth=1`` is the function calling ``from_frame``'s caller; the
        generated ``erb``/``jinja``/``mako`` methods use it to find the
        presenter line that requested the template.
        """
        frame = sys._getframe(depth + 1)
        return cls(frame.f_code.co_filename, frame.f_lineno)


class CacheKey(tuple):
    """Identity of one compiled template variant.

    ``("path:line", *sorted_local_names)``. Two requests from the same call
    site with different local-name sets are different keys.
    """

    __slots__ = ()

    def __new__(cls, identity: str, local_names: Iterable[str] = ()) -> CacheKey:
        return super().__new__(cls, (identity, *sorted(local_names)))

    @property
    def identity(self) -> str:
        return self[0]

    @property
    def local_names(self) -> tuple[str, ...]:
        return self[1:]


class OutputBuffer(list):
    """StringBuilder-style render buffer installed on the host during a render."""

    __slots__ = ()

    def getvalue(self) -> str:
        return "".join(self)


class RenderFunc(Protocol):
    """Compiled template body: ``render(host, locals, buffer) -> str``."""

    def __call__(self, host: Any, locals: dict[str, Any], buffer: OutputBuffer) -> str: ...


@runtime_checkable
class Handler(Protocol):
    """Pluggable compiler for one template syntax."""

    def compile(
        self,
        source: str,
        identity: str,
        *,
        local_names: tuple[str, ...] = (),
        filename: str | None = None,
        lineno: int = 0,
    ) -> RenderFunc:
        """Compile ``source`` into a render function.

        Args:
            source: Unindented template text.
            identity: Cache identity (``path:line``) for diagnostics.
            local_names: Names the template receives as locals.
            filename: Source file the text was read from.
            lineno: File line number preceding the first template line, so
                template line ``n`` is file line ``lineno + n``.
        """
        ...


@runtime_checkable
class BindingLike(Protocol):
    """Lexical scope capture: names plus their values."""

    def local_variable_names(self) -> Iterable[str]: ...

    def value_of(self, name: str) -> Any: ...
