"""Compiled inline template.

An ``InlineTemplate`` pairs unindented template source with the handler that
compiles it. Compilation is deferred to the first render and recorded per
host class: every instance of a presenter class shares one compiled render
function, so building presenters per request never recompiles.

Architecture:
    ```
    InlineTemplate
    ├── source, identity, format, local_names   # immutable
    ├── _handler: Handler                       # syntax compiler
    ├── _compiled: dict[type, RenderFunc]        # per host class
    └── _lock: threading.Lock                   # compile critical section
    ```

Output:
Rendered text is returned as ``markupsafe.Markup``. It is already escaped, so
a template that embeds another template's output does not escape it again.

Thread-Safety:
Rendering is lock-free once a class is compiled. First use by a class takes
the lock, re-checks the registry and compiles at most once.
"""

from __future__ import annotations

import logging
import threading
import traceback
from typing import Any

from markupsafe import Markup

from keynote._types import Handler, OutputBuffer, RenderFunc
from keynote.exceptions import (
    TemplateCompileError,
    TemplateError,
    TemplateRenderError,
    build_source_snippet,
)

logger = logging.getLogger(__name__)


class InlineTemplate:
    """Inline template ready for rendering against host objects.

    Attributes:
        source: Unindented template text.
        identity: ``path:line`` of the call site.
        format: Format name the handler was resolved from.
        local_names: Sorted names of the locals the template receives.
        filename: Source file path, for diagnostics.
        lineno: Call site line; template line ``n`` is file line
            ``lineno + n``.
        compile_count: Number of handler compilations so far.

    Example:
        >>> from keynote.handlers import handler_for
        >>> t = InlineTemplate("Hi <%= name %>", "demo.py:3", handler_for("erb"),
        ...                    format="erb", local_names=("name",))
        >>> t.render(object(), {"name": "Ada"})
        'Hi Ada'
    """

    __slots__ = (
        "_compiled",
        "_handler",
        "_lock",
        "compile_count",
        "filename",
        "format",
        "identity",
        "lineno",
        "local_names",
        "source",
    )

    def __init__(
        self,
        source: str,
        identity: str,
        handler: Handler,
        *,
        format: str,
        local_names: tuple[str, ...] = (),
        filename: str | None = None,
        lineno: int = 0,
    ):
        self.source = source
        self.identity = identity
        self.format = format
        self.local_names = tuple(sorted(local_names))
        self.filename = filename
        self.lineno = lineno
        self.compile_count = 0
        self._handler = handler
        self._compiled: dict[type, RenderFunc] = {}
        self._lock = threading.Lock()

    def __repr__(self) -> str:
        return f"<InlineTemplate {self.format} {self.identity} locals={list(self.local_names)}>"

    def is_compiled_for(self, cls: type) -> bool:
        return cls in self._compiled

    def compile_for(self, cls: type) -> RenderFunc:
        """Return the render function for ``cls``, compiling on first use.

        Raises:
            TemplateCompileError: If the handler rejects the source.
        """
        func = self._compiled.get(cls)
        if func is not None:
            return func

        with self._lock:
            func = self._compiled.get(cls)
            if func is not None:
                return func

            logger.debug("Compiling %s template %s for %s", self.format, self.identity, cls.__qualname__)
            try:
                func = self._handler.compile(
                    self.source,
                    self.identity,
                    local_names=self.local_names,
                    filename=self.filename,
                    lineno=self.lineno,
                )
            except Exception as exc:
                raise TemplateCompileError(
                    str(exc),
                    identity=self.identity,
                    filename=self.filename,
                    lineno=getattr(exc, "lineno", None),
                ) from exc

            self.compile_count += 1
            # Copy-on-write: readers outside the lock see old or new, never partial
            compiled = dict(self._compiled)
            compiled[cls] = func
            self._compiled = compiled
            return func

    def render(
        self,
        host: Any,
        locals: dict[str, Any] | None = None,
        buffer: OutputBuffer | None = None,
    ) -> Markup:
        """Render against ``host`` with ``locals``.

        Raises:
            TemplateCompileError: If compilation fails.
            TemplateRenderError: If the template body raises. The original
                exception is ``__cause__`` and ``original_exception``.
        """
        func = self.compile_for(type(host))
        if buffer is None:
            buffer = OutputBuffer()
        try:
            return Markup(func(host, locals or {}, buffer))
        except TemplateError:
            raise
        except Exception as exc:
            raise self._render_error(exc) from exc

    def _render_error(self, exc: Exception) -> TemplateRenderError:
        lineno = self._error_line(exc)
        snippet = None
        if lineno is not None:
            snippet = build_source_snippet(self.source, lineno, first_line=self.lineno + 1)
        return TemplateRenderError(
            exc,
            identity=self.identity,
            filename=self.filename,
            lineno=lineno,
            source_snippet=snippet,
        )

    def _error_line(self, exc: Exception) -> int | None:
        """Innermost traceback line inside this template's text, if any."""
        if self.filename is None:
            return None
        first = self.lineno + 1
        last = self.lineno + self.source.count("\n") + 1
        found = None
        for frame in traceback.extract_tb(exc.__traceback__):
            if frame.filename == self.filename and frame.lineno and first <= frame.lineno <= last:
                found = frame.lineno
        return found
