"""Inline template rendering front-end.

``render_inline`` is the single entry point: it resolves locals, fetches the
compiled template from the execution unit's cache and runs it against the
host object.

While a template runs, the host's render bookkeeping (``output_buffer``,
``virtual_path``, ``current_template``) is swapped for the template's own
and restored afterwards, stack fashion, so a template that calls another
presenter method which renders its own inline template leaves the outer
render untouched.
"""

from __future__ import annotations

import sys
from collections.abc import Mapping
from typing import Any

from keynote._types import BindingLike, CallSite, OutputBuffer
from keynote.config import get_config
from keynote.inline.cache import get_cache
from keynote.inline.template import InlineTemplate

HOST_FIELDS = ("output_buffer", "virtual_path", "current_template")

_ABSENT = object()

Locals = Mapping[str, Any] | BindingLike | None


class Binding:
    """Snapshot of a frame's local variables.

    The explicit-mapping form ``erb({"x": x})`` is preferred; ``Binding``
    covers the "all my locals" case without listing them:

        >>> def header(self):
        ...     title = self.model.title
        ...     return self.erb(Binding.capture())
        ...     # <h1><%= title %></h1>

    ``self`` is left out, the host is always available to the template.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Mapping[str, Any]):
        self._values = {k: v for k, v in values.items() if k != "self"}

    @classmethod
    def capture(cls, depth: int = 1) -> Binding:
        """Snapshot the locals of the caller ``depth`` frames up."""
        frame = sys._getframe(depth)
        return cls(dict(frame.f_locals))

    def local_variable_names(self) -> list[str]:
        return list(self._values)

    def value_of(self, name: str) -> Any:
        return self._values[name]


def extract_locals(locals: Locals) -> dict[str, Any]:
    """Resolve a mapping, binding or ``None`` into a plain dict."""
    if locals is None:
        return {}
    if isinstance(locals, Mapping):
        return dict(locals)
    if isinstance(locals, BindingLike):
        return {name: locals.value_of(name) for name in locals.local_variable_names()}
    raise TypeError(
        f"Inline template locals must be a mapping or binding, got {type(locals).__name__}"
    )


def run_template(host: Any, template: InlineTemplate, locals: dict[str, Any]) -> str:
    """Render ``template`` on ``host`` with host bookkeeping swapped in.

    The previous values of ``HOST_FIELDS`` are restored even when rendering
    fails; fields the host did not have before are removed again.
    """
    saved = [(name, getattr(host, name, _ABSENT)) for name in HOST_FIELDS]
    buffer = OutputBuffer()
    host.output_buffer = buffer
    host.virtual_path = None
    host.current_template = template
    try:
        return template.render(host, locals, buffer)
    finally:
        for name, value in saved:
            if value is _ABSENT:
                try:
                    delattr(host, name)
                except AttributeError:
                    pass
            else:
                setattr(host, name, value)


class Renderer:
    """One inline template invocation.

    Attributes:
        host: Object the template runs against.
        locals: Resolved locals.
        template: Compiled template fetched from the cache.
    """

    __slots__ = ("host", "locals", "template")

    def __init__(
        self,
        host: Any,
        locals: Locals,
        call_site: CallSite,
        format: str,
        *,
        source: str | None = None,
    ):
        self.host = host
        self.locals = extract_locals(locals)
        self.template = get_cache().fetch(
            call_site.filename, call_site.lineno, format, self.locals, source=source
        )

    def render(self) -> str:
        return run_template(self.host, self.template, self.locals)


def render_inline(
    host: Any,
    locals: Locals,
    call_site: CallSite,
    format: str | None = None,
    *,
    source: str | None = None,
) -> str:
    """Render the inline template identified by ``call_site`` on ``host``.

    Args:
        host: Presenter or view the template resolves free names against.
        locals: Mapping, ``Binding`` or ``None``.
        call_site: Location of the request. Comment templates are read from
            the lines after it; it is also the cache identity.
        format: Handler format; defaults to the configured default.
        source: Literal template text, replacing the comment lookup.

    Raises:
        LocateError: If the source file cannot be read.
        UnknownFormatError: If ``format`` has no handler.
        TemplateCompileError: If the handler rejects the template.
        TemplateRenderError: If the template raises while rendering.

    Example:
        >>> render_inline(presenter, {"x": 1}, CallSite(__file__, 10), "erb")
    """
    return Renderer(
        host, locals, call_site, format or get_config().default_format, source=source
    ).render()
