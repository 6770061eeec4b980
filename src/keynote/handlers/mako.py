"""Mako inline template handler.

Output is HTML-escaped through Mako's ``h`` filter (markupsafe), so
``Markup`` values pass through unescaped. ``Markup`` is imported into every
template. Names missing from the template data resolve against builtins and
then the host object.

Mako reserves ``self`` for its namespace machinery, so unlike the ``erb`` and
``jinja`` handlers the host is reached through bare names only.

    ```
    ${"<b>"}              →  &lt;b&gt;
    ${Markup("<b>")}      →  <b>
    ${"<b>" | n}          →  <b>
    ```
"""

from __future__ import annotations

import builtins
from typing import Any

from mako import exceptions as mako_exceptions
from mako.runtime import Context
from mako.template import Template as MakoTemplate
from mako.util import FastEncodingBuffer

from keynote._types import OutputBuffer, RenderFunc
from keynote.exceptions import TemplateSyntaxError

HOST_KEY = "_keynote_host"

_MISSING = object()


class HostContext(Context):
    """Mako context that resolves undeclared names on the host object."""

    def get(self, key: str, default: Any = None) -> Any:
        if key in self._data:
            return self._data[key]
        if key in builtins.__dict__:
            return builtins.__dict__[key]
        host = self._data.get(HOST_KEY, _MISSING)
        if host is not _MISSING:
            value = getattr(host, key, _MISSING)
            if value is not _MISSING:
                return value
        return default

    def _copy(self) -> Context:
        # Context._copy builds a plain Context; keep host lookup in <%def> scopes
        c = super()._copy()
        c.__class__ = HostContext
        return c


class MakoHandler:
    """Handler for the ``mako`` format.

    Attributes:
        options: Extra keyword arguments for ``mako.template.Template``.
    """

    __slots__ = ("options",)

    def __init__(self, **options: Any):
        options.setdefault("default_filters", ["h"])
        options.setdefault("imports", ["from markupsafe import Markup"])
        self.options = options

    def compile(
        self,
        source: str,
        identity: str,
        *,
        local_names: tuple[str, ...] = (),
        filename: str | None = None,
        lineno: int = 0,
    ) -> RenderFunc:
        try:
            template = MakoTemplate(text=source, **self.options)
        except (mako_exceptions.SyntaxException, mako_exceptions.CompileException) as exc:
            raise TemplateSyntaxError(
                str(exc),
                lineno=(exc.lineno or 1) + lineno,
                filename=filename or identity,
                source=source,
                first_line=lineno + 1,
            ) from exc

        def render(host: Any, locals: dict[str, Any], buffer: OutputBuffer) -> str:
            out = FastEncodingBuffer()
            context = HostContext(out, **{**locals, HOST_KEY: host})
            template.render_context(context)
            buffer.append(out.getvalue())
            return "".join(buffer)

        return render
