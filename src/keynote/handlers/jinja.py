"""Jinja2 inline template handler.

Templates render with autoescaping on. Names the template does not receive
as locals resolve against the host object, so ``{{ full_name() }}`` calls the
presenter's ``full_name`` method. Jinja binds ``self`` to its own
template reference, so the host is reached through bare names only.

    ```
    {{ "<b>" }}            →  &lt;b&gt;
    {{ "<b>" | safe }}     →  <b>
    {{ Markup("<b>") }}    →  <b>
    ```
"""

from __future__ import annotations

from typing import Any

import jinja2
from jinja2.runtime import Context
from jinja2.utils import missing
from markupsafe import Markup

from keynote._types import OutputBuffer, RenderFunc
from keynote.exceptions import TemplateSyntaxError

HOST_KEY = "_keynote_host"


class HostContext(Context):
    """Jinja2 context falling back to host attributes for unresolved names."""

    def resolve_or_missing(self, key: str) -> Any:
        rv = super().resolve_or_missing(key)
        if rv is missing and key != HOST_KEY:
            host = super().resolve_or_missing(HOST_KEY)
            if host is not missing:
                rv = getattr(host, key, missing)
        return rv


def create_environment(**options: Any) -> jinja2.Environment:
    """Build the Jinja2 environment used for inline templates."""
    options.setdefault("autoescape", True)
    options.setdefault("undefined", jinja2.StrictUndefined)
    options.setdefault("keep_trailing_newline", False)
    env = jinja2.Environment(**options)
    env.context_class = HostContext
    env.globals["Markup"] = Markup
    return env


class JinjaHandler:
    """Handler for the ``jinja`` format.

    Attributes:
        environment: Shared ``jinja2.Environment``; safe for concurrent use
            once configured.
    """

    __slots__ = ("environment",)

    def __init__(self, environment: jinja2.Environment | None = None):
        self.environment = environment or create_environment()
        if not issubclass(self.environment.context_class, HostContext):
            self.environment.context_class = HostContext

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
            template = self.environment.from_string(source)
        except jinja2.TemplateSyntaxError as exc:
            raise TemplateSyntaxError(
                exc.message or str(exc),
                lineno=(exc.lineno or 1) + lineno,
                filename=filename or identity,
                source=source,
                first_line=lineno + 1,
            ) from exc

        def render(host: Any, locals: dict[str, Any], buffer: OutputBuffer) -> str:
            buffer.append(template.render({**locals, HOST_KEY: host}))
            return "".join(buffer)

        return render
