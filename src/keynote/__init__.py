"""Keynote: presenters with inline templates.

Presenters wrap model objects for a view. Their methods can render small
templates written as comments directly under the rendering call, so markup
lives next to the code that produces it.

Quickstart:
    >>> from keynote import Inline, Presenter, present
    >>> class UserPresenter(Inline, Presenter, presents=("user",)):
    ...     def badge(self):
    ...         return self.erb()
    ...         # <b><%= user.name %></b>
    >>> present(view, user).badge()
    '<b>Ada</b>'

Architecture:
Call site → Locator → Cache (mtime check) → Handler compile → render(host)

Pipeline stages:
1. **Locator**: Reads the comment lines after the call site, strips ``#``
   markers and the shared indentation
2. **Cache**: Per execution unit, keyed by call site and local names;
   rebuilt when the source file's mtime changes
3. **Handler**: Compiles the text for its format (``erb``, ``jinja``,
   ``mako``) once per host class
4. **Renderer**: Swaps the host's render bookkeeping, runs the template and
   restores the previous state

Thread-Safety:
- Template caches live in a ``ContextVar``; threads and tasks never share one
- Per-class compilation is guarded by a lock with a lock-free fast path
- Handler and presenter registries are copy-on-write

Errors:
Every failure is a ``TemplateError`` subclass with an ``ErrorCode``; the
underlying exception is chained as ``__cause__``.

"""

from keynote._types import CacheKey, CallSite, Handler, OutputBuffer, RenderFunc
from keynote.config import Config, configure, get_config
from keynote.exceptions import (
    ErrorCode,
    LocateError,
    SourceSnippet,
    TemplateCompileError,
    TemplateError,
    TemplateRenderError,
    TemplateSyntaxError,
    UnknownFormatError,
    build_source_snippet,
)
from keynote.handlers import HandlerRegistry, handler_for, register_handler
from keynote.helpers import PresentMixin
from keynote.inline import (
    Binding,
    Inline,
    InlineTemplate,
    Renderer,
    TemplateCache,
    cache_scope,
    get_cache,
    inline,
    read_template,
    render_inline,
    reset,
    unindent,
)
from keynote.presenter import Presenter, present

__version__ = "0.1.0"

__all__ = [
    "Binding",
    "CacheKey",
    "CallSite",
    "Config",
    "ErrorCode",
    "Handler",
    "HandlerRegistry",
    "Inline",
    "InlineTemplate",
    "LocateError",
    "OutputBuffer",
    "PresentMixin",
    "Presenter",
    "RenderFunc",
    "Renderer",
    "SourceSnippet",
    "TemplateCache",
    "TemplateCompileError",
    "TemplateError",
    "TemplateRenderError",
    "TemplateSyntaxError",
    "UnknownFormatError",
    "__version__",
    "build_source_snippet",
    "cache_scope",
    "configure",
    "get_cache",
    "get_config",
    "handler_for",
    "inline",
    "present",
    "read_template",
    "register_handler",
    "render_inline",
    "reset",
    "unindent",
]
