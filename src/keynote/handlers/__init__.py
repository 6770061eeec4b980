"""Syntax handler registry.

Maps format names (``"erb"``, ``"jinja"``, ``"mako"``) to handler objects
implementing the ``Handler`` protocol. Inline templates resolve their handler
here when they are (re)compiled.

Built-in Handlers:
- ``erb``: native ERB-style syntax compiled to Python AST
- ``jinja``: Jinja2 with autoescaping and host-attribute fallback
- ``mako``: Mako with ``h`` default filter and host-attribute fallback

Custom Handlers:
    ```python
    class UpperHandler:
        def compile(self, source, identity, *, local_names=(), filename=None, lineno=0):
            def render(host, locals, buffer):
                buffer.append(source.upper())
                return buffer.getvalue()
            return render

    register_handler("upper", UpperHandler())
    ```

Thread-Safety:
Registration is copy-on-write: readers always see a complete mapping.
"""

from __future__ import annotations

from collections.abc import Iterator

from keynote._types import Handler
from keynote.exceptions import UnknownFormatError


class HandlerRegistry:
    """Dict-like registry of syntax handlers keyed by format name.

    Supports:
        - registry["erb"] = handler
        - registry.update({"erb": handler})
        - handler = registry["erb"]
        - "erb" in registry

    All mutations replace the underlying dict.
    """

    __slots__ = ("_handlers",)

    def __init__(self, handlers: dict[str, Handler] | None = None):
        self._handlers: dict[str, Handler] = dict(handlers or {})

    def __getitem__(self, format: str) -> Handler:
        try:
            return self._handlers[format]
        except KeyError:
            raise UnknownFormatError(format, self.formats()) from None

    def __setitem__(self, format: str, handler: Handler) -> None:
        self.register(format, handler)

    def __contains__(self, format: object) -> bool:
        return format in self._handlers

    def __iter__(self) -> Iterator[str]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)

    def get(self, format: str, default: Handler | None = None) -> Handler | None:
        return self._handlers.get(format, default)

    def register(self, format: str, handler: Handler) -> None:
        if not isinstance(handler, Handler):
            raise TypeError(f"Handler for {format!r} must define compile(), got {handler!r}")
        new = self._handlers.copy()
        new[str(format)] = handler
        self._handlers = new

    def update(self, mapping: dict[str, Handler]) -> None:
        for format, handler in mapping.items():
            self.register(format, handler)

    def unregister(self, format: str) -> None:
        new = self._handlers.copy()
        new.pop(format, None)
        self._handlers = new

    def formats(self) -> tuple[str, ...]:
        return tuple(sorted(self._handlers))


def _default_registry() -> HandlerRegistry:
    from keynote.handlers.erb import ErbHandler
    from keynote.handlers.jinja import JinjaHandler
    from keynote.handlers.mako import MakoHandler

    return HandlerRegistry(
        {
            "erb": ErbHandler(),
            "jinja": JinjaHandler(),
            "mako": MakoHandler(),
        }
    )


handlers = _default_registry()


def handler_for(format: str) -> Handler:
    """Return the handler registered for ``format``.

    Raises:
        UnknownFormatError: If no handler is registered.
    """
    return handlers[format]


def register_handler(format: str, handler: Handler) -> None:
    """Register ``handler`` for ``format`` in the default registry."""
    handlers.register(format, handler)
