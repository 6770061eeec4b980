"""The ``Inline`` mixin: template methods on presenter classes.

Mixing in ``Inline`` gives a class an ``erb`` method. More formats are added
with the ``inline`` class keyword, the ``inline()`` classmethod or the
``@inline`` decorator:

    ```python
    class UserPresenter(Inline, Presenter, presents=("user",), inline=("jinja",)):
        def greeting(self):
            return self.erb({"name": self.user.name})
            # <p>Hello <%= name %>!</p>

        def badge(self):
            return self.jinja(source="<b>{{ user.role }}</b>")
    ```

The generated methods capture the caller's line as the call site and hand
off to ``render_inline``. Keep the call on a single line; the comment
template starts on the next one.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from typing import Any

from keynote._types import CallSite
from keynote.inline.renderer import Locals, render_inline


def _template_method(format: str) -> Callable[..., str]:
    def method(self: Any, locals: Locals = None, /, *, source: str | None = None, **kwargs: Any) -> str:
        if kwargs:
            if locals is not None:
                raise TypeError(f"{format}() takes either a locals argument or keyword locals, not both")
            locals = kwargs
        return render_inline(self, locals, CallSite.from_frame(1), format, source=source)

    method.__name__ = format
    method.__qualname__ = f"Inline.{format}"
    method.__doc__ = (
        f"Render the {format} template in the comments after this call, or ``source``.\n\n"
        "Locals come from a mapping, a ``Binding`` or keyword arguments."
    )
    return method


class Inline:
    """Mixin adding inline template rendering methods.

    Attributes:
        inline_formats: Formats with generated methods on this class.
    """

    inline_formats: tuple[str, ...] = ("erb",)

    erb = _template_method("erb")

    def __init_subclass__(cls, inline: Iterable[str] = (), **kwargs: Any) -> None:
        super().__init_subclass__(**kwargs)
        if isinstance(inline, str):
            inline = (inline,)
        if inline:
            cls.inline(*inline)

    @classmethod
    def inline(cls, *formats: str) -> None:
        """Define a rendering method on this class for each of ``formats``.

        Raises:
            ValueError: If a format name would shadow an existing attribute
                that is not an inline template method.
        """
        for format in formats:
            if not format.isidentifier():
                raise ValueError(f"Inline format {format!r} is not a valid method name")
            if hasattr(cls, format) and format not in cls.inline_formats:
                raise ValueError(f"{cls.__name__}.{format} already exists; cannot define inline method")
            setattr(cls, format, _template_method(format))
        cls.inline_formats = tuple(dict.fromkeys((*cls.inline_formats, *formats)))


def inline(*formats: str) -> Callable[[type], type]:
    """Class decorator form of ``Inline.inline``.

        >>> @inline("jinja", "mako")
        ... class CardPresenter(Inline, Presenter): ...
    """

    def decorate(cls: type) -> type:
        if not issubclass(cls, Inline):
            raise TypeError(f"{cls.__name__} must inherit from Inline to use @inline")
        cls.inline(*formats)
        return cls

    return decorate
