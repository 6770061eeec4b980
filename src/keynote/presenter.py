"""Presenters: view-aware wrappers around model objects.

A presenter holds the view it renders for plus the objects it presents.
Attribute lookups it cannot answer fall through to the view, so view helpers
are callable on the presenter directly.

    ```python
    class UserPresenter(Inline, Presenter, presents=("user",)):
        def display_name(self):
            return self.erb()
            # <span class="name"><%= user.name %></span>

    presenter = keynote.present(view, user)     # implicit: User -> "user"
    presenter = keynote.present(view, "user", user)
    ```

Registry:
Every subclass registers under a name derived from its class name: the
``Presenter`` suffix is dropped and the rest snake-cased, with nesting
written as path segments (``Admin.UserPresenter`` → ``"admin/user"``). Pass
``presenter_name=`` in the class statement to choose the name explicitly.
Later definitions replace earlier ones with the same name.

Caching:
``present()`` memoizes presenters on the view, keyed by presenter name and
the identities of the presented objects, so repeated calls within one view
return the same instance. Without a view, or with a view that cannot carry
attributes, nothing is cached.
"""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Callable, Iterable
from typing import Any

logger = logging.getLogger(__name__)

CACHE_ATTRIBUTE = "_keynote_presenters"

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])|(?<=[A-Z])(?=[A-Z][a-z])")

_registry: dict[str, type[Presenter]] = {}
_registry_lock = threading.Lock()


def underscore(name: str) -> str:
    """Snake-case a CamelCase identifier.

        >>> underscore("HTTPRequestLog")
        'http_request_log'
    """
    return _CAMEL_BOUNDARY.sub("_", name).lower()


def name_for(cls: type, *, suffix: str = "") -> str:
    """Registry name for ``cls``: nested qualname segments, snake-cased.

    Scopes from function bodies (``<locals>``) are dropped, so a class
    defined inside a function is named as if it were top level.
    """
    qualname = cls.__qualname__.rsplit("<locals>.", 1)[-1]
    parts = qualname.split(".")
    if suffix and parts[-1].endswith(suffix):
        parts[-1] = parts[-1][: -len(suffix)]
    return "/".join(underscore(part) for part in parts if part)


def register(name: str, cls: type[Presenter]) -> None:
    """Register ``cls`` under ``name``, replacing any previous class."""
    global _registry
    with _registry_lock:
        registry = dict(_registry)
        registry[name] = cls
        _registry = registry
    logger.debug("Registered presenter %s as %r", cls.__qualname__, name)


def lookup(name: str) -> type[Presenter]:
    """Return the presenter class registered under ``name``.

    Raises:
        LookupError: If no presenter has that name.
    """
    try:
        return _registry[name]
    except KeyError:
        raise LookupError(f"No presenter registered as {name!r}") from None


def presenter_for(obj: Any) -> type[Presenter]:
    """Find the presenter for ``obj`` from its class or its base classes.

    Raises:
        LookupError: If no class in the object's MRO has a presenter.
    """
    for cls in type(obj).__mro__:
        if cls is object:
            break
        presenter = _registry.get(name_for(cls))
        if presenter is not None:
            return presenter
    raise LookupError(f"No presenter registered for {type(obj).__qualname__} objects")


class Presenter:
    """Base class for presenters.

    Subclasses list the objects they present with the ``presents`` class
    keyword (or the ``presents()`` classmethod); each becomes an attribute
    of the instance, after ``view``.

    Attributes:
        object_names: Names of the presented objects, in constructor order.
            Set per class; siblings never share the list.
        presenter_name: Registry name of the class.
        view: The view context this presenter renders for.

    Example:
        >>> class PostPresenter(Presenter, presents=("post", "author")):
        ...     def byline(self):
        ...         return f"{self.post.title} by {self.author.name}"
        >>> PostPresenter(view, post, author).byline()
        'Hello by Ada'
    """

    object_names: tuple[str, ...] = ()
    presenter_name: str = ""

    # Render bookkeeping swapped in by inline templates
    output_buffer: Any = None
    virtual_path: str | None = None
    current_template: Any = None

    def __init_subclass__(
        cls,
        presents: Iterable[str] | None = None,
        presenter_name: str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init_subclass__(**kwargs)
        if presents is not None:
            cls.presents(*((presents,) if isinstance(presents, str) else presents))
        name = presenter_name or name_for(cls, suffix="Presenter")
        cls.presenter_name = name
        if name:
            register(name, cls)

    @classmethod
    def presents(cls, *names: str) -> None:
        """Declare the objects this presenter takes after the view.

        Raises:
            ValueError: For names that are not identifiers or that repeat.
        """
        for name in names:
            if not name.isidentifier():
                raise ValueError(f"Presented object name {name!r} is not a valid identifier")
            if name == "view":
                raise ValueError("'view' is reserved for the view context")
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate presented object names in {names!r}")
        cls.object_names = tuple(names)

    def __init__(self, view: Any, *objects: Any):
        names = type(self).object_names
        if len(objects) != len(names):
            expected = ", ".join(("view", *names))
            raise TypeError(
                f"{type(self).__name__}() takes {len(names) + 1} positional arguments "
                f"({expected}) but {len(objects) + 1} were given"
            )
        self.view = view
        for name, obj in zip(names, objects):
            setattr(self, name, obj)

    def __getattr__(self, name: str) -> Any:
        # Only reached when normal lookup fails
        if not name.startswith("__"):
            view = self.__dict__.get("view")
            if view is not None:
                try:
                    return getattr(view, name)
                except AttributeError:
                    pass
        raise AttributeError(f"'{type(self).__name__}' object has no attribute '{name}'")

    def __dir__(self) -> list[str]:
        names = set(super().__dir__())
        view = self.__dict__.get("view")
        if view is not None:
            names.update(dir(view))
        return sorted(names)

    def __repr__(self) -> str:
        cls = type(self).__name__
        objects = ", ".join(f"{name}: {getattr(self, name)!r}" for name in type(self).object_names)
        return f"<{cls} {objects}>" if objects else f"<{cls}>"

    def present(self, *args: Any, callback: Callable[[Any], Any] | None = None) -> Presenter:
        """Present other objects with this presenter's view."""
        return present(self.view, *args, callback=callback)

    k = present


def present(
    view: Any,
    obj_or_name: Any,
    *objects: Any,
    callback: Callable[[Any], Any] | None = None,
) -> Presenter:
    """Find, build and cache a presenter.

    Args:
        view: View context handed to the presenter. ``None`` disables caching.
        obj_or_name: A registry name (``"user"``, ``"admin/user"``) followed
            by the objects in ``objects``; or the single object to present,
            whose class selects the presenter.
        objects: Objects for an explicitly named presenter.
        callback: Called with the presenter before it is returned.

    Raises:
        LookupError: If no presenter matches.
        TypeError: If the object count does not fit the presenter.

    Example:
        >>> present(view, user) is present(view, user)
        True
    """
    if isinstance(obj_or_name, str):
        cls = lookup(obj_or_name)
    else:
        cls = presenter_for(obj_or_name)
        objects = (obj_or_name, *objects)

    presenter = _cached(view, cls, objects)
    if callback is not None:
        callback(presenter)
    return presenter


def _cached(view: Any, cls: type[Presenter], objects: tuple[Any, ...]) -> Presenter:
    if view is None:
        return cls(view, *objects)

    cache = getattr(view, CACHE_ATTRIBUTE, None)
    if cache is None:
        cache = {}
        try:
            setattr(view, CACHE_ATTRIBUTE, cache)
        except (AttributeError, TypeError):
            return cls(view, *objects)

    # Presenters hold their objects, so the ids stay valid while cached
    key = (cls.presenter_name, *map(id, objects))
    presenter = cache.get(key)
    if presenter is None or type(presenter) is not cls:
        presenter = cls(view, *objects)
        cache[key] = presenter
    return presenter
