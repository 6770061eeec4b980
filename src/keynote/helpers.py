"""``present``/``k`` for views and controllers.

Mix ``PresentMixin`` into a view class, or into a controller that exposes its
view as ``view_context``, to build presenters bound to that view:

    ```python
    class PageView(PresentMixin):
        def render(self, user):
            return self.k(user).display_name()
    ```
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

from keynote.presenter import Presenter, present


class PresentMixin:
    """Adds ``present`` and its alias ``k``.

    The view passed to presenters is ``self.view_context`` when the object
    has one, otherwise the object itself.
    """

    def present(
        self,
        obj_or_name: Any,
        *objects: Any,
        callback: Callable[[Any], Any] | None = None,
    ) -> Presenter:
        view = getattr(self, "view_context", self)
        return present(view, obj_or_name, *objects, callback=callback)

    k = present
