"""Attribute-access path builder.

``PathBuilder`` turns chained attribute access into a list of path segments,
and hands that path to a handler once one of the handler names is reached:

    ```python
    api = PathBuilder({"query": lambda path, *args: (path, args)})
    api.user.profile.get.query(1)   # (["user", "profile", "get"], (1,))
    ```

Every access returns a new immutable proxy, so sibling chains never share
segments. Item access (``api["user"]["query"]``) adds a segment even when it
is not a valid identifier or collides with a handler name.
"""

from __future__ import annotations

import functools
from typing import Any, Callable, Mapping

# A handler receives the accumulated path followed by the caller's arguments
PathHandler = Callable[..., Any]


class PathProxy:
    """A partially built method path."""
    __slots__ = ("_handlers", "_path")

    def __init__(self, handlers: Mapping[str, PathHandler], path: tuple[str, ...]) -> None:
        # Use object.__setattr__ to avoid triggering __setattr__
        object.__setattr__(self, "_handlers", handlers)
        object.__setattr__(self, "_path", path)

    def __getattr__(self, name: str) -> Any:
        """Return the handler bound to this path, or extend the path.

        Args:
            name: The property name

        Returns:
            A bound handler if ``name`` is a handler, otherwise a new PathProxy
        """
        if name.startswith("_"):
            # Avoid infinite recursion for private attrs
            msg = f"'{type(self).__name__}' object has no attribute '{name}'"
            raise AttributeError(msg)

        handler = self._handlers.get(name)
        if handler is not None:
            return functools.partial(handler, list(self._path))

        return PathProxy(self._handlers, (*self._path, name))

    def __getitem__(self, name: str) -> PathProxy:
        if not isinstance(name, str):
            msg = f"path segments must be strings, got {type(name).__name__}"
            raise TypeError(msg)
        return PathProxy(self._handlers, (*self._path, name))

    def __setattr__(self, name: str, value: Any) -> None:
        msg = f"'{type(self).__name__}' object is read-only"
        raise AttributeError(msg)

    def __repr__(self) -> str:
        path = ".".join(self._path) if self._path else "<root>"
        return f"{type(self).__name__}({path})"


class PathBuilder(PathProxy):
    """Root of a path: the object returned by ``build_client``.

    Handlers are only reachable once at least one segment has been added, so
    every name on the root starts a new path.
    """
    __slots__ = ()

    def __init__(self, handlers: Mapping[str, PathHandler]) -> None:
        super().__init__(dict(handlers), ())

    def __getattr__(self, name: str) -> Any:
        if name.startswith("_"):
            msg = f"'{type(self).__name__}' object has no attribute '{name}'"
            raise AttributeError(msg)
        return PathProxy(self._handlers, (name,))


def create_path_builder(handlers: Mapping[str, PathHandler]) -> PathBuilder:
    """Create a path builder dispatching to ``handlers``."""
    return PathBuilder(handlers)
