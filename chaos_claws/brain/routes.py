"""Route filtering - which request paths the engine may touch."""

from typing import Iterable, Tuple


class RouteFilter:
    """Prefix-based include/exclude filter.

    An empty include list means every route is included. Excludes always win,
    so health checks can be protected even under a broad include such as
    ``/``. Matching is a plain, case-sensitive ``startswith``.
    """

    def __init__(
        self,
        enabled_routes: Iterable[str] = (),
        disabled_routes: Iterable[str] = (),
    ) -> None:
        self.enabled_routes: Tuple[str, ...] = tuple(enabled_routes)
        self.disabled_routes: Tuple[str, ...] = tuple(disabled_routes)

    def is_enabled(self, path: str) -> bool:
        if not self.enabled_routes:
            return True
        return any(path.startswith(prefix) for prefix in self.enabled_routes)

    def is_disabled(self, path: str) -> bool:
        return any(path.startswith(prefix) for prefix in self.disabled_routes)

    def is_eligible(self, path: str) -> bool:
        """Return True if chaos may be applied to ``path``."""
        return self.is_enabled(path) and not self.is_disabled(path)
