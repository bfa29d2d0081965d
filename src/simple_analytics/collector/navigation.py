"""Navigation event hub for single-page hosts."""

import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)

NavigationListener = Callable[[str, str], None]


class NavigationEvents:
    """Hosts report client-side navigation here; subscribers get ``(kind, url)``.

    ``push_state``/``replace_state`` mirror history mutations and
    ``pop_state`` mirrors back/forward navigation.
    """

    PUSH = "push"
    REPLACE = "replace"
    POP = "pop"

    def __init__(self) -> None:
        self._listeners: list[NavigationListener] = []

    def subscribe(self, listener: NavigationListener) -> Callable[[], None]:
        """Register ``listener`` and return a callable that removes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def push_state(self, url: str) -> None:
        self._emit(self.PUSH, url)

    def replace_state(self, url: str) -> None:
        self._emit(self.REPLACE, url)

    def pop_state(self, url: str) -> None:
        self._emit(self.POP, url)

    def _emit(self, kind: str, url: str) -> None:
        for listener in list(self._listeners):
            try:
                listener(kind, url)
            except Exception:
                logger.warning("Navigation listener failed for %s %s", kind, url, exc_info=True)
