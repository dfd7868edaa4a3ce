"""Page liveness shared by components that finish work asynchronously."""

from __future__ import annotations


class Liveness:
    """Flips to dead once when the owning page closes.

    Completions of requests sent before the close still run; they check
    ``alive`` before touching page state.
    """

    def __init__(self) -> None:
        self._alive = True

    @property
    def alive(self) -> bool:
        return self._alive

    def end(self) -> None:
        self._alive = False
