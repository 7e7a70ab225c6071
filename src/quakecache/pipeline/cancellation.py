"""Cooperative cancellation for fetch runs."""

import threading


class CancelToken:
    """Set once by a superseding caller; checked between upstream requests.

    In-flight requests always complete and their records are kept.
    """

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()
