import threading

from alphaident.exceptions import SearchCancelledError


class CancellationToken:
    """Cooperative cancellation signal shared between the caller and the search workers."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise SearchCancelledError()
