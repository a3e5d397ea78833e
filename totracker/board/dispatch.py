"""
Mutation dispatchers.

A board hands each persistence call to a dispatcher together with its
success and failure callbacks:

    dispatcher.submit(call, on_success=..., on_error=...)

``call`` performs the HTTP request and returns the server's story;
``on_error`` receives the exception. Callbacks take the board's own lock,
so dispatchers do not synchronize anything themselves.

    BackgroundDispatcher    one daemon thread per call (default)
    ImmediateDispatcher     runs inline, for scripts
    DeferredDispatcher      queues calls until the caller releases them,
                            so tests can pick the completion order
"""

import logging
import threading

logger = logging.getLogger(__name__)


def _run(call, on_success, on_error):
    try:
        result = call()
    except Exception as exc:
        logger.info("Dispatched call failed: %s", exc)
        on_error(exc)
        return
    on_success(result)


class BackgroundDispatcher:
    """Runs every submitted call on its own daemon thread."""

    def __init__(self):
        self._threads: list[threading.Thread] = []
        self._lock = threading.Lock()

    def submit(self, call, *, on_success, on_error):
        t = threading.Thread(target=_run, args=(call, on_success, on_error), daemon=True)
        with self._lock:
            self._threads = [th for th in self._threads if th.is_alive()]
            self._threads.append(t)
        t.start()
        return t

    def join(self, timeout=None):
        """Wait for every in-flight call to finish."""
        with self._lock:
            threads = list(self._threads)
        for t in threads:
            t.join(timeout)


class ImmediateDispatcher:
    """Runs the call and its callback before submit() returns."""

    def submit(self, call, *, on_success, on_error):
        _run(call, on_success, on_error)


class DeferredDispatcher:
    """Holds calls until complete()/run_all() is invoked."""

    def __init__(self):
        self.pending: list[tuple] = []

    def submit(self, call, *, on_success, on_error):
        self.pending.append((call, on_success, on_error))

    def complete(self, index=0):
        """Run the pending call at ``index`` (submission order)."""
        call, on_success, on_error = self.pending.pop(index)
        _run(call, on_success, on_error)

    def run_all(self):
        while self.pending:
            self.complete(0)
