"""Per-filter read-write lock.

Lookups and inserts hold the shared side; reset() holds the exclusive
side; union() holds the exclusive side of one filter and the shared side of
the other.

Example:
    >>> lock = ReadWriteLock()
    >>> with lock.read():
    ...     lock.readers
    1
    >>> with lock.write():
    ...     lock.writer_active
    True
"""
import threading
from contextlib import contextmanager


class ReadWriteLock:
    """Shared/exclusive lock that lets a waiting writer go first.

    A pending writer stops new readers from entering, so a steady stream of
    add() and contains() calls cannot postpone reset() forever.

    Not reentrant: a thread already holding either side must not acquire
    the lock again.
    """

    def __init__(self):
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._pending_writers = 0
        self._writer_active = False

    @property
    def readers(self):
        """Number of threads currently holding the shared side."""
        with self._cond:
            return self._readers

    @property
    def writer_active(self):
        """True while a thread holds the exclusive side."""
        with self._cond:
            return self._writer_active

    def acquire_read(self):
        with self._cond:
            self._cond.wait_for(
                lambda: not self._writer_active and not self._pending_writers)
            self._readers += 1

    def release_read(self):
        with self._cond:
            self._readers -= 1
            if not self._readers:
                self._cond.notify_all()

    def acquire_write(self):
        with self._cond:
            self._pending_writers += 1
            try:
                self._cond.wait_for(
                    lambda: not self._writer_active and not self._readers)
            except BaseException:
                self._pending_writers -= 1
                self._cond.notify_all()  # Wake readers held back by this writer
                raise
            self._pending_writers -= 1
            self._writer_active = True

    def release_write(self):
        with self._cond:
            self._writer_active = False
            self._cond.notify_all()

    @contextmanager
    def read(self):
        """Hold the shared side for the duration of the block."""
        self.acquire_read()
        try:
            yield
        finally:
            self.release_read()

    @contextmanager
    def write(self):
        """Hold the exclusive side for the duration of the block."""
        self.acquire_write()
        try:
            yield
        finally:
            self.release_write()
