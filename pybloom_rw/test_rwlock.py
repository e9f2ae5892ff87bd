"""Tests for the lock guarding each BloomFilter.

Each test drives the lock through the filter operations that use it:
lookups and inserts share it, reset() excludes them, and a pending reset()
goes ahead of new lookups.
"""
import threading
import time

import pytest

from pybloom_rw.pybloom import BloomFilter


@pytest.fixture
def bf():
    """A small filter holding 'kept'."""
    bf = BloomFilter(4096, 4)
    bf.add("kept")
    return bf


def _start(target, *args):
    t = threading.Thread(target=target, args=args)
    t.start()
    return t


def test_lookups_run_concurrently(bf):
    """Several threads can be inside contains() at the same time."""
    inside = threading.Barrier(4)

    def lookup():
        with bf._lock.read():
            # Only passes if all four readers hold the lock together
            inside.wait(timeout=5.0)
            assert bf.contains("kept")

    threads = [_start(lookup) for _ in range(4)]
    for t in threads:
        t.join(timeout=10.0)

    assert not inside.broken
    assert bf._lock.readers == 0


def test_reset_waits_for_lookup(bf):
    """reset() cannot clear bits while a lookup holds the lock."""
    reset_done = threading.Event()

    def resetter():
        bf.reset()
        reset_done.set()

    bf._lock.acquire_read()
    t = _start(resetter)
    try:
        assert not reset_done.wait(timeout=0.2), "reset ran under a reader"
        assert bf.bitarray.any()
    finally:
        bf._lock.release_read()

    assert reset_done.wait(timeout=5.0)
    t.join(timeout=5.0)
    assert not bf.bitarray.any()
    assert bf.count == 0


def test_add_waits_for_reset(bf):
    """add() blocks while the exclusive side is held."""
    added = threading.Event()

    def inserter():
        bf.add("late")
        added.set()

    bf._lock.acquire_write()
    t = _start(inserter)
    try:
        assert not added.wait(timeout=0.2), "add ran under a writer"
        assert bf.count == 1
    finally:
        bf._lock.release_write()

    assert added.wait(timeout=5.0)
    t.join(timeout=5.0)
    assert bf.count == 2
    assert "late" in bf


def test_pending_reset_goes_before_new_lookups(bf):
    """A waiting reset() is not starved by lookups that arrive after it.

    Expected:
        The lookup that arrives while reset() is queued runs after the
        reset and therefore misses 'kept'.
    """
    answers = []
    lookup_done = threading.Event()

    def lookup():
        answers.append(bf.contains("kept"))
        lookup_done.set()

    bf._lock.acquire_read()
    try:
        tr = _start(bf.reset)
        time.sleep(0.05)  # let reset() queue behind the held read lock
        tl = _start(lookup)
        assert not lookup_done.wait(timeout=0.2), "lookup jumped a pending reset"
    finally:
        bf._lock.release_read()

    tr.join(timeout=5.0)
    tl.join(timeout=5.0)
    assert answers == [False]


def test_lock_released_when_key_conversion_fails(bf):
    """An exception raised while hashing inside the lock releases it."""

    class Unprintable:
        def __str__(self):
            raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        bf.add(Unprintable())
    with pytest.raises(RuntimeError):
        bf.contains(Unprintable())

    assert bf._lock.readers == 0
    assert bf.count == 1
    bf.reset()
    assert bf.count == 0
