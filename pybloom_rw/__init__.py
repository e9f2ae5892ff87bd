"""Thread-safe Bloom filter with seeded xxHash probes and a compact binary format."""
from pybloom_rw.exceptions import (BloomFilterError, ConstructionError,
                                   IncompatibleFiltersError, MalformedDataError)
from pybloom_rw.pybloom import MAX_HASH_COUNT, BloomFilter, make_hashfuncs
from pybloom_rw.rwlock import ReadWriteLock

__all__ = [
    "BloomFilter",
    "BloomFilterError",
    "ConstructionError",
    "IncompatibleFiltersError",
    "MAX_HASH_COUNT",
    "MalformedDataError",
    "ReadWriteLock",
    "make_hashfuncs",
]
