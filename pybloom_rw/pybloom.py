"""Thread-safe, fixed-size Bloom filter.

A Bloom filter answers set-membership queries with "definitely absent" or
"possibly present". It never produces false negatives; the false positive
probability grows with the number of inserted elements and can be estimated
from the filter's parameters.

The filter is a bit array of ``size`` bits probed by ``hash_count``
independently seeded 64-bit hashes (xxHash64 with seeds ``0 .. k-1``). Every
probe reduces its digest modulo ``size`` to pick a bit.

Mathematical Foundation:
    - False positive probability: P ≈ (1 - e^(-kn/m))^k
    - Optimal hash functions for n elements: k = ceil((m / n) × ln(2))
    - Bit count for capacity n and error rate P: m ≈ n × |ln(P)| / (ln(2)²)

Serialized Layout (little-endian):
    - 8 bytes: size (number of bits)
    - 8 bytes: count (number of add() calls)
    - ceil(size / 8) bytes: bit array, bit i at byte i // 8, LSB first
    - 8 bytes: hash_count

Requirements:
    - Python 3.6+
    - bitarray >= 1.0: Efficient bit array operations
    - xxhash >= 3.0.0: Fast non-cryptographic hashing
"""
import logging
import math
import threading
from contextlib import ExitStack, contextmanager
from struct import calcsize, pack, unpack_from

import bitarray
import xxhash

from pybloom_rw.exceptions import (ConstructionError, IncompatibleFiltersError,
                                   MalformedDataError)
from pybloom_rw.rwlock import ReadWriteLock

logger = logging.getLogger(__name__)

# Upper bound on probes per element; also bounds the work of add()/contains()
MAX_HASH_COUNT = 1 << 16


def make_hashfuncs(num_hashes, num_bits):
    """Create the probe generator for a Bloom filter.

    Each probe is an xxHash64 digest of the key computed with its own seed,
    so the ``num_hashes`` probes give distinct index distributions for the
    same key.

    Args:
        num_hashes (int): Number of probes per key (k in literature).
        num_bits (int): Size of the bit array. Probe values are reduced
            modulo this number.

    Returns:
        callable: Generator function yielding ``num_hashes`` bit indices in
            range [0, num_bits) for a key.
    """
    seeds = range(num_hashes)
    intdigest = xxhash.xxh64_intdigest

    def _hash_maker(key):
        """Yield the bit index of every probe for ``key``.

        Args:
            key: bytes-like object; str is UTF-8 encoded and anything else
                is hashed through str().

        Yields:
            int: Bit indices in range [0, num_bits)
        """
        if isinstance(key, str):
            key = key.encode('utf-8')
        elif not isinstance(key, (bytes, bytearray, memoryview)):
            key = str(key).encode('utf-8')

        for seed in seeds:
            yield intdigest(key, seed) % num_bits

    return _hash_maker


def _is_int(value):
    return isinstance(value, int) and not isinstance(value, bool)


def _check_params(size, hash_count):
    if not _is_int(size) or size <= 0:
        raise ConstructionError("Size must be > 0, got %r" % (size,))
    if not _is_int(hash_count) or hash_count <= 0:
        raise ConstructionError("Hash_Count must be >= 1, got %r" % (hash_count,))
    if hash_count > MAX_HASH_COUNT:
        raise ConstructionError(
            "Hash_Count must be <= %d, got %r" % (MAX_HASH_COUNT, hash_count))


class BloomFilter:
    """Fixed-size Bloom filter guarded by a per-instance read-write lock.

    add() and contains() share the read lock: concurrent inserts only ever
    set bits to True, so racing on the same index is harmless. reset() takes
    the write lock so no reader sees a half-cleared array.

    Example:
        >>> bf = BloomFilter(1000, 3)
        >>> for fruit in (b"apple", b"banana", b"cherry"):
        ...     bf.add(fruit)
        >>> bf.contains(b"apple")
        True
        >>> bf.count
        3
        >>> 0.0 <= bf.estimated_false_positive_rate() < 1.0
        True
        >>> other = BloomFilter(1000, 3)
        >>> other.add(b"date")
        >>> both = bf | other
        >>> b"apple" in both and b"date" in both
        True
        >>> restored = BloomFilter.deserialize(bf.serialize())
        >>> b"banana" in restored
        True
    """
    FILE_FMT = '<QQ'
    TRAILER_FMT = '<Q'

    def __init__(self, size, hash_count):
        """Create an empty filter.

        Args:
            size (int): Number of bits in the filter. Must be > 0.
            hash_count (int): Number of hash probes per element. Must be
                between 1 and MAX_HASH_COUNT.

        Raises:
            ConstructionError: If size or hash_count is out of range.
        """
        _check_params(size, hash_count)
        self._setup(size, hash_count, 0)
        self.bitarray = bitarray.bitarray(size, endian='little')
        self.bitarray.setall(False)
        logger.debug("Created %r", self)

    @classmethod
    def for_capacity(cls, capacity, error_rate=0.001):
        """Create a filter sized for ``capacity`` elements at ``error_rate``.

        Formulas Used:
            - Number of hash functions: k = ceil(log2(1/P))
            - Total bits: M = ceil(n × |ln(P)| / (ln(2))²)

        Args:
            capacity (int): Expected number of elements. Must be > 0.
            error_rate (float, optional): Target false positive probability,
                between 0 and 1 (exclusive). Default is 0.001.

        Returns:
            BloomFilter: An empty filter with the computed size and hash count.

        Raises:
            ConstructionError: If capacity or error_rate is out of range.

        Example:
            >>> bf = BloomFilter.for_capacity(1000, 0.01)
            >>> bf.hash_count
            7
        """
        if not (0 < error_rate < 1):
            raise ConstructionError("Error_Rate must be between 0 and 1.")
        if not capacity > 0:
            raise ConstructionError("Capacity must be > 0")

        hash_count = int(math.ceil(math.log(1.0 / error_rate, 2)))
        size = int(math.ceil(
            (capacity * abs(math.log(error_rate))) / (math.log(2) ** 2)))
        return cls(size, hash_count)

    def _setup(self, size, hash_count, count):
        """Initialize parameters, probes and locks.

        Shared by the constructor, deserialization, copying and unpickling.
        """
        self.size = size
        self.hash_count = hash_count
        self._count = count
        self.make_hashes = make_hashfuncs(hash_count, size)
        self._lock = ReadWriteLock()
        self._count_lock = threading.Lock()

    @classmethod
    def _from_state(cls, size, hash_count, count, bits):
        filter = cls.__new__(cls)
        filter._setup(size, hash_count, count)
        filter.bitarray = bits
        return filter

    @property
    def count(self):
        """Number of add() calls since creation or the last reset().

        Duplicates are counted every time they are added.
        """
        with self._count_lock:
            return self._count

    def __len__(self):
        return self.count

    def __repr__(self):
        return '%s(size=%d, hash_count=%d, count=%d)' % (
            type(self).__name__, self.size, self.hash_count, self.count)

    def add(self, key):
        """Add an element to the filter.

        Sets the bit selected by every probe and increments count by one,
        even when the element was already present.

        Args:
            key: The element to add (bytes-like, str, or any object with
                __str__).

        Time Complexity:
            O(k) where k is the number of hash probes
        """
        bitarray = self.bitarray
        with self._lock.read():
            for k in self.make_hashes(key):
                bitarray[k] = True
            with self._count_lock:
                self._count += 1

    def contains(self, key):
        """Test whether an element may be in the filter.

        Args:
            key: The element to test.

        Returns:
            bool: False if the element was definitely never added, True if
                it possibly was (false positives are possible, false
                negatives are not).
        """
        bitarray = self.bitarray
        with self._lock.read():
            for k in self.make_hashes(key):
                if not bitarray[k]:
                    return False  # Definitely not in set
            return True

    def __contains__(self, key):
        return self.contains(key)

    def reset(self):
        """Clear every bit and set count back to zero."""
        with self._lock.write():
            self.bitarray.setall(False)
            with self._count_lock:
                self._count = 0
        logger.debug("Reset %r", self)

    def estimated_false_positive_rate(self):
        """Estimate the current false positive probability.

        Uses the asymptotic formula (1 - e^(-kn/m))^k with k = hash_count,
        n = count and m = size. This assumes independent, uniform hashing and
        is an estimate, not a measurement.

        Returns:
            float: Estimated probability in [0, 1].
        """
        with self._lock.read():
            n = self.count
        k = self.hash_count
        return math.pow(1.0 - math.exp(-k * n / self.size), k)

    def optimal_hash_count(self, expected_elements):
        """Recommend a hash count for this size and an expected load.

        Computes ceil((size / n) × ln 2). Advisory only; the filter is not
        changed.

        Args:
            expected_elements (int): Expected number of inserted elements.
                Must be > 0.

        Returns:
            int: Recommended number of hash probes.

        Raises:
            ValueError: If expected_elements is not positive.

        Example:
            >>> BloomFilter(1000, 3).optimal_hash_count(100)
            7
        """
        if not expected_elements > 0:
            raise ValueError("Expected_Elements must be > 0")
        return int(math.ceil(self.size / expected_elements * math.log(2)))

    @contextmanager
    def _union_locks(self, other):
        """Hold the write lock on self and the read lock on other.

        Locks are taken in id() order so concurrent a | b and b | a cannot
        deadlock.
        """
        if other is self:
            with self._lock.read():
                yield
            return

        acquire = [(id(self), self._lock.write), (id(other), other._lock.read)]
        acquire.sort(key=lambda pair: pair[0])
        with ExitStack() as stack:
            for _, lock in acquire:
                stack.enter_context(lock())
            yield

    def union(self, other):
        """Calculate the union of two Bloom filters.

        The result has the bitwise OR of both bit arrays and the sum of both
        counts. Neither input is modified. Any element that either input
        reports as present is reported as present by the result.

        Args:
            other (BloomFilter): Filter with the same size and hash_count.

        Returns:
            BloomFilter: A new filter representing the union.

        Raises:
            IncompatibleFiltersError: If size or hash_count differ. The
                exception's ``field`` names the mismatched parameter.

        Example:
            >>> a = BloomFilter(1000, 3)
            >>> b = BloomFilter(500, 3)
            >>> a.union(b)
            Traceback (most recent call last):
                ...
            pybloom_rw.exceptions.IncompatibleFiltersError: Unioning filters requires the same size (1000 != 500)
        """
        if self.size != other.size:
            raise IncompatibleFiltersError('size', self.size, other.size)
        if self.hash_count != other.hash_count:
            raise IncompatibleFiltersError('hash_count', self.hash_count, other.hash_count)

        with self._union_locks(other):
            bits = self.bitarray | other.bitarray
            count = self.count + other.count

        new_bloom = self._from_state(self.size, self.hash_count, count, bits)
        logger.debug("Union of %r and %r -> %r", self, other, new_bloom)
        return new_bloom

    def __or__(self, other):
        return self.union(other)

    def copy(self):
        """Create an independent copy of this filter.

        Returns:
            BloomFilter: A new filter with the same parameters, bits and count.
        """
        with self._lock.read():
            bits = self.bitarray.copy()
            count = self.count
        return self._from_state(self.size, self.hash_count, count, bits)

    def serialize(self):
        """Encode the filter as bytes.

        Returns:
            bytes: ``16 + ceil(size / 8) + 8`` bytes in the layout described
                in the module docstring.
        """
        with self._lock.read():
            count = self.count
            body = self.bitarray.tobytes()
        return b''.join((pack(self.FILE_FMT, self.size, count), body,
                         pack(self.TRAILER_FMT, self.hash_count)))

    @classmethod
    def deserialize(cls, data, hash_count=None):
        """Rebuild a filter from the output of serialize().

        Data without the trailing hash count (header and bit array only) is
        accepted when the caller supplies ``hash_count``.

        Args:
            data (bytes): Serialized filter.
            hash_count (int, optional): Number of hash probes. Required when
                the data carries no hash count; must match it otherwise.

        Returns:
            BloomFilter: The decoded filter.

        Raises:
            MalformedDataError: If the data is truncated, has trailing bytes,
                declares a zero size, a zero hash count or one above
                MAX_HASH_COUNT, or disagrees with ``hash_count``.
            ConstructionError: If a supplied ``hash_count`` is invalid.
        """
        headerlen = calcsize(cls.FILE_FMT)
        trailerlen = calcsize(cls.TRAILER_FMT)

        if len(data) < headerlen:
            raise MalformedDataError(
                "Serialized filter is %d bytes, need at least %d" % (len(data), headerlen))
        size, count = unpack_from(cls.FILE_FMT, data)
        if size == 0:
            raise MalformedDataError("Serialized filter declares size 0")

        # Validate length before allocating anything proportional to size
        body_end = headerlen + (size + 7) // 8
        if len(data) < body_end:
            raise MalformedDataError(
                "Serialized filter of %d bits needs %d bytes, got %d" % (size, body_end, len(data)))

        if len(data) == body_end:
            if hash_count is None:
                raise MalformedDataError(
                    "Serialized filter carries no hash count; pass hash_count")
        elif len(data) == body_end + trailerlen:
            stored, = unpack_from(cls.TRAILER_FMT, data, body_end)
            if stored == 0:
                raise MalformedDataError("Serialized filter declares hash count 0")
            if stored > MAX_HASH_COUNT:
                raise MalformedDataError(
                    "Serialized hash count %d exceeds %d" % (stored, MAX_HASH_COUNT))
            if hash_count is not None and hash_count != stored:
                raise MalformedDataError(
                    "Serialized hash count %d does not match %d" % (stored, hash_count))
            hash_count = stored
        else:
            raise MalformedDataError(
                "Serialized filter has %d unexpected trailing bytes" % (len(data) - body_end))
        _check_params(size, hash_count)

        bits = bitarray.bitarray(endian='little')
        bits.frombytes(bytes(data[headerlen:body_end]))
        del bits[size:]  # Drop padding bits of the last byte

        filter = cls._from_state(size, hash_count, count, bits)
        logger.debug("Deserialized %r from %d bytes", filter, len(data))
        return filter

    def tofile(self, f):
        """Write the serialized filter to a binary file object.

        Args:
            f: File-like object opened in binary write mode ('wb'). Can be a
                regular file or BytesIO.
        """
        f.write(self.serialize())

    @classmethod
    def fromfile(cls, f, hash_count=None):
        """Read a filter written by tofile().

        Args:
            f: File-like object opened in binary read mode ('rb').
            hash_count (int, optional): See deserialize().

        Returns:
            BloomFilter: The decoded filter.
        """
        return cls.deserialize(f.read(), hash_count)

    def __getstate__(self):
        """Prepare the filter state for pickling.

        Drops the probe generator and the locks, which cannot be pickled,
        and snapshots the bits and count under the read lock.
        """
        with self._lock.read():
            d = self.__dict__.copy()
            d['bitarray'] = self.bitarray.copy()
            d['_count'] = self.count
        del d['make_hashes']
        del d['_lock']
        del d['_count_lock']
        return d

    def __setstate__(self, d):
        bits = d.pop('bitarray')
        self._setup(d['size'], d['hash_count'], d['_count'])
        self.bitarray = bits


if __name__ == "__main__":
    import doctest

    doctest.testmod()
