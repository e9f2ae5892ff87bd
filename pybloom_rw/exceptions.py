"""Exceptions raised by pybloom_rw.

Every error derives from ValueError, so callers that only guard against bad
arguments keep working, while callers that care about the cause can catch
the specific subclass.
"""


class BloomFilterError(ValueError):
    """Base class for all Bloom filter errors."""


class ConstructionError(BloomFilterError):
    """Raised when a filter is created with invalid parameters."""


class IncompatibleFiltersError(BloomFilterError):
    """Raised when two filters cannot be combined.

    Attributes:
        field (str): Name of the parameter that differs ('size' or
            'hash_count').
        left: Value of that parameter on the left-hand filter.
        right: Value of that parameter on the right-hand filter.
    """

    def __init__(self, field, left, right):
        self.field = field
        self.left = left
        self.right = right
        super().__init__(
            "Unioning filters requires the same %s (%r != %r)" % (field, left, right))


class MalformedDataError(BloomFilterError):
    """Raised when serialized filter data cannot be decoded."""
