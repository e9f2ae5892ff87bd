#!/usr/bin/env python3
"""Setup script for pybloom_rw - thread-safe Python 3 Bloom filter."""
from setuptools import setup

VERSION = "1.0.0"
DESCRIPTION = "Bloom filter: A thread-safe probabilistic set-membership structure"
LONG_DESCRIPTION = """
A fixed-size Bloom filter with independently seeded xxHash64 probes.

The filter answers "definitely absent" vs "possibly present" queries with no
false negatives. Each instance is guarded by its own read-write lock so it can
be shared between threads.

Features:
- Seeded xxHash64 probes, one per hash function
- Space-efficient bit array storage
- Union of compatible filters with explicit mismatch errors
- False positive rate estimate and optimal hash count advisor
- Compact little-endian binary serialization
- Python 3.6+ only
"""

CLASSIFIERS = [
    "Development Status :: 4 - Beta",
    "Intended Audience :: Developers",
    "License :: OSI Approved :: MIT License",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Operating System :: OS Independent",
    "Topic :: Software Development :: Libraries :: Python Modules",
    "Topic :: Utilities",
]

setup(
    name="pybloom_rw",
    version=VERSION,
    description=DESCRIPTION,
    long_description=LONG_DESCRIPTION,
    long_description_content_type="text/plain",
    classifiers=CLASSIFIERS,
    keywords=[
        "bloom filter",
        "probabilistic",
        "data structures",
        "set membership",
        "thread-safe",
        "xxhash",
    ],
    license="MIT License",
    platforms=["any"],
    python_requires=">=3.6",
    install_requires=["bitarray>=1.0", "xxhash>=3.0.0"],
    extras_require={"test": ["pytest"]},
    packages=["pybloom_rw"],
    zip_safe=True,
)
