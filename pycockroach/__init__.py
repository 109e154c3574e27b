"""
pycockroach: CockroachDB compatibility layer for PostgreSQL code generation.

This library synthesizes upsert statements that CockroachDB accepts, marshals 64-bit integers that exceed the range
of a double-precision float, and interprets result-sets of insert, update and upsert statements.
"""

__version__ = "0.1.0"
__license__ = "MIT"
__status__ = "Beta"
