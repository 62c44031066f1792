"""
Key Tables

Sorted tables for grouping records by exact composite key.
"""

from .key_table import OrderedKeyTable, KeyTableOverflowError

__all__ = [
    'OrderedKeyTable',
    'KeyTableOverflowError'
]
