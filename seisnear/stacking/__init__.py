"""
Stacking Module

Sums traces sharing a key combination, with range limits on header
values such as offset and azimuth.
"""

from .key_stacker import KeyStacker, RangeLimit, StackedTrace

__all__ = [
    'KeyStacker',
    'RangeLimit',
    'StackedTrace'
]
