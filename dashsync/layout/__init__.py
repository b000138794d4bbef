"""
Layout package.

Board grid auto-placement.
"""

from dashsync.layout.placement import next_position

__all__ = ["next_position"]
