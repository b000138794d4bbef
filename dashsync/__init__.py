"""
dashsync: keeps dashboard boards in sync with installed web apps.
"""

__version__ = "0.4.0"
