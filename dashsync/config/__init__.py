"""
Configuration package.

Environment settings and the branding document.
"""

from dashsync.config.branding import Branding, load_branding, parse_branding
from dashsync.config.config import Settings

__all__ = [
    "Branding",
    "Settings",
    "load_branding",
    "parse_branding",
]
