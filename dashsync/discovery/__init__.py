"""
Discovery package.

Desired-state sources: descriptor directory and container labels.
"""

from dashsync.discovery.containers import ContainerEvent, ContainerSource, parse_labels
from dashsync.discovery.models import AppEntry, AppKind, LayoutPreference
from dashsync.discovery.registry import (
    RegistrySource,
    load_desired_entries,
    load_registry_dir,
    merge_entries,
)

__all__ = [
    "AppEntry",
    "AppKind",
    "ContainerEvent",
    "ContainerSource",
    "LayoutPreference",
    "RegistrySource",
    "load_desired_entries",
    "load_registry_dir",
    "merge_entries",
    "parse_labels",
]
