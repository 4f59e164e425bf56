"""
Configuration Module

Provides data types and configuration loading utilities.
"""

from .types import (
    Transport,
    GroupKind,
    HostRecord,
    HostSet,
    ReplicaGroupState,
    Assignment,
    ConnectionDefaults,
    ConnectionDescriptor,
    SuperviseConfig,
)

from .loader import ConfigLoader, expand, expand_and_verify

__all__ = [
    # Enums
    "Transport",
    "GroupKind",
    # Runtime types
    "HostRecord",
    "HostSet",
    "ReplicaGroupState",
    "Assignment",
    "ConnectionDefaults",
    "ConnectionDescriptor",
    # Config types
    "SuperviseConfig",
    # Utilities
    "ConfigLoader",
    "expand",
    "expand_and_verify",
]
