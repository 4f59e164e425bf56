"""
Assignment Module

Host-to-replica assignment and replica count synchronization.
"""

from .resolver import AssignmentResolver
from .synchronizer import ReconcileResult, Synchronizer

__all__ = [
    "AssignmentResolver",
    "ReconcileResult",
    "Synchronizer",
]
