"""
Cluster Module

Control-plane access for the supervisor replica group.
"""

from .base import ReplicaGroupGateway
from .kubernetes_gateway import (
    KubernetesReplicaGroupGateway,
    default_namespace,
    load_api_client,
)

__all__ = [
    "ReplicaGroupGateway",
    "KubernetesReplicaGroupGateway",
    "default_namespace",
    "load_api_client",
]
