"""
Replica Group Gateway Abstract Base Class

Defines the few control-plane operations the assignment engine needs.
Cluster-specific plumbing stays in the implementations.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

from ..configs import GroupKind, ReplicaGroupState


class ReplicaGroupGateway(ABC):
    """
    Abstract accessor for a named replica group in a namespace.

    Every operation accepts a caller-supplied timeout in seconds and raises
    OperationTimeoutError when it expires.
    """

    def __init__(self, kind: GroupKind = GroupKind.STATEFUL_SET):
        self.kind = kind

    @abstractmethod
    def get_state(
        self,
        namespace: str,
        name: str,
        timeout: Optional[float] = None,
    ) -> ReplicaGroupState:
        """
        Read the desired replica count and the running instances.

        Raises:
            NotFoundError: if the group does not exist
        """
        pass

    @abstractmethod
    def set_desired_replicas(
        self,
        namespace: str,
        name: str,
        replicas: int,
        expected_version: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        """
        Replace the desired replica count. This is the only write made to an
        existing group.

        Args:
            expected_version: resource version the caller read; the write is
                rejected if the group changed since

        Raises:
            ConflictError: if the control plane rejects the update
            NotFoundError: if the group does not exist
        """
        pass

    @abstractmethod
    def list_running_instances(
        self,
        namespace: str,
        name: str,
        timeout: Optional[float] = None,
    ) -> Tuple[str, ...]:
        """Identities of the running instances, ordered by ordinal"""
        pass

    @abstractmethod
    def create_group(
        self,
        namespace: str,
        name: str,
        manifest: Dict[str, Any],
        replicas: int,
        timeout: Optional[float] = None,
    ) -> ReplicaGroupState:
        """
        Create the group from a manifest with the given replica count. The
        manifest's name and namespace are overridden by the arguments.

        Raises:
            ConflictError: if a group with that name already exists
        """
        pass
