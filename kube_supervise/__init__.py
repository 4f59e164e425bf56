"""
kube-supervise

Supervises long-running processes on hosts outside Kubernetes from pods
inside it, so that legacy processes look and feel like they run in the
cluster.

Features:
- One supervisor pod per host of an Ansible inventory group
- Replica count kept equal to the host count (create-or-update)
- Exclusive, stable host per pod by ordinal, with no stored assignment table
- SSH (asyncssh) and WinRM (pywinrm) transports

Usage:
    from kube_supervise import InventoryView, Synchronizer, KubernetesReplicaGroupGateway

    sync = Synchronizer(KubernetesReplicaGroupGateway())
    sync.reconcile("inventory", "appservers", "default", "supervisors")

CLI:
    kube-supervise rc appservers --template rc.yml
    kube-supervise pod --rc supervisors appservers ./run-app.sh
"""

__version__ = "0.1.0"

# Core types
from .configs import (
    Transport,
    GroupKind,
    HostRecord,
    HostSet,
    ReplicaGroupState,
    Assignment,
    ConnectionDefaults,
    ConnectionDescriptor,
    SuperviseConfig,
    ConfigLoader,
)

# Errors
from .errors import (
    SuperviseError,
    InventoryError,
    SelectionError,
    NotFoundError,
    ConflictError,
    AssignmentPendingError,
    IdentityNotFoundError,
    UnassignedError,
    MissingCredentialError,
    OperationTimeoutError,
    TransportError,
)

# Engine
from .inventory import InventoryView, InventoryParser
from .cluster import ReplicaGroupGateway, KubernetesReplicaGroupGateway
from .assignment import AssignmentResolver, Synchronizer, ReconcileResult
from .dispatcher import Dispatcher
from .transport import CommandResult, TransportBase, SSHTransport, WinRMTransport, get_transport

__all__ = [
    # Version
    "__version__",
    # Types
    "Transport",
    "GroupKind",
    "HostRecord",
    "HostSet",
    "ReplicaGroupState",
    "Assignment",
    "ConnectionDefaults",
    "ConnectionDescriptor",
    "SuperviseConfig",
    "ConfigLoader",
    # Errors
    "SuperviseError",
    "InventoryError",
    "SelectionError",
    "NotFoundError",
    "ConflictError",
    "AssignmentPendingError",
    "IdentityNotFoundError",
    "UnassignedError",
    "MissingCredentialError",
    "OperationTimeoutError",
    "TransportError",
    # Engine
    "InventoryView",
    "InventoryParser",
    "ReplicaGroupGateway",
    "KubernetesReplicaGroupGateway",
    "AssignmentResolver",
    "Synchronizer",
    "ReconcileResult",
    "Dispatcher",
    # Transports
    "CommandResult",
    "TransportBase",
    "SSHTransport",
    "WinRMTransport",
    "get_transport",
]
