"""
Configuration and Data Type Definitions

Host records, replica group state and connection settings, with full Python
type annotations. All runtime types are immutable; they are rebuilt on every
invocation from the inventory file and the cluster.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterator, Mapping, Optional, Tuple, Union, overload
from enum import Enum
from types import MappingProxyType

from ..errors import InventoryError


class Transport(str, Enum):
    """Remote session protocols"""
    SSH = "ssh"
    WINRM = "winrm"


class GroupKind(str, Enum):
    """Kubernetes workload kinds usable as a supervisor replica group"""
    REPLICATION_CONTROLLER = "ReplicationController"
    STATEFUL_SET = "StatefulSet"


@dataclass(frozen=True)
class HostRecord:
    """One supervisable remote endpoint from the inventory"""
    name: str
    # Falls back to `name` when the inventory has no ansible_host
    address: str = ""
    # Kept as a string; an empty string counts as unset
    port: Optional[str] = None
    transport: Optional[Transport] = None
    # Raw ansible_connection value; set without `transport` when unsupported
    connection: Optional[str] = None
    user: Optional[str] = None
    # Path to the SSH private key file
    private_key: Optional[str] = None
    # WinRM password
    password: Optional[str] = None
    groups: FrozenSet[str] = field(default_factory=frozenset)
    # Raw inventory variables after precedence has been applied
    variables: Mapping[str, str] = field(default_factory=dict, compare=False, repr=False)

    def __post_init__(self):
        if not self.address:
            object.__setattr__(self, "address", self.name)
        object.__setattr__(self, "groups", frozenset(self.groups))
        object.__setattr__(self, "variables", MappingProxyType(dict(self.variables)))

    def in_group(self, group: str) -> bool:
        return group in self.groups

    @property
    def reachable(self) -> bool:
        """False when the inventory names a connection we cannot open"""
        return self.connection is None or self.transport is not None


class HostSet:
    """
    Ordered, duplicate-free sequence of host records.

    The order is the assignment key: the instance with ordinal ``i`` owns
    ``host_set[i]``.
    """

    __slots__ = ("_hosts",)

    def __init__(self, hosts=()):
        hosts = tuple(hosts)
        seen = set()
        for host in hosts:
            if host.name in seen:
                raise InventoryError(f"duplicate host name {host.name!r} in host set")
            seen.add(host.name)
        self._hosts: Tuple[HostRecord, ...] = hosts

    @overload
    def __getitem__(self, index: int) -> HostRecord: ...

    @overload
    def __getitem__(self, index: slice) -> "HostSet": ...

    def __getitem__(self, index: Union[int, slice]):
        if isinstance(index, slice):
            return HostSet(self._hosts[index])
        return self._hosts[index]

    def __len__(self) -> int:
        return len(self._hosts)

    def __iter__(self) -> Iterator[HostRecord]:
        return iter(self._hosts)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, HostSet):
            return NotImplemented
        return self._hosts == other._hosts

    def __hash__(self) -> int:
        return hash(self._hosts)

    def __repr__(self) -> str:
        return f"HostSet({list(self.names())!r})"

    def names(self) -> Tuple[str, ...]:
        return tuple(h.name for h in self._hosts)

    def get(self, name: str) -> Optional[HostRecord]:
        for host in self._hosts:
            if host.name == name:
                return host
        return None


@dataclass(frozen=True)
class ReplicaGroupState:
    """Desired and actual state of the supervisor replica group"""
    namespace: str
    name: str
    desired_replicas: int
    # Ordered by the control plane's ordinal
    running_instances: Tuple[str, ...] = ()
    kind: GroupKind = GroupKind.STATEFUL_SET
    # Ordinal of each running instance when the control plane assigns one
    # (StatefulSet pod index). Empty means the position is the ordinal.
    ordinals: Tuple[int, ...] = ()
    # Opaque token for optimistic concurrency on writes
    resource_version: Optional[str] = None

    def __post_init__(self):
        if self.desired_replicas < 0:
            raise ValueError(f"desired_replicas must be >= 0, got {self.desired_replicas}")
        object.__setattr__(self, "running_instances", tuple(self.running_instances))
        object.__setattr__(self, "ordinals", tuple(self.ordinals))
        if self.ordinals and len(self.ordinals) != len(self.running_instances):
            raise ValueError("ordinals must have one entry per running instance")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "namespace": self.namespace,
            "name": self.name,
            "kind": self.kind.value,
            "desired_replicas": self.desired_replicas,
            "running_instances": list(self.running_instances),
            "ordinals": list(self.ordinals),
            "resource_version": self.resource_version,
        }


@dataclass(frozen=True)
class Assignment:
    """Binding of a running instance's ordinal to one host"""
    ordinal: int
    host: HostRecord


@dataclass(frozen=True)
class ConnectionDefaults:
    """Invocation-level fallbacks for fields a host record leaves unset"""
    port: str = "22"
    transport: Transport = Transport.SSH
    user: Optional[str] = None
    private_key: Optional[str] = None
    password: Optional[str] = None

    def __post_init__(self):
        if not str(self.port).strip().isdigit():
            raise ValueError(f"Default port must be numeric, got {self.port!r}")
        object.__setattr__(self, "port", str(self.port).strip())
        object.__setattr__(self, "transport", Transport(self.transport))


@dataclass(frozen=True)
class ConnectionDescriptor:
    """Fully resolved parameters for opening a remote session"""
    host_name: str
    address: str
    port: int
    transport: Transport
    user: str
    private_key: Optional[str] = None
    password: Optional[str] = field(default=None, repr=False)

    def to_dict(self) -> Dict[str, Any]:
        # Secrets are never serialized
        return {
            "host_name": self.host_name,
            "address": self.address,
            "port": self.port,
            "transport": self.transport.value,
            "user": self.user,
            "private_key": self.private_key,
        }


@dataclass
class SuperviseConfig:
    """Invocation configuration for the CLI commands"""
    # Ansible inventory file
    inventory_path: str = "inventory"
    # Inventory group whose hosts get supervisors
    hosts_selector: Optional[str] = None
    # Kubernetes namespace (resolved from the cluster when unset)
    namespace: Optional[str] = None
    # Name of the supervisor replica group
    group_name: Optional[str] = None
    group_kind: GroupKind = GroupKind.STATEFUL_SET
    # YAML manifest used to create the group when it does not exist yet
    template_path: Optional[str] = None
    # This pod's own name; defaults to $HOSTNAME
    identity: Optional[str] = None
    defaults: ConnectionDefaults = field(default_factory=ConnectionDefaults)
    # Timeout for each Kubernetes API call (seconds)
    api_timeout_seconds: float = 30.0
    # Timeout for opening a remote session (seconds)
    connect_timeout_seconds: float = 30.0
    # How long a pod keeps waiting for a host assignment
    assignment_retry_timeout_seconds: float = 300.0
    assignment_retry_interval_seconds: float = 5.0
    # Optional path of a shell helper script to generate
    shell_script_path: Optional[str] = None
    log_level: str = "INFO"
