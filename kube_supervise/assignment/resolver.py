"""
Host Assignment Resolver

Maps running instances onto inventory hosts by ordinal: the instance listed
at position ``i`` owns ``host_set[i]``. No assignment table is stored; the
mapping is recomputed from fresh inputs on every call, so it is exactly as
stable as the inventory order and the control plane's instance ordering.

Everything here is a pure function of its arguments.
"""

from typing import Optional

from loguru import logger

from ..configs import (
    Assignment,
    ConnectionDefaults,
    ConnectionDescriptor,
    HostRecord,
    HostSet,
    ReplicaGroupState,
    Transport,
)
from ..errors import (
    IdentityNotFoundError,
    InventoryError,
    MissingCredentialError,
    UnassignedError,
)


def _is_set(value: Optional[str]) -> bool:
    return value is not None and str(value).strip() != ""


class AssignmentResolver:
    """Computes replica deltas and per-instance host assignments"""

    @staticmethod
    def resolve_delta(host_set: HostSet, state: ReplicaGroupState) -> int:
        """Replicas to add (positive) or remove (negative) to match the hosts"""
        return len(host_set) - state.desired_replicas

    @staticmethod
    def resolve_ordinal(state: ReplicaGroupState, identity: str) -> int:
        """
        Ordinal of ``identity``: the control plane's own ordinal when the
        state carries one, else its position among the running instances.

        Raises:
            IdentityNotFoundError: if the identity is not listed (yet)
        """
        try:
            position = state.running_instances.index(identity)
        except ValueError:
            raise IdentityNotFoundError(identity, len(state.running_instances)) from None
        return state.ordinals[position] if state.ordinals else position

    @staticmethod
    def assign(host_set: HostSet, state: ReplicaGroupState, identity: str) -> Assignment:
        """
        Bind the calling instance to its host.

        Raises:
            IdentityNotFoundError: if ``identity`` is not a running instance
            UnassignedError: if there are more running instances than hosts
                and this one is past the end of the host set
        """
        ordinal = AssignmentResolver.resolve_ordinal(state, identity)
        if ordinal >= len(host_set):
            raise UnassignedError(identity, ordinal, len(host_set))
        host = host_set[ordinal]
        logger.debug(f"Instance {identity} (ordinal {ordinal}) is assigned host {host.name}")
        return Assignment(ordinal=ordinal, host=host)

    @staticmethod
    def resolve_host_for_instance(host_set: HostSet, state: ReplicaGroupState, identity: str) -> HostRecord:
        return AssignmentResolver.assign(host_set, state, identity).host

    @staticmethod
    def resolve_connection(host: HostRecord, defaults: ConnectionDefaults) -> ConnectionDescriptor:
        """
        Fill the unset fields of ``host`` from ``defaults``.

        An absent or empty port falls back to the default port. Credentials
        required by the resolved transport are never defaulted to empty.

        Raises:
            InventoryError: if the host's port is not numeric, or its
                inventory connection is neither SSH nor WinRM
            MissingCredentialError: naming the first missing credential
        """
        if not host.reachable:
            raise InventoryError(f"host {host.name!r} uses unsupported connection {host.connection!r}")

        port = host.port if _is_set(host.port) else defaults.port
        port = str(port).strip()
        if not port.isdigit():
            raise InventoryError(f"host {host.name!r} has non-numeric port {host.port!r}")

        transport = host.transport or defaults.transport
        user = host.user if _is_set(host.user) else defaults.user
        private_key = host.private_key if _is_set(host.private_key) else defaults.private_key
        password = host.password if _is_set(host.password) else defaults.password

        if not _is_set(user):
            raise MissingCredentialError(host.name, "user", transport.value)
        if transport == Transport.SSH:
            if not _is_set(private_key):
                raise MissingCredentialError(host.name, "private_key", transport.value)
            password = None
        else:
            if not _is_set(password):
                raise MissingCredentialError(host.name, "password", transport.value)
            private_key = None

        descriptor = ConnectionDescriptor(
            host_name=host.name,
            address=host.address,
            port=int(port),
            transport=transport,
            user=user,
            private_key=private_key,
            password=password,
        )
        logger.debug(f"Resolved connection for {host.name}: {descriptor.to_dict()}")
        return descriptor
