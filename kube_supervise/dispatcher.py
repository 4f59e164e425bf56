"""
Dispatcher

Per-pod entry point: find the host this pod owns, resolve how to reach it and
run the supervised command there through the matching transport.
"""

import time
from typing import Callable, Optional

from loguru import logger

from .assignment import AssignmentResolver
from .cluster import ReplicaGroupGateway
from .configs import ConnectionDefaults, ConnectionDescriptor, Transport
from .errors import AssignmentPendingError
from .inventory import InventoryView
from .transport import CommandResult, TransportBase, get_transport


class Dispatcher:
    """Resolves this instance's host and hands the command to a transport"""

    def __init__(
        self,
        gateway: ReplicaGroupGateway,
        defaults: ConnectionDefaults,
        transport_factory: Optional[Callable[[Transport], TransportBase]] = None,
        api_timeout: Optional[float] = None,
        connect_timeout: float = 30.0,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.gateway = gateway
        self.defaults = defaults
        self.api_timeout = api_timeout
        self.connect_timeout = connect_timeout
        self._transport_factory = transport_factory or (
            lambda kind: get_transport(kind, connect_timeout=self.connect_timeout)
        )
        self._sleep = sleep
        self._clock = clock

    def resolve(
        self,
        inventory_path: str,
        selector: str,
        namespace: str,
        name: str,
        identity: str,
    ) -> ConnectionDescriptor:
        """
        One resolution attempt against fresh inventory and cluster state.

        Raises:
            IdentityNotFoundError, UnassignedError: transient, retry later
            InventoryError, SelectionError, NotFoundError,
            MissingCredentialError, OperationTimeoutError
        """
        host_set = InventoryView.load_selected(inventory_path, selector)
        state = self.gateway.get_state(namespace, name, timeout=self.api_timeout)
        host = AssignmentResolver.resolve_host_for_instance(host_set, state, identity)
        return AssignmentResolver.resolve_connection(host, self.defaults)

    def wait_for_assignment(
        self,
        inventory_path: str,
        selector: str,
        namespace: str,
        name: str,
        identity: str,
        retry_timeout: float = 0.0,
        retry_interval: float = 5.0,
    ) -> ConnectionDescriptor:
        """
        Retry ``resolve`` while this instance has no host yet (it is not
        listed, or the group is over-scaled). Other errors are raised at once.
        """
        deadline = self._clock() + retry_timeout
        attempt = 0
        while True:
            try:
                return self.resolve(inventory_path, selector, namespace, name, identity)
            except AssignmentPendingError as exc:
                attempt += 1
                if self._clock() + retry_interval >= deadline:
                    raise
                logger.info(f"No host for {identity} yet (attempt {attempt}), retry in {retry_interval}s: {exc}")
                self._sleep(retry_interval)

    def run_on(
        self,
        descriptor: ConnectionDescriptor,
        command: str,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        transport = self._transport_factory(descriptor.transport)
        logger.info(
            f"Supervising `{command}` on {descriptor.host_name} as {descriptor.user} "
            f"via {descriptor.transport.value}"
        )
        return transport.run(descriptor, command, timeout=timeout)

    def dispatch(
        self,
        inventory_path: str,
        selector: str,
        namespace: str,
        name: str,
        identity: str,
        command: str,
        retry_timeout: float = 0.0,
        retry_interval: float = 5.0,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        descriptor = self.wait_for_assignment(
            inventory_path,
            selector,
            namespace,
            name,
            identity,
            retry_timeout=retry_timeout,
            retry_interval=retry_interval,
        )
        return self.run_on(descriptor, command, timeout=timeout)
