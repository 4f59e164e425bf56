"""
Replica Count Synchronizer

Brings the supervisor replica group's desired count in line with the number
of selected inventory hosts. A reconcile is a single read, compare and (at
most one) write; it never retries and never drains instances on shrink.
Which pods go away on a scale-down is up to the control plane.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional

from loguru import logger

from ..cluster import ReplicaGroupGateway
from ..configs import HostSet
from ..errors import NotFoundError
from ..inventory import InventoryView
from .resolver import AssignmentResolver

ACTION_UNCHANGED = "unchanged"
ACTION_SCALED = "scaled"
ACTION_CREATED = "created"


@dataclass(frozen=True)
class ReconcileResult:
    """Outcome of one reconcile pass"""
    namespace: str
    name: str
    host_count: int
    # None when the group was created by this pass
    previous_replicas: Optional[int]
    delta: int
    action: str

    @property
    def changed(self) -> bool:
        return self.action != ACTION_UNCHANGED


class Synchronizer:
    """Reconciles a replica group against an inventory host group"""

    def __init__(self, gateway: ReplicaGroupGateway):
        self.gateway = gateway

    def reconcile(
        self,
        inventory_source: str,
        selector: str,
        namespace: str,
        name: str,
        template: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> ReconcileResult:
        """
        Load the selected hosts and reconcile the group against them.

        Args:
            inventory_source: Path to the inventory file
            selector: Inventory group whose hosts need supervisors
            namespace: Namespace of the replica group
            name: Name of the replica group
            template: Manifest used to create the group if it is absent.
                Without one, a missing group raises NotFoundError.
            timeout: Per-call timeout for control-plane requests

        Raises:
            InventoryError, SelectionError, NotFoundError, ConflictError,
            OperationTimeoutError
        """
        host_set = InventoryView.load_selected(inventory_source, selector)
        return self.reconcile_hosts(host_set, namespace, name, template=template, timeout=timeout)

    def reconcile_hosts(
        self,
        host_set: HostSet,
        namespace: str,
        name: str,
        template: Optional[Dict[str, Any]] = None,
        timeout: Optional[float] = None,
    ) -> ReconcileResult:
        """Reconcile against an already selected host set"""
        host_count = len(host_set)

        try:
            state = self.gateway.get_state(namespace, name, timeout=timeout)
        except NotFoundError:
            if template is None:
                raise
            logger.info(f"Replica group {namespace}/{name} does not exist, creating it for {host_count} hosts")
            self.gateway.create_group(namespace, name, template, host_count, timeout=timeout)
            return ReconcileResult(
                namespace=namespace,
                name=name,
                host_count=host_count,
                previous_replicas=None,
                delta=host_count,
                action=ACTION_CREATED,
            )

        delta = AssignmentResolver.resolve_delta(host_set, state)
        if delta == 0:
            logger.info(f"Replica group {namespace}/{name} already has {host_count} replicas")
            action = ACTION_UNCHANGED
        else:
            logger.info(
                f"Replica group {namespace}/{name} has {state.desired_replicas} replicas "
                f"for {host_count} hosts, applying delta {delta:+d}"
            )
            self.gateway.set_desired_replicas(
                namespace,
                name,
                host_count,
                expected_version=state.resource_version,
                timeout=timeout,
            )
            action = ACTION_SCALED

        return ReconcileResult(
            namespace=namespace,
            name=name,
            host_count=host_count,
            previous_replicas=state.desired_replicas,
            delta=delta,
            action=action,
        )
