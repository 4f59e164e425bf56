"""
Kubernetes Replica Group Gateway

Implements ReplicaGroupGateway on top of the official Kubernetes Python
client. ReplicationControllers are read and written through CoreV1Api,
StatefulSets through AppsV1Api; the running instances of either are the Pods
selected by the group's label selector.
"""

import copy
import os
import re
from typing import Any, Callable, Dict, List, Optional, Tuple, TypeVar

from kubernetes import client, config
from kubernetes.client.exceptions import ApiException
from loguru import logger
from urllib3.exceptions import MaxRetryError
from urllib3.exceptions import TimeoutError as Urllib3TimeoutError

from ..configs import GroupKind, ReplicaGroupState
from ..errors import ConflictError, NotFoundError, OperationTimeoutError
from .base import ReplicaGroupGateway

T = TypeVar("T")

SERVICE_ACCOUNT_NAMESPACE_PATH = "/var/run/secrets/kubernetes.io/serviceaccount/namespace"
POD_INDEX_LABEL = "apps.kubernetes.io/pod-index"

_ORDINAL_SUFFIX = re.compile(r"-(\d+)$")


def load_api_client() -> client.ApiClient:
    """Use the in-cluster service account when available, else kubeconfig"""
    try:
        config.load_incluster_config()
        logger.debug("Using in-cluster Kubernetes configuration")
    except config.ConfigException:
        config.load_kube_config()
        logger.debug("Using kubeconfig Kubernetes configuration")
    return client.ApiClient()


def default_namespace(service_account_path: str = SERVICE_ACCOUNT_NAMESPACE_PATH) -> str:
    """Namespace of the pod we run in, else the kubeconfig context's, else "default"."""
    if os.path.exists(service_account_path):
        with open(service_account_path, 'r') as f:
            namespace = f.read().strip()
        if namespace:
            return namespace

    try:
        _, active = config.list_kube_config_contexts()
    except (config.ConfigException, OSError) as e:
        logger.debug(f"No kubeconfig context available: {e}")
        return "default"

    return (active or {}).get("context", {}).get("namespace") or "default"


def _label_selector(labels: Optional[Dict[str, str]]) -> str:
    return ",".join(f"{k}={v}" for k, v in sorted((labels or {}).items()))


def _pod_ordinal(pod: Any) -> Optional[int]:
    labels = pod.metadata.labels or {}
    index = labels.get(POD_INDEX_LABEL)
    if index is not None and str(index).isdigit():
        return int(index)
    match = _ORDINAL_SUFFIX.search(pod.metadata.name)
    return int(match.group(1)) if match else None


def _is_running(pod: Any) -> bool:
    if pod.metadata.deletion_timestamp is not None:
        return False
    return pod.status is not None and pod.status.phase == "Running"


def _is_controlled_by(pod: Any, kind: GroupKind, name: str) -> bool:
    controllers = [r for r in (pod.metadata.owner_references or []) if r.controller]
    return any(r.kind == kind.value and r.name == name for r in controllers)


class KubernetesReplicaGroupGateway(ReplicaGroupGateway):
    """
    Replica group gateway backed by the Kubernetes API.

    Instance ordering:
    - StatefulSet pods are ordered by their ordinal (pod-index label, or the
      ``-N`` suffix of the pod name), and the state carries those ordinals.
      A replacement pod gets the ordinal of the pod it replaces, so no other
      pod's host changes.
    - ReplicationController pods have no ordinal of their own; they are
      ordered by creation time, then name. Losing an earlier pod shifts the
      position of every later one, so its replacement can be handed a host
      that a still-running pod supervises.
    """

    def __init__(
        self,
        kind: GroupKind = GroupKind.STATEFUL_SET,
        api_client: Optional[client.ApiClient] = None,
        core_api: Any = None,
        apps_api: Any = None,
    ):
        super().__init__(kind)
        self._api_client = api_client
        self._core_api = core_api
        self._apps_api = apps_api
        if kind == GroupKind.REPLICATION_CONTROLLER:
            logger.warning(
                "ReplicationController pods have no stable ordinal; a replaced pod may be "
                "assigned a host that another pod still supervises. Use a StatefulSet."
            )

    def initialize_client(self) -> None:
        """Create the API objects that were not injected"""
        if self._api_client is None:
            self._api_client = load_api_client()
        if self._core_api is None:
            self._core_api = client.CoreV1Api(self._api_client)
        if self._apps_api is None:
            self._apps_api = client.AppsV1Api(self._api_client)

    @property
    def core_api(self) -> Any:
        if self._core_api is None:
            self.initialize_client()
        return self._core_api

    @property
    def apps_api(self) -> Any:
        if self._apps_api is None:
            self.initialize_client()
        return self._apps_api

    # ==================== Error mapping ====================

    def _call(
        self,
        description: str,
        namespace: str,
        name: str,
        func: Callable[..., T],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        try:
            return func(*args, **kwargs)
        except ApiException as e:
            if e.status == 404:
                raise NotFoundError(namespace, name) from e
            if e.status == 409:
                raise ConflictError(
                    f"{description} of {self.kind.value} {namespace}/{name} conflicted: {e.reason}"
                ) from e
            raise
        except Urllib3TimeoutError as e:
            raise OperationTimeoutError(
                f"{description} of {self.kind.value} {namespace}/{name} timed out"
            ) from e
        except MaxRetryError as e:
            if isinstance(e.reason, Urllib3TimeoutError):
                raise OperationTimeoutError(
                    f"{description} of {self.kind.value} {namespace}/{name} timed out"
                ) from e
            raise

    # ==================== Group object access ====================

    def _read(self, namespace: str, name: str, timeout: Optional[float]) -> Any:
        if self.kind == GroupKind.STATEFUL_SET:
            func = self.apps_api.read_namespaced_stateful_set
        else:
            func = self.core_api.read_namespaced_replication_controller
        return self._call("read", namespace, name, func, name, namespace, _request_timeout=timeout)

    def _replace(self, namespace: str, name: str, body: Any, timeout: Optional[float]) -> Any:
        if self.kind == GroupKind.STATEFUL_SET:
            func = self.apps_api.replace_namespaced_stateful_set
        else:
            func = self.core_api.replace_namespaced_replication_controller
        return self._call("replace", namespace, name, func, name, namespace, body, _request_timeout=timeout)

    def _create(self, namespace: str, name: str, body: Dict[str, Any], timeout: Optional[float]) -> Any:
        if self.kind == GroupKind.STATEFUL_SET:
            func = self.apps_api.create_namespaced_stateful_set
        else:
            func = self.core_api.create_namespaced_replication_controller
        return self._call("create", namespace, name, func, namespace, body, _request_timeout=timeout)

    def _selector_labels(self, obj: Any) -> Dict[str, str]:
        selector = obj.spec.selector
        if self.kind == GroupKind.STATEFUL_SET:
            return dict(selector.match_labels or {}) if selector is not None else {}
        return dict(selector or {})

    def _running_pods(
        self,
        namespace: str,
        name: str,
        obj: Any,
        timeout: Optional[float],
    ) -> Tuple[Tuple[str, ...], Tuple[int, ...]]:
        """Running pod names in ordinal order, and their ordinals (StatefulSet only)"""
        selector = _label_selector(self._selector_labels(obj))
        if not selector:
            logger.warning(f"{self.kind.value} {namespace}/{name} has no label selector; no instances listed")
            return (), ()

        pods = self._call(
            "list pods", namespace, name,
            self.core_api.list_namespaced_pod,
            namespace, label_selector=selector, _request_timeout=timeout,
        )
        running: List[Any] = [
            p for p in pods.items
            if _is_running(p) and _is_controlled_by(p, self.kind, name)
        ]

        if self.kind == GroupKind.STATEFUL_SET:
            indexed = []
            for p in running:
                ordinal = _pod_ordinal(p)
                if ordinal is None:
                    logger.warning(f"Pod {namespace}/{p.metadata.name} has no ordinal; not listed")
                    continue
                indexed.append((ordinal, p.metadata.name))
            indexed.sort()
            return tuple(n for _, n in indexed), tuple(o for o, _ in indexed)

        running.sort(key=lambda p: (
            p.metadata.creation_timestamp.isoformat() if p.metadata.creation_timestamp else "",
            p.metadata.name,
        ))
        return tuple(p.metadata.name for p in running), ()

    def _to_state(
        self,
        namespace: str,
        name: str,
        obj: Any,
        running: Tuple[str, ...] = (),
        ordinals: Tuple[int, ...] = (),
    ) -> ReplicaGroupState:
        return ReplicaGroupState(
            namespace=namespace,
            name=name,
            kind=self.kind,
            desired_replicas=int(obj.spec.replicas or 0),
            running_instances=running,
            ordinals=ordinals,
            resource_version=obj.metadata.resource_version,
        )

    # ==================== Gateway operations ====================

    def get_state(
        self,
        namespace: str,
        name: str,
        timeout: Optional[float] = None,
    ) -> ReplicaGroupState:
        obj = self._read(namespace, name, timeout)
        running, ordinals = self._running_pods(namespace, name, obj, timeout)
        state = self._to_state(namespace, name, obj, running, ordinals)
        logger.debug(
            f"{self.kind.value} {namespace}/{name}: desired={state.desired_replicas} "
            f"running={list(state.running_instances)}"
        )
        return state

    def set_desired_replicas(
        self,
        namespace: str,
        name: str,
        replicas: int,
        expected_version: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> None:
        if replicas < 0:
            raise ValueError(f"replicas must be >= 0, got {replicas}")

        obj = self._read(namespace, name, timeout)
        if expected_version is not None and obj.metadata.resource_version != expected_version:
            raise ConflictError(
                f"{self.kind.value} {namespace}/{name} changed since it was read "
                f"(version {expected_version} -> {obj.metadata.resource_version})"
            )

        previous = obj.spec.replicas
        obj.spec.replicas = replicas
        # The replace carries the read resourceVersion, so a concurrent
        # write between read and replace is rejected with 409.
        self._replace(namespace, name, obj, timeout)
        logger.info(f"Scaled {self.kind.value} {namespace}/{name} from {previous} to {replicas} replicas")

    def list_running_instances(
        self,
        namespace: str,
        name: str,
        timeout: Optional[float] = None,
    ) -> Tuple[str, ...]:
        obj = self._read(namespace, name, timeout)
        running, _ = self._running_pods(namespace, name, obj, timeout)
        return running

    def create_group(
        self,
        namespace: str,
        name: str,
        manifest: Dict[str, Any],
        replicas: int,
        timeout: Optional[float] = None,
    ) -> ReplicaGroupState:
        manifest_kind = manifest.get("kind")
        if manifest_kind and manifest_kind != self.kind.value:
            raise ValueError(f"Manifest kind {manifest_kind!r} does not match {self.kind.value!r}")

        body = copy.deepcopy(manifest)
        body.setdefault("apiVersion", "apps/v1" if self.kind == GroupKind.STATEFUL_SET else "v1")
        body["kind"] = self.kind.value
        metadata = body.setdefault("metadata", {})
        metadata["name"] = name
        metadata["namespace"] = namespace
        metadata.pop("resourceVersion", None)
        body.setdefault("spec", {})["replicas"] = replicas

        created = self._create(namespace, name, body, timeout)
        logger.info(f"Created {self.kind.value} {namespace}/{name} with {replicas} replicas")
        return self._to_state(namespace, name, created)
