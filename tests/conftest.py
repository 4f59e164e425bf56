import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest

from kube_supervise.cluster import ReplicaGroupGateway
from kube_supervise.configs import GroupKind, ReplicaGroupState
from kube_supervise.errors import ConflictError, NotFoundError


INVENTORY_TEXT = """\
# supervised hosts
[appservers]
a ansible_host=10.0.0.1 ansible_user=deploy ansible_ssh_private_key_file=/keys/a.pem
b ansible_host=10.0.0.2 ansible_connection=winrm ansible_user=Administrator
c:2222 ansible_host=10.0.0.3

[appservers:vars]
ansible_user=ops

[webservers]
w1
w2 ansible_port=8022

[frontend:children]
webservers
"""


class FakeGateway(ReplicaGroupGateway):
    """In-memory replica group store that records every write"""

    def __init__(self, kind: GroupKind = GroupKind.STATEFUL_SET):
        super().__init__(kind)
        self.groups: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self.writes: List[Tuple[str, str, int]] = []
        self.created: List[Tuple[str, str, Dict[str, Any], int]] = []
        self.reads = 0
        self.fail_writes_with: Optional[Exception] = None

    def add_group(self, namespace: str, name: str, replicas: int, running=(), version: str = "1") -> None:
        self.groups[(namespace, name)] = {
            "replicas": replicas,
            "running": tuple(running),
            "version": version,
        }

    def _group(self, namespace: str, name: str) -> Dict[str, Any]:
        try:
            return self.groups[(namespace, name)]
        except KeyError:
            raise NotFoundError(namespace, name) from None

    def get_state(self, namespace, name, timeout=None):
        self.reads += 1
        group = self._group(namespace, name)
        return ReplicaGroupState(
            namespace=namespace,
            name=name,
            kind=self.kind,
            desired_replicas=group["replicas"],
            running_instances=group["running"],
            resource_version=group["version"],
        )

    def set_desired_replicas(self, namespace, name, replicas, expected_version=None, timeout=None):
        group = self._group(namespace, name)
        if self.fail_writes_with is not None:
            raise self.fail_writes_with
        if expected_version is not None and expected_version != group["version"]:
            raise ConflictError(f"{namespace}/{name} changed")
        self.writes.append((namespace, name, replicas))
        group["replicas"] = replicas
        group["version"] = str(int(group["version"]) + 1)

    def list_running_instances(self, namespace, name, timeout=None):
        return self._group(namespace, name)["running"]

    def create_group(self, namespace, name, manifest, replicas, timeout=None):
        self.created.append((namespace, name, manifest, replicas))
        self.add_group(namespace, name, replicas)
        return self.get_state(namespace, name)


@pytest.fixture
def inventory_path(tmp_path: Path) -> str:
    path = tmp_path / "inventory"
    path.write_text(INVENTORY_TEXT)
    return str(path)


@pytest.fixture
def gateway() -> FakeGateway:
    return FakeGateway()


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep the caller's KUBE_SUPERVISE_* settings out of the tests"""
    for name in list(os.environ):
        if name.startswith("KUBE_SUPERVISE_"):
            monkeypatch.delenv(name)
    monkeypatch.delenv("HOSTNAME", raising=False)
