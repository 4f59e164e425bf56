import os
import stat
from pathlib import Path

import pytest

from kube_supervise import cli, dispatcher
from kube_supervise.configs import Transport
from kube_supervise.scripts import generate_shell_script, shell_script_text
from kube_supervise.transport import CommandResult


class _RecordingTransport:
    def __init__(self, exit_code: int = 0):
        self.exit_code = exit_code
        self.calls = []

    def __call__(self, kind, connect_timeout=30.0):
        return self

    def run(self, descriptor, command, timeout=None):
        self.calls.append((descriptor, command))
        return CommandResult(
            host=descriptor.host_name,
            success=self.exit_code == 0,
            stdout="",
            stderr="",
            return_code=self.exit_code,
        )


@pytest.fixture
def fake_gateway(gateway, monkeypatch):
    monkeypatch.setattr(cli, "make_gateway", lambda kind: gateway)
    return gateway


@pytest.fixture
def transport(monkeypatch) -> _RecordingTransport:
    t = _RecordingTransport()
    monkeypatch.setattr(dispatcher, "get_transport", t)
    monkeypatch.setattr(cli, "get_transport", t)
    return t


def _exit_code(argv) -> int:
    with pytest.raises(SystemExit) as exc:
        cli.main(argv)
    return exc.value.code


# === rc ===

def test_rc_scales_group_to_inventory(fake_gateway, inventory_path):
    fake_gateway.add_group("ns", "sup", replicas=1)

    code = _exit_code(["rc", "appservers", "--inventory", inventory_path, "--rc", "sup", "--namespace", "ns"])

    assert code == 0
    assert fake_gateway.writes == [("ns", "sup", 3)]


def test_rc_name_from_environment(fake_gateway, inventory_path, monkeypatch):
    fake_gateway.add_group("ns", "sup", replicas=5)
    monkeypatch.setenv("KUBE_SUPERVISE_RC", "sup")
    monkeypatch.setenv("KUBE_SUPERVISE_NAMESPACE", "ns")

    assert _exit_code(["rc", "frontend", "--inventory", inventory_path]) == 0
    assert fake_gateway.writes == [("ns", "sup", 2)]


def test_rc_creates_missing_group_from_template(fake_gateway, inventory_path, tmp_path: Path):
    template = tmp_path / "rc.yml"
    template.write_text(
        "apiVersion: v1\n"
        "kind: ReplicationController\n"
        "metadata:\n"
        "  name: sup-from-template\n"
        "spec:\n"
        "  selector:\n"
        "    app: sup\n"
    )

    code = _exit_code([
        "rc", "appservers", "--inventory", inventory_path, "--template", str(template), "--namespace", "ns",
    ])

    assert code == 0
    namespace, name, manifest, replicas = fake_gateway.created[0]
    assert (namespace, name, replicas) == ("ns", "sup-from-template", 3)
    assert manifest["spec"]["selector"] == {"app": "sup"}


def test_rc_without_name_fails_before_cluster_access(fake_gateway, inventory_path):
    code = _exit_code(["rc", "appservers", "--inventory", inventory_path, "--namespace", "ns"])

    assert code == 1
    assert fake_gateway.reads == 0


def test_rc_unknown_selector_fails(fake_gateway, inventory_path):
    fake_gateway.add_group("ns", "sup", replicas=1)

    code = _exit_code(["rc", "db", "--inventory", inventory_path, "--rc", "sup", "--namespace", "ns"])

    assert code == 1
    assert fake_gateway.writes == []


# === pod ===

def test_pod_runs_command_on_assigned_host(fake_gateway, transport, inventory_path, monkeypatch):
    fake_gateway.add_group("ns", "sup", replicas=3, running=("sup-x", "sup-y", "sup-z"))
    monkeypatch.setenv("HOSTNAME", "sup-z")
    monkeypatch.setenv("KUBE_SUPERVISE_PRIVATEKEY", "/keys/default.pem")

    code = _exit_code([
        "--port", "2200",
        "pod", "--inventory", inventory_path, "--rc", "sup", "--namespace", "ns",
        "appservers", "java", "-jar", "app.jar",
    ])

    assert code == 0
    descriptor, command = transport.calls[0]
    assert descriptor.host_name == "c"
    # c declares its own port
    assert descriptor.port == 2222
    assert descriptor.user == "ops"
    assert command == "java -jar app.jar"


def test_pod_winrm_host_uses_password_flag(fake_gateway, transport, inventory_path):
    fake_gateway.add_group("ns", "sup", replicas=3, running=("sup-x", "sup-y", "sup-z"))

    code = _exit_code([
        "pod", "--inventory", inventory_path, "--rc", "sup", "--namespace", "ns",
        "--identity", "sup-y", "--password", "pw", "appservers", "run.exe",
    ])

    assert code == 0
    descriptor, _ = transport.calls[0]
    assert descriptor.transport == Transport.WINRM
    assert descriptor.password == "pw"


def test_pod_unassigned_instance_fails_without_running(fake_gateway, transport, inventory_path):
    fake_gateway.add_group("ns", "sup", replicas=2, running=("w-0", "w-1", "w-2"))

    code = _exit_code([
        "pod", "--inventory", inventory_path, "--rc", "sup", "--namespace", "ns",
        "--identity", "w-2", "--retry-timeout", "0", "frontend", "true",
    ])

    assert code == 1
    assert transport.calls == []


def test_pod_remote_failure_is_exit_code_one(fake_gateway, transport, inventory_path):
    fake_gateway.add_group("ns", "sup", replicas=3, running=("sup-x",))
    transport.exit_code = 7

    code = _exit_code([
        "pod", "--inventory", inventory_path, "--rc", "sup", "--namespace", "ns",
        "--identity", "sup-x", "appservers", "false",
    ])

    assert code == 1


def test_pod_generates_shell_script(fake_gateway, transport, inventory_path, tmp_path: Path):
    fake_gateway.add_group("ns", "sup", replicas=3, running=("sup-x",))
    script = tmp_path / "bin" / "remote-shell"

    code = _exit_code([
        "pod", "--inventory", inventory_path, "--rc", "sup", "--namespace", "ns",
        "--identity", "sup-x", "--bash", str(script), "appservers", "run",
    ])

    assert code == 0
    assert script.read_text().endswith("kube-supervise pod appservers bash\n")


# === run ===

def test_run_uses_explicit_host(transport):
    code = _exit_code([
        "run", "--host", "10.0.0.5", "--user", "deploy", "--privatekey", "/k", "--command", "uptime",
    ])

    assert code == 0
    descriptor, command = transport.calls[0]
    assert descriptor.address == "10.0.0.5"
    assert descriptor.port == 22
    assert command == "uptime"


def test_run_without_key_fails(transport):
    code = _exit_code(["run", "--host", "10.0.0.5", "--user", "deploy", "--command", "uptime"])

    assert code == 1
    assert transport.calls == []


# === scripts ===

def test_shell_script_text_per_transport():
    assert shell_script_text(Transport.SSH, "appservers").splitlines() == [
        "#!/bin/sh",
        "echo opening shell on remote machine...",
        "kube-supervise pod appservers bash",
    ]
    assert shell_script_text(Transport.WINRM, "win").endswith("kube-supervise pod win PowerShell\n")


def test_generate_shell_script_replaces_read_only_script(tmp_path: Path):
    path = tmp_path / "remote-shell"

    generate_shell_script(str(path), Transport.SSH, "appservers")
    generate_shell_script(str(path), Transport.WINRM, "appservers")

    assert "PowerShell" in path.read_text()
    assert stat.S_IMODE(os.stat(path).st_mode) == 0o555
