import asyncio
import io
import threading
from dataclasses import dataclass
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import asyncssh
import pytest
import requests
import winrm
from loguru import logger
from winrm.exceptions import InvalidCredentialsError

from kube_supervise.configs import ConnectionDescriptor, Transport
from kube_supervise.errors import OperationTimeoutError, TransportError
from kube_supervise.transport import SSHTransport, WinRMTransport, get_transport


def _ssh_desc(**overrides) -> ConnectionDescriptor:
    values = dict(
        host_name="a",
        address="10.0.0.1",
        port=22,
        transport=Transport.SSH,
        user="deploy",
        private_key="~/keys/a.pem",
    )
    values.update(overrides)
    return ConnectionDescriptor(**values)


def _winrm_desc(**overrides) -> ConnectionDescriptor:
    values = dict(
        host_name="b",
        address="10.0.0.2",
        port=5985,
        transport=Transport.WINRM,
        user="Administrator",
        password="pw",
    )
    values.update(overrides)
    return ConnectionDescriptor(**values)


# ==================== SSH ====================


@dataclass
class _Completed:
    exit_status: Optional[int]


class _Lines:
    def __init__(self, lines: List[Any], hang: bool = False):
        self._lines = list(lines)
        self._hang = hang

    def __aiter__(self):
        return self

    async def __anext__(self):
        if self._lines:
            return self._lines.pop(0)
        if self._hang:
            await asyncio.sleep(10)
        raise StopAsyncIteration


class _FakeProcess:
    def __init__(self, stdout: List[Any], stderr: List[Any], exit_status: Optional[int], hang: bool):
        self.stdout = _Lines(stdout, hang=hang)
        self.stderr = _Lines(stderr)
        self._exit_status = exit_status

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    async def wait(self, check: bool = False):
        return _Completed(self._exit_status)


class _FakeConn:
    def __init__(self, stdout=(), stderr=(), exit_status: Optional[int] = 0, hang: bool = False):
        self._process = _FakeProcess(list(stdout), list(stderr), exit_status, hang)
        self.commands: List[str] = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False

    def create_process(self, command: str):
        self.commands.append(command)
        return self._process


@pytest.fixture
def fake_asyncssh(monkeypatch):
    state: Dict[str, Any] = {"conns": {}, "connects": [], "errors": {}}

    async def fake_connect(host: str, **kwargs):
        state["connects"].append((host, kwargs))
        if host in state["errors"]:
            raise state["errors"][host]
        return state["conns"].setdefault(host, _FakeConn())

    monkeypatch.setattr(asyncssh, "connect", fake_connect)
    return state


def test_ssh_streams_output_and_reports_exit_status(fake_asyncssh):
    conn = _FakeConn(stdout=[b"line 1\n", "line 2\n"], stderr=["warn\n"], exit_status=0)
    fake_asyncssh["conns"]["10.0.0.1"] = conn
    out, err = io.StringIO(), io.StringIO()

    res = SSHTransport(stdout=out, stderr=err, capture_output=True).run(_ssh_desc(), "run-app")

    assert res.success is True
    assert res.return_code == 0
    assert res.host == "a"
    assert out.getvalue() == "line 1\nline 2\n"
    assert err.getvalue() == "warn\n"
    assert res.stdout == "line 1\nline 2\n"
    assert conn.commands == ["run-app"]


def test_ssh_connect_uses_descriptor_values(fake_asyncssh):
    SSHTransport(connect_timeout=7, stdout=io.StringIO(), stderr=io.StringIO()).run(_ssh_desc(port=2222), "true")

    host, kwargs = fake_asyncssh["connects"][0]
    assert host == "10.0.0.1"
    assert kwargs["port"] == 2222
    assert kwargs["username"] == "deploy"
    assert kwargs["connect_timeout"] == 7
    assert len(kwargs["client_keys"]) == 1
    assert not kwargs["client_keys"][0].startswith("~")


def test_ssh_output_is_not_kept_unless_requested(fake_asyncssh):
    fake_asyncssh["conns"]["10.0.0.1"] = _FakeConn(stdout=["x\n"])

    res = SSHTransport(stdout=io.StringIO(), stderr=io.StringIO()).run(_ssh_desc(), "true")

    assert res.stdout == ""


def test_ssh_non_zero_and_missing_exit_status(fake_asyncssh):
    fake_asyncssh["conns"]["10.0.0.1"] = _FakeConn(exit_status=3)
    fake_asyncssh["conns"]["10.0.0.9"] = _FakeConn(exit_status=None)
    transport = SSHTransport(stdout=io.StringIO(), stderr=io.StringIO())

    failed = transport.run(_ssh_desc(), "false")
    lost = transport.run(_ssh_desc(address="10.0.0.9"), "false")

    assert (failed.success, failed.return_code) == (False, 3)
    assert (lost.success, lost.return_code) == (False, -1)


@pytest.mark.parametrize(
    "error",
    [
        asyncssh.DisconnectError(11, "boom"),
        ConnectionRefusedError("refused"),
    ],
)
def test_ssh_session_failures_map_to_transport_error(fake_asyncssh, error):
    fake_asyncssh["errors"]["10.0.0.1"] = error

    with pytest.raises(TransportError):
        SSHTransport().run(_ssh_desc(), "true")


def test_ssh_command_timeout(fake_asyncssh):
    fake_asyncssh["conns"]["10.0.0.1"] = _FakeConn(stdout=["started\n"], hang=True)

    with pytest.raises(OperationTimeoutError):
        SSHTransport(stdout=io.StringIO(), stderr=io.StringIO()).run(_ssh_desc(), "sleep 100", timeout=0.05)


# ==================== WinRM ====================


class _FakeSession:
    instances: List["_FakeSession"] = []
    response = SimpleNamespace(std_out=b"hello\r\n", std_err=b"", status_code=0)
    error: Optional[Exception] = None
    gate: Optional[threading.Event] = None

    def __init__(self, target, auth, **kwargs):
        self.target = target
        self.auth = auth
        self.kwargs = kwargs
        self.commands: List[str] = []
        _FakeSession.instances.append(self)

    def run_cmd(self, command, args=()):
        self.commands.append(command)
        if _FakeSession.gate is not None:
            _FakeSession.gate.wait(5)
        if _FakeSession.error is not None:
            raise _FakeSession.error
        return _FakeSession.response


@pytest.fixture
def fake_winrm(monkeypatch):
    monkeypatch.setattr(_FakeSession, "instances", [])
    monkeypatch.setattr(_FakeSession, "error", None)
    monkeypatch.setattr(_FakeSession, "gate", None)
    monkeypatch.setattr(winrm, "Session", _FakeSession)
    return _FakeSession


def test_winrm_runs_command_with_password_auth(fake_winrm):
    out = io.StringIO()

    res = WinRMTransport(stdout=out, stderr=io.StringIO()).run(_winrm_desc(), "run-app.exe")

    session = fake_winrm.instances[0]
    assert session.target == "http://10.0.0.2:5985/wsman"
    assert session.auth == ("Administrator", "pw")
    assert session.kwargs["transport"] == "ntlm"
    assert session.kwargs["read_timeout_sec"] > session.kwargs["operation_timeout_sec"]
    assert session.commands == ["run-app.exe"]
    assert res.success is True
    assert res.stdout == "hello\r\n"
    assert out.getvalue() == "hello\r\n"


def test_winrm_https_port_uses_https():
    assert WinRMTransport().endpoint(_winrm_desc(port=5986)) == "https://10.0.0.2:5986/wsman"


def test_winrm_exit_code_is_reported(fake_winrm, monkeypatch):
    monkeypatch.setattr(fake_winrm, "response", SimpleNamespace(std_out=b"", std_err=b"oops", status_code=2))

    res = WinRMTransport(stdout=io.StringIO(), stderr=io.StringIO()).run(_winrm_desc(), "x")

    assert res.success is False
    assert res.return_code == 2
    assert res.stderr == "oops"


@pytest.mark.parametrize(
    "error",
    [
        InvalidCredentialsError("bad credentials"),
        requests.exceptions.ConnectionError("refused"),
    ],
)
def test_winrm_failures_map_to_transport_error(fake_winrm, monkeypatch, error):
    monkeypatch.setattr(fake_winrm, "error", error)

    with pytest.raises(TransportError):
        WinRMTransport().run(_winrm_desc(), "x")


def test_winrm_read_timeout_maps_to_operation_timeout(fake_winrm, monkeypatch):
    monkeypatch.setattr(fake_winrm, "error", requests.exceptions.ReadTimeout("slow"))

    with pytest.raises(OperationTimeoutError):
        WinRMTransport().run(_winrm_desc(), "x")


def test_winrm_command_timeout_warns_command_may_still_run(fake_winrm, monkeypatch):
    gate = threading.Event()
    monkeypatch.setattr(fake_winrm, "gate", gate)
    messages: List[str] = []
    sink = logger.add(messages.append, level="WARNING")

    try:
        with pytest.raises(OperationTimeoutError):
            WinRMTransport(stdout=io.StringIO(), stderr=io.StringIO()).run(_winrm_desc(), "x", timeout=0.05)
    finally:
        gate.set()
        logger.remove(sink)

    assert any("may still be running" in m for m in messages)


def test_get_transport_picks_adapter_by_kind():
    assert isinstance(get_transport(Transport.SSH), SSHTransport)
    assert isinstance(get_transport("winrm", connect_timeout=5), WinRMTransport)
    assert get_transport(Transport.WINRM, connect_timeout=5).connect_timeout == 5
