"""
WinRM Transport

Runs the supervised command on Windows hosts through `pywinrm`. The call is
blocking; when a command timeout is given it runs on a worker thread and the
wait is bounded.
"""

import sys
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from typing import Optional, TextIO

import requests
import winrm
from loguru import logger
from winrm.exceptions import WinRMError, WinRMTransportError

from ..configs import ConnectionDescriptor, Transport
from ..errors import OperationTimeoutError, TransportError
from .base import CommandResult, TransportBase, _as_text

HTTPS_PORT = 5986


class WinRMTransport(TransportBase):
    """NTLM-authenticated WinRM sessions"""

    def __init__(
        self,
        connect_timeout: float = 30.0,
        operation_timeout: float = 20.0,
        auth_transport: str = "ntlm",
        validate_certificates: bool = False,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
    ):
        super().__init__(connect_timeout)
        self.operation_timeout = operation_timeout
        self.auth_transport = auth_transport
        self.validate_certificates = validate_certificates
        self.stdout = stdout
        self.stderr = stderr

    @property
    def transport_type(self) -> Transport:
        return Transport.WINRM

    def endpoint(self, descriptor: ConnectionDescriptor) -> str:
        scheme = "https" if descriptor.port == HTTPS_PORT else "http"
        return f"{scheme}://{descriptor.address}:{descriptor.port}/wsman"

    def _session(self, descriptor: ConnectionDescriptor) -> winrm.Session:
        # pywinrm requires read_timeout_sec > operation_timeout_sec
        read_timeout = max(self.connect_timeout, self.operation_timeout + 10)
        return winrm.Session(
            self.endpoint(descriptor),
            auth=(descriptor.user, descriptor.password),
            transport=self.auth_transport,
            server_cert_validation="validate" if self.validate_certificates else "ignore",
            operation_timeout_sec=self.operation_timeout,
            read_timeout_sec=read_timeout,
        )

    def _run_blocking(self, descriptor: ConnectionDescriptor, command: str) -> CommandResult:
        session = self._session(descriptor)
        logger.info(f"Running command on {descriptor.host_name} ({self.endpoint(descriptor)}) over WinRM")
        response = session.run_cmd(command)

        stdout = _as_text(response.std_out)
        stderr = _as_text(response.std_err)
        (self.stdout or sys.stdout).write(stdout)
        (self.stderr or sys.stderr).write(stderr)

        return CommandResult(
            host=descriptor.host_name,
            success=response.status_code == 0,
            stdout=stdout,
            stderr=stderr,
            return_code=int(response.status_code),
        )

    def run(
        self,
        descriptor: ConnectionDescriptor,
        command: str,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        try:
            if timeout is None:
                return self._run_blocking(descriptor, command)

            executor = ThreadPoolExecutor(max_workers=1)
            try:
                fut = executor.submit(self._run_blocking, descriptor, command)
                try:
                    return fut.result(timeout=timeout)
                except FutureTimeoutError:
                    # The worker thread is not interrupted; pywinrm's read timeout bounds it
                    logger.warning(
                        f"WinRM command on {descriptor.host_name} exceeded {timeout}s; "
                        f"it may still be running on the remote host"
                    )
                    raise
            finally:
                executor.shutdown(wait=False)
        except (FutureTimeoutError, requests.exceptions.Timeout) as e:
            raise OperationTimeoutError(
                f"WinRM command on {descriptor.host_name} timed out"
            ) from e
        except (WinRMError, WinRMTransportError, requests.exceptions.RequestException) as e:
            raise TransportError(
                f"WinRM session to {descriptor.user}@{self.endpoint(descriptor)} failed: {e}"
            ) from e
