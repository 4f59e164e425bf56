"""
SSH Transport

Runs the supervised command over SSH using `asyncssh`. Output is streamed
line by line to the local stdout/stderr so that it shows up in the pod log
while the remote process runs.
"""

import asyncio
import sys
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path
from typing import Any, Coroutine, List, Optional, TextIO, TypeVar

import asyncssh
from loguru import logger

from ..configs import ConnectionDescriptor, Transport
from ..errors import OperationTimeoutError, TransportError
from .base import CommandResult, TransportBase, _as_text

T = TypeVar("T")


class SSHTransport(TransportBase):
    """Key-based SSH sessions"""

    def __init__(
        self,
        connect_timeout: float = 30.0,
        keepalive_interval: float = 30.0,
        known_hosts: Optional[str] = None,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
        capture_output: bool = False,
    ):
        """
        Args:
            connect_timeout: SSH connect timeout seconds
            keepalive_interval: SSH keepalive interval seconds
            known_hosts: Path to known_hosts file (or None to disable host key checks)
            stdout: Where remote stdout is streamed (default: sys.stdout)
            stderr: Where remote stderr is streamed (default: sys.stderr)
            capture_output: Also keep the output in the CommandResult
        """
        super().__init__(connect_timeout)
        self.keepalive_interval = keepalive_interval
        self.known_hosts = known_hosts
        self.stdout = stdout
        self.stderr = stderr
        self.capture_output = capture_output

    @property
    def transport_type(self) -> Transport:
        return Transport.SSH

    def _run_coro(self, coro: Coroutine[Any, Any, T]) -> T:
        """Run coroutine from sync code.

        If called from within an existing event loop, it runs the coroutine in
        a background thread to avoid "Cannot run the event loop while another
        loop is running".
        """
        try:
            asyncio.get_running_loop()
        except RuntimeError:
            return asyncio.run(coro)

        with ThreadPoolExecutor(max_workers=1) as executor:
            fut = executor.submit(asyncio.run, coro)
            return fut.result()

    async def _connect(self, descriptor: ConnectionDescriptor) -> asyncssh.SSHClientConnection:
        client_keys: Optional[List[str]] = None
        if descriptor.private_key:
            client_keys = [str(Path(descriptor.private_key).expanduser())]

        return await asyncssh.connect(
            descriptor.address,
            port=descriptor.port,
            username=descriptor.user,
            client_keys=client_keys,
            known_hosts=self.known_hosts,
            connect_timeout=self.connect_timeout,
            keepalive_interval=self.keepalive_interval,
        )

    async def _pump(self, reader: Any, sink: TextIO, captured: List[str]) -> None:
        async for line in reader:
            text = _as_text(line)
            sink.write(text)
            sink.flush()
            if self.capture_output:
                captured.append(text)

    async def _run_one(
        self,
        descriptor: ConnectionDescriptor,
        command: str,
        timeout: Optional[float],
    ) -> CommandResult:
        out: List[str] = []
        err: List[str] = []
        stdout = self.stdout or sys.stdout
        stderr = self.stderr or sys.stderr

        async with await self._connect(descriptor) as conn:
            logger.info(f"Connected to {descriptor.host_name} ({descriptor.address}:{descriptor.port}) over SSH")
            async with conn.create_process(command) as process:
                pumps = asyncio.gather(
                    self._pump(process.stdout, stdout, out),
                    self._pump(process.stderr, stderr, err),
                )
                await asyncio.wait_for(pumps, timeout=timeout)
                completed = await process.wait(check=False)

        exit_status = completed.exit_status if completed.exit_status is not None else -1
        return CommandResult(
            host=descriptor.host_name,
            success=exit_status == 0,
            stdout="".join(out),
            stderr="".join(err),
            return_code=int(exit_status),
        )

    def run(
        self,
        descriptor: ConnectionDescriptor,
        command: str,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        try:
            return self._run_coro(self._run_one(descriptor, command, timeout))
        except asyncio.TimeoutError as e:
            raise OperationTimeoutError(
                f"SSH command on {descriptor.host_name} timed out"
            ) from e
        except (asyncssh.Error, OSError) as e:
            raise TransportError(
                f"SSH session to {descriptor.user}@{descriptor.address}:{descriptor.port} failed: {e}"
            ) from e
