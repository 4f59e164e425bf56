"""
Remote Transport Interface

A transport opens a session on one resolved host and runs one command there.
The dispatcher only sees this interface, never the protocol behind it.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

from ..configs import ConnectionDescriptor, Transport


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, str):
        return value
    return str(value)


@dataclass
class CommandResult:
    """Result of a remote command execution"""
    host: str
    success: bool
    stdout: str
    stderr: str
    return_code: int


class TransportBase(ABC):
    """Opens a remote session and runs a command in it"""

    def __init__(self, connect_timeout: float = 30.0):
        self.connect_timeout = connect_timeout

    @property
    @abstractmethod
    def transport_type(self) -> Transport:
        pass

    @abstractmethod
    def run(
        self,
        descriptor: ConnectionDescriptor,
        command: str,
        timeout: Optional[float] = None,
    ) -> CommandResult:
        """
        Run ``command`` on the host described by ``descriptor``.

        A non-zero exit status is reported in the result, not raised.

        Raises:
            TransportError: if the session cannot be opened
            OperationTimeoutError: if connecting or the command exceeds its budget
        """
        pass
