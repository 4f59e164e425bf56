"""
Transport Module

SSH and WinRM adapters behind one interface.
"""

from typing import Dict, Type

from ..configs import Transport
from .base import CommandResult, TransportBase
from .ssh_transport import SSHTransport
from .winrm_transport import WinRMTransport

_TRANSPORTS: Dict[Transport, Type[TransportBase]] = {
    Transport.SSH: SSHTransport,
    Transport.WINRM: WinRMTransport,
}


def get_transport(kind: Transport, connect_timeout: float = 30.0) -> TransportBase:
    """Create the transport adapter for ``kind``"""
    try:
        transport_cls = _TRANSPORTS[Transport(kind)]
    except KeyError:
        raise ValueError(f"Unsupported transport: {kind}") from None
    return transport_cls(connect_timeout=connect_timeout)


__all__ = [
    "CommandResult",
    "TransportBase",
    "SSHTransport",
    "WinRMTransport",
    "get_transport",
]
