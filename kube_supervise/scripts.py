"""Helper script generation for interactive shells on a pod's host."""

import os
import shlex
from pathlib import Path

from loguru import logger

from .configs import Transport

SCRIPT_MODE = 0o555

_SHELLS = {
    Transport.SSH: "bash",
    Transport.WINRM: "PowerShell",
}


def shell_script_text(transport: Transport, selector: str, program: str = "kube-supervise") -> str:
    shell = _SHELLS[Transport(transport)]
    return (
        "#!/bin/sh\n"
        "echo opening shell on remote machine...\n"
        f"{program} pod {shlex.quote(selector)} {shell}\n"
    )


def generate_shell_script(path: str, transport: Transport, selector: str, program: str = "kube-supervise") -> None:
    """
    Write an executable script that opens an interactive shell on this pod's
    host, e.g. ``kubectl exec -it <pod> -- /usr/local/bin/remote-shell``.
    """
    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    # A previous script is read-only
    if target.exists():
        target.unlink()
    target.write_text(shell_script_text(transport, selector, program))
    os.chmod(target, SCRIPT_MODE)
    logger.debug(f"Generated {Transport(transport).value} shell script at {target}")
