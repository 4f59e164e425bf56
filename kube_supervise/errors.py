"""
Error Types

Every failure the assignment engine can report has its own exception class so
that callers can pick a retry policy per kind. Nothing in this package retries
on its own.
"""

from typing import Optional


class SuperviseError(Exception):
    """Base class for all kube-supervise errors"""

    kind = "SuperviseError"


class InventoryError(SuperviseError):
    """Inventory source is unreadable or malformed"""

    kind = "InventoryError"


class SelectionError(SuperviseError):
    """No inventory hosts match the selector"""

    kind = "SelectionError"

    def __init__(self, selector: str, message: Optional[str] = None):
        super().__init__(message or f"no hosts match selector {selector!r}")
        self.selector = selector


class NotFoundError(SuperviseError):
    """The replica group does not exist"""

    kind = "NotFoundError"

    def __init__(self, namespace: str, name: str, message: Optional[str] = None):
        super().__init__(message or f"replica group {namespace}/{name} not found")
        self.namespace = namespace
        self.name = name


class ConflictError(SuperviseError):
    """An optimistic write lost a race; re-read and retry"""

    kind = "ConflictError"


class AssignmentPendingError(SuperviseError):
    """The calling instance has no host yet. Transient while the group scales."""

    kind = "AssignmentPendingError"


class IdentityNotFoundError(AssignmentPendingError):
    """The caller's identity is not among the listed running instances"""

    kind = "IdentityNotFoundError"

    def __init__(self, identity: str, running: int):
        super().__init__(
            f"instance {identity!r} is not among the {running} running instances"
        )
        self.identity = identity


class UnassignedError(AssignmentPendingError):
    """The caller's ordinal is beyond the end of the host set"""

    kind = "UnassignedError"

    def __init__(self, identity: str, ordinal: int, host_count: int):
        super().__init__(
            f"instance {identity!r} has ordinal {ordinal} but only {host_count} hosts are available"
        )
        self.identity = identity
        self.ordinal = ordinal
        self.host_count = host_count


class MissingCredentialError(SuperviseError):
    """A host record lacks a credential its transport requires"""

    kind = "MissingCredentialError"

    def __init__(self, host: str, field: str, transport: str):
        super().__init__(f"host {host!r} has no {field} set for {transport} connections")
        self.host = host
        self.field = field
        self.transport = transport


class OperationTimeoutError(SuperviseError, TimeoutError):
    """A blocking call exceeded its caller-supplied budget"""

    kind = "TimeoutError"


class TransportError(SuperviseError):
    """A remote session could not be opened"""

    kind = "TransportError"
