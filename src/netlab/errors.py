"""Exception hierarchy for the lab planner.

All exceptions inherit from NetlabError for consistent handling.
Every error is raised before the in-memory model is touched, so a caller
that catches one can re-prompt without cleaning anything up.
"""

from typing import Any


class NetlabError(Exception):
    """Base exception for all lab planner errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        if self.details:
            return f"{self.message} | Details: {self.details}"
        return self.message


class ParseError(NetlabError):
    """Malformed base-network text or address string."""

    def __init__(self, text: str, reason: str) -> None:
        super().__init__(reason, {"input": text})
        self.text = text


class InvalidReferenceError(NetlabError):
    """An id lookup did not match any device, link or subnet."""

    def __init__(self, kind: str, ref: Any) -> None:
        super().__init__(f"Unknown {kind}: {ref}", {kind: ref})
        self.kind = kind
        self.ref = ref


# Topology Errors
class TopologyError(NetlabError):
    """Base exception for topology-related errors."""


class DuplicateHostnameError(TopologyError):
    """A device with the requested hostname already exists."""

    def __init__(self, hostname: str) -> None:
        super().__init__(f"Device '{hostname}' already exists", {"hostname": hostname})
        self.hostname = hostname


class PortBusyError(TopologyError):
    """The named port is already connected to a neighbor."""

    def __init__(self, hostname: str, port: str) -> None:
        super().__init__(
            f"Port {port} on {hostname} is busy",
            {"device": hostname, "port": port},
        )
        self.hostname = hostname
        self.port = port


class PortNotFoundError(TopologyError):
    """The named port does not exist on the device."""

    def __init__(self, hostname: str, port: str) -> None:
        super().__init__(
            f"Port {port} not found on {hostname}",
            {"device": hostname, "port": port},
        )
        self.hostname = hostname
        self.port = port


class VlanError(TopologyError):
    """Invalid VLAN definition or port assignment."""


# Subnet Errors
class SubnetError(NetlabError):
    """Base exception for subnet forest errors."""


class AlreadySplitError(SubnetError):
    """The subnet has been split; manage its children instead."""

    def __init__(self, subnet_id: int) -> None:
        super().__init__(
            f"Subnet {subnet_id} has been split. Manage its children instead.",
            {"subnet": subnet_id},
        )
        self.subnet_id = subnet_id


class AssignedLeafCannotSplitError(SubnetError):
    """Splitting an assigned subnet was rejected."""

    def __init__(self, subnet_id: int) -> None:
        super().__init__(
            f"Subnet {subnet_id} is assigned and cannot be split",
            {"subnet": subnet_id},
        )
        self.subnet_id = subnet_id


class InvalidPartitionError(SubnetError):
    """Children do not cover the parent range exactly."""


class AllocationError(SubnetError):
    """A sizing requirement cannot be satisfied inside the block."""


# Relay Errors
class ResolutionFailedError(NetlabError):
    """No relay address could be derived for the DHCP server router."""

    def __init__(self, hostname: str) -> None:
        super().__init__(
            f"Could not find an IP for router {hostname}. Please enter manually.",
            {"server": hostname},
        )
        self.hostname = hostname


# Loader Errors
class LabLoadError(NetlabError):
    """Failed to load a lab description from file."""


class LabValidationError(NetlabError):
    """Lab description failed validation."""


class SaveFileError(NetlabError):
    """Failed to read or write a save file."""


# Configuration Errors
class ConfigError(NetlabError):
    """Base exception for configuration errors."""
