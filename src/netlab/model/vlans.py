"""VLAN database and switch-port VLAN assignment."""

import logging
import re

from netlab.errors import InvalidReferenceError, VlanError
from netlab.model.graph import TopologyGraph
from netlab.model.topology import DeviceClass, Interface

logger = logging.getLogger(__name__)

DEFAULT_VLAN_ID = 1
DEFAULT_VLAN_NAME = "default"
UNKNOWN_VLAN_NAME = "unknown"

_RANGE = re.compile(r"^(\d+)\s*-\s*(\d+)$")


def parse_interface_range(text: str) -> list[str | int]:
    """Parse a port selection such as ``1-5, 8, Gig0/1``.

    Tokens containing letters are kept as port names. Pure numbers and
    ``a-b`` ranges become port numbers (matched against the ``/N``
    suffix of a switch port). Malformed tokens are skipped.

    Example:
        >>> parse_interface_range("3-1, Gig0/2")
        [1, 2, 3, 'Gig0/2']
    """
    selection: list[str | int] = []
    for token in text.split(","):
        token = token.strip()
        if not token:
            continue
        if any(c.isalpha() for c in token):
            selection.append(token)
            continue
        match = _RANGE.match(token)
        if match:
            start, end = sorted((int(match.group(1)), int(match.group(2))))
            selection.extend(range(start, end + 1))
        elif token.isdigit():
            selection.append(int(token))
        else:
            logger.warning("Invalid range format: %s", token)
    return selection


class VlanDatabase:
    """Lab-wide VLAN id to name table. VLAN 1 always exists."""

    def __init__(self) -> None:
        self._vlans: dict[int, str] = {DEFAULT_VLAN_ID: DEFAULT_VLAN_NAME}

    def add(self, vlan_id: int, name: str) -> None:
        """Define (or rename) a VLAN."""
        if not 1 <= vlan_id <= 4094:
            raise VlanError(f"VLAN id must be between 1 and 4094, got {vlan_id}", {"vlan": vlan_id})
        self._vlans[vlan_id] = name
        logger.debug("VLAN %d (%s) defined", vlan_id, name)

    def exists(self, vlan_id: int) -> bool:
        return vlan_id in self._vlans

    def name(self, vlan_id: int) -> str:
        return self._vlans.get(vlan_id, UNKNOWN_VLAN_NAME)

    def items(self) -> list[tuple[int, str]]:
        return sorted(self._vlans.items())

    def reset(self) -> None:
        self._vlans = {DEFAULT_VLAN_ID: DEFAULT_VLAN_NAME}

    def __len__(self) -> int:
        return len(self._vlans)

    def __contains__(self, vlan_id: object) -> bool:
        return vlan_id in self._vlans

    def delete(self, vlan_id: int, graph: TopologyGraph) -> int:
        """Remove a VLAN and move its ports back to VLAN 1.

        Returns:
            Number of ports reset

        Raises:
            VlanError: For the default VLAN
            InvalidReferenceError: If the VLAN is not defined
        """
        if vlan_id == DEFAULT_VLAN_ID:
            raise VlanError("Cannot delete the Default VLAN.", {"vlan": vlan_id})
        if vlan_id not in self._vlans:
            raise InvalidReferenceError("vlan", vlan_id)

        reset = 0
        for _, device in graph.devices():
            for port in device.ports:
                if port.vlan_id == vlan_id:
                    port.vlan_id = DEFAULT_VLAN_ID
                    port.is_trunk = False
                    reset += 1
        del self._vlans[vlan_id]
        logger.info("VLAN %d deleted, %d ports reset to VLAN 1", vlan_id, reset)
        return reset

    def assign_ports(
        self,
        graph: TopologyGraph,
        switch_id: int,
        selection: list[str | int],
        vlan_id: int = DEFAULT_VLAN_ID,
        trunk: bool = False,
    ) -> tuple[list[str], list[str]]:
        """Put switch ports into a VLAN (or make them trunks).

        Numbers select the port whose name ends in ``/N``, creating
        ``Fa0/N`` if there is none. Names match case-insensitively,
        first exactly and then as a substring; unmatched names are
        reported back and not created.

        Returns:
            Tuple of (configured port names, unmatched names)
        """
        device = graph.device(switch_id)
        if device.device_class is not DeviceClass.SWITCH:
            raise VlanError(f"{device.hostname} is not a switch", {"device": device.hostname})

        configured: list[str] = []
        missing: list[str] = []
        for selector in selection:
            if isinstance(selector, int):
                port = self._port_by_number(device.ports, selector) or device.add_port(f"Fa0/{selector}")
            else:
                port = self._port_by_name(device.ports, selector)
                if port is None:
                    missing.append(selector)
                    continue
            port.is_trunk = trunk
            port.vlan_id = vlan_id
            configured.append(port.name)

        logger.debug(
            "Configured %s on %s -> %s",
            ", ".join(configured), device.hostname, "TRUNK" if trunk else f"VLAN {vlan_id}",
        )
        return configured, missing

    @staticmethod
    def _port_by_number(ports: list[Interface], number: int) -> Interface | None:
        suffix = f"/{number}"
        for port in ports:
            if port.name.endswith(suffix):
                return port
        return None

    @staticmethod
    def _port_by_name(ports: list[Interface], name: str) -> Interface | None:
        wanted = name.lower()
        for port in ports:
            if port.name.lower() == wanted:
                return port
        for port in ports:
            if wanted in port.name.lower():
                return port
        return None
