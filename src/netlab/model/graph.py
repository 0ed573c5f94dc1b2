"""Topology connectivity graph.

Owns every device and link of a lab. Devices and links live in arenas
keyed by integer ids; interfaces refer to neighbors by id, so the Link
records and the per-port state can be checked against each other and
are always changed together inside one method call.
"""

import logging
import re
from dataclasses import dataclass, field

import networkx as nx

from netlab.errors import (
    DuplicateHostnameError,
    InvalidReferenceError,
    PortBusyError,
    PortNotFoundError,
    TopologyError,
)
from netlab.model.topology import (
    PC_CANONICAL_PORT,
    AnyDevice,
    DeviceClass,
    Interface,
    Link,
    Neighbor,
    infer_cable_type,
    make_device,
)

logger = logging.getLogger(__name__)

_LAST_NUMBER = re.compile(r"(\d+)(\D*)$")


def increment_port(port_name: str) -> str:
    """Bump the last number in a port name.

    Example:
        >>> increment_port("Fa0/9")
        'Fa0/10'
    """
    match = _LAST_NUMBER.search(port_name)
    if match is None:
        return port_name
    number = int(match.group(1)) + 1
    return f"{port_name[:match.start(1)]}{number}{match.group(2)}"


@dataclass
class ConnectionOutcome:
    """Result of one source device in a batch connection."""

    source: str
    source_port: str | None = None
    target_port: str | None = None
    link_id: int | None = None
    reason: str = ""

    @property
    def connected(self) -> bool:
        return self.link_id is not None


@dataclass
class BatchResult:
    """Result of connecting several sources to one target."""

    target: str
    outcomes: list[ConnectionOutcome] = field(default_factory=list)
    stopped: str = ""

    @property
    def connected(self) -> list[ConnectionOutcome]:
        return [o for o in self.outcomes if o.connected]

    @property
    def skipped(self) -> list[ConnectionOutcome]:
        return [o for o in self.outcomes if not o.connected]


class TopologyGraph:
    """Devices, their ports and the cables between them.

    Example:
        graph = TopologyGraph()
        r0 = graph.add_device("Router0", DeviceClass.ROUTER)
        s0 = graph.add_device("Switch0", DeviceClass.SWITCH)
        link_id = graph.connect(r0, "Gig0/1", s0, "Gig0/1")
    """

    def __init__(self) -> None:
        self._devices: dict[int, AnyDevice] = {}
        self._links: dict[int, Link] = {}
        self._next_device_id = 1
        self._next_link_id = 1

    # ------------------------------------------------------------------
    # Devices
    # ------------------------------------------------------------------

    def add_device(self, hostname: str, device_class: DeviceClass | str) -> int:
        """Create a device with its default port catalog.

        Raises:
            DuplicateHostnameError: If the hostname is taken (case-sensitive)
        """
        if self.find_device(hostname) is not None:
            raise DuplicateHostnameError(hostname)
        return self.adopt(make_device(hostname, device_class))

    def adopt(self, device: AnyDevice) -> int:
        """Add an already-built device, returning its id.

        Ports are taken as-is but any neighbor state is dropped, since
        connections can only be made through ``connect``.
        """
        if self.find_device(device.hostname) is not None:
            raise DuplicateHostnameError(device.hostname)
        for port in device.ports:
            port.clear()
        device_id = self._next_device_id
        self._next_device_id += 1
        self._devices[device_id] = device
        logger.debug("Added %s %s as device %d", device.device_class.value, device.hostname, device_id)
        return device_id

    def device(self, device_id: int) -> AnyDevice:
        """Get a device by id.

        Raises:
            InvalidReferenceError: If no such device exists
        """
        try:
            return self._devices[device_id]
        except KeyError:
            raise InvalidReferenceError("device", device_id) from None

    def find_device(self, hostname: str) -> int | None:
        """Get the id of the device with this exact hostname."""
        for device_id, device in self._devices.items():
            if device.hostname == hostname:
                return device_id
        return None

    def hostname(self, device_id: int) -> str:
        return self.device(device_id).hostname

    def devices(self) -> list[tuple[int, AnyDevice]]:
        """All devices as (id, device), in declaration order."""
        return list(self._devices.items())

    def device_ids(self) -> list[int]:
        return list(self._devices)

    def device_at(self, index: int) -> int:
        """Id of the device at a declaration-order index."""
        ids = self.device_ids()
        if not 0 <= index < len(ids):
            raise InvalidReferenceError("device index", index)
        return ids[index]

    def index_of(self, device_id: int) -> int:
        """Declaration-order index of a device."""
        self.device(device_id)
        return self.device_ids().index(device_id)

    def __len__(self) -> int:
        return len(self._devices)

    def __contains__(self, device_id: object) -> bool:
        return device_id in self._devices

    # ------------------------------------------------------------------
    # Ports
    # ------------------------------------------------------------------

    def interface(self, device_id: int, port: str) -> Interface:
        """Get a port on a device.

        Raises:
            PortNotFoundError: If the device has no such port
        """
        device = self.device(device_id)
        iface = device.interface(port)
        if iface is None:
            raise PortNotFoundError(device.hostname, port)
        return iface

    def available_ports(self, device_id: int) -> list[str]:
        return self.device(device_id).available_ports()

    def auto_port(self, device_id: int) -> str | None:
        """First free port, preferring a PC's own NIC."""
        device = self.device(device_id)
        ports = device.available_ports()
        if not ports:
            return None
        if device.device_class is DeviceClass.PC and PC_CANONICAL_PORT in ports:
            return PC_CANONICAL_PORT
        return ports[0]

    # ------------------------------------------------------------------
    # Links
    # ------------------------------------------------------------------

    @property
    def links(self) -> list[Link]:
        return list(self._links.values())

    def link(self, link_id: int) -> Link:
        try:
            return self._links[link_id]
        except KeyError:
            raise InvalidReferenceError("link", link_id) from None

    def connect(self, device_a: int, port_a: str, device_b: int, port_b: str) -> int:
        """Cable two ports together.

        Ports that are not in a device's catalog are created on first
        reference. Nothing is changed if either port is blank or already
        in use.

        Returns:
            Id of the new link

        Raises:
            InvalidReferenceError: If either device does not exist
            TopologyError: If a port name is blank or both ends are the
                same port
            PortBusyError: If either port is already connected
        """
        dev_a = self.device(device_a)
        dev_b = self.device(device_b)
        if device_a == device_b and port_a == port_b:
            raise TopologyError(
                f"Cannot connect {port_a} on {dev_a.hostname} to itself",
                {"device": dev_a.hostname, "port": port_a},
            )

        for device, port in ((dev_a, port_a), (dev_b, port_b)):
            if not port or not port.strip():
                raise TopologyError(
                    f"Empty port name on {device.hostname}",
                    {"device": device.hostname},
                )
            existing = device.interface(port)
            if existing is not None and existing.connected:
                raise PortBusyError(device.hostname, port)

        iface_a = dev_a.add_port(port_a)
        iface_b = dev_b.add_port(port_b)

        iface_a.connected = True
        iface_a.neighbor = Neighbor(device_id=device_b, port=port_b)
        iface_b.connected = True
        iface_b.neighbor = Neighbor(device_id=device_a, port=port_a)

        link = Link(
            id=self._next_link_id,
            device_a=device_a,
            port_a=port_a,
            device_b=device_b,
            port_b=port_b,
            cable_type=infer_cable_type(dev_a, port_a, dev_b, port_b),
        )
        self._next_link_id += 1
        self._links[link.id] = link

        logger.debug(
            "Connected %s (%s) <--> %s (%s) with %s",
            dev_a.hostname, port_a, dev_b.hostname, port_b, link.cable_type.label,
        )
        return link.id

    def disconnect(self, link_id: int) -> None:
        """Unplug one cable, clearing both ends."""
        link = self.link(link_id)
        for device_id, port in ((link.device_a, link.port_a), (link.device_b, link.port_b)):
            iface = self._devices[device_id].interface(port)
            if iface is not None:
                iface.clear()
        del self._links[link_id]
        logger.debug("Disconnected link %d", link_id)

    def disconnect_all(self) -> int:
        """Unplug every cable in the lab, returning how many were removed."""
        count = len(self._links)
        for device in self._devices.values():
            for port in device.ports:
                port.clear()
        self._links.clear()
        logger.info("Unplugged %d cables", count)
        return count

    def delete_device(self, device_id: int) -> int:
        """Delete a device and every cable attached to it.

        Returns:
            Number of cables removed
        """
        target = self.device(device_id)

        for other_id, other in self._devices.items():
            if other_id == device_id:
                continue
            for port in other.ports:
                if port.connected and port.neighbor is not None and port.neighbor.device_id == device_id:
                    port.clear()

        doomed = [link_id for link_id, link in self._links.items() if link.involves(device_id)]
        for link_id in doomed:
            del self._links[link_id]

        del self._devices[device_id]
        logger.info("Deleted %s and unplugged %d cables", target.hostname, len(doomed))
        return len(doomed)

    def links_of(self, device_id: int) -> list[Link]:
        return [link for link in self._links.values() if link.involves(device_id)]

    def are_linked(self, first: int, second: int) -> bool:
        """True if at least one cable runs directly between two devices."""
        return any(link.joins(first, second) for link in self._links.values())

    def neighbors(self, device_id: int) -> list[int]:
        """Ids of devices one cable away, without duplicates."""
        seen: list[int] = []
        for port in self.device(device_id).connected_ports():
            if port.neighbor is not None and port.neighbor.device_id not in seen:
                seen.append(port.neighbor.device_id)
        return seen

    def to_networkx(self) -> nx.MultiGraph:
        """Build an undirected NetworkX view of the lab.

        Nodes are device ids carrying hostname/class attributes; every
        link becomes an edge keyed by its link id.
        """
        graph = nx.MultiGraph()
        for device_id, device in self._devices.items():
            graph.add_node(
                device_id,
                hostname=device.hostname,
                device_class=device.device_class.value,
            )
        for link in self._links.values():
            graph.add_edge(
                link.device_a,
                link.device_b,
                key=link.id,
                port_a=link.port_a,
                port_b=link.port_b,
                cable=link.cable_type.value,
            )
        return graph

    # ------------------------------------------------------------------
    # Batch wiring
    # ------------------------------------------------------------------

    def connect_batch(
        self,
        sources: list[int],
        target: int,
        target_start_port: str | None = None,
        preferred_source_port: str | None = None,
    ) -> BatchResult:
        """Connect several devices to one target device.

        Source ports are picked automatically unless a preferred port is
        named, in which case a source lacking that free port is skipped.
        An explicit target port must exist and be free and is incremented
        after every successful link; the batch stops at the first target
        port that cannot be used.
        """
        target_dev = self.device(target)
        result = BatchResult(target=target_dev.hostname)
        current_target_port = target_start_port or None

        for source in sources:
            source_dev = self.device(source)
            outcome = ConnectionOutcome(source=source_dev.hostname)
            result.outcomes.append(outcome)

            if source == target:
                outcome.reason = "Cannot connect device to itself"
                continue

            if preferred_source_port:
                iface = source_dev.interface(preferred_source_port)
                if iface is None:
                    outcome.reason = PortNotFoundError(source_dev.hostname, preferred_source_port).message
                    continue
                if iface.connected:
                    outcome.reason = PortBusyError(source_dev.hostname, preferred_source_port).message
                    continue
                source_port = preferred_source_port
            else:
                source_port = self.auto_port(source)
                if source_port is None:
                    outcome.reason = f"No free ports on {source_dev.hostname}"
                    continue

            if current_target_port is None:
                free = target_dev.available_ports()
                target_port = free[0] if free else None
                if target_port is None:
                    result.stopped = f"{target_dev.hostname} is full"
                    outcome.reason = result.stopped
                    break
            else:
                iface = target_dev.interface(current_target_port)
                if iface is None:
                    result.stopped = PortNotFoundError(target_dev.hostname, current_target_port).message
                    outcome.reason = result.stopped
                    break
                if iface.connected:
                    result.stopped = PortBusyError(target_dev.hostname, current_target_port).message
                    outcome.reason = result.stopped
                    break
                target_port = current_target_port

            outcome.source_port = source_port
            outcome.target_port = target_port
            outcome.link_id = self.connect(source, source_port, target, target_port)

            if current_target_port is not None:
                current_target_port = increment_port(current_target_port)

        return result
