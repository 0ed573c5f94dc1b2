"""Lab topology data models.

Pydantic models for representing lab topology elements:
- Devices (routers, switches and PCs) with their port catalogs
- Interfaces (ports) and their neighbor references
- Links (cables) between two ports

Devices are a closed variant set discriminated by ``device_class``.
Neighbor references are device ids, never object references, so deleting
a device can never leave a dangling pointer behind.
"""

from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, Field


class DeviceClass(str, Enum):
    """Supported device classes."""

    ROUTER = "ROUTER"
    SWITCH = "SWITCH"
    PC = "PC"


class CableType(str, Enum):
    """Cable required between two ports."""

    CROSSOVER = "crossover"
    STRAIGHT_THROUGH = "straight-through"
    SERIAL = "serial"

    @property
    def label(self) -> str:
        return _CABLE_LABELS[self]


_CABLE_LABELS = {
    CableType.CROSSOVER: "Crossover Cable",
    CableType.STRAIGHT_THROUGH: "Copper Straight-Through",
    CableType.SERIAL: "Serial Cable",
}

ROUTER_PORTS = ["Gig0/0", "Gig0/1", "Gig0/2", "Se0/1/0", "Se0/1/1"]
SWITCH_PORTS = [f"Fa0/{i}" for i in range(1, 25)] + ["Gig0/1", "Gig0/2"]
PC_PORTS = ["Fa0"]

# The single NIC a PC is cabled through when no port is named
PC_CANONICAL_PORT = "Fa0"


class Neighbor(BaseModel):
    """The far end of a connected interface."""

    device_id: int = Field(..., description="Id of the neighbor device")
    port: str = Field(..., description="Port name on the neighbor device")


class Interface(BaseModel):
    """A named connection point on a device."""

    name: str = Field(..., min_length=1, description="Port name (e.g., 'Gig0/1')")
    connected: bool = Field(default=False, description="Whether a cable is plugged in")
    neighbor: Neighbor | None = Field(
        default=None,
        description="Far end of the cable, only set while connected",
    )
    vlan_id: int = Field(default=1, ge=1, description="Access VLAN")
    is_trunk: bool = Field(default=False, description="Port is an 802.1Q trunk")
    manual_ip: str | None = Field(default=None, description="Manual IP override")

    def clear(self) -> None:
        """Mark the port as unplugged."""
        self.connected = False
        self.neighbor = None


class Position(BaseModel):
    """Canvas coordinates used by drawing front-ends."""

    x: float = 0.0
    y: float = 0.0


class Color(BaseModel):
    """RGB color used by drawing front-ends."""

    r: float = 1.0
    g: float = 1.0
    b: float = 1.0


class ManagementConfig(BaseModel):
    """Remote management and password settings for a device."""

    enable_secret: str = ""
    vty_password: str = ""
    ssh_username: str = ""
    ssh_password: str = ""
    management_svi_ip: str = ""
    management_gateway: str = ""
    allowed_telnet_ip: str = Field(default="", description="Empty means any source")
    enable_telnet: bool = Field(default=True, description="Telnet if true, SSH otherwise")


class SubInterface(BaseModel):
    """A router-on-a-stick subinterface."""

    sub_id: int
    vlan_id: int
    ip_address: str
    subnet_mask: str
    interface_name: str = ""

    @property
    def full_name(self) -> str:
        return self.interface_name or f"g0/0/0.{self.sub_id}"


class DhcpPool(BaseModel):
    """A DHCP pool served by a router."""

    name: str
    network: str
    mask: str
    default_router: str


class Vlan(BaseModel):
    """A VLAN known to a switch."""

    id: int = Field(..., ge=1, le=4094)
    name: str


class DeviceBase(BaseModel):
    """Fields and port handling shared by every device class."""

    hostname: str = Field(..., min_length=1, description="Unique device hostname")
    model: str = Field(default="Generic", description="Hardware model")
    ports: list[Interface] = Field(default_factory=list, description="Ports in declaration order")
    position: Position = Field(default_factory=Position)
    color: Color = Field(default_factory=Color)
    management: ManagementConfig = Field(default_factory=ManagementConfig)

    def interface(self, name: str) -> Interface | None:
        """Get a port by exact name."""
        for port in self.ports:
            if port.name == name:
                return port
        return None

    def add_port(self, name: str) -> Interface:
        """Return the named port, creating it if absent."""
        port = self.interface(name)
        if port is None:
            port = Interface(name=name)
            self.ports.append(port)
        return port

    def available_ports(self) -> list[str]:
        """Names of unconnected ports, in declaration order."""
        return [p.name for p in self.ports if not p.connected]

    def connected_ports(self) -> list[Interface]:
        return [p for p in self.ports if p.connected]


def _ports(names: list[str]) -> list[Interface]:
    return [Interface(name=n) for n in names]


class Router(DeviceBase):
    """A router (ISR4331 catalog)."""

    device_class: Literal[DeviceClass.ROUTER] = DeviceClass.ROUTER
    model: str = "ISR4331"
    ports: list[Interface] = Field(default_factory=lambda: _ports(ROUTER_PORTS))
    subinterfaces: list[SubInterface] = Field(default_factory=list)
    dhcp_pools: list[DhcpPool] = Field(default_factory=list)

    def configure_roas(
        self,
        sub_id: int,
        vlan_id: int,
        ip_address: str,
        subnet_mask: str,
        interface_name: str = "",
    ) -> SubInterface:
        """Add a router-on-a-stick subinterface."""
        sub = SubInterface(
            sub_id=sub_id,
            vlan_id=vlan_id,
            ip_address=ip_address,
            subnet_mask=subnet_mask,
            interface_name=interface_name,
        )
        self.subinterfaces.append(sub)
        return sub

    def add_dhcp_pool(self, name: str, network: str, mask: str, default_router: str) -> DhcpPool:
        pool = DhcpPool(name=name, network=network, mask=mask, default_router=default_router)
        self.dhcp_pools.append(pool)
        return pool


class Switch(DeviceBase):
    """A layer-2 switch (2960 catalog)."""

    device_class: Literal[DeviceClass.SWITCH] = DeviceClass.SWITCH
    model: str = "2960"
    ports: list[Interface] = Field(default_factory=lambda: _ports(SWITCH_PORTS))
    vlans: list[Vlan] = Field(default_factory=list)

    def add_vlan(self, vlan_id: int, name: str) -> None:
        """Define a VLAN on the switch, renaming it if already present."""
        for vlan in self.vlans:
            if vlan.id == vlan_id:
                vlan.name = name
                return
        self.vlans.append(Vlan(id=vlan_id, name=name))


class PC(DeviceBase):
    """An end host with a single NIC."""

    device_class: Literal[DeviceClass.PC] = DeviceClass.PC
    ports: list[Interface] = Field(default_factory=lambda: _ports(PC_PORTS))


AnyDevice = Union[Router, Switch, PC]
Device = Annotated[AnyDevice, Field(discriminator="device_class")]

DEVICE_TYPES: dict[DeviceClass, type[DeviceBase]] = {
    DeviceClass.ROUTER: Router,
    DeviceClass.SWITCH: Switch,
    DeviceClass.PC: PC,
}


def make_device(hostname: str, device_class: DeviceClass | str) -> AnyDevice:
    """Create a device of the given class with its default port catalog."""
    return DEVICE_TYPES[DeviceClass(device_class)](hostname=hostname)  # type: ignore[return-value]


def cable_group(device_class: DeviceClass) -> int:
    """MDI group: routers and PCs are group 1, switches group 2."""
    if device_class is DeviceClass.SWITCH:
        return 2
    return 1


def is_serial_port(port: str) -> bool:
    return port[:1].lower() == "s"


def infer_cable_type(
    device_a: AnyDevice,
    port_a: str,
    device_b: AnyDevice,
    port_b: str,
) -> CableType:
    """Pick the cable for a link.

    Serial ports win over everything else. Otherwise like devices
    (same MDI group) need a crossover and unlike devices a
    straight-through cable.
    """
    if is_serial_port(port_a) or is_serial_port(port_b):
        return CableType.SERIAL
    if cable_group(device_a.device_class) == cable_group(device_b.device_class):
        return CableType.CROSSOVER
    return CableType.STRAIGHT_THROUGH


class Link(BaseModel):
    """A cable between two device ports."""

    id: int = Field(..., description="Link id, unique within the graph")
    device_a: int = Field(..., description="First device id")
    port_a: str = Field(..., description="Port on the first device")
    device_b: int = Field(..., description="Second device id")
    port_b: str = Field(..., description="Port on the second device")
    cable_type: CableType = Field(..., description="Cable inferred at creation")

    def involves(self, device_id: int) -> bool:
        return device_id in (self.device_a, self.device_b)

    def joins(self, first: int, second: int) -> bool:
        """True if the link runs between the two devices, in either direction."""
        return (self.device_a, self.device_b) in ((first, second), (second, first))
