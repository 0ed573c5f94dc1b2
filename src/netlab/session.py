"""Lab session.

One LabSession holds everything a student works on at a time: the
topology graph, the subnet forest, the VLAN database and the static
routes. Front-ends pass the session around instead of sharing globals.
"""

import logging

from pydantic import BaseModel, Field

from netlab.config import NetlabSettings
from netlab.errors import TopologyError
from netlab.model.graph import TopologyGraph
from netlab.model.subnets import Network, SubnetForest
from netlab.model.topology import DeviceClass
from netlab.model.vlans import VlanDatabase
from netlab.relay import RelayResolver

logger = logging.getLogger(__name__)


class StaticRoute(BaseModel):
    """A static route configured on a router."""

    router_id: int = Field(..., description="Device id of the router")
    destination: str = Field(..., description="Destination network")
    mask: str = Field(..., description="Destination mask")
    next_hop: str = Field(..., description="Next-hop address or exit interface")


class LabSession:
    """Topology, addressing plan and VLANs of one lab."""

    def __init__(
        self,
        graph: TopologyGraph | None = None,
        forest: SubnetForest | None = None,
        vlans: VlanDatabase | None = None,
    ) -> None:
        self.graph = graph if graph is not None else TopologyGraph()
        self.forest = forest if forest is not None else SubnetForest()
        self.vlans = vlans if vlans is not None else VlanDatabase()
        self.static_routes: list[StaticRoute] = []

    @classmethod
    def from_settings(cls, settings: NetlabSettings) -> "LabSession":
        return cls(
            forest=SubnetForest(
                reject_assigned_split=settings.reject_assigned_split,
                max_children=settings.max_children,
            )
        )

    @property
    def resolver(self) -> RelayResolver:
        return RelayResolver(self.forest, self.graph)

    def reset(self) -> None:
        """Forget every device, link, subnet, VLAN and route."""
        self.graph = TopologyGraph()
        self.forest.reset()
        self.vlans.reset()
        self.static_routes.clear()

    def delete_device(self, device_id: int) -> int:
        """Delete a device and every reference to it.

        Cables, static routes and subnet ownership go with the device,
        and DHCP is turned off on subnets it served through a relay.

        Returns:
            Number of cables removed
        """
        removed = self.graph.delete_device(device_id)
        released = self.forest.release_owner(device_id)
        unserved = self.forest.release_server(device_id)
        self.static_routes = [r for r in self.static_routes if r.router_id != device_id]
        if released:
            logger.info("Released %d subnets owned by device %d", released, device_id)
        if unserved:
            logger.info("Disabled DHCP on %d subnets served by device %d", unserved, device_id)
        return removed

    def add_static_route(self, router_id: int, destination: str, mask: str, next_hop: str) -> StaticRoute:
        self._require_class(router_id, DeviceClass.ROUTER)
        route = StaticRoute(router_id=router_id, destination=destination, mask=mask, next_hop=next_hop)
        self.static_routes.append(route)
        return route

    def assign_to_router(
        self,
        subnet_id: int,
        router_id: int,
        interface: str,
        vlan_id: int = 0,
    ) -> Network:
        """Assign a leaf to a router port (or VLAN subinterface)."""
        self._require_class(router_id, DeviceClass.ROUTER)
        vlan_name = self.vlans.name(vlan_id) if vlan_id > 0 and self.vlans.exists(vlan_id) else None
        return self.forest.assign(subnet_id, router_id, interface, vlan_id=vlan_id, vlan_name=vlan_name)

    def assign_to_switch(
        self,
        subnet_id: int,
        switch_id: int,
        vlan_id: int,
        vlan_name: str | None = None,
    ) -> Network:
        """Assign a leaf to a switch VLAN, defining the VLAN on the switch."""
        switch = self._require_class(switch_id, DeviceClass.SWITCH)
        node = self.forest.find(subnet_id)
        name = vlan_name or node.name or f"VLAN{vlan_id}"
        network = self.forest.assign(subnet_id, switch_id, f"VLAN {vlan_id}")
        switch.add_vlan(vlan_id, name)
        return network

    def owner_hostname(self, network: Network) -> str | None:
        owner_id = network.assignment.owner_id
        if owner_id is None or owner_id not in self.graph:
            return None
        return self.graph.hostname(owner_id)

    def summary(self) -> dict[str, int]:
        return {
            "devices": len(self.graph),
            "links": len(self.graph.links),
            "vlans": len(self.vlans),
            "subnets": len(self.forest),
            "static_routes": len(self.static_routes),
        }

    def _require_class(self, device_id: int, device_class: DeviceClass):
        device = self.graph.device(device_id)
        if device.device_class is not device_class:
            raise TopologyError(
                f"{device.hostname} is not a {device_class.value.lower()}",
                {"device": device.hostname, "expected": device_class.value},
            )
        return device
